"""
Audit trail for pattern sync runs.

Every push and pull appends JSON lines to
``.workflow/logs/<component>-YYYY-MM-DD.jsonl``::

    {"timestamp": "...Z", "level": "warn", "event_type": "pattern_blocked",
     "component": "sync", "data": {"id": "..."}, "run_id": "push-1a2b"}

Entries are also forwarded to the ``workflow_patterns.logger`` stdlib
logger at debug level, so ``-v`` style logging shows the same events.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional

from workflow_patterns.config import WorkflowConfig, get_config

logger = logging.getLogger(__name__)


class LogLevel:
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


@dataclass
class SyncLogEntry:
    """One line of the audit trail."""

    event_type: str
    level: str
    component: str
    data: dict[str, Any] = field(default_factory=dict)
    run_id: Optional[str] = None
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    )

    def to_dict(self) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "timestamp": self.timestamp,
            "level": self.level,
            "event_type": self.event_type,
            "component": self.component,
            "data": self.data,
        }
        if self.run_id:
            entry["run_id"] = self.run_id
        return entry


class SyncLogger:
    """Append-only JSONL writer for one component's sync events."""

    def __init__(self, component: str = "sync", config: Optional[WorkflowConfig] = None) -> None:
        self.component = component
        self._config = config
        self._run_id: Optional[str] = None

    @property
    def config(self) -> WorkflowConfig:
        if self._config is None:
            self._config = get_config()
        return self._config

    @property
    def run_id(self) -> Optional[str]:
        return self._run_id

    def _get_log_path(self, date: Optional[str] = None) -> Path:
        day = date or datetime.now(timezone.utc).strftime("%Y-%m-%d")
        return self.config.logs_path / f"{self.component}-{day}.jsonl"

    # =========================================================================
    # Writing
    # =========================================================================

    def log(self, event_type: str, data: Optional[dict[str, Any]] = None, level: str = LogLevel.INFO) -> None:
        entry = SyncLogEntry(
            event_type=event_type,
            level=level,
            component=self.component,
            data=data or {},
            run_id=self._run_id,
        )
        path = self._get_log_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict(), default=str) + "\n")
        logger.debug("[%s] %s %s", level, event_type, entry.data)

    def debug(self, event_type: str, data: Optional[dict[str, Any]] = None) -> None:
        self.log(event_type, data, LogLevel.DEBUG)

    def info(self, event_type: str, data: Optional[dict[str, Any]] = None) -> None:
        self.log(event_type, data, LogLevel.INFO)

    def warn(self, event_type: str, data: Optional[dict[str, Any]] = None) -> None:
        self.log(event_type, data, LogLevel.WARN)

    def error(self, event_type: str, data: Optional[dict[str, Any]] = None) -> None:
        self.log(event_type, data, LogLevel.ERROR)

    @contextmanager
    def run_context(self, run_id: str) -> Iterator[SyncLogger]:
        """
        Tag every entry written inside the block with ``run_id``.

        ``run_start`` and ``run_end`` bracket the run, including when the
        block raises.
        """
        outer = self._run_id
        self._run_id = run_id
        self.info("run_start", {"run_id": run_id})
        try:
            yield self
        finally:
            self.info("run_end", {"run_id": run_id})
            self._run_id = outer

    # =========================================================================
    # Reading
    # =========================================================================

    def _entries(self, date: Optional[str]) -> Iterator[dict[str, Any]]:
        path = self._get_log_path(date)
        if not path.exists():
            return
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    logger.debug("Skipping unreadable line in %s", path.name)

    def read_logs(
        self,
        date: Optional[str] = None,
        level: Optional[str] = None,
        event_type: Optional[str] = None,
        run_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """
        Entries of one day (today by default), oldest first.

        ``level``, ``event_type`` and ``run_id`` must all match when given;
        ``limit`` keeps the first N matches.
        """
        wanted = {"level": level, "event_type": event_type, "run_id": run_id}
        wanted = {key: value for key, value in wanted.items() if value}

        matches = []
        for entry in self._entries(date):
            if any(entry.get(key) != value for key, value in wanted.items()):
                continue
            matches.append(entry)
            if limit and len(matches) >= limit:
                break
        return matches
