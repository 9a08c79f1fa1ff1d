"""
Anonymous contributor identity for a local installation.

The record lives in .workflow/.contributor-id as JSON::

    {"id": "wf-<uuid>", "createdAt": "...", "syncOptIn": false,
     "telemetryEnabled": false, "syncEnabledAt": "..."}

The id is created once, even when several tasks or processes ask for it
at the same time, and is only replaced by an explicit, confirmed reset.
No operation raises for expected failures; each returns a
ContributorResult instead.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generic, Optional, TypeVar

from workflow_patterns.config import WorkflowConfig, load_config
from workflow_patterns.patterns.models import utc_now_iso
from workflow_patterns.utils.fs import (
    FileSystemError,
    create_exclusive,
    file_exists,
    read_json,
    remove_file,
    safe_write_json,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONTRIBUTOR_ID_PREFIX = "wf-"


@dataclass
class ContributorConfig:
    """The persisted contributor record."""

    id: str
    created_at: str
    sync_opt_in: bool = False
    telemetry_enabled: bool = False
    sync_enabled_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "createdAt": self.created_at,
            "syncOptIn": self.sync_opt_in,
            "telemetryEnabled": self.telemetry_enabled,
        }
        if self.sync_enabled_at is not None:
            result["syncEnabledAt"] = self.sync_enabled_at
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContributorConfig:
        return cls(
            id=data["id"],
            created_at=data["createdAt"],
            sync_opt_in=bool(data.get("syncOptIn", False)),
            telemetry_enabled=bool(data.get("telemetryEnabled", False)),
            sync_enabled_at=data.get("syncEnabledAt"),
        )


@dataclass
class ContributorResult(Generic[T]):
    """Outcome of a contributor operation."""

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None


def generate_contributor_id() -> str:
    return f"{CONTRIBUTOR_ID_PREFIX}{uuid.uuid4()}"


class ContributorManager:
    """Reads and updates the contributor record of one workspace."""

    def __init__(self, workspace: str | Path = ".", config: Optional[WorkflowConfig] = None) -> None:
        self.config = config or load_config(workspace)
        self.path = self.config.contributor_id_path
        self._lock = asyncio.Lock()

    async def exists(self) -> bool:
        return await file_exists(self.path)

    async def get_config(self) -> ContributorResult[ContributorConfig]:
        """Read the record from disk."""
        if not await self.exists():
            return ContributorResult(success=False, error="Contributor config not found")
        try:
            data = await read_json(self.path)
            if not isinstance(data, dict) or not data.get("id") or not data.get("createdAt"):
                return ContributorResult(success=False, error="Invalid contributor config")
            return ContributorResult(success=True, data=ContributorConfig.from_dict(data))
        except FileSystemError as e:
            return ContributorResult(success=False, error=str(e))

    async def create_config(self) -> ContributorResult[ContributorConfig]:
        """
        Create the record if absent.

        When another task or process wins the race, its record is returned
        so every caller agrees on one id.
        """
        fresh = ContributorConfig(id=generate_contributor_id(), created_at=utc_now_iso())
        try:
            created = await create_exclusive(self.path, json.dumps(fresh.to_dict(), indent=2) + "\n")
        except FileSystemError as e:
            return ContributorResult(success=False, error=str(e))

        if created:
            logger.info("Created contributor id")
            return ContributorResult(success=True, data=fresh)
        return await self.get_config()

    async def get_or_create_id(self) -> ContributorResult[str]:
        """The contributor id, creating the record on first use."""
        async with self._lock:
            result = await self._get_or_create()
        if not result.success or result.data is None:
            return ContributorResult(success=False, error=result.error)
        return ContributorResult(success=True, data=result.data.id)

    async def _get_or_create(self) -> ContributorResult[ContributorConfig]:
        result = await self.get_config()
        if result.success:
            return result
        if await self.exists():
            # Present but unreadable; do not silently replace it
            return result
        return await self.create_config()

    async def _save(self, config: ContributorConfig) -> ContributorResult[ContributorConfig]:
        try:
            await safe_write_json(self.path, config.to_dict())
        except FileSystemError as e:
            return ContributorResult(success=False, error=str(e))
        return ContributorResult(success=True, data=config)

    async def _update(self, create_if_missing: bool, **changes: Any) -> ContributorResult[ContributorConfig]:
        async with self._lock:
            result = await (self._get_or_create() if create_if_missing else self.get_config())
            if not result.success or result.data is None:
                return result
            config = result.data
            for name, value in changes.items():
                setattr(config, name, value)
            return await self._save(config)

    async def enable_sync(self) -> ContributorResult[ContributorConfig]:
        return await self._update(True, sync_opt_in=True, sync_enabled_at=utc_now_iso())

    async def disable_sync(self) -> ContributorResult[ContributorConfig]:
        return await self._update(False, sync_opt_in=False, sync_enabled_at=None)

    async def is_sync_enabled(self) -> bool:
        result = await self.get_config()
        return bool(result.success and result.data and result.data.sync_opt_in)

    async def enable_telemetry(self) -> ContributorResult[ContributorConfig]:
        return await self._update(True, telemetry_enabled=True)

    async def disable_telemetry(self) -> ContributorResult[ContributorConfig]:
        return await self._update(True, telemetry_enabled=False)

    async def is_telemetry_enabled(self) -> bool:
        result = await self.get_config()
        return bool(result.success and result.data and result.data.telemetry_enabled)

    async def reset_id(self, confirm: bool = False) -> ContributorResult[ContributorConfig]:
        """
        Replace the contributor id, keeping opt-in settings.

        Requires ``confirm=True``; patterns already pushed stay attributed
        to the old id on the registry.
        """
        if not confirm:
            return ContributorResult(success=False, error="Reset requires confirmation")

        async with self._lock:
            current = await self.get_config()
            previous = current.data if current.success else None
            config = ContributorConfig(
                id=generate_contributor_id(),
                created_at=utc_now_iso(),
                sync_opt_in=previous.sync_opt_in if previous else False,
                telemetry_enabled=previous.telemetry_enabled if previous else False,
                sync_enabled_at=previous.sync_enabled_at if previous else None,
            )
            return await self._save(config)

    async def delete(self) -> ContributorResult[None]:
        async with self._lock:
            try:
                await remove_file(self.path)
            except FileSystemError as e:
                return ContributorResult(success=False, error=str(e))
        return ContributorResult(success=True)
