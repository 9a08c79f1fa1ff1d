"""
Durable telemetry queue for pattern usage events.

Events move through recorded -> queued (persisted in
.workflow/telemetry-queue.json) -> flushed (accepted by the sender).
Nothing is recorded unless the contributor opted into telemetry. The
queue is re-read from disk on every access, so separate collector
instances over one workspace agree on its contents.

Delivery is at-least-once: a batch is dropped from the queue only after
the sender accepts it, so consumers should dedupe on event id.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from workflow_patterns.config import WorkflowConfig, load_config
from workflow_patterns.contributor import ContributorManager
from workflow_patterns.patterns.models import PatternKind, utc_now_iso
from workflow_patterns.utils.fs import FileSystemError, read_json, safe_write_json

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TelemetryEventType(Enum):
    APPLIED = "pattern-applied"
    SUCCESS = "pattern-success"
    FAILURE = "pattern-failure"


class FailureReason(Enum):
    """Categorized failure reasons. Raw error text is never recorded."""
    VERSION_MISMATCH = "version-mismatch"
    MISSING_DEPENDENCY = "missing-dependency"
    FILE_CONFLICT = "file-conflict"
    PERMISSION_ERROR = "permission-error"
    SYNTAX_ERROR = "syntax-error"
    UNKNOWN = "unknown"


@dataclass
class TelemetryEvent:
    """One usage event."""
    id: str
    type: TelemetryEventType
    pattern_id: str
    pattern_type: PatternKind
    contributor_id: str
    framework: str
    framework_version: str
    timestamp: str
    runtime: Optional[str] = None
    runtime_version: Optional[str] = None
    success: Optional[bool] = None
    failure_reason: Optional[FailureReason] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "patternId": self.pattern_id,
            "patternType": self.pattern_type.value,
            "contributorId": self.contributor_id,
            "framework": self.framework,
            "frameworkVersion": self.framework_version,
        }
        if self.runtime is not None:
            result["runtime"] = self.runtime
        if self.runtime_version is not None:
            result["runtimeVersion"] = self.runtime_version
        if self.success is not None:
            result["success"] = self.success
        if self.failure_reason is not None:
            result["failureReason"] = self.failure_reason.value
        result["timestamp"] = self.timestamp
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TelemetryEvent:
        reason = data.get("failureReason")
        return cls(
            id=data["id"],
            type=TelemetryEventType(data["type"]),
            pattern_id=data["patternId"],
            pattern_type=PatternKind(data["patternType"]),
            contributor_id=data["contributorId"],
            framework=data["framework"],
            framework_version=data["frameworkVersion"],
            timestamp=data["timestamp"],
            runtime=data.get("runtime"),
            runtime_version=data.get("runtimeVersion"),
            success=data.get("success"),
            failure_reason=FailureReason(reason) if reason else None,
        )


@dataclass
class TelemetryQueue:
    """On-disk queue document."""
    events: list[TelemetryEvent] = field(default_factory=list)
    total_events_sent: int = 0
    last_flush_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "events": [e.to_dict() for e in self.events],
            "totalEventsSent": self.total_events_sent,
        }
        if self.last_flush_at is not None:
            result["lastFlushAt"] = self.last_flush_at
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TelemetryQueue:
        return cls(
            events=[TelemetryEvent.from_dict(e) for e in data.get("events", [])],
            total_events_sent=data.get("totalEventsSent", 0),
            last_flush_at=data.get("lastFlushAt"),
        )


@dataclass
class TelemetryResult(Generic[T]):
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None


@dataclass
class TelemetryStats:
    pending_events: int
    total_events_sent: int
    last_flush_at: Optional[str] = None


@dataclass
class PatternTelemetryStats:
    """Aggregates over the queued events of one pattern."""
    applications: int = 0
    successes: int = 0
    failures: int = 0
    failure_reasons: dict[str, int] = field(default_factory=dict)


# Returns True when the batch was accepted.
TelemetrySender = Callable[[list[TelemetryEvent]], Awaitable[bool]]


class TelemetryCollector:
    """Records pattern usage events into the workspace's durable queue."""

    def __init__(
        self,
        workspace: str | Path = ".",
        config: Optional[WorkflowConfig] = None,
        sender: Optional[TelemetrySender] = None,
        contributor: Optional[ContributorManager] = None,
    ) -> None:
        self.config = config or load_config(workspace)
        self.queue_path = self.config.telemetry_queue_path
        self.batch_size = self.config.telemetry.batch_size
        self.max_queue_size = self.config.telemetry.max_queue_size
        self.contributor = contributor or ContributorManager(config=self.config)
        self._sender = sender
        self._lock = asyncio.Lock()

    # =========================================================================
    # Recording
    # =========================================================================

    async def record_application(
        self,
        pattern_id: str,
        pattern_type: PatternKind,
        framework: str,
        framework_version: str,
        runtime: Optional[str] = None,
        runtime_version: Optional[str] = None,
    ) -> TelemetryResult[TelemetryEvent]:
        return await self._record(
            TelemetryEventType.APPLIED, pattern_id, pattern_type, framework,
            framework_version, runtime, runtime_version,
        )

    async def record_success(
        self,
        pattern_id: str,
        pattern_type: PatternKind,
        framework: str,
        framework_version: str,
        runtime: Optional[str] = None,
        runtime_version: Optional[str] = None,
    ) -> TelemetryResult[TelemetryEvent]:
        return await self._record(
            TelemetryEventType.SUCCESS, pattern_id, pattern_type, framework,
            framework_version, runtime, runtime_version, success=True,
        )

    async def record_failure(
        self,
        pattern_id: str,
        pattern_type: PatternKind,
        framework: str,
        framework_version: str,
        failure_reason: FailureReason = FailureReason.UNKNOWN,
        runtime: Optional[str] = None,
        runtime_version: Optional[str] = None,
    ) -> TelemetryResult[TelemetryEvent]:
        return await self._record(
            TelemetryEventType.FAILURE, pattern_id, pattern_type, framework,
            framework_version, runtime, runtime_version,
            success=False, failure_reason=failure_reason,
        )

    async def _record(
        self,
        event_type: TelemetryEventType,
        pattern_id: str,
        pattern_type: PatternKind,
        framework: str,
        framework_version: str,
        runtime: Optional[str],
        runtime_version: Optional[str],
        success: Optional[bool] = None,
        failure_reason: Optional[FailureReason] = None,
    ) -> TelemetryResult[TelemetryEvent]:
        if not await self.contributor.is_telemetry_enabled():
            return TelemetryResult(success=False, error="Telemetry is disabled")

        if not pattern_id or not framework or not framework_version:
            return TelemetryResult(
                success=False,
                error="Invalid event: patternId, framework and frameworkVersion are required",
            )

        contributor = await self.contributor.get_or_create_id()
        if not contributor.success or contributor.data is None:
            return TelemetryResult(success=False, error="Could not get contributor ID")

        event = TelemetryEvent(
            id=str(uuid.uuid4()),
            type=event_type,
            pattern_id=pattern_id,
            pattern_type=pattern_type,
            contributor_id=contributor.data,
            framework=framework,
            framework_version=framework_version,
            timestamp=utc_now_iso(),
            runtime=runtime,
            runtime_version=runtime_version,
            success=success,
            failure_reason=failure_reason,
        )

        try:
            async with self._lock:
                queue = await self.get_queue()
                queue.events.append(event)
                if len(queue.events) > self.max_queue_size:
                    dropped = len(queue.events) - self.max_queue_size
                    queue.events = queue.events[-self.max_queue_size:]
                    logger.warning("Telemetry queue full, dropped %d oldest event(s)", dropped)
                await self._save_queue(queue)
                pending = len(queue.events)
        except FileSystemError as e:
            return TelemetryResult(success=False, error=str(e))

        if pending >= self.batch_size and self._sender is not None:
            flushed = await self.flush()
            if not flushed.success:
                logger.warning("Telemetry auto-flush failed: %s", flushed.error)

        return TelemetryResult(success=True, data=event)

    # =========================================================================
    # Queue
    # =========================================================================

    async def get_queue(self) -> TelemetryQueue:
        """
        Read the queue from disk.

        Raises:
            FileSystemError: If the queue file exists but cannot be read.
        """
        if not self.queue_path.exists():
            return TelemetryQueue()
        data = await read_json(self.queue_path)
        if not isinstance(data, dict):
            raise FileSystemError(f"Malformed telemetry queue {self.queue_path}: expected a JSON object")
        try:
            return TelemetryQueue.from_dict(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise FileSystemError(f"Malformed telemetry queue {self.queue_path}: {e}")

    async def _readable_queue(self) -> TelemetryQueue:
        """The queue for read-only views; an unreadable file counts as empty."""
        try:
            return await self.get_queue()
        except FileSystemError as e:
            logger.warning("Ignoring telemetry queue: %s", e)
            return TelemetryQueue()

    async def _save_queue(self, queue: TelemetryQueue) -> None:
        await safe_write_json(self.queue_path, queue.to_dict())

    async def get_pending_count(self) -> int:
        return len((await self._readable_queue()).events)

    async def get_stats(self) -> TelemetryStats:
        queue = await self._readable_queue()
        return TelemetryStats(
            pending_events=len(queue.events),
            total_events_sent=queue.total_events_sent,
            last_flush_at=queue.last_flush_at,
        )

    async def get_pattern_stats(self, pattern_id: str) -> PatternTelemetryStats:
        stats = PatternTelemetryStats()
        for event in (await self._readable_queue()).events:
            if event.pattern_id != pattern_id:
                continue
            if event.type is TelemetryEventType.APPLIED:
                stats.applications += 1
            elif event.type is TelemetryEventType.SUCCESS:
                stats.successes += 1
            elif event.type is TelemetryEventType.FAILURE:
                stats.failures += 1
                if event.failure_reason is not None:
                    reason = event.failure_reason.value
                    stats.failure_reasons[reason] = stats.failure_reasons.get(reason, 0) + 1
        return stats

    async def get_events_by_type(self, event_type: TelemetryEventType) -> list[TelemetryEvent]:
        return [e for e in (await self._readable_queue()).events if e.type is event_type]

    async def clear(self) -> TelemetryResult[None]:
        """Drop queued events. An unreadable queue file is replaced."""
        try:
            async with self._lock:
                queue = await self._readable_queue()
                queue.events = []
                await self._save_queue(queue)
        except FileSystemError as e:
            return TelemetryResult(success=False, error=str(e))
        return TelemetryResult(success=True)

    # =========================================================================
    # Delivery
    # =========================================================================

    def set_sender(self, sender: TelemetrySender) -> None:
        self._sender = sender

    def has_sender(self) -> bool:
        return self._sender is not None

    async def flush(self) -> TelemetryResult[int]:
        """
        Send queued events in batches.

        Each accepted batch is removed from the queue before the next one is
        sent. The first rejected batch stops the flush and stays queued.
        Returns the number of events delivered.
        """
        if self._sender is None:
            return TelemetryResult(success=False, error="No telemetry sender configured")

        sent = 0
        try:
            while True:
                batch = (await self.get_queue()).events[:self.batch_size]
                if not batch:
                    break

                try:
                    accepted = await self._sender(batch)
                except Exception as e:
                    logger.warning("Telemetry sender raised: %s", e)
                    return TelemetryResult(success=False, data=sent, error=str(e))
                if not accepted:
                    return TelemetryResult(success=False, data=sent, error="Failed to send telemetry")

                delivered = {event.id for event in batch}
                async with self._lock:
                    queue = await self.get_queue()
                    queue.events = [e for e in queue.events if e.id not in delivered]
                    queue.total_events_sent += len(batch)
                    queue.last_flush_at = utc_now_iso()
                    await self._save_queue(queue)
                sent += len(batch)
        except FileSystemError as e:
            return TelemetryResult(success=False, data=sent, error=str(e))

        return TelemetryResult(success=True, data=sent)
