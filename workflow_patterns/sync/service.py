"""
Push and pull orchestration between the local store and the registry.

Push:
    eligible patterns -> anonymize -> PII audit (dirty ones are blocked)
    -> one batch to the registry -> mark the accepted ones as synced

Pull:
    page through the registry -> skip ids already present -> save the rest
    as private community patterns

Both directions require the contributor to have opted into sync and write
a run to the sync audit log.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Iterable, Optional

from workflow_patterns.config import WorkflowConfig, load_config
from workflow_patterns.contributor import ContributorManager
from workflow_patterns.errors import RateLimitedError, RegistryError, format_wait
from workflow_patterns.logger import SyncLogger
from workflow_patterns.patterns.anonymizer import PatternAnonymizer
from workflow_patterns.patterns.identity import generate_pattern_hash
from workflow_patterns.patterns.models import (
    PatternKind,
    SchemaValidationError,
    pattern_from_dict,
)
from workflow_patterns.patterns.store import PatternStore
from workflow_patterns.sync.rate_limit import RateLimitTracker
from workflow_patterns.sync.registry_client import RegistryClient, RegistryPattern

logger = logging.getLogger(__name__)

LEARNING_KINDS: tuple[PatternKind, ...] = (PatternKind.FIX, PatternKind.BLUEPRINT)
SYNC_DISABLED = "Sync is not enabled"


@dataclass
class PushSummary:
    """What a push did, per outcome."""
    ready: dict[PatternKind, int] = field(default_factory=dict)
    pushed: int = 0
    skipped: int = 0
    blocked: int = 0
    failed: int = 0
    dry_run: bool = False
    blocked_ids: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    rate_limit_remaining: Optional[int] = None
    rate_limited: bool = False
    retry_in: Optional[str] = None
    error: Optional[str] = None

    @property
    def total_ready(self) -> int:
        return sum(self.ready.values())

    @property
    def success(self) -> bool:
        return self.error is None and not self.rate_limited


@dataclass
class PullSummary:
    """What a pull did, per outcome."""
    received: int = 0
    saved: int = 0
    skipped: int = 0
    failed: int = 0
    dry_run: bool = False
    rate_limited: bool = False
    retry_in: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None and not self.rate_limited


class SyncService:
    """Moves shareable patterns between a workspace and the registry."""

    def __init__(
        self,
        workspace: str | Path = ".",
        config: Optional[WorkflowConfig] = None,
        client: Optional[RegistryClient] = None,
        store: Optional[PatternStore] = None,
        contributor: Optional[ContributorManager] = None,
        sync_logger: Optional[SyncLogger] = None,
        rate_limit: Optional[RateLimitTracker] = None,
    ) -> None:
        self.config = config or load_config(workspace)
        self.store = store or PatternStore(config=self.config)
        self.contributor = contributor or ContributorManager(config=self.config)
        self.sync_logger = sync_logger or SyncLogger("sync", config=self.config)
        self.rate_limit = rate_limit or RateLimitTracker()
        self.anonymizer = PatternAnonymizer()
        self._client = client

    @asynccontextmanager
    async def _registry(self) -> AsyncIterator[RegistryClient]:
        """The injected client, or a fresh one closed after use."""
        if self._client is not None:
            yield self._client
            return
        async with RegistryClient(self.config.registry) as client:
            yield client

    # =========================================================================
    # Push
    # =========================================================================

    async def push(
        self,
        dry_run: bool = False,
        kinds: Iterable[PatternKind] = LEARNING_KINDS,
    ) -> PushSummary:
        """
        Push eligible local patterns to the registry.

        Patterns that still contain PII after anonymization are blocked and
        never leave the machine. Ids the registry reports errors for stay
        unsynced and are retried by the next push.
        """
        kinds = tuple(kinds)
        summary = PushSummary(dry_run=dry_run)

        if not await self.contributor.is_sync_enabled():
            summary.error = SYNC_DISABLED
            return summary

        with self.sync_logger.run_context(f"push-{uuid.uuid4().hex[:8]}") as log:
            log.info("push_start", {"kinds": [k.value for k in kinds], "dry_run": dry_run})

            batch: list[RegistryPattern] = []
            eligible = await self.store.get_patterns_for_sync()
            for kind in kinds:
                summary.ready[kind] = 0
                for pattern in eligible.get(kind, []):
                    result = self.anonymizer.anonymize(pattern)
                    if not result.success or result.data is None:
                        summary.failed += 1
                        summary.errors.append(f"{pattern.id}: {result.error}")
                        log.warn("pattern_anonymize_failed", {"id": pattern.id, "error": result.error})
                        continue

                    report = self.anonymizer.validate_anonymization(result.data)
                    if not report.is_clean:
                        summary.blocked += 1
                        summary.blocked_ids.append(pattern.id)
                        log.warn("pattern_blocked", {"id": pattern.id, "issues": report.issues})
                        continue

                    anonymized = result.data
                    batch.append(RegistryPattern(
                        id=anonymized.id,
                        type=kind,
                        data=anonymized.to_dict(),
                        hash=generate_pattern_hash(anonymized),
                    ))
                    summary.ready[kind] += 1

            if dry_run or not batch:
                log.info("push_finish", {"ready": summary.total_ready, "blocked": summary.blocked})
                return summary

            should_wait, wait_seconds = self.rate_limit.should_delay()
            if should_wait:
                summary.rate_limited = True
                summary.retry_in = format_wait(wait_seconds)
                log.warn("push_deferred", {"retry_in": summary.retry_in})
                return summary

            contributor = await self.contributor.get_or_create_id()
            if not contributor.success or contributor.data is None:
                summary.error = f"Could not get contributor ID: {contributor.error}"
                return summary

            try:
                async with self._registry() as client:
                    response = await client.push(batch, contributor.data)
            except RateLimitedError as e:
                self.rate_limit.record(e.remaining, e.reset_at)
                summary.rate_limited = True
                summary.retry_in = e.time_until_reset()
                log.warn("push_rate_limited", {"retry_in": summary.retry_in})
                return summary
            except RegistryError as e:
                summary.error = str(e)
                summary.failed += len(batch)
                log.error("push_failed", {"error": str(e), "type": e.error_type.name})
                return summary

            self.rate_limit.record(response.rate_limit.remaining, response.rate_limit.reset_at)
            summary.pushed = response.pushed
            summary.skipped = response.skipped
            summary.errors.extend(response.errors)
            summary.rate_limit_remaining = response.rate_limit.remaining

            rejected = {p.id for p in batch if any(p.id in err for err in response.errors)}
            summary.failed += len(rejected)
            for kind in kinds:
                ids = [p.id for p in batch if p.type is kind and p.id not in rejected]
                if ids:
                    await self.store.mark_as_synced(ids, kind, contributor.data)

            log.info("push_finish", {
                "pushed": summary.pushed,
                "skipped": summary.skipped,
                "blocked": summary.blocked,
                "failed": summary.failed,
                "remaining": summary.rate_limit_remaining,
            })

        return summary

    # =========================================================================
    # Pull
    # =========================================================================

    async def pull(
        self,
        dry_run: bool = False,
        kinds: Iterable[PatternKind] = LEARNING_KINDS,
        since: Optional[datetime] = None,
    ) -> PullSummary:
        """
        Fetch community patterns into the local store.

        Pulled patterns are stored private with source ``community``; ids
        already present locally are left untouched.
        """
        kinds = tuple(kinds)
        summary = PullSummary(dry_run=dry_run)

        if not await self.contributor.is_sync_enabled():
            summary.error = SYNC_DISABLED
            return summary

        with self.sync_logger.run_context(f"pull-{uuid.uuid4().hex[:8]}") as log:
            log.info("pull_start", {"kinds": [k.value for k in kinds], "dry_run": dry_run})

            try:
                async with self._registry() as client:
                    for kind in kinds:
                        pages = client.pull_all(
                            kind, page_size=self.config.sync.pull_page_size, since=since
                        )
                        async for page in pages:
                            for remote in page.patterns:
                                summary.received += 1
                                await self._import(remote, summary, log)
            except RateLimitedError as e:
                summary.rate_limited = True
                summary.retry_in = e.time_until_reset()
                log.warn("pull_rate_limited", {"retry_in": summary.retry_in})
                return summary
            except RegistryError as e:
                summary.error = str(e)
                log.error("pull_failed", {"error": str(e), "type": e.error_type.name})
                return summary

            log.info("pull_finish", {
                "received": summary.received,
                "saved": summary.saved,
                "skipped": summary.skipped,
                "failed": summary.failed,
            })

        return summary

    async def _import(self, remote: RegistryPattern, summary: PullSummary, log: SyncLogger) -> None:
        if await self.store.exists(remote.id, remote.type):
            summary.skipped += 1
            return

        data = dict(remote.data, id=remote.id, isPrivate=True, source="community")
        try:
            pattern = pattern_from_dict(remote.type, data)
            pattern.validate()
        except SchemaValidationError as e:
            summary.failed += 1
            log.warn("pattern_invalid", {"id": remote.id, "error": str(e)})
            return

        if summary.dry_run:
            summary.saved += 1
            return

        result = await self.store.save(pattern)
        if result.success:
            summary.saved += 1
        else:
            summary.failed += 1
            logger.warning("Could not save pulled pattern %s: %s", remote.id, result.error)
