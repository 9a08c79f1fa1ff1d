"""
File-backed store for fix patterns, blueprints and solution patterns.

Layout::

    .workflow/patterns/fixes/{slug}-{id}.json
    .workflow/patterns/blueprints/{slug}-{id}.json
    .workflow/patterns/solutions/{slug}-{id}.json

Legacy ``{id}.json`` files are still found on lookup and are migrated to
the slugged name the next time the pattern is written.

Every public operation returns a PatternResult (or a plain value for
read-only scans) instead of raising for expected conditions: validation
failures, missing patterns and I/O errors all come back as failed results.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Generic, Optional, TypeVar

from workflow_patterns.config import WorkflowConfig, load_config
from workflow_patterns.patterns.identity import (
    generate_pattern_hash,
    is_pattern_id,
    names_pattern_id,
    pattern_file_path,
    pattern_filename,
)
from workflow_patterns.patterns.models import (
    Blueprint,
    FixPattern,
    Pattern,
    PatternKind,
    PatternTag,
    SchemaValidationError,
    SolutionPattern,
    format_timestamp,
    is_pattern_deprecated,
    pattern_from_dict,
    update_metrics as next_metrics,
    utc_now,
)
from workflow_patterns.utils.fs import (
    FileSystemError,
    ensure_dir,
    list_files,
    read_json,
    remove_file,
    safe_write_json,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

NOT_FOUND = "not_found"
VALIDATION_FAILED = "validation_failed"
IO_FAILED = "io_failed"


@dataclass
class PatternResult(Generic[T]):
    """Outcome of a store operation."""

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def not_found(self) -> bool:
        return self.error_code == NOT_FOUND

    @classmethod
    def ok(cls, data: Optional[T] = None) -> "PatternResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, error_code: str) -> "PatternResult[T]":
        return cls(success=False, error=error, error_code=error_code)


@dataclass
class PatternQuery:
    """
    Filters applied to a directory scan.

    ``category`` matches fix and solution categories; ``solution_category``,
    ``keywords`` and ``source_project`` only narrow solution patterns.
    """

    tags: list[PatternTag] = field(default_factory=list)
    framework: Optional[str] = None
    category: Optional[str] = None
    include_deprecated: bool = False
    search: Optional[str] = None
    limit: Optional[int] = None
    offset: int = 0
    solution_category: Optional[str] = None
    keywords: list[str] = field(default_factory=list)
    source_project: Optional[str] = None


@dataclass
class ConflictResult:
    """Result of conflict detection against stored patterns of the same kind."""

    has_conflict: bool
    existing_pattern: Optional[Pattern] = None
    suggested_version: Optional[int] = None


@dataclass
class PatternValidationError:
    """A pattern file that could not be loaded."""

    file: str
    kind: PatternKind
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {"file": self.file, "type": self.kind.value, "error": self.error}


@dataclass
class KindStats:
    """Counts for one pattern kind."""

    total: int = 0
    deprecated: int = 0
    private: int = 0
    synced: int = 0
    invalid: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "deprecated": self.deprecated,
            "private": self.private,
            "synced": self.synced,
            "invalid": self.invalid,
        }


@dataclass
class PatternStats:
    """Statistics from a full scan of the store."""

    fixes: KindStats = field(default_factory=KindStats)
    blueprints: KindStats = field(default_factory=KindStats)
    solutions: KindStats = field(default_factory=KindStats)

    def for_kind(self, kind: PatternKind) -> KindStats:
        return getattr(self, kind.directory)

    @property
    def total(self) -> int:
        return self.fixes.total + self.blueprints.total + self.solutions.total

    def to_dict(self) -> dict[str, Any]:
        return {kind.directory: self.for_kind(kind).to_dict() for kind in PatternKind}


class PatternStore:
    """
    Persistent store for patterns of every kind.

    Distinct ids never interfere. Writes for the same id are serialized
    within this instance; every write is atomic (temp file + rename).
    """

    def __init__(self, workspace: str | Path = ".", config: Optional[WorkflowConfig] = None) -> None:
        """
        Initialize the store.

        Args:
            workspace: Workspace root holding the .workflow directory.
            config: Optional config. Loaded from the workspace if omitted.
        """
        self.config = config or load_config(workspace)
        self.base_path = self.config.patterns_path
        self.threshold_days = self.config.patterns.deprecation_threshold_days
        self._locks: dict[str, asyncio.Lock] = {}
        self._validation_errors: dict[PatternKind, list[PatternValidationError]] = {
            kind: [] for kind in PatternKind
        }

    # =========================================================================
    # Layout
    # =========================================================================

    def kind_path(self, kind: PatternKind) -> Path:
        return self.base_path / kind.directory

    async def initialize(self) -> None:
        """Create the per-kind directories. Idempotent."""
        for kind in PatternKind:
            ensure_dir(self.kind_path(kind))

    async def is_initialized(self) -> bool:
        return all(self.kind_path(kind).is_dir() for kind in PatternKind)

    def _lock_for(self, pattern_id: str) -> asyncio.Lock:
        lock = self._locks.get(pattern_id)
        if lock is None:
            lock = self._locks[pattern_id] = asyncio.Lock()
        return lock

    def _files_for(self, kind: PatternKind, pattern_id: str) -> list[Path]:
        """All files holding ``pattern_id``, legacy name first.

        Ids that are not UUIDs match nothing.
        """
        if not is_pattern_id(pattern_id):
            return []
        legacy = pattern_filename(pattern_id)
        matches = [
            path for path in list_files(self.kind_path(kind), "*.json")
            if names_pattern_id(path.name, pattern_id)
        ]
        return sorted(matches, key=lambda path: path.name != legacy)

    # =========================================================================
    # Reading
    # =========================================================================

    async def _read(self, kind: PatternKind, path: Path) -> Pattern:
        data = await read_json(path)
        pattern = pattern_from_dict(kind, data)
        pattern.validate()
        return pattern

    async def _load_all(self, kind: PatternKind) -> list[Pattern]:
        """Scan a kind's directory, recording files that fail to load."""
        errors: list[PatternValidationError] = []
        by_id: dict[str, Pattern] = {}

        for path in list_files(self.kind_path(kind), "*.json"):
            try:
                pattern = await self._read(kind, path)
            except FileSystemError as e:
                if path.exists():
                    errors.append(PatternValidationError(path.name, kind, str(e)))
                # else: removed by a concurrent rename since the listing
                continue
            except SchemaValidationError as e:
                errors.append(PatternValidationError(path.name, kind, f"Schema validation failed: {e}"))
                continue

            # A rename in flight leaves two files for one id briefly
            current = by_id.get(pattern.id)
            if current is None or pattern.updated_at > current.updated_at:
                by_id[pattern.id] = pattern

        if errors:
            logger.debug("Skipped %d unreadable %s file(s)", len(errors), kind.value)
        self._validation_errors[kind] = errors
        return list(by_id.values())

    async def get(self, pattern_id: str, kind: PatternKind) -> PatternResult[Pattern]:
        """
        Load a pattern by id.

        The legacy ``{id}.json`` name is tried first, then ``*-{id}.json``.
        """
        files = self._files_for(kind, pattern_id)
        if not files:
            return PatternResult.fail(f"{kind.value} pattern not found: {pattern_id}", NOT_FOUND)
        try:
            return PatternResult.ok(await self._read(kind, files[0]))
        except SchemaValidationError as e:
            return PatternResult.fail(str(e), VALIDATION_FAILED)
        except FileSystemError as e:
            return PatternResult.fail(str(e), IO_FAILED)

    async def exists(self, pattern_id: str, kind: PatternKind) -> bool:
        return bool(self._files_for(kind, pattern_id))

    async def list(self, kind: PatternKind, query: Optional[PatternQuery] = None) -> PatternResult[list[Pattern]]:
        """List patterns of a kind, filtered by ``query``."""
        try:
            patterns = await self._load_all(kind)
        except OSError as e:
            return PatternResult.fail(str(e), IO_FAILED)
        return PatternResult.ok(self._filter(patterns, query or PatternQuery()))

    async def search(
        self,
        kind: PatternKind,
        keywords: list[str],
        query: Optional[PatternQuery] = None,
    ) -> PatternResult[list[Pattern]]:
        """
        Rank patterns by keyword relevance, best first.

        Scoring per term: a matching problem keyword (or category/stack for
        fixes and blueprints) scores 10, the name 5, the description 3 and
        a tag name 5. Patterns scoring zero are dropped.
        """
        query = query or PatternQuery()
        result = await self.list(kind, replace(query, limit=None, offset=0))
        if not result.success:
            return result

        terms = [k.lower() for k in keywords if k]
        scored = []
        for pattern in result.data or []:
            score = _score(pattern, terms)
            if score > 0:
                scored.append((score, pattern))

        scored.sort(key=lambda item: item[0], reverse=True)
        matches = [pattern for _, pattern in scored]
        end = query.offset + query.limit if query.limit is not None else None
        return PatternResult.ok(matches[query.offset:end])

    # =========================================================================
    # Writing
    # =========================================================================

    async def _persist(self, pattern: Pattern) -> None:
        """Write atomically, then drop any other file for the same id."""
        kind = pattern.kind
        target = pattern_file_path(self.kind_path(kind), pattern.id, pattern.name)
        stale = [p for p in self._files_for(kind, pattern.id) if p != target]

        await safe_write_json(target, pattern.to_dict())

        for path in stale:
            await remove_file(path)
            logger.debug("Migrated %s -> %s", path.name, target.name)

    async def save(self, pattern: Pattern) -> PatternResult[Pattern]:
        """
        Validate and persist a pattern.

        A new pattern that conflicts with a stored one (same content hash
        or same name) is saved with ``conflictVersion``/``originalId``
        assigned. The caller's object is not modified.
        """
        try:
            pattern.validate()
        except SchemaValidationError as e:
            return PatternResult.fail(f"Validation failed: {e}", VALIDATION_FAILED)

        async with self._lock_for(pattern.id):
            try:
                if pattern.conflict_version is None and not await self.exists(pattern.id, pattern.kind):
                    conflict = await self.detect_conflict(pattern)
                    if conflict.has_conflict and conflict.existing_pattern is not None:
                        pattern = replace(
                            pattern,
                            conflict_version=conflict.suggested_version,
                            original_id=conflict.existing_pattern.id,
                        )
                await self._persist(pattern)
            except FileSystemError as e:
                return PatternResult.fail(str(e), IO_FAILED)

        return PatternResult.ok(pattern)

    async def delete(self, pattern_id: str, kind: PatternKind) -> PatternResult[None]:
        """Remove every file holding ``pattern_id``."""
        async with self._lock_for(pattern_id):
            files = self._files_for(kind, pattern_id)
            if not files:
                return PatternResult.fail(f"{kind.value} pattern not found: {pattern_id}", NOT_FOUND)
            try:
                for path in files:
                    await remove_file(path)
            except FileSystemError as e:
                return PatternResult.fail(str(e), IO_FAILED)
        return PatternResult.ok()

    async def _modify(self, pattern_id: str, kind: PatternKind, change) -> PatternResult[Pattern]:
        """Serialized read-modify-write of one pattern."""
        async with self._lock_for(pattern_id):
            result = await self.get(pattern_id, kind)
            if not result.success or result.data is None:
                return result
            updated = change(result.data)
            try:
                updated.validate()
                await self._persist(updated)
            except SchemaValidationError as e:
                return PatternResult.fail(f"Validation failed: {e}", VALIDATION_FAILED)
            except FileSystemError as e:
                return PatternResult.fail(str(e), IO_FAILED)
            return PatternResult.ok(updated)

    async def update_metrics(self, pattern_id: str, kind: PatternKind, success: bool) -> PatternResult[Pattern]:
        """Record one application of a pattern."""
        def change(pattern: Pattern) -> Pattern:
            now = utc_now()
            return replace(
                pattern,
                metrics=next_metrics(pattern.metrics, success, now),
                updated_at=format_timestamp(now),
            )

        return await self._modify(pattern_id, kind, change)

    async def update_fix_metrics(self, pattern_id: str, success: bool) -> PatternResult[Pattern]:
        return await self.update_metrics(pattern_id, PatternKind.FIX, success)

    async def update_blueprint_metrics(self, pattern_id: str, success: bool) -> PatternResult[Pattern]:
        return await self.update_metrics(pattern_id, PatternKind.BLUEPRINT, success)

    async def update_solution_metrics(self, pattern_id: str, success: bool) -> PatternResult[Pattern]:
        return await self.update_metrics(pattern_id, PatternKind.SOLUTION, success)

    async def deprecate_pattern(self, pattern_id: str, kind: PatternKind, reason: str) -> PatternResult[Pattern]:
        """Explicitly deprecate a pattern."""
        def change(pattern: Pattern) -> Pattern:
            stamp = format_timestamp(utc_now())
            return replace(pattern, deprecated_at=stamp, deprecation_reason=reason, updated_at=stamp)

        return await self._modify(pattern_id, kind, change)

    async def set_private(self, pattern_id: str, kind: PatternKind, is_private: bool) -> PatternResult[Pattern]:
        def change(pattern: Pattern) -> Pattern:
            return replace(pattern, is_private=is_private, updated_at=format_timestamp(utc_now()))

        return await self._modify(pattern_id, kind, change)

    async def publish(self, pattern_id: str, kind: PatternKind) -> PatternResult[Pattern]:
        """Make a pattern eligible for push."""
        return await self.set_private(pattern_id, kind, False)

    async def mark_as_synced(
        self,
        pattern_ids: list[str],
        kind: PatternKind,
        contributor_id: Optional[str] = None,
    ) -> list[str]:
        """
        Stamp patterns as pushed.

        Records ``syncedAt`` and the content hash that was pushed, so later
        edits make the pattern eligible again. Returns the ids marked.
        """
        marked = []
        for pattern_id in pattern_ids:
            def change(pattern: Pattern) -> Pattern:
                return replace(
                    pattern,
                    synced_at=format_timestamp(utc_now()),
                    synced_hash=generate_pattern_hash(pattern),
                    contributor_id=contributor_id or pattern.contributor_id,
                )

            result = await self._modify(pattern_id, kind, change)
            if result.success:
                marked.append(pattern_id)
            else:
                logger.warning("Could not mark %s %s as synced: %s", kind.value, pattern_id, result.error)
        return marked

    # =========================================================================
    # Conflicts and matching
    # =========================================================================

    async def detect_conflict(self, pattern: Pattern) -> ConflictResult:
        """
        Find stored patterns of the same kind that collide with ``pattern``.

        A collision is a different id with the same content hash or the same
        name. The suggested version is one past the highest seen.
        """
        existing = await self._load_all(pattern.kind)
        content_hash = generate_pattern_hash(pattern)

        conflicts = [
            other for other in existing
            if other.id != pattern.id
            and (other.name == pattern.name or generate_pattern_hash(other) == content_hash)
        ]
        if not conflicts:
            return ConflictResult(has_conflict=False)

        max_version = max(
            [c.conflict_version or 1 for c in conflicts] + [pattern.conflict_version or 0]
        )
        return ConflictResult(
            has_conflict=True,
            existing_pattern=conflicts[0],
            suggested_version=max_version + 1,
        )

    async def find_matching_fixes(
        self,
        error_message: str,
        framework: Optional[str] = None,
    ) -> PatternResult[list[Pattern]]:
        """Fixes whose trigger regex matches ``error_message``, best success rate first."""
        result = await self.list(PatternKind.FIX, PatternQuery(framework=framework))
        if not result.success:
            return result

        matches = []
        for pattern in result.data or []:
            try:
                if re.search(pattern.trigger.error_pattern, error_message, re.IGNORECASE):
                    matches.append(pattern)
            except re.error:
                logger.debug("Invalid trigger regex in fix %s", pattern.id)

        matches.sort(key=lambda p: p.metrics.success_rate, reverse=True)
        return PatternResult.ok(matches)

    async def find_matching_blueprints(
        self,
        framework: str,
        language: Optional[str] = None,
    ) -> PatternResult[list[Pattern]]:
        """Blueprints for a stack, best success rate first."""
        result = await self.list(PatternKind.BLUEPRINT)
        if not result.success:
            return result

        matches = [
            b for b in result.data or []
            if b.stack.framework.lower() == framework.lower()
            and (not language or b.stack.language.lower() == language.lower())
        ]
        matches.sort(key=lambda b: b.metrics.success_rate, reverse=True)
        return PatternResult.ok(matches)

    # =========================================================================
    # Deprecation
    # =========================================================================

    async def auto_deprecate_old_patterns(self, threshold_days: Optional[int] = None) -> dict[PatternKind, int]:
        """Persist deprecation for patterns that have gone stale. Returns counts per kind."""
        threshold = threshold_days if threshold_days is not None else self.threshold_days
        reason = f"Auto-deprecated: No updates in {threshold}+ days"
        counts = {kind: 0 for kind in PatternKind}

        for kind in PatternKind:
            for pattern in await self._load_all(kind):
                if pattern.deprecated_at or not is_pattern_deprecated(pattern, threshold):
                    continue
                result = await self.deprecate_pattern(pattern.id, kind, reason)
                if result.success:
                    counts[kind] += 1
        return counts

    async def get_deprecated_patterns(self) -> dict[PatternKind, list[Pattern]]:
        return {
            kind: [p for p in await self._load_all(kind) if is_pattern_deprecated(p, self.threshold_days)]
            for kind in PatternKind
        }

    # =========================================================================
    # Sync helpers and statistics
    # =========================================================================

    async def get_patterns_for_sync(self) -> dict[PatternKind, list[Pattern]]:
        """
        Patterns eligible for push.

        Public, not deprecated, and either never pushed or edited since the
        last push.
        """
        eligible: dict[PatternKind, list[Pattern]] = {}
        for kind in PatternKind:
            eligible[kind] = [
                p for p in await self._load_all(kind)
                if not p.is_private
                and not is_pattern_deprecated(p, self.threshold_days)
                and (p.synced_at is None or p.synced_hash != generate_pattern_hash(p))
            ]
        return eligible

    async def get_stats(self) -> PatternStats:
        """Counts per kind from a full scan, including unreadable files."""
        stats = PatternStats()
        for kind in PatternKind:
            patterns = await self._load_all(kind)
            kind_stats = stats.for_kind(kind)
            kind_stats.total = len(patterns)
            kind_stats.deprecated = sum(1 for p in patterns if is_pattern_deprecated(p, self.threshold_days))
            kind_stats.private = sum(1 for p in patterns if p.is_private)
            kind_stats.synced = sum(1 for p in patterns if p.synced_at)
            kind_stats.invalid = len(self._validation_errors[kind])
        return stats

    def get_validation_errors(self) -> list[PatternValidationError]:
        """Files that failed to load during the most recent scan of each kind."""
        return [error for kind in PatternKind for error in self._validation_errors[kind]]

    # =========================================================================
    # Filtering
    # =========================================================================

    def _filter(self, patterns: list[Pattern], query: PatternQuery) -> list[Pattern]:
        filtered = list(patterns)

        if not query.include_deprecated:
            filtered = [p for p in filtered if not is_pattern_deprecated(p, self.threshold_days)]

        if query.tags:
            wanted = {(t.name.lower(), t.category) for t in query.tags}
            filtered = [
                p for p in filtered
                if any((t.name.lower(), t.category) in wanted for t in p.tags)
            ]

        if query.framework:
            framework = query.framework.lower()
            filtered = [p for p in filtered if p.compatibility.framework.lower() == framework]

        if query.category:
            filtered = [p for p in filtered if getattr(p, "category", query.category) == query.category]

        if query.solution_category:
            filtered = [
                p for p in filtered
                if not isinstance(p, SolutionPattern) or p.category == query.solution_category
            ]

        if query.source_project:
            filtered = [
                p for p in filtered
                if not isinstance(p, SolutionPattern) or p.source_project == query.source_project
            ]

        if query.keywords:
            wanted_keywords = [k.lower() for k in query.keywords]
            filtered = [
                p for p in filtered
                if any(w in k.lower() for w in wanted_keywords for k in _keywords_of(p))
            ]

        if query.search:
            needle = query.search.lower()
            filtered = [
                p for p in filtered
                if needle in p.name.lower() or needle in p.description.lower()
            ]

        end = query.offset + query.limit if query.limit is not None else None
        return filtered[query.offset:end]


def _keywords_of(pattern: Pattern) -> list[str]:
    if isinstance(pattern, SolutionPattern):
        return pattern.problem.keywords
    if isinstance(pattern, FixPattern):
        return [pattern.category]
    if isinstance(pattern, Blueprint):
        return [pattern.stack.framework, pattern.stack.language]
    return []


def _score(pattern: Pattern, terms: list[str]) -> int:
    keywords = [k.lower() for k in _keywords_of(pattern)]
    name = pattern.name.lower()
    description = pattern.description.lower()
    tags = [t.name.lower() for t in pattern.tags]

    score = 0
    for term in terms:
        if any(term in k or k in term for k in keywords):
            score += 10
        if term in name:
            score += 5
        if term in description:
            score += 3
        if any(term in t for t in tags):
            score += 5
    return score

