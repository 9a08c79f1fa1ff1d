"""
Pattern data models for the workflow pattern store.

Three kinds of pattern share a common envelope (identity, tags,
compatibility, metrics, privacy, sync bookkeeping, lifecycle timestamps):

- FixPattern: a recorded fix for a recurring error
- Blueprint: a project skeleton (stack, structure, setup)
- SolutionPattern: an end-to-end implementation recipe

Every model serializes to the camelCase JSON layout stored under
.workflow/patterns/ and validates itself with ``validate()``, raising
SchemaValidationError on the first violation.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from workflow_patterns.patterns.identity import slugify_or_empty

DEPRECATION_THRESHOLD_DAYS = 365

FIX_CATEGORIES = frozenset({
    "lint", "type-error", "dependency", "config", "runtime", "build",
    "test", "security", "migration", "deprecation", "performance",
    "compatibility",
})
SOLUTION_TYPES = frozenset({
    "command", "file-change", "config-update", "dependency-add",
    "dependency-remove", "multi-step",
})
STEP_ACTIONS = frozenset({"run", "create", "modify", "delete", "install", "uninstall"})
PATTERN_SOURCES = frozenset({"manual", "auto-heal", "verify-fix", "imported", "community"})
TAG_CATEGORIES = frozenset({
    "framework", "tool", "error-type", "file-type", "custom", "ui",
    "pattern", "feature", "database", "security", "architecture",
    "testing", "api", "auth", "state", "performance", "deployment",
    "integration", "library", "language", "runtime",
})
LANGUAGES = frozenset({"typescript", "javascript", "python", "go", "rust", "other"})
PACKAGE_MANAGERS = frozenset({"npm", "pnpm", "yarn", "bun", "pip", "poetry", "uv", "other"})
SOLUTION_CATEGORIES = frozenset({
    "auth", "database", "api", "state", "forms", "ui", "testing",
    "deployment", "error-handling", "caching", "security", "performance",
    "integrations", "other",
})
FILE_ROLES = frozenset({
    "entry", "config", "util", "component", "hook", "middleware",
    "model", "service", "test", "type",
})


class SchemaValidationError(Exception):
    """Raised when a pattern does not satisfy its schema."""

    def __init__(self, field: str, message: str, value: Any = None) -> None:
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"Validation failed for '{field}': {message}")


class PatternKind(Enum):
    """The closed set of pattern kinds."""

    FIX = "fix"
    BLUEPRINT = "blueprint"
    SOLUTION = "solution"

    @property
    def directory(self) -> str:
        """Subdirectory of the patterns root holding this kind."""
        return {
            PatternKind.FIX: "fixes",
            PatternKind.BLUEPRINT: "blueprints",
            PatternKind.SOLUTION: "solutions",
        }[self]

    @property
    def pattern_class(self) -> type:
        return {
            PatternKind.FIX: FixPattern,
            PatternKind.BLUEPRINT: Blueprint,
            PatternKind.SOLUTION: SolutionPattern,
        }[self]

    @classmethod
    def of(cls, pattern: "Pattern") -> "PatternKind":
        """Kind of a pattern instance."""
        for kind in cls:
            if isinstance(pattern, kind.pattern_class):
                return kind
        raise TypeError(f"Not a pattern: {type(pattern).__name__}")


# =============================================================================
# Time helpers
# =============================================================================


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a trailing Z."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now_iso() -> str:
    return format_timestamp(utc_now())


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO timestamp (``Z`` suffix accepted) into an aware datetime."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# =============================================================================
# Validation helpers
# =============================================================================


def _check_str(
    field_name: str,
    value: Any,
    min_len: int = 0,
    max_len: Optional[int] = None,
) -> None:
    if not isinstance(value, str):
        raise SchemaValidationError(field_name, "must be a string", value)
    if len(value) < min_len:
        raise SchemaValidationError(field_name, f"must be at least {min_len} characters", value)
    if max_len is not None and len(value) > max_len:
        raise SchemaValidationError(field_name, f"must be at most {max_len} characters", value)


def _check_optional_str(field_name: str, value: Any) -> None:
    if value is not None and not isinstance(value, str):
        raise SchemaValidationError(field_name, "must be a string", value)


def _check_enum(field_name: str, value: Any, allowed: frozenset) -> None:
    if not isinstance(value, str) or value not in allowed:
        raise SchemaValidationError(
            field_name, f"must be one of: {', '.join(sorted(allowed))}", value
        )


def _check_int(field_name: str, value: Any, minimum: int = 0) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
        raise SchemaValidationError(field_name, f"must be an integer >= {minimum}", value)


def _check_uuid(field_name: str, value: Any) -> None:
    if not isinstance(value, str):
        raise SchemaValidationError(field_name, "must be a UUID string", value)
    try:
        uuid.UUID(value)
    except ValueError:
        raise SchemaValidationError(field_name, "must be a UUID", value)


def _check_timestamp(field_name: str, value: Any, optional: bool = False) -> None:
    if value is None and optional:
        return
    if not isinstance(value, str):
        raise SchemaValidationError(field_name, "must be an ISO-8601 timestamp", value)
    try:
        parse_timestamp(value)
    except ValueError:
        raise SchemaValidationError(field_name, "must be an ISO-8601 timestamp", value)


def _check_name(field_name: str, value: Any) -> None:
    _check_str(field_name, value, 3, 100)
    if not slugify_or_empty(value):
        raise SchemaValidationError(
            field_name,
            "must contain at least one alphanumeric character",
            value,
        )


def _put(result: dict[str, Any], key: str, value: Any) -> None:
    """Set ``key`` only when the optional value is present."""
    if value is not None:
        result[key] = value


# =============================================================================
# Shared nested types
# =============================================================================


@dataclass
class PatternTag:
    """Classification tag."""
    name: str
    category: str = "custom"

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "category": self.category}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PatternTag:
        return cls(name=data["name"], category=data.get("category", "custom"))

    def validate(self, path: str) -> None:
        _check_str(f"{path}.name", self.name, 1, 50)
        _check_enum(f"{path}.category", self.category, TAG_CATEGORIES)


@dataclass
class DependencyVersion:
    """A dependency pin with its compatible range."""
    name: str
    version: str
    compatible_range: str = "*"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "compatibleRange": self.compatible_range,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DependencyVersion:
        return cls(
            name=data["name"],
            version=data["version"],
            compatible_range=data.get("compatibleRange", "*"),
        )

    def validate(self, path: str) -> None:
        _check_str(f"{path}.name", self.name, 1)
        _check_str(f"{path}.version", self.version, 1)
        _check_str(f"{path}.compatibleRange", self.compatible_range, 1)


@dataclass
class Compatibility:
    """Framework/runtime the pattern applies to."""
    framework: str
    framework_version: str
    runtime: Optional[str] = None
    runtime_version: Optional[str] = None
    dependencies: list[DependencyVersion] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "framework": self.framework,
            "frameworkVersion": self.framework_version,
        }
        _put(result, "runtime", self.runtime)
        _put(result, "runtimeVersion", self.runtime_version)
        result["dependencies"] = [d.to_dict() for d in self.dependencies]
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Compatibility:
        return cls(
            framework=data["framework"],
            framework_version=data["frameworkVersion"],
            runtime=data.get("runtime"),
            runtime_version=data.get("runtimeVersion"),
            dependencies=[DependencyVersion.from_dict(d) for d in data.get("dependencies", [])],
        )

    def validate(self, path: str = "compatibility") -> None:
        _check_str(f"{path}.framework", self.framework, 1)
        _check_str(f"{path}.frameworkVersion", self.framework_version, 1)
        _check_optional_str(f"{path}.runtime", self.runtime)
        _check_optional_str(f"{path}.runtimeVersion", self.runtime_version)
        for i, dep in enumerate(self.dependencies):
            dep.validate(f"{path}.dependencies[{i}]")


@dataclass
class PatternMetrics:
    """Usage metrics. successRate is a percentage with two decimals."""
    success_rate: float = 0.0
    applications: int = 0
    successes: int = 0
    failures: int = 0
    last_used: Optional[str] = None
    last_successful: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "successRate": self.success_rate,
            "applications": self.applications,
            "successes": self.successes,
            "failures": self.failures,
        }
        _put(result, "lastUsed", self.last_used)
        _put(result, "lastSuccessful", self.last_successful)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PatternMetrics:
        return cls(
            success_rate=data.get("successRate", 0.0),
            applications=data.get("applications", 0),
            successes=data.get("successes", 0),
            failures=data.get("failures", 0),
            last_used=data.get("lastUsed"),
            last_successful=data.get("lastSuccessful"),
        )

    def validate(self, path: str = "metrics") -> None:
        rate = self.success_rate
        if not isinstance(rate, (int, float)) or isinstance(rate, bool) or not 0 <= rate <= 100:
            raise SchemaValidationError(f"{path}.successRate", "must be between 0 and 100", rate)
        _check_int(f"{path}.applications", self.applications)
        _check_int(f"{path}.successes", self.successes)
        _check_int(f"{path}.failures", self.failures)
        _check_timestamp(f"{path}.lastUsed", self.last_used, optional=True)
        _check_timestamp(f"{path}.lastSuccessful", self.last_successful, optional=True)


def create_default_metrics() -> PatternMetrics:
    """Zeroed metrics for a brand-new pattern."""
    return PatternMetrics()


def update_metrics(
    metrics: PatternMetrics,
    success: bool,
    now: Optional[datetime] = None,
) -> PatternMetrics:
    """
    Return new metrics after one more application.

    The input is not modified. ``lastUsed`` always moves to now;
    ``lastSuccessful`` only moves on success.
    """
    stamp = format_timestamp(now or utc_now())
    applications = metrics.applications + 1
    successes = metrics.successes + 1 if success else metrics.successes
    failures = metrics.failures if success else metrics.failures + 1
    success_rate = (successes / applications) * 100 if applications > 0 else 0.0

    return PatternMetrics(
        success_rate=round(success_rate, 2),
        applications=applications,
        successes=successes,
        failures=failures,
        last_used=stamp,
        last_successful=stamp if success else metrics.last_successful,
    )


# =============================================================================
# Envelope
# =============================================================================


class _PatternEnvelope:
    """
    Behaviour shared by every pattern kind.

    Subclasses are dataclasses declaring the envelope attributes used here
    (id, name, description, tags, compatibility, metrics, source,
    is_private, timestamps and sync bookkeeping).
    """

    # Keys that make up the content hash, in addition to the shared ones.
    _content_keys: tuple[str, ...] = ()

    def _envelope_head(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "tags": [t.to_dict() for t in self.tags],
        }

    def _envelope_tail(self, result: dict[str, Any]) -> dict[str, Any]:
        result["compatibility"] = self.compatibility.to_dict()
        result["metrics"] = self.metrics.to_dict()
        result["source"] = self.source
        result["isPrivate"] = self.is_private
        _put(result, "syncedAt", self.synced_at)
        _put(result, "syncedHash", self.synced_hash)
        _put(result, "contributorId", self.contributor_id)
        _put(result, "conflictVersion", self.conflict_version)
        _put(result, "originalId", self.original_id)
        _put(result, "deprecatedAt", self.deprecated_at)
        _put(result, "deprecationReason", self.deprecation_reason)
        result["createdAt"] = self.created_at
        result["updatedAt"] = self.updated_at
        return result

    @staticmethod
    def _envelope_kwargs(data: dict[str, Any]) -> dict[str, Any]:
        now = utc_now_iso()
        return {
            "id": data["id"],
            "name": data["name"],
            "description": data.get("description", ""),
            "tags": [PatternTag.from_dict(t) for t in data.get("tags", [])],
            "compatibility": Compatibility.from_dict(data["compatibility"]),
            "metrics": PatternMetrics.from_dict(data.get("metrics") or {}),
            "source": data.get("source", "manual"),
            "is_private": data.get("isPrivate", True),
            "synced_at": data.get("syncedAt"),
            "synced_hash": data.get("syncedHash"),
            "contributor_id": data.get("contributorId"),
            "conflict_version": data.get("conflictVersion"),
            "original_id": data.get("originalId"),
            "deprecated_at": data.get("deprecatedAt"),
            "deprecation_reason": data.get("deprecationReason"),
            "created_at": data.get("createdAt", now),
            "updated_at": data.get("updatedAt", now),
        }

    def _validate_envelope(self, description_max: int, description_min: int = 0) -> None:
        _check_uuid("id", self.id)
        _check_name("name", self.name)
        _check_str("description", self.description, description_min, description_max)
        for i, tag in enumerate(self.tags):
            tag.validate(f"tags[{i}]")
        self.compatibility.validate()
        self.metrics.validate()
        _check_enum("source", self.source, PATTERN_SOURCES)
        if not isinstance(self.is_private, bool):
            raise SchemaValidationError("isPrivate", "must be a boolean", self.is_private)
        _check_timestamp("syncedAt", self.synced_at, optional=True)
        _check_optional_str("syncedHash", self.synced_hash)
        _check_optional_str("contributorId", self.contributor_id)
        if self.conflict_version is not None:
            _check_int("conflictVersion", self.conflict_version, 1)
        if self.original_id is not None:
            _check_uuid("originalId", self.original_id)
        _check_timestamp("deprecatedAt", self.deprecated_at, optional=True)
        _check_optional_str("deprecationReason", self.deprecation_reason)
        _check_timestamp("createdAt", self.created_at)
        _check_timestamp("updatedAt", self.updated_at)

    def hash_content(self) -> dict[str, Any]:
        """The subset of the serialized pattern that identifies its content."""
        data = self.to_dict()
        keys = ("name", "description", "tags", "compatibility") + self._content_keys
        return {key: data[key] for key in keys if key in data}

    @property
    def kind(self) -> PatternKind:
        return PatternKind.of(self)

    def is_deprecated(
        self,
        threshold_days: int = DEPRECATION_THRESHOLD_DAYS,
        now: Optional[datetime] = None,
    ) -> bool:
        return is_pattern_deprecated(self, threshold_days, now)

    def touch(self, now: Optional[datetime] = None) -> None:
        self.updated_at = format_timestamp(now or utc_now())


@dataclass
class FixPattern(_PatternEnvelope):
    """A recorded fix for a recurring error."""
    id: str
    name: str
    description: str
    category: str
    trigger: PatternTrigger
    solution: PatternSolution
    compatibility: Compatibility
    tags: list[PatternTag] = field(default_factory=list)
    metrics: PatternMetrics = field(default_factory=create_default_metrics)
    source: str = "manual"
    is_private: bool = True
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)
    deprecated_at: Optional[str] = None
    deprecation_reason: Optional[str] = None
    synced_at: Optional[str] = None
    synced_hash: Optional[str] = None
    contributor_id: Optional[str] = None
    conflict_version: Optional[int] = None
    original_id: Optional[str] = None

    _content_keys = ("category", "trigger", "solution")

    def to_dict(self) -> dict[str, Any]:
        result = self._envelope_head()
        result["category"] = self.category
        result["trigger"] = self.trigger.to_dict()
        result["solution"] = self.solution.to_dict()
        return self._envelope_tail(result)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FixPattern:
        return cls(
            category=data["category"],
            trigger=PatternTrigger.from_dict(data["trigger"]),
            solution=PatternSolution.from_dict(data["solution"]),
            **cls._envelope_kwargs(data),
        )

    def validate(self) -> None:
        self._validate_envelope(description_max=500)
        _check_enum("category", self.category, FIX_CATEGORIES)
        self.trigger.validate()
        self.solution.validate()


@dataclass
class PatternTrigger:
    """Conditions under which a fix applies."""
    error_pattern: str
    error_message: Optional[str] = None
    file_pattern: Optional[str] = None
    context: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"errorPattern": self.error_pattern}
        _put(result, "errorMessage", self.error_message)
        _put(result, "filePattern", self.file_pattern)
        _put(result, "context", self.context)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PatternTrigger:
        return cls(
            error_pattern=data["errorPattern"],
            error_message=data.get("errorMessage"),
            file_pattern=data.get("filePattern"),
            context=data.get("context"),
        )

    def validate(self, path: str = "trigger") -> None:
        _check_str(f"{path}.errorPattern", self.error_pattern, 1)
        _check_optional_str(f"{path}.errorMessage", self.error_message)
        _check_optional_str(f"{path}.filePattern", self.file_pattern)
        _check_optional_str(f"{path}.context", self.context)


@dataclass
class SolutionStep:
    order: int
    action: str
    target: str
    description: str
    content: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "order": self.order,
            "action": self.action,
            "target": self.target,
        }
        _put(result, "content", self.content)
        result["description"] = self.description
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SolutionStep:
        return cls(
            order=data["order"],
            action=data["action"],
            target=data["target"],
            description=data["description"],
            content=data.get("content"),
        )

    def validate(self, path: str) -> None:
        _check_int(f"{path}.order", self.order, 1)
        _check_enum(f"{path}.action", self.action, STEP_ACTIONS)
        _check_str(f"{path}.target", self.target, 1)
        _check_optional_str(f"{path}.content", self.content)
        _check_str(f"{path}.description", self.description, 1, 500)


@dataclass
class PatternSolution:
    """How a fix is applied: a typed, ordered list of steps."""
    type: str
    steps: list[SolutionStep]

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "steps": [s.to_dict() for s in self.steps]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PatternSolution:
        return cls(
            type=data["type"],
            steps=[SolutionStep.from_dict(s) for s in data.get("steps", [])],
        )

    def validate(self, path: str = "solution") -> None:
        _check_enum(f"{path}.type", self.type, SOLUTION_TYPES)
        if not self.steps:
            raise SchemaValidationError(f"{path}.steps", "must contain at least one step", self.steps)
        for i, step in enumerate(self.steps):
            step.validate(f"{path}.steps[{i}]")


# =============================================================================
# Blueprint
# =============================================================================


@dataclass
class Stack:
    framework: str
    language: str
    runtime: str
    package_manager: str
    dependencies: list[DependencyVersion] = field(default_factory=list)
    dev_dependencies: list[DependencyVersion] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "framework": self.framework,
            "language": self.language,
            "runtime": self.runtime,
            "packageManager": self.package_manager,
            "dependencies": [d.to_dict() for d in self.dependencies],
            "devDependencies": [d.to_dict() for d in self.dev_dependencies],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Stack:
        return cls(
            framework=data["framework"],
            language=data["language"],
            runtime=data["runtime"],
            package_manager=data["packageManager"],
            dependencies=[DependencyVersion.from_dict(d) for d in data.get("dependencies", [])],
            dev_dependencies=[DependencyVersion.from_dict(d) for d in data.get("devDependencies", [])],
        )

    def validate(self, path: str = "stack") -> None:
        _check_str(f"{path}.framework", self.framework, 1)
        _check_enum(f"{path}.language", self.language, LANGUAGES)
        _check_str(f"{path}.runtime", self.runtime, 1)
        _check_enum(f"{path}.packageManager", self.package_manager, PACKAGE_MANAGERS)
        for i, dep in enumerate(self.dependencies):
            dep.validate(f"{path}.dependencies[{i}]")
        for i, dep in enumerate(self.dev_dependencies):
            dep.validate(f"{path}.devDependencies[{i}]")


@dataclass
class DirectoryEntry:
    path: str
    purpose: str

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "purpose": self.purpose}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DirectoryEntry:
        return cls(path=data["path"], purpose=data["purpose"])


@dataclass
class KeyFile:
    path: str
    purpose: str
    template: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"path": self.path, "purpose": self.purpose}
        _put(result, "template", self.template)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KeyFile:
        return cls(path=data["path"], purpose=data["purpose"], template=data.get("template"))


@dataclass
class Structure:
    directories: list[DirectoryEntry] = field(default_factory=list)
    key_files: list[KeyFile] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "directories": [d.to_dict() for d in self.directories],
            "keyFiles": [k.to_dict() for k in self.key_files],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Structure:
        return cls(
            directories=[DirectoryEntry.from_dict(d) for d in data.get("directories", [])],
            key_files=[KeyFile.from_dict(k) for k in data.get("keyFiles", [])],
        )

    def validate(self, path: str = "structure") -> None:
        for i, entry in enumerate(self.directories):
            _check_str(f"{path}.directories[{i}].path", entry.path, 1)
            _check_str(f"{path}.directories[{i}].purpose", entry.purpose, 1)
        for i, key_file in enumerate(self.key_files):
            _check_str(f"{path}.keyFiles[{i}].path", key_file.path, 1)
            _check_str(f"{path}.keyFiles[{i}].purpose", key_file.purpose, 1)
            _check_optional_str(f"{path}.keyFiles[{i}].template", key_file.template)


@dataclass
class SetupStep:
    order: int
    command: str
    description: str
    optional: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "order": self.order,
            "command": self.command,
            "description": self.description,
            "optional": self.optional,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SetupStep:
        return cls(
            order=data["order"],
            command=data["command"],
            description=data["description"],
            optional=data.get("optional", False),
        )


@dataclass
class ConfigEntry:
    file: str
    content: str
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {"file": self.file, "content": self.content, "description": self.description}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConfigEntry:
        return cls(file=data["file"], content=data["content"], description=data["description"])


@dataclass
class Setup:
    prerequisites: list[str] = field(default_factory=list)
    steps: list[SetupStep] = field(default_factory=list)
    configs: list[ConfigEntry] = field(default_factory=list)
    post_setup: Optional[list[str]] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "prerequisites": list(self.prerequisites),
            "steps": [s.to_dict() for s in self.steps],
            "configs": [c.to_dict() for c in self.configs],
        }
        _put(result, "postSetup", self.post_setup)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Setup:
        return cls(
            prerequisites=list(data.get("prerequisites", [])),
            steps=[SetupStep.from_dict(s) for s in data.get("steps", [])],
            configs=[ConfigEntry.from_dict(c) for c in data.get("configs", [])],
            post_setup=data.get("postSetup"),
        )

    def validate(self, path: str = "setup") -> None:
        for i, step in enumerate(self.steps):
            _check_int(f"{path}.steps[{i}].order", step.order, 1)
            _check_str(f"{path}.steps[{i}].command", step.command, 1)
            _check_str(f"{path}.steps[{i}].description", step.description, 1)
        for i, entry in enumerate(self.configs):
            _check_str(f"{path}.configs[{i}].file", entry.file, 1)
            _check_str(f"{path}.configs[{i}].content", entry.content, 1)
            _check_str(f"{path}.configs[{i}].description", entry.description, 1)


@dataclass
class Blueprint(_PatternEnvelope):
    """A reusable project skeleton."""
    id: str
    name: str
    description: str
    stack: Stack
    structure: Structure
    compatibility: Compatibility
    setup: Setup = field(default_factory=Setup)
    tags: list[PatternTag] = field(default_factory=list)
    related_patterns: list[str] = field(default_factory=list)
    metrics: PatternMetrics = field(default_factory=create_default_metrics)
    source: str = "manual"
    is_private: bool = True
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)
    deprecated_at: Optional[str] = None
    deprecation_reason: Optional[str] = None
    synced_at: Optional[str] = None
    synced_hash: Optional[str] = None
    contributor_id: Optional[str] = None
    conflict_version: Optional[int] = None
    original_id: Optional[str] = None

    _content_keys = ("stack", "structure", "setup")

    def to_dict(self) -> dict[str, Any]:
        result = self._envelope_head()
        result["stack"] = self.stack.to_dict()
        result["structure"] = self.structure.to_dict()
        result["setup"] = self.setup.to_dict()
        result["relatedPatterns"] = list(self.related_patterns)
        return self._envelope_tail(result)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Blueprint:
        return cls(
            stack=Stack.from_dict(data["stack"]),
            structure=Structure.from_dict(data.get("structure") or {}),
            setup=Setup.from_dict(data.get("setup") or {}),
            related_patterns=list(data.get("relatedPatterns", [])),
            **cls._envelope_kwargs(data),
        )

    def validate(self) -> None:
        self._validate_envelope(description_max=1000)
        self.stack.validate()
        self.structure.validate()
        self.setup.validate()
        for i, related in enumerate(self.related_patterns):
            _check_uuid(f"relatedPatterns[{i}]", related)


# =============================================================================
# Solution pattern
# =============================================================================


@dataclass
class SolutionFile:
    path: str
    purpose: str
    role: str
    content: str
    exports: list[str] = field(default_factory=list)
    imports: list[str] = field(default_factory=list)
    line_count: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "purpose": self.purpose,
            "role": self.role,
            "content": self.content,
            "exports": list(self.exports),
            "imports": list(self.imports),
            "lineCount": self.line_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SolutionFile:
        return cls(
            path=data["path"],
            purpose=data["purpose"],
            role=data["role"],
            content=data.get("content", ""),
            exports=list(data.get("exports", [])),
            imports=list(data.get("imports", [])),
            line_count=data.get("lineCount", 1),
        )

    def validate(self, path: str) -> None:
        _check_str(f"{path}.path", self.path, 1)
        _check_str(f"{path}.purpose", self.purpose, 1, 200)
        _check_enum(f"{path}.role", self.role, FILE_ROLES)
        _check_str(f"{path}.content", self.content)
        _check_int(f"{path}.lineCount", self.line_count, 1)


@dataclass
class ProblemDefinition:
    keywords: list[str]
    description: str
    error_patterns: Optional[list[str]] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "keywords": list(self.keywords),
            "description": self.description,
        }
        _put(result, "errorPatterns", self.error_patterns)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProblemDefinition:
        return cls(
            keywords=list(data.get("keywords", [])),
            description=data["description"],
            error_patterns=data.get("errorPatterns"),
        )

    def validate(self, path: str = "problem") -> None:
        if not self.keywords:
            raise SchemaValidationError(f"{path}.keywords", "must contain at least one keyword", self.keywords)
        for i, keyword in enumerate(self.keywords):
            _check_str(f"{path}.keywords[{i}]", keyword, 1)
        _check_str(f"{path}.description", self.description, 10, 500)


@dataclass
class EnvVar:
    name: str
    description: str
    required: bool
    example: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "required": self.required,
        }
        _put(result, "example", self.example)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EnvVar:
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            required=data.get("required", False),
            example=data.get("example"),
        )


@dataclass
class DataModel:
    name: str
    description: str
    schema: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"name": self.name, "description": self.description}
        _put(result, "schema", self.schema)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DataModel:
        return cls(name=data["name"], description=data.get("description", ""), schema=data.get("schema"))


@dataclass
class Implementation:
    files: list[SolutionFile]
    dependencies: list[DependencyVersion] = field(default_factory=list)
    dev_dependencies: list[DependencyVersion] = field(default_factory=list)
    env_vars: list[EnvVar] = field(default_factory=list)
    data_models: Optional[list[DataModel]] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "files": [f.to_dict() for f in self.files],
            "dependencies": [d.to_dict() for d in self.dependencies],
            "devDependencies": [d.to_dict() for d in self.dev_dependencies],
            "envVars": [e.to_dict() for e in self.env_vars],
        }
        if self.data_models is not None:
            result["dataModels"] = [m.to_dict() for m in self.data_models]
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Implementation:
        models = data.get("dataModels")
        return cls(
            files=[SolutionFile.from_dict(f) for f in data.get("files", [])],
            dependencies=[DependencyVersion.from_dict(d) for d in data.get("dependencies", [])],
            dev_dependencies=[DependencyVersion.from_dict(d) for d in data.get("devDependencies", [])],
            env_vars=[EnvVar.from_dict(e) for e in data.get("envVars", [])],
            data_models=[DataModel.from_dict(m) for m in models] if models is not None else None,
        )

    def validate(self, path: str = "implementation") -> None:
        if not self.files:
            raise SchemaValidationError(f"{path}.files", "must contain at least one file", self.files)
        for i, solution_file in enumerate(self.files):
            solution_file.validate(f"{path}.files[{i}]")
        for i, dep in enumerate(self.dependencies):
            dep.validate(f"{path}.dependencies[{i}]")
        for i, dep in enumerate(self.dev_dependencies):
            dep.validate(f"{path}.devDependencies[{i}]")
        for i, env_var in enumerate(self.env_vars):
            _check_str(f"{path}.envVars[{i}].name", env_var.name, 1)
            if not isinstance(env_var.required, bool):
                raise SchemaValidationError(f"{path}.envVars[{i}].required", "must be a boolean", env_var.required)


@dataclass
class Architecture:
    entry_points: list[str] = field(default_factory=list)
    data_flow: str = ""
    key_decisions: list[str] = field(default_factory=list)
    diagram: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "entryPoints": list(self.entry_points),
            "dataFlow": self.data_flow,
            "keyDecisions": list(self.key_decisions),
        }
        _put(result, "diagram", self.diagram)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Architecture:
        return cls(
            entry_points=list(data.get("entryPoints", [])),
            data_flow=data.get("dataFlow", ""),
            key_decisions=list(data.get("keyDecisions", [])),
            diagram=data.get("diagram"),
        )

    def validate(self, path: str = "architecture") -> None:
        _check_str(f"{path}.dataFlow", self.data_flow, 0, 1000)
        _check_optional_str(f"{path}.diagram", self.diagram)


@dataclass
class SolutionPattern(_PatternEnvelope):
    """An end-to-end implementation recipe extracted from a project."""
    id: str
    name: str
    description: str
    category: str
    problem: ProblemDefinition
    implementation: Implementation
    compatibility: Compatibility
    architecture: Architecture = field(default_factory=Architecture)
    tags: list[PatternTag] = field(default_factory=list)
    source_project: Optional[str] = None
    related_patterns: list[str] = field(default_factory=list)
    metrics: PatternMetrics = field(default_factory=create_default_metrics)
    source: str = "manual"
    is_private: bool = True
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)
    deprecated_at: Optional[str] = None
    deprecation_reason: Optional[str] = None
    synced_at: Optional[str] = None
    synced_hash: Optional[str] = None
    contributor_id: Optional[str] = None
    conflict_version: Optional[int] = None
    original_id: Optional[str] = None

    _content_keys = ("category", "problem", "implementation", "architecture")

    def to_dict(self) -> dict[str, Any]:
        result = self._envelope_head()
        result["category"] = self.category
        result["problem"] = self.problem.to_dict()
        result["implementation"] = self.implementation.to_dict()
        result["architecture"] = self.architecture.to_dict()
        _put(result, "sourceProject", self.source_project)
        result["relatedPatterns"] = list(self.related_patterns)
        return self._envelope_tail(result)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SolutionPattern:
        return cls(
            category=data["category"],
            problem=ProblemDefinition.from_dict(data["problem"]),
            implementation=Implementation.from_dict(data["implementation"]),
            architecture=Architecture.from_dict(data.get("architecture") or {}),
            source_project=data.get("sourceProject"),
            related_patterns=list(data.get("relatedPatterns", [])),
            **cls._envelope_kwargs(data),
        )

    def validate(self) -> None:
        self._validate_envelope(description_max=1000, description_min=10)
        _check_enum("category", self.category, SOLUTION_CATEGORIES)
        self.problem.validate()
        self.implementation.validate()
        self.architecture.validate()
        _check_optional_str("sourceProject", self.source_project)
        for i, related in enumerate(self.related_patterns):
            _check_uuid(f"relatedPatterns[{i}]", related)


Pattern = Union[FixPattern, Blueprint, SolutionPattern]


def pattern_from_dict(kind: PatternKind, data: Any) -> Pattern:
    """
    Build a pattern of ``kind`` from its serialized form.

    Structural problems (missing keys, wrong container types) surface as
    SchemaValidationError like every other schema violation. The result
    is not validated; call ``validate()`` for that.
    """
    if not isinstance(data, dict):
        raise SchemaValidationError("<root>", "must be a JSON object", data)
    try:
        return kind.pattern_class.from_dict(data)
    except KeyError as e:
        raise SchemaValidationError(str(e.args[0]), "is required")
    except (TypeError, AttributeError, ValueError) as e:
        raise SchemaValidationError("<root>", f"malformed pattern: {e}")


def is_pattern_deprecated(
    pattern: Pattern,
    threshold_days: int = DEPRECATION_THRESHOLD_DAYS,
    now: Optional[datetime] = None,
) -> bool:
    """
    Whether a pattern counts as deprecated.

    An explicit ``deprecatedAt`` always counts. Otherwise the pattern is
    stale once more than ``threshold_days`` whole days have passed since
    ``updatedAt``. The age check is computed here and never persisted.
    """
    if pattern.deprecated_at:
        return True

    now = now or utc_now()
    try:
        updated_at = parse_timestamp(pattern.updated_at)
    except (TypeError, ValueError):
        return False
    days_since_update = (now - updated_at).days
    return days_since_update > threshold_days
