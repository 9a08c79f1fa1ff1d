"""
PII scrubbing for patterns before they leave the machine.

The anonymizer never mutates its input. It works on the serialized form
of a pattern, rewriting every free-text field listed for that kind, then
rebuilds a pattern from the result. ``validate_anonymization`` audits the
same fields independently, so a pattern that is still dirty after
scrubbing can be held back from a push.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

from workflow_patterns.patterns.models import (
    Pattern,
    PatternKind,
    SchemaValidationError,
    pattern_from_dict,
)

PATH_PLACEHOLDER = "<PATH>"
USER_PLACEHOLDER = "<USER>"
EMAIL_PLACEHOLDER = "<EMAIL>"
IP_PLACEHOLDER = "<IP>"
URL_PLACEHOLDER = "<URL>"
API_KEY_PLACEHOLDER = "<API_KEY>"
SECRET_PLACEHOLDER = "<SECRET>"

AUTHENTICATED_URL = re.compile(r"https?://[^:\s/]+:[^@\s]+@\S+")
GIT_REMOTE_WITH_USER = re.compile(r"git@[^:\s]+:\S+")
API_KEY = re.compile(
    r"(?:api[_-]?key|token|secret|password|auth)[=:]\s*[\"']?[a-zA-Z0-9_-]{20,}[\"']?",
    re.IGNORECASE,
)
SECRET_PREFIX = re.compile(r"\b(?:sk_|pk_|ghp_|gho_|ghu_|ghs_|ghr_|xox[bpsr])[a-zA-Z0-9_-]+")
ABSOLUTE_WINDOWS_PATH = re.compile(r"[A-Z]:\\(?:Users|Documents|Projects)[^\s:]+", re.IGNORECASE)
ABSOLUTE_UNIX_PATH = re.compile(r"/(?:home|Users|var|tmp)/[^\s:]+")
USERNAME_IN_PATH = re.compile(r"/(home|users)/[^/\s<>]+/", re.IGNORECASE)
EMAIL = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
IPV4 = re.compile(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b")

# Applied in order: credentials inside URLs go before emails would eat them.
_REPLACEMENTS: tuple[tuple[re.Pattern, str], ...] = (
    (AUTHENTICATED_URL, URL_PLACEHOLDER),
    (GIT_REMOTE_WITH_USER, URL_PLACEHOLDER),
    (API_KEY, API_KEY_PLACEHOLDER),
    (SECRET_PREFIX, SECRET_PLACEHOLDER),
    (ABSOLUTE_WINDOWS_PATH, PATH_PLACEHOLDER),
    (ABSOLUTE_UNIX_PATH, PATH_PLACEHOLDER),
    (USERNAME_IN_PATH, rf"/\1/{USER_PLACEHOLDER}/"),
    (EMAIL, EMAIL_PLACEHOLDER),
    (IPV4, IP_PLACEHOLDER),
)

_WINDOWS_DRIVE = re.compile(r"^[A-Za-z]:[\\/]")


@dataclass(frozen=True)
class _FieldMap:
    """Dotted paths (``[]`` marks a list) of scrubbable fields for one kind."""
    paths: tuple[str, ...] = ()
    error_messages: tuple[str, ...] = ()
    content: tuple[str, ...] = ()

    def all(self) -> tuple[str, ...]:
        return ("name",) + self.paths + self.error_messages + self.content


_FIELDS: dict[PatternKind, _FieldMap] = {
    PatternKind.FIX: _FieldMap(
        paths=("solution.steps[].target",),
        error_messages=("trigger.errorMessage",),
        content=(
            "description",
            "trigger.context",
            "solution.steps[].content",
            "solution.steps[].description",
        ),
    ),
    PatternKind.BLUEPRINT: _FieldMap(
        paths=(
            "structure.directories[].path",
            "structure.keyFiles[].path",
            "setup.configs[].file",
        ),
        content=(
            "description",
            "structure.directories[].purpose",
            "structure.keyFiles[].purpose",
            "structure.keyFiles[].template",
            "setup.prerequisites[]",
            "setup.steps[].command",
            "setup.steps[].description",
            "setup.configs[].content",
            "setup.configs[].description",
            "setup.postSetup[]",
        ),
    ),
    PatternKind.SOLUTION: _FieldMap(
        paths=("implementation.files[].path",),
        error_messages=("problem.errorPatterns[]",),
        content=(
            "description",
            "problem.description",
            "implementation.files[].purpose",
            "implementation.files[].content",
            "implementation.envVars[].description",
            "implementation.envVars[].example",
            "architecture.entryPoints[]",
            "architecture.dataFlow",
            "architecture.keyDecisions[]",
            "architecture.diagram",
        ),
    ),
}

# Attribution that never leaves the machine.
_STRIPPED_KEYS: dict[PatternKind, tuple[str, ...]] = {
    PatternKind.FIX: ("contributorId",),
    PatternKind.BLUEPRINT: ("contributorId",),
    PatternKind.SOLUTION: ("contributorId", "sourceProject"),
}


def _locate(node: Any, parts: list[str], trail: str = "") -> Iterator[tuple[Any, Any, str]]:
    """Yield ``(container, key, label)`` for every string at a dotted path."""
    if not isinstance(node, dict) or not parts:
        return
    head, rest = parts[0], parts[1:]

    if head.endswith("[]"):
        key = head[:-2]
        items = node.get(key)
        if not isinstance(items, list):
            return
        for index, item in enumerate(items):
            label = f"{trail}{key}[{index}]"
            if rest:
                yield from _locate(item, rest, label + ".")
            elif isinstance(item, str):
                yield items, index, label
        return

    if rest:
        yield from _locate(node.get(head), rest, f"{trail}{head}.")
    elif isinstance(node.get(head), str):
        yield node, head, f"{trail}{head}"


@dataclass
class AnonymizationOptions:
    """Which families of fields get scrubbed."""
    anonymize_paths: bool = True
    anonymize_content: bool = True
    anonymize_error_messages: bool = True


@dataclass
class AnonymizationResult:
    """Outcome of anonymizing one pattern."""
    success: bool
    data: Optional[Pattern] = None
    anonymized_fields: list[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class AnonymizationReport:
    """Independent PII audit of a pattern."""
    is_clean: bool
    issues: list[str] = field(default_factory=list)


class PatternAnonymizer:
    """
    Removes identifying information from patterns so they can be shared.

    Absolute paths, usernames in paths, emails, IPv4 addresses, URLs with
    credentials, SSH git remotes, API-key assignments and well-known secret
    prefixes are replaced with placeholders. Absolute file paths in path
    fields are cut to their last three segments.
    """

    def __init__(self, options: Optional[AnonymizationOptions] = None) -> None:
        self.options = options or AnonymizationOptions()

    # -------------------------------------------------------------------------
    # Strings and paths
    # -------------------------------------------------------------------------

    def anonymize_string(self, value: str) -> str:
        """Replace every PII match in ``value`` with its placeholder."""
        for pattern, placeholder in _REPLACEMENTS:
            value = pattern.sub(placeholder, value)
        return value

    def anonymize_path(self, value: str) -> str:
        """
        Strip identifying prefixes from a file path.

        Absolute paths keep only their last three segments; relative paths
        are normalized to forward slashes with any ``users/<name>/`` segment
        dropped.
        """
        normalized = value.replace("\\", "/")
        if normalized.startswith("/") or _WINDOWS_DRIVE.match(value):
            parts = [p for p in normalized.split("/") if p and not p.endswith(":")]
            if parts and parts[0].lower() in ("home", "users"):
                parts = parts[2:]
            return "/".join(parts[-3:])
        return USERNAME_IN_PATH.sub("/", normalized)

    def contains_pii(self, value: str) -> bool:
        return any(pattern.search(value) for pattern, _ in _REPLACEMENTS)

    # -------------------------------------------------------------------------
    # Patterns
    # -------------------------------------------------------------------------

    def anonymize(self, pattern: Pattern) -> AnonymizationResult:
        """Anonymize a pattern of any kind."""
        kind = pattern.kind
        fields = _FIELDS[kind]
        data = pattern.to_dict()
        changed: list[str] = []

        def scrub(paths: tuple[str, ...], fn) -> None:
            for path in paths:
                for container, key, label in list(_locate(data, path.split("."))):
                    original = container[key]
                    updated = fn(original)
                    if updated != original:
                        container[key] = updated
                        changed.append(label)

        if self.options.anonymize_paths:
            scrub(fields.paths, lambda v: self.anonymize_string(self.anonymize_path(v)))
        if self.options.anonymize_error_messages:
            scrub(fields.error_messages, self.anonymize_string)
        if self.options.anonymize_content:
            scrub(fields.content, self.anonymize_string)

        for key in _STRIPPED_KEYS[kind]:
            if data.pop(key, None) is not None:
                changed.append(key)

        try:
            anonymized = pattern_from_dict(kind, data)
        except SchemaValidationError as e:
            return AnonymizationResult(success=False, error=str(e))

        return AnonymizationResult(success=True, data=anonymized, anonymized_fields=changed)

    def anonymize_fix_pattern(self, pattern: Pattern) -> AnonymizationResult:
        return self._anonymize_kind(pattern, PatternKind.FIX)

    def anonymize_blueprint(self, blueprint: Pattern) -> AnonymizationResult:
        return self._anonymize_kind(blueprint, PatternKind.BLUEPRINT)

    def anonymize_solution(self, solution: Pattern) -> AnonymizationResult:
        return self._anonymize_kind(solution, PatternKind.SOLUTION)

    def _anonymize_kind(self, pattern: Pattern, kind: PatternKind) -> AnonymizationResult:
        if pattern.kind is not kind:
            return AnonymizationResult(
                success=False,
                error=f"Expected a {kind.value} pattern, got {pattern.kind.value}",
            )
        return self.anonymize(pattern)

    def validate_anonymization(self, pattern: Pattern) -> AnonymizationReport:
        """
        Audit every shareable text field for remaining PII.

        Runs regardless of the scrub options, and also flags attribution
        fields that should have been stripped.
        """
        kind = pattern.kind
        data = pattern.to_dict()
        issues = []

        for path in _FIELDS[kind].all():
            for container, key, label in _locate(data, path.split(".")):
                if self.contains_pii(container[key]):
                    issues.append(f"{label} contains potential PII")

        for key in _STRIPPED_KEYS[kind]:
            if data.get(key) is not None:
                issues.append(f"{key} must not be shared")

        return AnonymizationReport(is_clean=not issues, issues=issues)
