"""
Pattern identity: slugs, content hashes and on-disk file names.

A pattern's ``id`` is its only stable identity. The slug derived from its
name only decorates the file name, so renaming a pattern moves its file
but never changes how it is looked up.
"""

from __future__ import annotations

import hashlib
import json
import re
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from workflow_patterns.patterns.models import Pattern

SLUG_MAX_LENGTH = 50
HASH_LENGTH = 8

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHEN_RUNS = re.compile(r"-+")


def slugify_or_empty(name: str) -> str:
    """Slug for ``name``; empty when nothing alphanumeric survives."""
    slug = _NON_SLUG_CHARS.sub("", name.lower())
    slug = _WHITESPACE.sub("-", slug)
    slug = _HYPHEN_RUNS.sub("-", slug).strip("-")
    return slug[:SLUG_MAX_LENGTH].strip("-")


def slugify(name: str) -> str:
    """
    Turn a pattern name into a filesystem-safe slug.

    Raises:
        SchemaValidationError: If the name has no alphanumeric characters.
    """
    slug = slugify_or_empty(name)
    if not slug:
        from workflow_patterns.patterns.models import SchemaValidationError

        raise SchemaValidationError(
            "name", "must contain at least one alphanumeric character", name
        )
    return slug


def generate_pattern_hash(pattern: Pattern) -> str:
    """
    Short content digest used for dedup and conflict detection.

    Only identifying content is hashed. Usage metrics, timestamps and sync
    bookkeeping are left out, so two patterns that differ only in history
    hash identically.
    """
    canonical = json.dumps(pattern.hash_content(), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def pattern_filename(pattern_id: str, name: Optional[str] = None) -> str:
    """``{slug}-{id}.json`` when a name is known, legacy ``{id}.json`` otherwise."""
    if name is None:
        return f"{pattern_id}.json"
    return f"{slugify(name)}-{pattern_id}.json"


def pattern_file_path(directory: str | Path, pattern_id: str, name: Optional[str] = None) -> Path:
    return Path(directory) / pattern_filename(pattern_id, name)


def is_pattern_id(value: str) -> bool:
    """Whether ``value`` parses as a UUID, the only id shape stored on disk."""
    try:
        uuid.UUID(value)
    except (TypeError, ValueError, AttributeError):
        return False
    return True


def names_pattern_id(filename: str, pattern_id: str) -> bool:
    """Whether ``filename`` is the legacy or a slugged file of ``pattern_id``.

    Compared literally; the id is never used as a glob.
    """
    return filename == f"{pattern_id}.json" or filename.endswith(f"-{pattern_id}.json")
