"""Utility helpers for workflow patterns."""

from workflow_patterns.utils.fs import (
    FileSystemError,
    create_exclusive,
    ensure_dir,
    file_exists,
    list_files,
    read_file,
    read_json,
    remove_file,
    safe_write,
    safe_write_json,
)

__all__ = [
    "FileSystemError",
    "create_exclusive",
    "ensure_dir",
    "file_exists",
    "list_files",
    "read_file",
    "read_json",
    "remove_file",
    "safe_write",
    "safe_write_json",
]
