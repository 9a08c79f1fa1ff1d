"""
File system utilities for workflow patterns.

This module provides safe async file operations including:
- Atomic writes (write to temp file in the same directory, then rename)
- Create-if-absent writes that are safe across processes
- Directory creation
- File reading and removal with FileSystemError wrapping
"""

from __future__ import annotations

import json
import uuid
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os


class FileSystemError(Exception):
    """Raised when a file system operation fails."""
    pass


def ensure_dir(path: str | Path) -> Path:
    """
    Create a directory if it does not exist.

    Creates parent directories as needed (like mkdir -p). Safe to call
    from concurrent tasks.

    Raises:
        FileSystemError: If directory creation fails.
    """
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
        return path
    except OSError as e:
        raise FileSystemError(f"Failed to create directory {path}: {e}")


def _temp_path_for(path: Path) -> Path:
    # Same directory so the final rename never crosses filesystems
    return path.parent / f".{path.name}.{uuid.uuid4().hex}.tmp"


async def _discard(path: Path) -> None:
    try:
        await aiofiles.os.remove(path)
    except OSError:
        pass


async def safe_write(path: str | Path, content: str, encoding: str = "utf-8") -> None:
    """
    Write content to a file atomically.

    Readers see either the previous file or the complete new one, never a
    partial write.

    Args:
        path: Path to the file to write.
        content: Content to write to the file.
        encoding: Character encoding to use. Defaults to utf-8.

    Raises:
        FileSystemError: If write operation fails.
    """
    path = Path(path)
    ensure_dir(path.parent)
    temp_path = _temp_path_for(path)

    try:
        try:
            async with aiofiles.open(temp_path, "w", encoding=encoding) as f:
                await f.write(content)
            await aiofiles.os.replace(temp_path, path)
        except BaseException:
            await _discard(temp_path)
            raise
    except OSError as e:
        raise FileSystemError(f"Failed to write file {path}: {e}")


async def safe_write_json(path: str | Path, data: Any) -> None:
    """Serialize ``data`` as indented JSON and write it atomically."""
    await safe_write(path, json.dumps(data, indent=2) + "\n")


async def create_exclusive(path: str | Path, content: str, encoding: str = "utf-8") -> bool:
    """
    Write ``path`` only if it does not exist yet.

    The content is staged in a temp file and hard-linked into place, so a
    concurrent creator in another process either wins (True) or observes
    the winner's complete file (False).

    Raises:
        FileSystemError: If the write fails for any reason other than the
            target already existing.
    """
    path = Path(path)
    ensure_dir(path.parent)
    temp_path = _temp_path_for(path)

    try:
        async with aiofiles.open(temp_path, "w", encoding=encoding) as f:
            await f.write(content)
        try:
            await aiofiles.os.link(temp_path, path)
            return True
        except FileExistsError:
            return False
    except OSError as e:
        raise FileSystemError(f"Failed to create file {path}: {e}")
    finally:
        await _discard(temp_path)


async def read_file(path: str | Path, encoding: str = "utf-8") -> str:
    """
    Read a file's contents.

    Raises:
        FileSystemError: If the file is missing or cannot be read.
    """
    path = Path(path)
    try:
        async with aiofiles.open(path, "r", encoding=encoding) as f:
            return await f.read()
    except FileNotFoundError:
        raise FileSystemError(f"File not found: {path}")
    except UnicodeDecodeError as e:
        raise FileSystemError(f"Failed to decode file {path} with encoding {encoding}: {e}")
    except OSError as e:
        raise FileSystemError(f"Failed to read file {path}: {e}")


async def read_json(path: str | Path) -> Any:
    """
    Read and parse a JSON file.

    Raises:
        FileSystemError: If the file cannot be read or is not valid JSON.
    """
    content = await read_file(path)
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise FileSystemError(f"Invalid JSON in {path}: {e}")


async def file_exists(path: str | Path) -> bool:
    """Check if a regular file exists."""
    return await aiofiles.os.path.isfile(path)


async def remove_file(path: str | Path) -> bool:
    """
    Remove a file if it exists.

    Returns:
        bool: True if file was removed, False if it didn't exist.

    Raises:
        FileSystemError: If removal fails.
    """
    try:
        await aiofiles.os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        raise FileSystemError(f"Failed to remove file {path}: {e}")


def list_files(directory: str | Path, pattern: str = "*") -> list[Path]:
    """
    List files matching a glob pattern in a directory.

    A missing directory yields an empty list. Temp files left by an
    interrupted atomic write (dot-prefixed) are never returned.
    """
    directory = Path(directory)
    if not directory.is_dir():
        return []
    return sorted(
        p for p in directory.glob(pattern)
        if p.is_file() and not p.name.startswith(".")
    )
