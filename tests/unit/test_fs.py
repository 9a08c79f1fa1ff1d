"""Tests for async file system helpers."""

import asyncio
import json

import pytest

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


class TestSafeWrite:

    @pytest.mark.asyncio
    async def test_creates_parents_and_writes(self, tmp_path):
        target = tmp_path / "a" / "b" / "file.txt"
        await safe_write(target, "hello")

        assert target.read_text() == "hello"

    @pytest.mark.asyncio
    async def test_replaces_existing_content(self, tmp_path):
        target = tmp_path / "file.txt"
        target.write_text("old")

        await safe_write(target, "new")

        assert target.read_text() == "new"

    @pytest.mark.asyncio
    async def test_leaves_no_temp_files(self, tmp_path):
        await safe_write_json(tmp_path / "data.json", {"a": 1})

        assert [p.name for p in tmp_path.iterdir()] == ["data.json"]

    @pytest.mark.asyncio
    async def test_json_is_indented_with_trailing_newline(self, tmp_path):
        target = tmp_path / "data.json"
        await safe_write_json(target, {"a": 1})

        assert target.read_text() == json.dumps({"a": 1}, indent=2) + "\n"


class TestCreateExclusive:

    @pytest.mark.asyncio
    async def test_first_creator_wins(self, tmp_path):
        target = tmp_path / "id"

        assert await create_exclusive(target, "first") is True
        assert await create_exclusive(target, "second") is False
        assert target.read_text() == "first"

    @pytest.mark.asyncio
    async def test_concurrent_creators_agree(self, tmp_path):
        target = tmp_path / "id"

        results = await asyncio.gather(*(create_exclusive(target, str(i)) for i in range(5)))

        assert results.count(True) == 1
        assert target.read_text() in {str(i) for i in range(5)}
        assert [p.name for p in tmp_path.iterdir()] == ["id"]


class TestReading:

    @pytest.mark.asyncio
    async def test_read_missing_file(self, tmp_path):
        with pytest.raises(FileSystemError, match="not found"):
            await read_file(tmp_path / "missing.txt")

    @pytest.mark.asyncio
    async def test_read_invalid_json(self, tmp_path):
        target = tmp_path / "bad.json"
        target.write_text("{not json")

        with pytest.raises(FileSystemError, match="Invalid JSON"):
            await read_json(target)

    @pytest.mark.asyncio
    async def test_file_exists(self, tmp_path):
        target = tmp_path / "file.txt"
        assert not await file_exists(target)

        target.write_text("x")
        assert await file_exists(target)
        assert not await file_exists(tmp_path)


class TestRemoveAndList:

    @pytest.mark.asyncio
    async def test_remove_file(self, tmp_path):
        target = tmp_path / "file.txt"
        target.write_text("x")

        assert await remove_file(target) is True
        assert await remove_file(target) is False

    def test_list_files_sorted_and_skips_dot_files(self, tmp_path):
        (tmp_path / "b.json").write_text("{}")
        (tmp_path / "a.json").write_text("{}")
        (tmp_path / ".a.json.123.tmp").write_text("{}")
        (tmp_path / "notes.txt").write_text("")

        assert [p.name for p in list_files(tmp_path, "*.json")] == ["a.json", "b.json"]

    def test_list_files_missing_directory(self, tmp_path):
        assert list_files(tmp_path / "nowhere") == []

    def test_ensure_dir_is_idempotent(self, tmp_path):
        target = tmp_path / "x" / "y"
        ensure_dir(target)
        ensure_dir(target)

        assert target.is_dir()
