"""Tests for slugs, content hashes and file names."""

import dataclasses

import pytest

from workflow_patterns.patterns.identity import (
    SLUG_MAX_LENGTH,
    generate_pattern_hash,
    is_pattern_id,
    names_pattern_id,
    pattern_file_path,
    pattern_filename,
    slugify,
)
from workflow_patterns.patterns.models import PatternMetrics, SchemaValidationError


class TestSlugify:

    @pytest.mark.parametrize("name,expected", [
        ("Fix memory leak", "fix-memory-leak"),
        ("Fix memory leak v2", "fix-memory-leak-v2"),
        ("  Next.js   App Router!  ", "nextjs-app-router"),
        ("a -- b", "a-b"),
        ("UPPER_case", "uppercase"),
    ])
    def test_slugs(self, name, expected):
        assert slugify(name) == expected

    def test_truncated_without_trailing_hyphen(self):
        slug = slugify("word " * 30)

        assert len(slug) <= SLUG_MAX_LENGTH
        assert not slug.endswith("-")

    def test_name_without_alphanumerics_is_rejected(self):
        with pytest.raises(SchemaValidationError):
            slugify("!!! ???")


class TestFileNames:

    def test_slugged_filename(self):
        assert pattern_filename("U", "Fix memory leak") == "fix-memory-leak-U.json"

    def test_legacy_filename(self):
        assert pattern_filename("U") == "U.json"

    def test_file_path(self, tmp_path):
        assert pattern_file_path(tmp_path, "U", "Fix memory leak") == tmp_path / "fix-memory-leak-U.json"

    def test_names_pattern_id_is_literal(self):
        pattern_id = "2b1f6a4e-3c1d-4d8e-9a57-0f6c2f1e9d11"

        assert names_pattern_id(f"{pattern_id}.json", pattern_id)
        assert names_pattern_id(f"fix-memory-leak-{pattern_id}.json", pattern_id)
        assert not names_pattern_id(f"fix-memory-leak-{pattern_id}.json", "*")
        assert not names_pattern_id(f"fix-{pattern_id}.json.bak", pattern_id)

    @pytest.mark.parametrize("value", ["*", "[0-9]*", "../escape", ""])
    def test_non_uuid_is_not_a_pattern_id(self, value):
        assert not is_pattern_id(value)


class TestGeneratePatternHash:

    def test_is_eight_hex_chars(self, make_fix):
        digest = generate_pattern_hash(make_fix())

        assert len(digest) == 8
        int(digest, 16)

    def test_deterministic(self, make_fix):
        pattern = make_fix()
        assert generate_pattern_hash(pattern) == generate_pattern_hash(pattern)

    def test_ignores_metrics_and_timestamps(self, make_fix):
        pattern = make_fix()
        changed = dataclasses.replace(
            pattern,
            metrics=PatternMetrics(success_rate=50.0, applications=2, successes=1, failures=1),
            created_at="2020-01-01T00:00:00.000Z",
            updated_at="2021-01-01T00:00:00.000Z",
            synced_at="2021-01-01T00:00:00.000Z",
        )

        assert generate_pattern_hash(changed) == generate_pattern_hash(pattern)

    def test_ignores_id(self, make_fix):
        pattern = make_fix()
        other = dataclasses.replace(pattern, id="11111111-1111-4111-8111-111111111111")

        assert generate_pattern_hash(other) == generate_pattern_hash(pattern)

    def test_name_changes_hash(self, make_fix):
        pattern = make_fix()
        renamed = dataclasses.replace(pattern, name="Fix memory leak v2")

        assert generate_pattern_hash(renamed) != generate_pattern_hash(pattern)
