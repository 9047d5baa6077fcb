"""Tests for session id and filename validation."""

import pytest

from archiver_backend.errors import InvalidName
from archiver_backend.security import (
    is_safe_basename,
    normalize_filename,
    normalize_session_id,
    safe_join,
)


class TestNormalizeSessionId:
    def test_accepts_uuid_and_short_ids(self):
        assert normalize_session_id("abc") == "abc"
        sid = "3f2b8c1e-0d4a-4c8e-9b7f-1a2b3c4d5e6f"
        assert normalize_session_id(sid) == sid

    def test_strips_whitespace(self):
        assert normalize_session_id("  abc \n") == "abc"

    @pytest.mark.parametrize(
        "bad",
        ["", " ", ".", "..", "a/b", "../etc", "a\\b", "x" * 129, "a b", "abc\x00"],
    )
    def test_rejects_unsafe_ids(self, bad):
        with pytest.raises(InvalidName):
            normalize_session_id(bad)

    def test_rejects_ids_colliding_with_archives(self):
        with pytest.raises(InvalidName):
            normalize_session_id("abc-result.zip")
        with pytest.raises(InvalidName):
            normalize_session_id("abc-result.zip.part")

    def test_rejects_non_strings(self):
        with pytest.raises(InvalidName):
            normalize_session_id(None)


class TestFilenames:
    def test_plain_names_are_safe(self):
        assert is_safe_basename("a.txt")
        assert is_safe_basename("report 2024 (final).pdf")
        assert is_safe_basename(".hidden")

    @pytest.mark.parametrize("bad", ["", ".", "..", "a/b", "../x", "/etc/passwd", "a\\b", "a\x00b"])
    def test_unsafe_names(self, bad):
        assert not is_safe_basename(bad)
        with pytest.raises(InvalidName):
            normalize_filename(bad)


class TestSafeJoin:
    def test_join_inside_base(self, tmp_path):
        assert safe_join(tmp_path, "a.txt") == (tmp_path / "a.txt").resolve()

    def test_traversal_is_rejected(self, tmp_path):
        with pytest.raises(InvalidName):
            safe_join(tmp_path, "..", "escape.txt")

    def test_base_itself_is_rejected(self, tmp_path):
        with pytest.raises(InvalidName):
            safe_join(tmp_path, ".")
