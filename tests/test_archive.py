"""Tests for archive building and progress math."""

import zipfile

import pytest

from archiver_backend.archive import (
    archive_path_for,
    build_archive,
    compute_progress,
    list_entries,
    partial_path_for,
)
from archiver_backend.errors import InvariantViolation


class TestComputeProgress:
    def test_counts_partial_progress(self):
        # Dividing before multiplying would report 0 until the last entry.
        assert compute_progress(1, 3) == 33
        assert compute_progress(2, 3) == 66
        assert compute_progress(3, 3) == 100

    def test_only_complete_build_reports_100(self):
        assert compute_progress(199, 200) == 99
        assert compute_progress(999, 1000) == 99
        assert max(compute_progress(done, 200) for done in range(200)) == 99

    def test_is_monotonic(self):
        values = [compute_progress(done, 7) for done in range(8)]
        assert values == sorted(values)
        assert values[0] == 0
        assert values[-1] == 100

    def test_empty_build_is_complete(self):
        assert compute_progress(0, 0) == 100


def test_archive_paths(tmp_path):
    path = archive_path_for(tmp_path, "abc")
    assert path == tmp_path / "abc-result.zip"
    assert partial_path_for(path) == tmp_path / "abc-result.zip.part"


def test_build_archive_contains_every_file(tmp_path):
    session_dir = tmp_path / "abc"
    session_dir.mkdir()
    (session_dir / "b.txt").write_bytes(b"bye")
    (session_dir / "a.txt").write_bytes(b"hello")
    dest = tmp_path / "abc-result.zip"

    progress = []
    built = build_archive(session_dir, dest, progress.append)

    assert built.path == dest
    assert built.entries == ("a.txt", "b.txt")
    assert progress == [50, 100]
    assert not partial_path_for(dest).exists()
    with zipfile.ZipFile(dest) as zf:
        assert sorted(zf.namelist()) == ["a.txt", "b.txt"]
        assert zf.read("a.txt") == b"hello"
        assert zf.read("b.txt") == b"bye"


def test_build_empty_directory(tmp_path):
    session_dir = tmp_path / "empty"
    session_dir.mkdir()
    dest = tmp_path / "empty-result.zip"

    progress = []
    built = build_archive(session_dir, dest, progress.append)

    assert built.entries == ()
    assert progress == [100]
    with zipfile.ZipFile(dest) as zf:
        assert zf.namelist() == []


def test_nested_directory_is_an_invariant_violation(tmp_path):
    session_dir = tmp_path / "abc"
    (session_dir / "nested").mkdir(parents=True)
    dest = tmp_path / "abc-result.zip"

    with pytest.raises(InvariantViolation):
        list_entries(session_dir)
    with pytest.raises(InvariantViolation):
        build_archive(session_dir, dest)
    assert not dest.exists()
    assert not partial_path_for(dest).exists()


def test_rebuild_replaces_previous_archive(tmp_path):
    session_dir = tmp_path / "abc"
    session_dir.mkdir()
    (session_dir / "a.txt").write_bytes(b"one")
    dest = tmp_path / "abc-result.zip"
    build_archive(session_dir, dest)

    (session_dir / "a.txt").write_bytes(b"two")
    build_archive(session_dir, dest)

    with zipfile.ZipFile(dest) as zf:
        assert zf.read("a.txt") == b"two"


def test_io_error_mid_build_removes_partial(tmp_path):
    session_dir = tmp_path / "abc"
    session_dir.mkdir()
    (session_dir / "a.txt").write_bytes(b"hello")
    (session_dir / "b.txt").write_bytes(b"bye")
    dest = tmp_path / "abc-result.zip"

    def disk_full(value):
        assert partial_path_for(dest).exists()
        raise OSError(28, "No space left on device")

    with pytest.raises(OSError):
        build_archive(session_dir, dest, disk_full)

    assert not partial_path_for(dest).exists()
    assert not dest.exists()


def test_io_error_keeps_previous_archive(tmp_path):
    session_dir = tmp_path / "abc"
    session_dir.mkdir()
    (session_dir / "a.txt").write_bytes(b"one")
    dest = tmp_path / "abc-result.zip"
    build_archive(session_dir, dest)

    def fail(value):
        raise OSError("read error")

    with pytest.raises(OSError):
        build_archive(session_dir, dest, fail)

    with zipfile.ZipFile(dest) as zf:
        assert zf.read("a.txt") == b"one"
