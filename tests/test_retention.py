"""Tests for mark-and-sweep retention."""

from unittest.mock import patch

from softpaq_mirror.repository.retention import RetentionTracker, cleanup_repository, parse_artifact_id


def test_parse_artifact_id():
    assert parse_artifact_id("sp123456.exe") == "sp123456"
    assert parse_artifact_id("SP123456.CVA") == "sp123456"
    assert parse_artifact_id("sp1.html") == "sp1"
    assert parse_artifact_id("sp1.txt") is None
    assert parse_artifact_id("readme.exe") is None
    assert parse_artifact_id("sp1.exe.part") is None


def test_mark_and_flush(repo_ctx):
    tracker = RetentionTracker(repo_ctx)

    assert tracker.flush() == 0
    marker = tracker.mark("SP1")
    tracker.mark_all(["sp2", "sp3"])

    assert marker == repo_ctx.mark_dir / "sp1.mark"
    assert marker.stat().st_size == 0
    assert tracker.marked_ids() == {"sp1", "sp2", "sp3"}

    assert tracker.flush() == 3
    assert tracker.marked_ids() == set()


def test_cleanup_deletes_only_unmarked_artifacts(repo_ctx):
    root = repo_ctx.root
    for name in ("sp1.exe", "sp1.cva", "sp2.exe", "sp2.cva", "sp2.html", "sp9.exe", "notes.txt"):
        (root / name).write_bytes(b"x")
    (root / "sp8.exe").mkdir()

    tracker = RetentionTracker(repo_ctx)
    tracker.mark_all(["sp1"])

    deleted = cleanup_repository(repo_ctx)

    assert deleted == 4
    remaining = sorted(p.name for p in root.iterdir())
    assert remaining == [".repository", "notes.txt", "sp1.cva", "sp1.exe", "sp8.exe"]


def test_cleanup_without_markers_removes_all_artifacts(repo_ctx):
    (repo_ctx.root / "sp1.exe").write_bytes(b"x")
    assert cleanup_repository(repo_ctx) == 1


def test_mark_retries_on_lock(repo_ctx):
    tracker = RetentionTracker(repo_ctx, max_retries=3)
    calls = []
    original_touch = type(repo_ctx.root).touch

    def flaky_touch(self, *args, **kwargs):
        calls.append(self)
        if len(calls) == 1:
            raise PermissionError("locked")
        return original_touch(self, *args, **kwargs)

    with patch("pathlib.Path.touch", flaky_touch), patch("softpaq_mirror.core.retry.time.sleep"):
        marker = tracker.mark("sp1")

    assert marker.exists()
    assert len(calls) == 2
