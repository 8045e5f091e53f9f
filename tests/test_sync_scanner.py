"""Tests for path filtering, the local file tree and snapshot building."""

import errno
import os
from unittest.mock import Mock, patch

import pytest

from pys3sync.exceptions import (
    S3SyncIOError,
    S3SyncNotFoundError,
    S3SyncUnavailableError,
)
from pys3sync.sync.ignore import filter_excluded, is_excluded
from pys3sync.sync.operations import LocalFileTree, SyncOperations
from pys3sync.sync.scanner import LocalFile, RemoteFile, SnapshotBuilder
from pys3sync.sync.state import SyncFileState, SyncStateManager

from .conftest import FakeRemoteStore, local_mtime, write_local

T0 = 1_600_000_000_000


class TestPathFilter:
    """Tests for the reserved-marker exclusion rule."""

    @pytest.mark.parametrize(
        "path",
        [".obsidian/app.json", "notes/.hidden.md", "a/.git/b/c", ".trash"],
    )
    def test_excluded(self, path):
        assert is_excluded(path)

    @pytest.mark.parametrize("path", ["a.md", "notes/a.md", "v1.2/readme.txt"])
    def test_included(self, path):
        assert not is_excluded(path)

    def test_filter_excluded(self):
        files = {"a.md": 1, ".obsidian/x": 2}
        assert filter_excluded(files) == {"a.md": 1}


class TestLocalFileTree:
    """Tests for LocalFileTree."""

    @pytest.fixture
    def tree(self, local_root):
        return LocalFileTree(local_root)

    def test_list_files(self, tree, local_root):
        write_local(local_root, "a.md", b"aa", T0)
        write_local(local_root, "sub/dir/b.md", b"b", T0 + 1)

        files = {f.relative_path: f for f in tree.list_files()}

        assert files == {
            "a.md": LocalFile("a.md", T0, 2),
            "sub/dir/b.md": LocalFile("sub/dir/b.md", T0 + 1, 1),
        }

    def test_list_skips_hidden_directories(self, tree, local_root):
        write_local(local_root, ".obsidian/app.json", b"{}", T0)
        write_local(local_root, "notes/.draft.md", b"x", T0)

        assert tree.list_files() == []

    def test_missing_root_is_unavailable(self, tmp_path):
        with pytest.raises(S3SyncUnavailableError):
            LocalFileTree(tmp_path / "missing").list_files()

    def test_root_must_be_directory(self, tmp_path):
        path = tmp_path / "file"
        path.write_text("x")
        with pytest.raises(S3SyncUnavailableError):
            LocalFileTree(path).check_available()

    @pytest.mark.skipif(
        os.name == "nt" or (hasattr(os, "geteuid") and os.geteuid() == 0),
        reason="permission bits are not enforced",
    )
    def test_unreadable_directory_raises(self, tree, local_root):
        locked = local_root / "locked"
        locked.mkdir()
        locked.chmod(0)
        try:
            with pytest.raises(S3SyncIOError):
                tree.list_files()
        finally:
            locked.chmod(0o755)

    def test_write_sets_mtime_and_creates_parents(self, tree, local_root):
        stored = tree.write_bytes("x/y/z.md", b"content", T0)

        assert stored == T0
        assert (local_root / "x" / "y" / "z.md").read_bytes() == b"content"
        assert local_mtime(local_root, "x/y/z.md") == T0

    def test_failed_write_keeps_previous_file(self, tree, local_root):
        write_local(local_root, "a.md", b"old", T0)

        with patch(
            "pys3sync.sync.operations.os.replace",
            side_effect=OSError(errno.ENOSPC, "No space left on device"),
        ):
            with pytest.raises(S3SyncIOError) as exc_info:
                tree.write_bytes("a.md", b"new content", T0 + 1000)

        assert exc_info.value.path == "a.md"
        assert (local_root / "a.md").read_bytes() == b"old"
        assert local_mtime(local_root, "a.md") == T0
        assert [p.name for p in local_root.iterdir()] == ["a.md"]

    def test_read_missing_file(self, tree):
        with pytest.raises(S3SyncNotFoundError) as exc_info:
            tree.read_bytes("nope.md")
        assert exc_info.value.path == "nope.md"

    def test_delete_missing_file_is_fine(self, tree):
        tree.delete("nope.md")

    def test_delete(self, tree, local_root):
        write_local(local_root, "a.md", b"a", T0)
        tree.delete("a.md")
        assert not (local_root / "a.md").exists()

    def test_prune_empty_directories(self, tree, local_root):
        (local_root / "empty" / "nested").mkdir(parents=True)
        (local_root / ".obsidian").mkdir()
        write_local(local_root, "kept/a.md", b"a", T0)

        removed = tree.prune_empty_directories()

        assert sorted(removed) == ["empty", "empty/nested"]
        assert (local_root / ".obsidian").is_dir()
        assert (local_root / "kept").is_dir()
        assert local_root.is_dir()


class TestSyncOperations:
    """Tests for the per-action operations."""

    @pytest.fixture
    def operations(self, remote, local_root):
        return SyncOperations(remote, LocalFileTree(local_root))

    def test_upload_returns_store_mtime(self, operations, remote, local_root):
        write_local(local_root, "a.md", b"a", T0)

        mtime = operations.upload_file(LocalFile("a.md", T0, 1))

        assert mtime == remote.mtime("a.md")
        assert remote.content("a.md") == b"a"

    def test_download_stamps_remote_mtime(self, operations, remote, local_root):
        remote.add("a.md", b"a", T0)

        mtime = operations.download_file(RemoteFile("a.md", T0, "vault/a.md"))

        assert mtime == T0
        assert (local_root / "a.md").read_bytes() == b"a"

    def test_resolve_conflict(self, operations, remote, local_root):
        write_local(local_root, "a.md", b"local", T0)
        remote.add("a.md", b"remote", T0)

        resolution = operations.resolve_conflict(
            LocalFile("a.md", T0, 5), RemoteFile("a.md", T0, "vault/a.md", 6)
        )

        assert resolution.conflict_path == "a (conflict 20200913-122640).md"
        assert resolution.conflict_local_mtime == T0
        assert resolution.conflict_remote_mtime == remote.mtime(resolution.conflict_path)
        assert resolution.remote_mtime == remote.mtime("a.md")
        assert (local_root / resolution.conflict_path).read_bytes() == b"remote"
        assert remote.content("a.md") == b"local"


class TestSnapshotBuilder:
    """Tests for building the three views."""

    def test_build_filters_every_view(self, local_root, tmp_path):
        remote = FakeRemoteStore()
        manager = SyncStateManager(tmp_path / "state")
        write_local(local_root, "a.md", b"a", T0)
        write_local(local_root, ".obsidian/x.json", b"{}", T0)
        remote.add("b.md", b"b", T0)
        remote.add(".trash/b.md", b"b", T0)
        manager.save_state(
            local_root,
            remote.remote_root,
            {"c.md": SyncFileState(1, 2), ".obsidian/x.json": SyncFileState(1, 2)},
        )

        snapshot = SnapshotBuilder(LocalFileTree(local_root), remote, manager).build()

        assert set(snapshot.local_files) == {"a.md"}
        assert set(snapshot.remote_files) == {"b.md"}
        assert snapshot.remote_files["b.md"].key == "vault/b.md"
        assert set(snapshot.state_files) == {"c.md"}
        assert snapshot.all_paths() == {"a.md", "b.md", "c.md"}

    def test_working_state_is_a_copy(self, local_root, tmp_path):
        remote = FakeRemoteStore()
        manager = SyncStateManager(tmp_path / "state")
        manager.save_state(local_root, remote.remote_root, {"c.md": SyncFileState(1, 2)})
        snapshot = SnapshotBuilder(LocalFileTree(local_root), remote, manager).build()

        working = snapshot.working_state()
        working["c.md"].local_mtime = 99
        del working["c.md"]

        assert snapshot.state_files == {"c.md": SyncFileState(1, 2)}

    def test_collaborator_errors_propagate(self, local_root):
        client = Mock()
        client.list_objects.side_effect = S3SyncUnavailableError("down")
        builder = SnapshotBuilder(LocalFileTree(local_root), client, Mock())

        with pytest.raises(S3SyncUnavailableError):
            builder.build()
