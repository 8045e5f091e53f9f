"""Shared fixtures for pys3sync tests."""

import os
from pathlib import Path
from typing import Optional

import pytest

from pys3sync.exceptions import S3SyncIOError, S3SyncNotFoundError
from pys3sync.models import RemoteObject
from pys3sync.output import OutputFormatter
from pys3sync.sync import LocalFileTree, SyncEngine, SyncStateManager

# Mtimes handed out by the fake store's clock start here
STORE_CLOCK_START = 1_700_000_000_000


class FakeRemoteStore:
    """In-memory stand-in for S3Client.

    Every put is stamped with the next tick of a clock that advances one
    second per write, like LastModified on a real store.
    """

    def __init__(self, prefix: str = "vault/"):
        self.prefix = prefix
        self.bucket_name = "test-bucket"
        self.objects: dict[str, tuple[bytes, int]] = {}
        self.clock = STORE_CLOCK_START
        self.calls: list[tuple[str, str]] = []
        self.fail_on: dict[str, set[str]] = {"get": set(), "put": set(), "delete": set()}
        self.list_error: Optional[Exception] = None

    @property
    def remote_root(self) -> str:
        return f"{self.bucket_name}/{self.prefix}"

    def get_remote_key(self, relative_path: str) -> str:
        return f"{self.prefix}{relative_path}"

    def add(self, relative_path: str, content: bytes, mtime: int) -> None:
        """Place an object directly, as if another device had written it."""
        self.objects[relative_path] = (content, mtime)

    def content(self, relative_path: str) -> bytes:
        return self.objects[relative_path][0]

    def mtime(self, relative_path: str) -> int:
        return self.objects[relative_path][1]

    def check_connection(self) -> bool:
        return True

    def list_objects(self) -> list[RemoteObject]:
        if self.list_error is not None:
            raise self.list_error
        return [
            RemoteObject(
                key=self.get_remote_key(path),
                relative_path=path,
                mtime=mtime,
                size=len(content),
            )
            for path, (content, mtime) in self.objects.items()
        ]

    def get_object(self, key: str) -> bytes:
        path = key[len(self.prefix) :]
        self.calls.append(("get", path))
        if path in self.fail_on["get"]:
            raise S3SyncIOError(f"Download of {key} failed", path)
        if path not in self.objects:
            raise S3SyncNotFoundError(f"Download of {key} failed: not found", path)
        return self.objects[path][0]

    def put_object(self, relative_path: str, content: bytes) -> int:
        self.calls.append(("put", relative_path))
        if relative_path in self.fail_on["put"]:
            raise S3SyncIOError(f"Upload of {relative_path} failed", relative_path)
        self.clock += 1000
        self.objects[relative_path] = (content, self.clock)
        return self.clock

    def delete_object(self, relative_path: str) -> None:
        self.calls.append(("delete", relative_path))
        if relative_path in self.fail_on["delete"]:
            raise S3SyncIOError(f"Delete of {relative_path} failed", relative_path)
        self.objects.pop(relative_path, None)


def write_local(root: Path, relative_path: str, content: bytes, mtime: int) -> Path:
    """Create a local file with an exact mtime in milliseconds."""
    path = root.joinpath(*relative_path.split("/"))
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    os.utime(path, ns=(mtime * 1_000_000, mtime * 1_000_000))
    return path


def local_mtime(root: Path, relative_path: str) -> int:
    return root.joinpath(*relative_path.split("/")).stat().st_mtime_ns // 1_000_000


@pytest.fixture
def remote():
    """In-memory remote store."""
    return FakeRemoteStore()


@pytest.fixture
def local_root(tmp_path):
    """Empty local directory to sync."""
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def state_manager(tmp_path):
    """State manager writing into a temporary directory."""
    return SyncStateManager(tmp_path / "state")


@pytest.fixture
def engine(remote, local_root, state_manager):
    """Sync engine wired to the fake store and a real local directory."""
    return SyncEngine(
        client=remote,
        local_tree=LocalFileTree(local_root),
        state_manager=state_manager,
        output=OutputFormatter(quiet=True),
    )
