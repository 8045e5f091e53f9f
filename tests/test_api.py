"""Unit tests for the S3 client."""

import boto3
import pytest
from botocore.exceptions import ClientError, EndpointConnectionError
from moto import mock_aws

from pys3sync.api import S3Client
from pys3sync.config import S3SyncSettings
from pys3sync.exceptions import (
    S3SyncConfigError,
    S3SyncIOError,
    S3SyncNotFoundError,
    S3SyncUnavailableError,
)
from pys3sync.sync import LocalFileTree, RunStatus, SyncAction, SyncEngine
from pys3sync.sync.state import SyncStateManager

from .conftest import write_local

BUCKET = "test-sync-bucket"


def make_settings(**overrides) -> S3SyncSettings:
    values = {
        "region": "us-east-1",
        "bucket_name": BUCKET,
        "access_key_id": "test-key",
        "secret_access_key": "test-secret",
        "remote_prefix": "vault",
    }
    values.update(overrides)
    return S3SyncSettings(**values)


@pytest.fixture
def s3():
    """Mock S3 with moto."""
    with mock_aws():
        s3 = boto3.client(
            "s3",
            region_name="us-east-1",
            aws_access_key_id="test-key",
            aws_secret_access_key="test-secret",
        )
        s3.create_bucket(Bucket=BUCKET)
        yield s3


@pytest.fixture
def client(s3):
    return S3Client(make_settings(), page_size=2)


class TestS3ClientInit:
    """Tests for S3Client construction and key mapping."""

    def test_incomplete_settings_raise(self):
        with pytest.raises(S3SyncConfigError):
            S3Client(make_settings(secret_access_key=""))

    @pytest.mark.parametrize(
        "raw,expected",
        [("vault", "vault/"), ("/vault/", "vault/"), ("a/b", "a/b/"), ("", ""), (" ", "")],
    )
    def test_prefix_normalisation(self, raw, expected):
        assert S3Client(make_settings(remote_prefix=raw)).prefix == expected

    def test_key_mapping(self):
        client = S3Client(make_settings())
        assert client.get_remote_key("notes/a.md") == "vault/notes/a.md"
        assert client.get_relative_path("vault/notes/a.md") == "notes/a.md"
        assert client.remote_root == f"{BUCKET}/vault/"

    def test_key_mapping_without_prefix(self):
        client = S3Client(make_settings(remote_prefix=""))
        assert client.get_remote_key("a.md") == "a.md"
        assert client.get_relative_path("a.md") == "a.md"


class TestS3ClientOperations:
    """Tests for S3Client against a mocked bucket."""

    def test_check_connection(self, client):
        assert client.check_connection() is True

    def test_check_connection_missing_bucket(self, s3):
        client = S3Client(make_settings(bucket_name="no-such-bucket"))
        with pytest.raises(S3SyncUnavailableError):
            client.check_connection()

    def test_list_objects_drains_all_pages(self, client, s3):
        for i in range(5):
            s3.put_object(Bucket=BUCKET, Key=f"vault/file{i}.md", Body=b"x")

        objects = client.list_objects()

        assert sorted(o.relative_path for o in objects) == [
            f"file{i}.md" for i in range(5)
        ]

    def test_list_objects_skips_markers_and_sibling_prefixes(self, client, s3):
        s3.put_object(Bucket=BUCKET, Key="vault/", Body=b"")
        s3.put_object(Bucket=BUCKET, Key="vault/notes/", Body=b"")
        s3.put_object(Bucket=BUCKET, Key="vault/notes/a.md", Body=b"abc")
        s3.put_object(Bucket=BUCKET, Key="vault2/b.md", Body=b"b")

        objects = client.list_objects()

        assert len(objects) == 1
        assert objects[0].relative_path == "notes/a.md"
        assert objects[0].key == "vault/notes/a.md"
        assert objects[0].size == 3
        assert objects[0].mtime > 0

    def test_put_object_returns_listed_mtime(self, client):
        mtime = client.put_object("a.md", b"content")

        listed = {o.relative_path: o for o in client.list_objects()}
        assert listed["a.md"].mtime == mtime

    def test_put_object_with_longer_sibling_key(self, client, s3):
        s3.put_object(Bucket=BUCKET, Key="vault/a.md.bak", Body=b"old")

        mtime = client.put_object("a.md", b"content")

        listed = {o.relative_path: o for o in client.list_objects()}
        assert listed["a.md"].mtime == mtime

    def test_get_object(self, client, s3):
        s3.put_object(Bucket=BUCKET, Key="vault/a.md", Body=b"hello")
        assert client.get_object("vault/a.md") == b"hello"

    def test_get_missing_object(self, client):
        with pytest.raises(S3SyncNotFoundError) as exc_info:
            client.get_object("vault/missing.md")
        assert exc_info.value.path == "missing.md"

    def test_delete_object(self, client, s3):
        s3.put_object(Bucket=BUCKET, Key="vault/a.md", Body=b"x")

        client.delete_object("a.md")

        assert client.list_objects() == []

    def test_delete_missing_object_is_fine(self, client):
        client.delete_object("missing.md")


class TestErrorTranslation:
    """Tests for mapping botocore errors to pys3sync errors."""

    @pytest.fixture
    def client(self):
        return S3Client(make_settings())

    def _client_error(self, code: str) -> ClientError:
        return ClientError({"Error": {"Code": code, "Message": "msg"}}, "GetObject")

    def test_not_found(self, client):
        error = client._translate_error(self._client_error("NoSuchKey"), "Get", "a.md")
        assert isinstance(error, S3SyncNotFoundError)
        assert error.path == "a.md"

    @pytest.mark.parametrize("code", ["NoSuchBucket", "AccessDenied", "403"])
    def test_unavailable(self, client, code):
        error = client._translate_error(self._client_error(code), "Get")
        assert isinstance(error, S3SyncUnavailableError)

    def test_other_client_error_is_io(self, client):
        error = client._translate_error(self._client_error("SlowDown"), "Put", "a.md")
        assert isinstance(error, S3SyncIOError)
        assert not isinstance(error, S3SyncNotFoundError)

    def test_connection_error_is_unavailable(self, client):
        error = client._translate_error(
            EndpointConnectionError(endpoint_url="http://localhost:1"), "List"
        )
        assert isinstance(error, S3SyncUnavailableError)


class TestSyncAgainstBucket:
    """End-to-end runs against the mocked bucket."""

    def test_push_then_idle(self, client, tmp_path):
        root = tmp_path / "vault"
        write_local(root, "a.md", b"a", 1_600_000_000_000)
        write_local(root, "notes/b.md", b"b", 1_600_000_000_000)
        engine = SyncEngine(client, LocalFileTree(root), SyncStateManager(tmp_path / "s"))

        first = engine.run_once()
        second = engine.run_once()

        assert first.status == RunStatus.SUCCESS
        assert first.stats["uploads"] == 2
        assert second.status == RunStatus.SUCCESS
        assert all(d.action == SyncAction.DO_NOTHING for d in second.decisions)

    def test_pull_from_bucket(self, client, s3, tmp_path):
        root = tmp_path / "vault"
        root.mkdir()
        s3.put_object(Bucket=BUCKET, Key="vault/notes/a.md", Body=b"remote")
        engine = SyncEngine(client, LocalFileTree(root), SyncStateManager(tmp_path / "s"))

        result = engine.run_once()

        assert result.stats["downloads"] == 1
        assert (root / "notes" / "a.md").read_bytes() == b"remote"
        assert all(d.action == SyncAction.DO_NOTHING for d in engine.run_once().decisions)
