"""API client for S3-compatible object storage."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import boto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    NoCredentialsError,
)

from .config import S3SyncSettings, config
from .exceptions import (
    S3SyncConfigError,
    S3SyncError,
    S3SyncIOError,
    S3SyncNotFoundError,
    S3SyncUnavailableError,
)
from .models import RemoteObject
from .utils import datetime_to_millis

if TYPE_CHECKING:
    from botocore.client import BaseClient

logger = logging.getLogger(__name__)

# Error codes meaning the bucket as a whole is unusable
UNAVAILABLE_ERROR_CODES = {
    "NoSuchBucket",
    "AccessDenied",
    "InvalidAccessKeyId",
    "SignatureDoesNotMatch",
    "AllAccessDisabled",
    "403",
}

NOT_FOUND_ERROR_CODES = {"NoSuchKey", "404", "NotFound"}


class S3Client:
    """Client for a single bucket/prefix on an S3-compatible store."""

    def __init__(
        self,
        settings: S3SyncSettings | None = None,
        page_size: int = 1000,
    ):
        """Initialize S3 client.

        Args:
            settings: Connection settings (loaded from config if not provided)
            page_size: Number of keys requested per listing page
        """
        self.settings = settings or config.get_settings()
        self.page_size = page_size

        if not self.settings.is_complete():
            raise S3SyncConfigError(
                "S3 client not configured. Run 'pys3sync init' or set "
                "S3SYNC_BUCKET, S3SYNC_ACCESS_KEY_ID and S3SYNC_SECRET_ACCESS_KEY."
            )

        self.bucket_name = self.settings.bucket_name
        self._client: BaseClient | None = None

    def _get_client(self) -> BaseClient:
        """Get or create the boto3 client."""
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=self.settings.endpoint or None,
                region_name=self.settings.region or None,
                aws_access_key_id=self.settings.access_key_id,
                aws_secret_access_key=self.settings.secret_access_key,
            )
        return self._client

    # =========================================================================
    # Key mapping
    # =========================================================================

    @property
    def prefix(self) -> str:
        """Remote prefix normalised to either "" or "something/"."""
        prefix = self.settings.remote_prefix.strip().strip("/")
        return f"{prefix}/" if prefix else ""

    @property
    def remote_root(self) -> str:
        """Human-readable identity of the synced location."""
        return f"{self.bucket_name}/{self.prefix}"

    def get_remote_key(self, relative_path: str) -> str:
        """Map a relative path to an object key."""
        return f"{self.prefix}{relative_path.lstrip('/')}"

    def get_relative_path(self, key: str) -> str:
        """Map an object key back to a relative path."""
        return key[len(self.prefix) :] if key.startswith(self.prefix) else key

    # =========================================================================
    # Error handling
    # =========================================================================

    def _translate_error(
        self, e: Exception, operation: str, path: str | None = None
    ) -> S3SyncError:
        """Convert a botocore exception into a pys3sync exception.

        Args:
            e: The exception raised by boto3
            operation: Short description of what was attempted
            path: Relative path involved, if any

        Returns:
            Exception to raise
        """
        if isinstance(e, NoCredentialsError):
            return S3SyncConfigError(f"{operation} failed: no credentials", path)

        if isinstance(e, ClientError):
            error = e.response.get("Error", {})
            code = str(error.get("Code", ""))
            message = error.get("Message") or str(e)
            if code in NOT_FOUND_ERROR_CODES:
                return S3SyncNotFoundError(f"{operation} failed: not found", path)
            if code in UNAVAILABLE_ERROR_CODES:
                return S3SyncUnavailableError(
                    f"{operation} failed: {code}: {message}", path
                )
            return S3SyncIOError(f"{operation} failed: {code}: {message}", path)

        return S3SyncUnavailableError(f"{operation} failed: {e}", path)

    # =========================================================================
    # Operations
    # =========================================================================

    def check_connection(self) -> bool:
        """Check that the bucket is reachable with the configured credentials.

        Returns:
            True if the bucket could be accessed

        Raises:
            S3SyncUnavailableError: If the bucket cannot be reached
        """
        try:
            self._get_client().head_bucket(Bucket=self.bucket_name)
        except (ClientError, BotoCoreError) as e:
            error = self._translate_error(e, "Connection check")
            if isinstance(error, S3SyncNotFoundError):
                # HEAD on a missing bucket only reports a bare 404
                error = S3SyncUnavailableError(
                    f"Connection check failed: bucket {self.bucket_name} not found"
                )
            raise error from e
        return True

    def list_objects(self) -> list[RemoteObject]:
        """List every object below the prefix.

        All pages are drained before returning; an error on any page is
        raised, never turned into a partial result.

        Returns:
            List of RemoteObject instances (folder markers excluded)
        """
        objects: list[RemoteObject] = []
        paginator = self._get_client().get_paginator("list_objects_v2")

        try:
            pages = paginator.paginate(
                Bucket=self.bucket_name,
                Prefix=self.prefix,
                PaginationConfig={"PageSize": self.page_size},
            )
            for page_num, page in enumerate(pages, start=1):
                contents: list[dict[str, Any]] = page.get("Contents", [])
                logger.debug(f"Listing page {page_num}: {len(contents)} object(s)")
                for item in contents:
                    key = item["Key"]
                    if key.endswith("/"):
                        # Folder marker objects
                        continue
                    relative_path = self.get_relative_path(key)
                    if not relative_path:
                        continue
                    objects.append(RemoteObject.from_s3_dict(item, relative_path))
        except (ClientError, BotoCoreError) as e:
            raise self._translate_error(e, "List objects") from e

        logger.debug(f"Listed {len(objects)} object(s) in {self.remote_root}")
        return objects

    def get_object(self, key: str) -> bytes:
        """Download an object's content.

        Args:
            key: Full object key

        Returns:
            Object content
        """
        try:
            response = self._get_client().get_object(Bucket=self.bucket_name, Key=key)
            return response["Body"].read()
        except (ClientError, BotoCoreError) as e:
            raise self._translate_error(
                e, f"Download of {key}", self.get_relative_path(key)
            ) from e

    def put_object(self, relative_path: str, content: bytes) -> int:
        """Upload content to the key for a relative path.

        The stored mtime is read back through a listing of the key rather
        than HEAD, so it has the same precision as the mtimes returned by
        ``list_objects``.

        Args:
            relative_path: Path relative to the prefix
            content: Bytes to store

        Returns:
            LastModified of the stored object in milliseconds, as reported
            by the store after the write
        """
        key = self.get_remote_key(relative_path)
        client = self._get_client()
        try:
            client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=content,
                ContentLength=len(content),
            )
            # The exact key sorts before any longer key sharing its prefix
            listing = client.list_objects_v2(
                Bucket=self.bucket_name, Prefix=key, MaxKeys=1
            )
        except (ClientError, BotoCoreError) as e:
            raise self._translate_error(e, f"Upload of {key}", relative_path) from e

        for item in listing.get("Contents", []):
            if item["Key"] == key:
                return datetime_to_millis(item["LastModified"])
        raise S3SyncIOError(
            f"Upload of {key} could not be confirmed: object not listed", relative_path
        )

    def delete_object(self, relative_path: str) -> None:
        """Delete the object for a relative path.

        Deleting a key that does not exist is not an error.
        """
        key = self.get_remote_key(relative_path)
        try:
            self._get_client().delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise self._translate_error(e, f"Delete of {key}", relative_path) from e
