"""Data models for S3 API responses."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from .utils import datetime_to_millis


@dataclass
class RemoteObject:
    """An object listed in the bucket."""

    key: str
    """Full object key, including the remote prefix"""

    relative_path: str
    """Path relative to the remote prefix (forward slashes)"""

    mtime: int
    """LastModified in milliseconds since the epoch"""

    size: int = 0
    """Object size in bytes"""

    etag: Optional[str] = None
    """ETag reported by the store (quotes stripped)"""

    @classmethod
    def from_s3_dict(cls, data: dict[str, Any], relative_path: str) -> "RemoteObject":
        """Create a RemoteObject from a ``list_objects_v2`` content entry.

        Args:
            data: One element of the ``Contents`` list
            relative_path: Path relative to the configured prefix

        Returns:
            RemoteObject instance
        """
        last_modified: datetime = data["LastModified"]
        etag = data.get("ETag")
        return cls(
            key=data["Key"],
            relative_path=relative_path,
            mtime=datetime_to_millis(last_modified),
            size=int(data.get("Size", 0)),
            etag=etag.strip('"') if etag else None,
        )
