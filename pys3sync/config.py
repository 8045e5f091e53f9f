"""Configuration management for pys3sync.

Settings are read from ``~/.config/pys3sync/config.json`` and can be
overridden with environment variables, which always take precedence.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Optional

from .exceptions import S3SyncConfigError
from .utils import DEFAULT_SYNC_INTERVAL_MINUTES

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.json"

# Environment variable -> settings field
ENV_VARS: dict[str, str] = {
    "S3SYNC_ENDPOINT": "endpoint",
    "S3SYNC_REGION": "region",
    "S3SYNC_BUCKET": "bucket_name",
    "S3SYNC_ACCESS_KEY_ID": "access_key_id",
    "S3SYNC_SECRET_ACCESS_KEY": "secret_access_key",
    "S3SYNC_PREFIX": "remote_prefix",
    "S3SYNC_SYNC_INTERVAL": "sync_interval_minutes",
}


@dataclass
class S3SyncSettings:
    """Connection and scheduling settings.

    Only used to build the collaborators; none of these values take part
    in sync decisions.
    """

    endpoint: str = ""
    region: str = ""
    bucket_name: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    remote_prefix: str = ""
    sync_interval_minutes: int = DEFAULT_SYNC_INTERVAL_MINUTES
    enable_automatic_sync: bool = False

    def is_complete(self) -> bool:
        """Whether enough is configured to talk to the bucket."""
        return bool(self.bucket_name and self.access_key_id and self.secret_access_key)

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to a dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "S3SyncSettings":
        """Create settings from a dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        if "sync_interval_minutes" in values:
            try:
                values["sync_interval_minutes"] = int(values["sync_interval_minutes"])
            except (TypeError, ValueError) as e:
                raise S3SyncConfigError(
                    f"Invalid sync interval: {values['sync_interval_minutes']!r}"
                ) from e
        return cls(**values)

    def masked(self) -> dict[str, Any]:
        """Settings as a dictionary with the secret key hidden."""
        data = self.to_dict()
        if data["secret_access_key"]:
            data["secret_access_key"] = "****" + data["secret_access_key"][-4:]
        return data


class Config:
    """Loads and saves pys3sync settings."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize config manager.

        Args:
            config_dir: Directory holding the config file. Defaults to
                ``$S3SYNC_CONFIG_DIR`` or ``~/.config/pys3sync``.
        """
        if config_dir is None:
            env_dir = os.environ.get("S3SYNC_CONFIG_DIR")
            config_dir = (
                Path(env_dir) if env_dir else Path.home() / ".config" / "pys3sync"
            )
        self.config_dir = config_dir

    def get_config_path(self) -> Path:
        """Return the path of the config file."""
        return self.config_dir / CONFIG_FILE_NAME

    def get_state_dir(self) -> Path:
        """Return the directory sync state files are stored in."""
        return self.config_dir / "sync_state"

    def _load_file(self) -> dict[str, Any]:
        config_path = self.get_config_path()
        if not config_path.exists():
            return {}
        try:
            with open(config_path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise S3SyncConfigError(
                f"Could not read config file {config_path}: {e}"
            ) from e
        if not isinstance(data, dict):
            raise S3SyncConfigError(f"Config file {config_path} is not a JSON object")
        return data

    def get_settings(self) -> S3SyncSettings:
        """Load settings from the config file and apply env overrides."""
        data = self._load_file()
        for env_name, field_name in ENV_VARS.items():
            value = os.environ.get(env_name)
            if value:
                data[field_name] = value
        return S3SyncSettings.from_dict(data)

    def is_configured(self) -> bool:
        """Check whether bucket and credentials are available."""
        try:
            return self.get_settings().is_complete()
        except S3SyncConfigError:
            return False

    def save_settings(self, settings: S3SyncSettings) -> Path:
        """Write settings to the config file (mode 0600).

        Args:
            settings: Settings to store

        Returns:
            Path of the written config file
        """
        self.config_dir.mkdir(parents=True, exist_ok=True)
        config_path = self.get_config_path()
        fd = os.open(config_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(settings.to_dict(), f, indent=2)
        # An existing file keeps its old mode on open
        config_path.chmod(0o600)
        logger.debug(f"Saved settings to {config_path}")
        return config_path


# Global config instance
config = Config()
