"""
Configuration module for the finance tracker backup engine.

Handles configuration settings including the local store path, the backups
directory and the remote migration endpoint.

Locations:
    - finance.db: the local store (read-write)
    - backups/: exported JSON snapshots
    - FINANCE_REMOTE_URL: base URL of the remote migration service (optional)

Environment variables override the defaults; explicit constructor arguments
override the environment.
"""

import os
from pathlib import Path
from typing import Optional


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


class Config:
    """Configuration class for the backup engine."""

    # Default local store file name
    DEFAULT_DB_NAME = "finance.db"

    # Default data directory
    DEFAULT_DATA_PATH = Path.home() / ".finance_tracker"
    DEFAULT_BACKUPS_DIR_NAME = "backups"

    DEFAULT_REQUEST_TIMEOUT = 30.0
    DEFAULT_WIPE_RETRY_DELAY = 0.5

    def __init__(
        self,
        local_db_path: Optional[str] = None,
        backups_dir: Optional[str] = None,
        remote_base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        request_timeout: Optional[float] = None,
        wipe_retry_delay: Optional[float] = None,
    ):
        """
        Initialize configuration.

        Args:
            local_db_path: Optional path to the local store. Falls back to
                    FINANCE_DB_PATH, then ~/.finance_tracker/finance.db.
            backups_dir: Optional directory for exported backups. Falls back to
                    FINANCE_BACKUPS_DIR, then ~/.finance_tracker/backups.
            remote_base_url: Optional base URL of the remote migration service
                    (FINANCE_REMOTE_URL).
            api_token: Optional bearer token for the remote service
                    (FINANCE_API_TOKEN).
            request_timeout: Seconds before a remote call times out.
            wipe_retry_delay: Seconds to wait before retrying a blocked store delete.
        """
        db_path = local_db_path or os.getenv("FINANCE_DB_PATH")
        self._local_db_path: Path = (
            Path(db_path) if db_path else self.DEFAULT_DATA_PATH / self.DEFAULT_DB_NAME
        )

        backups = backups_dir or os.getenv("FINANCE_BACKUPS_DIR")
        self._backups_dir: Path = (
            Path(backups) if backups else self.DEFAULT_DATA_PATH / self.DEFAULT_BACKUPS_DIR_NAME
        )

        url = remote_base_url or os.getenv("FINANCE_REMOTE_URL")
        self._remote_base_url: Optional[str] = url.rstrip("/") if url else None
        self._api_token: Optional[str] = api_token or os.getenv("FINANCE_API_TOKEN")

        self._request_timeout = (
            request_timeout
            if request_timeout is not None
            else _env_float("FINANCE_REQUEST_TIMEOUT", self.DEFAULT_REQUEST_TIMEOUT)
        )
        self._wipe_retry_delay = (
            wipe_retry_delay if wipe_retry_delay is not None else self.DEFAULT_WIPE_RETRY_DELAY
        )

    @property
    def local_db_path(self) -> Path:
        """Get the local store path."""
        return self._local_db_path

    @property
    def local_db_path_str(self) -> str:
        """Get the local store path as a string."""
        return str(self._local_db_path)

    @property
    def backups_dir(self) -> Path:
        """Get the directory where backup files are written."""
        return self._backups_dir

    @property
    def backups_dir_str(self) -> str:
        return str(self._backups_dir)

    @property
    def remote_base_url(self) -> Optional[str]:
        """Get the remote migration service base URL, if configured."""
        return self._remote_base_url

    @property
    def api_token(self) -> Optional[str]:
        return self._api_token

    @property
    def request_timeout(self) -> float:
        return self._request_timeout

    @property
    def wipe_retry_delay(self) -> float:
        return self._wipe_retry_delay

    def validate_remote(self) -> bool:
        """
        Check that a remote migration service is configured.

        Returns:
            True if a base URL with an http(s) scheme is set, False otherwise.
        """
        if not self._remote_base_url:
            return False
        return self._remote_base_url.startswith(("http://", "https://"))

    def ensure_data_dir(self) -> None:
        """
        Ensure the local store's parent directory and the backups directory exist.
        """
        self._local_db_path.parent.mkdir(parents=True, exist_ok=True)
        self._backups_dir.mkdir(parents=True, exist_ok=True)


# Global configuration instance
_config: Optional[Config] = None


def get_config(local_db_path: Optional[str] = None) -> Config:
    """
    Get or create the global configuration instance.

    Args:
        local_db_path: Optional path to the local store.

    Returns:
        Config instance.
    """
    global _config
    if _config is None or local_db_path is not None:
        _config = Config(local_db_path)
    return _config


def set_config(config: Config) -> None:
    """
    Set the global configuration instance.

    Args:
        config: Config instance to use.
    """
    global _config
    _config = config
