"""Configuration for GE Tracker sync."""

import os
from dataclasses import dataclass

from .errors import ConfigurationError
from .util import parse_log_level


DEFAULT_BASE_URL = "https://www.ge-tracker.com/api/profit-tracker"
DEFAULT_DB_PATH = os.path.join(os.path.expanduser("~"), ".getracker", "config.db")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class SyncConfig:
    """
    Configuration container for GE Tracker sync.

    Loaded from environment variables with sensible defaults.
    """
    # Ledger API
    api_token: str = ""
    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = 300.0  # aiohttp's own default total timeout

    # Player whose offers are tracked
    username: str = ""

    # Local configuration store
    db_path: str = DEFAULT_DB_PATH

    # Pull active ledger transactions before handling events
    sync_on_startup: bool = True

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "SyncConfig":
        """Load configuration from environment variables."""
        return cls(
            api_token=os.getenv("GETRACKER_API_TOKEN", ""),
            base_url=os.getenv("GETRACKER_BASE_URL", DEFAULT_BASE_URL),
            timeout_seconds=float(os.getenv("GETRACKER_TIMEOUT_SECONDS", "300.0")),
            username=os.getenv("GETRACKER_USERNAME", ""),
            db_path=os.getenv("GETRACKER_DB_PATH", DEFAULT_DB_PATH),
            sync_on_startup=_env_bool("GETRACKER_SYNC_ON_STARTUP", True),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """Validate configuration values."""
        if not self.api_token:
            raise ConfigurationError("api_token is required (GETRACKER_API_TOKEN)")

        if not self.username:
            raise ConfigurationError("username is required (GETRACKER_USERNAME)")

        if not self.base_url.startswith(("http://", "https://")):
            raise ConfigurationError("base_url must be an http(s) URL")

        if self.timeout_seconds <= 0:
            raise ConfigurationError("timeout_seconds must be positive")

        parse_log_level(self.log_level)
