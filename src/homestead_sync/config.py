"""Configuration management for the Homestead sync core."""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file from config directory or project root
config_env = Path(__file__).parent.parent.parent / "config" / ".env"
if config_env.exists():
    load_dotenv(config_env)
else:
    # Fallback to project root .env
    load_dotenv()


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, default))


class Config:
    """Application configuration."""

    def __init__(self) -> None:
        """Initialize configuration from environment variables."""
        # Database settings
        default_db_path = str(Path.home() / ".homestead-sync" / "homestead.db")
        self.database_path = Path(
            os.getenv("HOMESTEAD_SYNC_DATABASE_PATH", default_db_path)
        ).expanduser()

        # Remote replica settings
        self.remote_url: Optional[str] = os.getenv("HOMESTEAD_SYNC_REMOTE_URL") or None
        self.remote_token: Optional[str] = (
            os.getenv("HOMESTEAD_SYNC_REMOTE_TOKEN") or None
        )
        self.owner = os.getenv("HOMESTEAD_SYNC_OWNER", "local")

        # Sync cycle settings
        self.sync_interval = _env_float("HOMESTEAD_SYNC_INTERVAL_SECONDS", 60.0)
        self.network_timeout = _env_float("HOMESTEAD_SYNC_NETWORK_TIMEOUT", 15.0)
        self.max_attempts = _env_int("HOMESTEAD_SYNC_MAX_ATTEMPTS", 5)
        self.backoff_base = _env_float("HOMESTEAD_SYNC_BACKOFF_BASE", 2.0)
        self.backoff_cap = _env_float("HOMESTEAD_SYNC_BACKOFF_CAP", 300.0)
        self.connectivity_interval = _env_float(
            "HOMESTEAD_SYNC_CONNECTIVITY_INTERVAL", 15.0
        )

        # Integration settings
        self.integration_interval = _env_float(
            "HOMESTEAD_SYNC_INTEGRATION_INTERVAL", 300.0
        )
        self.integration_timeout = _env_float(
            "HOMESTEAD_SYNC_INTEGRATION_TIMEOUT", 30.0
        )

        # Ensure directories exist
        self._ensure_directories()

    @property
    def remote_configured(self) -> bool:
        """Whether a remote replica URL has been configured."""
        return bool(self.remote_url)

    def _ensure_directories(self) -> None:
        """Ensure required directories exist."""
        self.database_path.parent.mkdir(parents=True, exist_ok=True)


def get_config() -> Config:
    """Get application configuration."""
    return Config()
