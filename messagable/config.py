"""Runtime configuration — env-driven via pydantic-settings.

Reads from a .env file and MESSAGABLE_* environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class MessagableConfig(BaseSettings):
    """Library and CLI configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export MESSAGABLE_LOG_LEVEL=DEBUG
        export MESSAGABLE_STORE_PATH=/data/messages.db
        export MESSAGABLE_STRICT_OPTIONAL_GROUPS=false
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="MESSAGABLE_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Storage
    store_path: Path = Path(".messagable/messages.db")

    # Resolution
    # Unknown optional recipient group identifiers fail the send when True,
    # and expand to nobody (with a warning) when False.
    strict_optional_groups: bool = True

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


# Module-level singleton; import as `from messagable.config import config`
config = MessagableConfig()
