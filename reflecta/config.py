"""Configuration settings for reflecta."""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Value shipped in example .env files; treated the same as no key at all
PLACEHOLDER_OPENAI_KEY = "your_openai_api_key_here"

DEFAULT_MIGRATION_DELAY = 20.0  # seconds; ~3 requests/minute on a free tier


def get_reflecta_home() -> Path:
    """Data directory: ``REFLECTA_DATA_DIR`` if set, else ``~/.reflecta``."""
    override = os.environ.get("REFLECTA_DATA_DIR", "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".reflecta"


class Settings(BaseSettings):
    """Process-level settings loaded from the environment and .env files."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.development"),
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore extra env vars not in model
        protected_namespaces=(),
    )

    # Storage
    data_dir: Path = Field(default_factory=get_reflecta_home, validation_alias="REFLECTA_DATA_DIR")
    db_path: Optional[Path] = Field(default=None, validation_alias="REFLECTA_DB_PATH")

    # Classification service
    openai_api_key: Optional[str] = Field(default=None, validation_alias="OPENAI_API_KEY")
    openai_api_url: Optional[str] = Field(default=None, validation_alias="OPENAI_API_URL")
    anthropic_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("ANTHROPIC_API_KEY", "CLAUDE_API_KEY"),
    )
    model_provider: Optional[str] = Field(default=None, validation_alias="REFLECTA_MODEL_PROVIDER")
    model: Optional[str] = Field(default=None, validation_alias="REFLECTA_MODEL")

    # Migration
    migration_delay_seconds: float = Field(
        default=DEFAULT_MIGRATION_DELAY,
        ge=0,
        validation_alias="REFLECTA_MIGRATION_DELAY",
    )

    # Logging
    log_level: str = Field(default="INFO", validation_alias="REFLECTA_LOG_LEVEL")

    @property
    def resolved_db_path(self) -> Path:
        if self.db_path is not None:
            return Path(self.db_path).expanduser()
        return Path(self.data_dir).expanduser() / "reflecta.db"

    @property
    def has_openai_key(self) -> bool:
        key = (self.openai_api_key or "").strip()
        return bool(key) and key != PLACEHOLDER_OPENAI_KEY

    @property
    def has_anthropic_key(self) -> bool:
        return bool((self.anthropic_api_key or "").strip())


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
