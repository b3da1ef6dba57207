"""Application configuration using pydantic-settings."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="APKG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    debug: bool = Field(default=False, description="Debug mode")
    log_json: bool = Field(
        default=False,
        description="Render log events as JSON instead of console output",
    )

    # Workspace
    workspace_root: str | None = Field(
        default=None,
        description="Parent directory for extraction workspaces (system temp dir if unset)",
    )

    # Archive layout
    database_name: str = Field(
        default="collection.anki2",
        description="Archive entry holding the embedded collection database",
    )
    media_name: str = Field(
        default="media",
        description="Archive entry holding the media index",
    )

    # Embedded database
    sqlite_timeout: float = Field(
        default=5.0,
        description="Seconds to wait for a locked collection database",
    )

    @field_validator("workspace_root")
    @classmethod
    def validate_workspace_root(cls, v: str | None) -> str | None:
        """Validate that the workspace root, when set, is an existing directory."""
        if v is not None and not Path(v).is_dir():
            raise ValueError(f"workspace_root is not a directory: {v}")
        return v

    @field_validator("database_name", "media_name")
    @classmethod
    def validate_entry_name(cls, v: str) -> str:
        """Validate that entry names are bare filenames."""
        if not v or "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError("entry name must be a bare filename")
        return v

    @field_validator("sqlite_timeout")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Validate settings that must be positive."""
        if v <= 0:
            raise ValueError("value must be positive")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
