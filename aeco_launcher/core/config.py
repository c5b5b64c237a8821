"""Configuration management for aeco-launcher."""

from __future__ import annotations

import json
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, field_validator

from aeco_launcher.core.utils import is_windows

logger = structlog.get_logger()

DEFAULT_CONFIG_FILE = Path.home() / ".config" / "aeco-launcher" / "config.json"


class ServerConfig(BaseModel):
    """Patch server configuration."""

    url: str = Field(
        default="http://127.0.0.1:8080/",
        description="Patch server root URL"
    )
    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    base_dir: str = Field(default="base/", description="Packaged install directory")
    base_archive: str = Field(default="base.zip", description="Packaged install file name")
    meta_dir: str = Field(default="meta/", description="Metadata directory")
    patchlist: str = Field(default="patchlist.json", description="Manifest file name")
    status: str = Field(default="status.json", description="Server status file name")
    patch_dir: str = Field(default="patch/", description="Patch root directory")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate server URL, forcing a trailing slash so joins nest under it."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid server URL: {v}")
        if not v.endswith("/"):
            v += "/"
        return v

    @field_validator("base_dir", "meta_dir", "patch_dir")
    @classmethod
    def validate_dir(cls, v: str) -> str:
        """Directory segments need a trailing slash."""
        if not v.endswith("/"):
            v += "/"
        return v

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout value."""
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v


class SelfUpdateConfig(BaseModel):
    """Self-replacement configuration."""

    extension: str = Field(
        default="aecoupdate",
        description="Extension of the staged launcher replacement"
    )
    retries: int = Field(default=5, description="Attempts for the restoring copy")
    retry_delay: float = Field(default=0.25, description="Fixed delay between attempts in seconds")

    @field_validator("extension")
    @classmethod
    def validate_extension(cls, v: str) -> str:
        """Validate extension value."""
        v = v.lstrip(".")
        if not v:
            raise ValueError("Extension cannot be empty")
        return v

    @field_validator("retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        """Validate retry count."""
        if v < 1:
            raise ValueError("Retries must be at least 1")
        return v

    @field_validator("retry_delay")
    @classmethod
    def validate_retry_delay(cls, v: float) -> float:
        """Validate retry delay."""
        if v < 0:
            raise ValueError("Retry delay must be non-negative")
        return v


class LauncherConfig(BaseModel):
    """Launcher configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    self_update: SelfUpdateConfig = Field(default_factory=SelfUpdateConfig)

    game_executable: str = Field(default="eco.exe", description="Game executable, relative to the install root")
    launch_args: list[str] = Field(default=["/launch"], description="Arguments passed to the game")
    use_wine: bool = Field(
        default_factory=lambda: not is_windows(),
        description="Run the game through wine"
    )
    settle_delay: float = Field(default=3.0, description="Pause after starting the game before reporting success")
    allow_play_after_failure: bool = Field(
        default=False,
        description="Accept Play when the last update attempt failed"
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    @classmethod
    def load(cls, config_file: Path | None = None) -> LauncherConfig:
        """Load configuration from file.

        Args:
            config_file: Path to config file, uses default if None

        Returns:
            Launcher configuration
        """
        if config_file is None:
            config_file = DEFAULT_CONFIG_FILE

        if config_file.exists():
            with open(config_file) as f:
                data = json.load(f)
                return cls(**data)

        # Return defaults
        return cls()

    def save(self, config_file: Path | None = None) -> None:
        """Save configuration to file.

        Args:
            config_file: Path to config file, uses default if None
        """
        if config_file is None:
            config_file = DEFAULT_CONFIG_FILE

        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

        logger.info("config_saved", path=str(config_file))

    @field_validator("game_executable")
    @classmethod
    def validate_game_executable(cls, v: str) -> str:
        """Validate game executable path."""
        if not v or Path(v).is_absolute():
            raise ValueError("Game executable must be a relative path")
        return v

    @field_validator("settle_delay")
    @classmethod
    def validate_settle_delay(cls, v: float) -> float:
        """Validate settle delay."""
        if v < 0:
            raise ValueError("Settle delay must be non-negative")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        v = v.upper()
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Valid levels: {valid_levels}")
        return v
