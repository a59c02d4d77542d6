"""
Configuration management for sched.

Uses pydantic-settings for environment variable binding.
All settings can be overridden via environment variables with SCHED_ prefix.
"""

import logging
import sys
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable binding."""

    model_config = SettingsConfigDict(
        env_prefix="SCHED_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================
    # Data Storage
    # ==========================================
    data_dir: Path = Path.home() / ".local" / "share" / "sched"
    """Directory holding the document database and shell history."""

    config_dir: Path = Path.home() / ".config" / "sched"
    """Directory holding the user init script."""

    backend: Literal["sqlite", "memory"] = "sqlite"
    """Document store backend. `memory` keeps everything in-process."""

    database_name: str = "sched.sqlite"

    # ==========================================
    # Event Dispatch
    # ==========================================
    max_dispatch_depth: int = 8
    """Maximum nesting of storage calls made from inside event handlers."""

    # ==========================================
    # Shell
    # ==========================================
    init_file_name: str = "init.py"
    history_file_name: str = "history"
    prompt: str = ">=> "

    # ==========================================
    # Logging
    # ==========================================
    log_level: str = "WARNING"
    log_file: Path | None = None

    # ==========================================
    # Computed Properties
    # ==========================================
    @property
    def db_path(self) -> Path:
        return self.data_dir / self.database_name

    @property
    def init_file(self) -> Path:
        return self.config_dir / self.init_file_name

    @property
    def history_path(self) -> Path:
        return self.data_dir / self.history_file_name

    def ensure_directories(self) -> None:
        """Create all required directories if they don't exist."""
        for directory in [self.data_dir, self.config_dir]:
            directory.mkdir(parents=True, exist_ok=True)


# Global settings instance
settings = Settings()


def setup_logging(level: str | None = None) -> None:
    """Configure application logging."""
    log_level = level or settings.log_level

    handlers: list[logging.Handler] = [
        logging.StreamHandler(sys.stderr),
    ]

    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file))

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        handlers=handlers,
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name."""
    return logging.getLogger(f"schedtrack.{name}")
