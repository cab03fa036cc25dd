"""Indexer configuration loaded from environment variables and a ``.env`` file."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from datetime import timedelta

from dotenv import find_dotenv, load_dotenv

DEFAULT_UPDATE_INTERVAL_SECONDS = 120
MIN_UPDATE_INTERVAL_SECONDS = 60
DEFAULT_REMOTE_STORAGE = "https://checkpoints.mainnet.sui.io"
DEFAULT_BACKFILL_PROGRESS_FILE_PATH = "backfill_progress/backfill_progress"

_UNSIGNED_INTEGER = re.compile(r"\+?[0-9]+")


class ConfigError(ValueError):
    """Raised when the configuration is missing or invalid."""


@dataclass(frozen=True)
class Config:
    """Settings for the DApp ranking indexer."""

    database_url: str
    update_interval: timedelta = timedelta(seconds=DEFAULT_UPDATE_INTERVAL_SECONDS)
    remote_storage: str = DEFAULT_REMOTE_STORAGE
    backfill_progress_file_path: str = DEFAULT_BACKFILL_PROGRESS_FILE_PATH

    @classmethod
    def from_env(cls) -> "Config":
        """Build and validate a configuration from the environment."""
        dotenv_path = find_dotenv(usecwd=True)
        if dotenv_path:
            load_dotenv(dotenv_path)

        database_url = os.environ.get("DATABASE_URL")
        if database_url is None:
            raise ConfigError("DATABASE_URL must be set")

        raw_interval = os.environ.get(
            "UPDATE_INTERVAL_SECONDS", str(DEFAULT_UPDATE_INTERVAL_SECONDS)
        )
        if not _UNSIGNED_INTEGER.fullmatch(raw_interval):
            raise ConfigError("UPDATE_INTERVAL_SECONDS must be a valid number")

        config = cls(
            database_url=database_url,
            update_interval=timedelta(seconds=int(raw_interval)),
            remote_storage=os.environ.get("REMOTE_STORAGE", DEFAULT_REMOTE_STORAGE),
            backfill_progress_file_path=os.environ.get(
                "BACKFILL_PROGRESS_FILE_PATH", DEFAULT_BACKFILL_PROGRESS_FILE_PATH
            ),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Raise ConfigError if any value is out of range."""
        if self.update_interval.total_seconds() < MIN_UPDATE_INTERVAL_SECONDS:
            raise ConfigError(
                f"UPDATE_INTERVAL_SECONDS must be at least {MIN_UPDATE_INTERVAL_SECONDS} seconds"
            )
        if not self.remote_storage.startswith("http"):
            raise ConfigError("REMOTE_STORAGE must be a valid HTTP/HTTPS URL")

    def _summary_lines(self) -> list[str]:
        return [
            "📋 DApp Ranking Indexer Configuration:",
            "  💾 Database: Connected",
            f"  ⏱️  Update Interval: {int(self.update_interval.total_seconds())}s",
            f"  ☁️  Remote Storage: {self.remote_storage}",
            f"  📄 Progress File: {self.backfill_progress_file_path}",
        ]

    def print_summary(self) -> str:
        """Print a short human-readable summary and return the printed text."""
        text = "\n".join(self._summary_lines())
        print(text)
        return text


_config: Config | None = None


def init_config() -> Config:
    """Load the process-wide configuration; it may be initialised only once."""
    global _config
    config = Config.from_env()
    if _config is not None:
        raise ConfigError("Configuration has already been initialized")
    _config = config
    return config


def get_config() -> Config:
    """Return the process-wide configuration."""
    if _config is None:
        raise RuntimeError("Configuration not initialized. Call init_config() first.")
    return _config