"""
Configuration for the marina web application.

Values come from environment variables; a ``.env`` file in the working
directory is loaded first so local settings need not be exported by hand.
Every field has a default suitable for running the app locally.
"""

from __future__ import annotations

import datetime as dt
import os
from dataclasses import dataclass

from dotenv import load_dotenv


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    secret_key: str = "marina-secret"
    database_path: str = "marina.db"
    log_level: str = "INFO"
    log_file: str | None = None
    # 0 keeps a member selected until another one is chosen.
    selection_lifetime_days: int = 30
    csrf_enabled: bool = True

    @property
    def selection_lifetime(self) -> dt.timedelta | None:
        if self.selection_lifetime_days <= 0:
            return None
        return dt.timedelta(days=self.selection_lifetime_days)


def load_settings() -> Settings:
    """Read settings from the environment (and ``.env`` when present)."""

    load_dotenv()
    return Settings(
        secret_key=os.getenv("SECRET_KEY", "marina-secret"),
        database_path=os.getenv("DATABASE_PATH", "marina.db"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_file=os.getenv("LOG_FILE") or None,
        selection_lifetime_days=int(os.getenv("SELECTION_LIFETIME_DAYS", "30")),
        csrf_enabled=_env_bool("CSRF_ENABLED", "true"),
    )
