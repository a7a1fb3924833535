"""Application configuration with environment-specific profiles.

Supports dev, staging, and production environments via APP_ENV.
All values can be overridden by environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_DATABASE_URL = "sqlite:///./schedule.db"


@dataclass(frozen=True)
class Settings:
    """Immutable application settings resolved from environment."""

    database_url: str
    app_env: str = "dev"
    log_level: str = "INFO"

    # Progress engine windows (passed explicitly into the engine)
    race_imminent_weeks: int = 3
    feedback_window_weeks: int = 4

    # Migration-on-read write-back
    persist_retry_attempts: int = 2

    request_id_header_name: str = "X-Request-ID"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"


# -- Environment profiles --

_ENV_PROFILES: dict[str, dict] = {
    "dev": {
        "log_level": "DEBUG",
    },
    "staging": {
        "log_level": "INFO",
    },
    "production": {
        "log_level": "WARNING",
        "persist_retry_attempts": 3,
    },
}


def get_database_url() -> str:
    """Resolve database URL from the DATABASE_URL env var, else a local SQLite file."""
    env_url = os.getenv("DATABASE_URL")
    if env_url:
        return env_url
    return DEFAULT_DATABASE_URL


def get_settings() -> Settings:
    """Build Settings by merging environment profile with env-var overrides."""
    app_env = os.getenv("APP_ENV", "dev")
    profile = _ENV_PROFILES.get(app_env, _ENV_PROFILES["dev"])

    return Settings(
        database_url=get_database_url(),
        app_env=app_env,
        log_level=os.getenv("LOG_LEVEL", profile.get("log_level", "INFO")),
        race_imminent_weeks=int(os.getenv("RACE_IMMINENT_WEEKS", "3")),
        feedback_window_weeks=int(os.getenv("FEEDBACK_WINDOW_WEEKS", "4")),
        persist_retry_attempts=int(
            os.getenv("PERSIST_RETRY_ATTEMPTS", str(profile.get("persist_retry_attempts", 2)))
        ),
        request_id_header_name=os.getenv("REQUEST_ID_HEADER", "X-Request-ID"),
    )
