"""
Centralised config for the Pixel Pal engine.

Values are loaded from a `.env` file or from environment variables and exposed
through typed, validated attributes. The module-level `settings` object is the
default built at process start; engine components take a `Settings` instance
in their constructors so callers (and tests) can inject their own.
"""

import os
from urllib.parse import quote_plus
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings.

    Pydantic's BaseSettings loads values from a `.env` file or from system
    environment variables, so every tunable below can be overridden without
    touching the code.
    """
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore", case_sensitive=False)

    # --- CORE SETTINGS ---
    # The root directory of the project, i.e. the parent of the package.
    PROJECT_ROOT: Path = Path(__file__).parent.parent.resolve()
    ENVIRONMENT: str = "development"

    # --- STEP CACHE ---
    STEP_CACHE_SECONDS: float = 3600.0  # 1 hour
    BASELINE_DAYS: int = 7  # window of the daily step average

    # --- LIVE SURFACE ---
    WALKING_FRAME_INTERVAL: float = 0.3  # seconds between walking frames
    WALKING_FRAME_COUNT: int = 8
    RENDER_MIN_INTERVAL: float = 0.0  # platform update-rate ceiling, 0 disables
    MILESTONE_DISPLAY_SECONDS: float = 4.0

    # --- DISPLAY STATE THRESHOLDS (today's steps) ---
    NEUTRAL_STEPS_THRESHOLD: int = 2_500
    VITAL_STEPS_THRESHOLD: int = 7_500

    # --- SYNC ---
    SYNC_RETRIES: int = 3
    SYNC_RETRY_DELAY: float = 5.0

    # --- DATABASE (from environment) ---
    POSTGRES_USER: Optional[str] = None
    POSTGRES_PASSWORD: Optional[str] = None
    POSTGRES_HOST: Optional[str] = None
    POSTGRES_PORT: Optional[int] = 5432
    POSTGRES_DB: Optional[str] = None
    DATABASE_URL: Optional[str] = Field(None, validate_default=True)

    def __init__(self, **values):
        super().__init__(**values)
        # An explicit host override wins over POSTGRES_HOST
        db_host = os.getenv("DB_HOST_OVERRIDE", self.POSTGRES_HOST)
        if self.POSTGRES_USER and self.POSTGRES_PASSWORD and db_host and self.POSTGRES_DB:
            # URL-encode user/pass to support special characters like @ and #
            user_enc = quote_plus(self.POSTGRES_USER)
            pass_enc = quote_plus(self.POSTGRES_PASSWORD)
            self.DATABASE_URL = (
                f"postgresql://{user_enc}:{pass_enc}@{db_host}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )

    # --- FILE PATHS (derived from PROJECT_ROOT) ---
    @property
    def log_path(self) -> Path:
        return self.PROJECT_ROOT / "var/logs/pixel_pal.log"

    @property
    def state_path(self) -> Path:
        return self.PROJECT_ROOT / "var/state"

    @property
    def daily_steps_path(self) -> Path:
        return self.PROJECT_ROOT / "var/daily"


# Default instance, built once at process start
settings = Settings()
