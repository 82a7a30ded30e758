"""
backend/matchpick/config.py

Purpose:
    Central settings loading for the recommendation engine, upstream
    sports-data adapters, the generative oracle and the scheduler.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    MONGO_URI: str = "mongodb://localhost:27017/matchpick"
    MONGO_DB: str = "matchpick"
    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"

    # Upstream sports data + community board
    SPORTS_API_BASE: str = "https://sports-api.named.net/v1.0"
    CHALLENGER_API_BASE: str = "https://challenger-api.named.net/community"
    SPORTS_API_TIMEOUT_SECONDS: float = 30.0
    SPORTS_API_MAX_RETRIES: int = 2  # retries after the first attempt
    SPORTS_API_RETRY_DELAY_SECONDS: float = 1.0
    POPULAR_GAMES_BATCH_SIZE: int = 10

    # Generative oracle (Gemini)
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-1.5-pro"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1"
    GEMINI_TIMEOUT_SECONDS: float = 120.0
    GEMINI_MAX_RETRIES: int = 1
    GEMINI_TEMPERATURE: float = 0.15
    GEMINI_TOP_P: float = 0.8

    # Recommendation policy
    ANALYSIS_MIN_GOOD_ODDS: float = 1.4  # decimal odds floor for a pick
    ANALYSIS_INFLIGHT_WAIT_SECONDS: float = 1.0

    # Scheduler
    ANALYSIS_SCHEDULER_ENABLED: bool = True
    ANALYSIS_STARTUP_RUN: bool = True
    ANALYSIS_TIMEZONE: str = "Asia/Seoul"
    ANALYSIS_MORNING_CUTOFF_HOUR: int = 12
    ANALYSIS_SWEEP_INTERVAL_MINUTES: int = 5
    ANALYSIS_PREMATCH_LEAD_MINUTES: int = 90
    ANALYSIS_PREMATCH_TICK_MINUTES: int = 10

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }

    @property
    def analysis_tz(self) -> ZoneInfo:
        return ZoneInfo(self.ANALYSIS_TIMEZONE)


settings = Settings()
