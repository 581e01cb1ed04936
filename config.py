"""
Configuration management for DoseKeeper
"""

from typing import Optional
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "DoseKeeper"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENV: str = "development"

    # API
    API_PREFIX: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str = "sqlite:///./dosekeeper.db"
    DATABASE_ECHO: bool = False

    # Alarm delivery
    ALARM_POLL_INTERVAL_SECONDS: float = 1.0
    DUE_WINDOW_MINUTES: int = 60
    ALARM_SOUND_PATH: Optional[str] = "./static/alarm.wav"

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Scheduling engine constants
class SchedulingConfig:
    """Bounds and defaults for schedule generation and materialization"""

    MIN_FREQUENCY: int = 1
    MAX_FREQUENCY: int = 24

    # Safety valve on a single materialization batch (~400 days at 8/day)
    MAX_MATERIALIZED_EVENTS: int = 3200
    DEFAULT_HORIZON_YEARS: int = 1

    # Built-in siren used when the alarm asset cannot be played
    FALLBACK_TONE_SAMPLE_RATE: int = 8000
    FALLBACK_TONE_START_HZ: float = 440.0
    FALLBACK_TONE_END_HZ: float = 880.0
    FALLBACK_TONE_SWEEP_SECONDS: float = 0.5
    FALLBACK_TONE_DURATION_SECONDS: float = 1.0
    FALLBACK_TONE_START_GAIN: float = 0.1
    FALLBACK_TONE_END_GAIN: float = 0.01


settings = get_settings()
scheduling_config = SchedulingConfig()
