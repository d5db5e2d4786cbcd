"""
LifePlan — Centralized configuration.

Loads all settings from .env and the process environment.
Every setting has a default, so importing this module never fails.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from lifeplan/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # SQLite
    DATABASE_PATH: str = "data/planner.db"

    # Zone used for profiles that never set one
    DEFAULT_TIMEZONE: str = "UTC"

    # Materialization limits (days, inclusive span)
    MAX_RANGE_DAYS: int = 366
    BATCH_MAX_RANGE_DAYS: int = 30

    # Streaks
    STREAK_WINDOW_DAYS: int = 30
    STREAK_COMPLETION_RATIO: float = 0.5

    LOG_LEVEL: str = "INFO"

    @field_validator(
        "MAX_RANGE_DAYS", "BATCH_MAX_RANGE_DAYS", "STREAK_WINDOW_DAYS", mode="before",
    )
    @classmethod
    def parse_days(cls, v: str | int) -> int:
        days = int(v)
        if days < 1:
            raise ValueError(f"Day limits must be positive, got {days}")
        return days

    @field_validator("STREAK_COMPLETION_RATIO", mode="before")
    @classmethod
    def parse_ratio(cls, v: str | float) -> float:
        ratio = float(v)
        if not 0.0 < ratio <= 1.0:
            raise ValueError(f"STREAK_COMPLETION_RATIO must be in (0, 1], got {ratio}")
        return ratio

    @field_validator("DEFAULT_TIMEZONE", mode="before")
    @classmethod
    def parse_timezone(cls, v: str | None) -> str:
        return (v or "").strip() or "UTC"

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def parse_log_level(cls, v: str) -> str:
        return str(v).strip().upper() or "INFO"


def _load_settings() -> Settings:
    """Load settings from environment."""
    return Settings(
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/planner.db"),
        DEFAULT_TIMEZONE=os.getenv("DEFAULT_TIMEZONE", "UTC"),
        MAX_RANGE_DAYS=os.getenv("MAX_RANGE_DAYS", "366"),
        BATCH_MAX_RANGE_DAYS=os.getenv("BATCH_MAX_RANGE_DAYS", "30"),
        STREAK_WINDOW_DAYS=os.getenv("STREAK_WINDOW_DAYS", "30"),
        STREAK_COMPLETION_RATIO=os.getenv("STREAK_COMPLETION_RATIO", "0.5"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )


# Singleton — imported by all other modules as:
#   from lifeplan.config import settings
settings = _load_settings()
