from datetime import UTC, datetime
from pathlib import Path

from pydantic_settings import BaseSettings


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Replaces the deprecated ``datetime.utcnow()`` while keeping datetimes
    naive so they stay compatible with SQLite (which doesn't store tz info).
    """
    return datetime.now(UTC).replace(tzinfo=None)


class Settings(BaseSettings):
    app_name: str = "StudyDeck"
    database_url: str = f"sqlite+aiosqlite:///{Path(__file__).resolve().parent.parent / 'data' / 'studydeck.db'}"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    anthropic_max_retries: int = 3
    anthropic_rate_limit_rpm: int = 50
    min_due_cards: int = 10
    session_size: int = 20
    mastery_threshold: int = 2
    streak_window_hours: int = 48
    xp_per_rating_point: int = 10
    debug: bool = False

    model_config = {"env_prefix": "STUDYDECK_", "env_file": ".env"}


settings = Settings()
