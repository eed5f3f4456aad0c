"""
Application configuration using pydantic-settings.
Loads from environment variables with .env file support.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./learnpath.db"

    # Question/answer service (OpenAI)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    generation_timeout_seconds: float = 15.0
    generation_max_retries: int = 1

    # Checkpoint path
    checkpoints_per_path: int = 10
    required_correct: int = 3
    batch_size: int = 3
    adhoc_points: int = 10  # per correct answer in an unscoped batch

    # Rewards
    daily_goal_target: int = 3
    daily_goal_bonus: int = 15

    # Notifications (empty = log only)
    notification_webhook_url: Optional[str] = None
    notification_timeout_seconds: float = 5.0

    # Application
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR

    # API Settings
    api_v1_prefix: str = "/api/v1"
    project_name: str = "LearnPath Progression Service"
    version: str = "1.0.0"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
