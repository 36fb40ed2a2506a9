"""Configuration via pydantic-settings with .env support."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class InboxTaskerSettings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_prefix="TASKER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # OAuth credentials
    credentials_path: Path = Path("credentials/client_secret.json")
    token_path: Path = Path("credentials/token.json")
    oauth_port: int = 0

    # Gmail API settings
    gmail_query: str = "in:inbox"

    # Monitoring
    poll_interval_seconds: float = 30.0
    fetch_limit: int = 10
    failure_policy: Literal["mark", "retry"] = "mark"
    max_conversion_attempts: int = 3

    # Task creation
    board_title: str = "Sales Tracker Board"
    group_title: str = "New Inquiry"
    body_excerpt_chars: int = 4000

    # Database
    database_path: Path = Path("data/inbox_tasker.db")

    # Rate limiting & retry
    max_retries: int = 5
    initial_backoff_seconds: float = 1.0
    max_backoff_seconds: float = 60.0
    num_retries: int = 3

    # Logging
    log_level: str = "INFO"

    def ensure_directories(self) -> None:
        """Create data and credentials directories if they don't exist."""
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        self.credentials_path.parent.mkdir(parents=True, exist_ok=True)
