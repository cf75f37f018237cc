"""Configuration settings for the medication reminder."""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self):
        """Initialize settings by loading from .env file and environment variables."""
        # Load .env file if it exists
        env_path = Path(__file__).parent.parent.parent / ".env"
        load_dotenv(dotenv_path=env_path)

        # Application Configuration
        self.log_level: str = self._get_env("LOG_LEVEL", "INFO")
        self.data_path: Path = Path(
            self._get_env("DATA_PATH", "data/medication_app.json")
        )

        # Clock Configuration
        self.timezone_offset: str = self._get_env("TIMEZONE_OFFSET", "+00:00")

        # Notification Configuration
        self.snooze_minutes: int = self._get_int_env("SNOOZE_MINUTES", "10")
        self.alert_lifetime_minutes: int = self._get_int_env(
            "ALERT_LIFETIME_MINUTES", "60"
        )
        self.resurface_expired_alerts: bool = self._get_bool_env(
            "RESURFACE_EXPIRED_ALERTS", "false"
        )
        self.channel_ready_timeout_seconds: float = float(
            self._get_int_env("CHANNEL_READY_TIMEOUT_SECONDS", "5")
        )

        # Aggregates Configuration
        self.adherence_window_days: int = self._get_int_env(
            "ADHERENCE_WINDOW_DAYS", "30"
        )
        self.break_period_streak_days: int = self._get_int_env(
            "BREAK_PERIOD_STREAK_DAYS", "3"
        )
        self.bleeding_window_days: int = self._get_int_env(
            "BLEEDING_WINDOW_DAYS", "7"
        )

    def _get_env(self, key: str, default: Optional[str] = None) -> str:
        """Get environment variable with optional default value.

        Args:
            key: Environment variable name
            default: Default value if variable is not set

        Returns:
            Environment variable value or default
        """
        return os.getenv(key, default)

    def _get_int_env(self, key: str, default: str) -> int:
        """Get non-negative integer environment variable.

        Args:
            key: Environment variable name
            default: Default value if variable is not set

        Returns:
            Parsed integer value

        Raises:
            ValueError: If value is not a non-negative integer
        """
        raw = self._get_env(key, default)
        try:
            value = int(raw)
        except (TypeError, ValueError) as e:
            raise ValueError(
                f"Environment variable '{key}' must be an integer, got {raw!r}"
            ) from e
        if value < 0:
            raise ValueError(
                f"Environment variable '{key}' must not be negative, got {value}"
            )
        return value

    def _get_bool_env(self, key: str, default: str) -> bool:
        """Get boolean environment variable ("1", "true", "yes", "on")."""
        return self._get_env(key, default).strip().lower() in {"1", "true", "yes", "on"}

    def __repr__(self) -> str:
        """Return string representation of settings."""
        return (
            f"Settings("
            f"log_level={self.log_level}, "
            f"data_path={self.data_path}, "
            f"timezone_offset={self.timezone_offset}, "
            f"snooze_minutes={self.snooze_minutes}, "
            f"alert_lifetime_minutes={self.alert_lifetime_minutes}, "
            f"resurface_expired_alerts={self.resurface_expired_alerts}, "
            f"channel_ready_timeout_seconds={self.channel_ready_timeout_seconds}, "
            f"adherence_window_days={self.adherence_window_days}, "
            f"break_period_streak_days={self.break_period_streak_days}, "
            f"bleeding_window_days={self.bleeding_window_days}"
            f")"
        )
