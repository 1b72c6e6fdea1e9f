"""Application configuration via pydantic-settings.

Loads all settings from environment variables with sensible defaults.
A global `settings` singleton is available for import throughout the app.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Supabase
    SUPABASE_URL: str
    SUPABASE_KEY: str

    # Discussions
    # Seconds between background refreshes of an open discussion; 0 disables
    # polling so the thread only refreshes after local mutations.
    COMMENT_POLL_INTERVAL_SECONDS: float = 5.0
    # Seconds a discussion may go unread before it is closed; 0 keeps
    # sessions open until they are deleted.
    DISCUSSION_IDLE_TIMEOUT_SECONDS: float = 300.0
    SITE_FOUNDER_ID: str = ""

    # CORS
    ALLOWED_ORIGINS: str = "*"

    # Logging
    LOG_LEVEL: str = "INFO"

    @property
    def poll_interval_seconds(self) -> float | None:
        """Polling interval, or ``None`` when polling is disabled."""
        if self.COMMENT_POLL_INTERVAL_SECONDS <= 0:
            return None
        return self.COMMENT_POLL_INTERVAL_SECONDS

    @property
    def idle_timeout_seconds(self) -> float | None:
        """Idle timeout for open discussions, or ``None`` when disabled."""
        if self.DISCUSSION_IDLE_TIMEOUT_SECONDS <= 0:
            return None
        return self.DISCUSSION_IDLE_TIMEOUT_SECONDS


settings = Settings()  # type: ignore[call-arg]
