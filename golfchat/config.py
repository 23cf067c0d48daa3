"""Application configuration loaded from the environment."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ProviderName = Literal["anthropic", "perplexity"]


class Settings(BaseSettings):
    """Environment-driven settings validated at startup.

    Every external credential is optional: a missing AI key disables that
    backend, a missing database URL selects in-memory storage and missing
    GolfNow credentials select the mock booking provider.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    anthropic_api_key: str | None = Field(default=None, alias="ANTHROPIC_API_KEY")
    anthropic_model: str = Field(default="claude-sonnet-4-5", alias="ANTHROPIC_MODEL")
    anthropic_max_tokens: int = Field(default=2048, alias="ANTHROPIC_MAX_TOKENS")

    perplexity_api_key: str | None = Field(default=None, alias="PERPLEXITY_API_KEY")
    perplexity_base_url: str = Field(default="https://api.perplexity.ai", alias="PERPLEXITY_BASE_URL")
    perplexity_model: str = Field(default="sonar", alias="PERPLEXITY_MODEL")

    chat_provider: ProviderName | None = Field(default=None, alias="CHAT_PROVIDER")

    database_url: str | None = Field(default=None, alias="DATABASE_URL")

    golfnow_username: str | None = Field(default=None, alias="GOLFNOW_USERNAME")
    golfnow_password: str | None = Field(default=None, alias="GOLFNOW_PASSWORD")
    golfnow_channel_id: str | None = Field(default=None, alias="GOLFNOW_CHANNEL_ID")
    golfnow_affiliate_id: str | None = Field(default=None, alias="GOLFNOW_AFFILIATE_ID")
    golfnow_base_url: str = Field(default="https://sandbox.api.gnsvc.com/rest", alias="GOLFNOW_BASE_URL")

    model_timeout_seconds: float = Field(default=60.0, alias="MODEL_TIMEOUT_SECONDS")
    tool_timeout_seconds: float = Field(default=30.0, alias="TOOL_TIMEOUT_SECONDS")
    booking_settle_seconds: float = Field(default=120.0, alias="BOOKING_SETTLE_SECONDS")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @property
    def golfnow_configured(self) -> bool:
        """Whether the live GolfNow API can be used."""
        return bool(self.golfnow_username and self.golfnow_password and self.golfnow_channel_id)


def load_settings() -> Settings:
    """Load and validate settings."""
    return Settings()
