"""Configuration management."""

from typing import Optional, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Upstream listing
    listing_base_url: str = Field(default="https://b.hatena.ne.jp/hotentry", alias="LISTING_BASE_URL")

    # Data cache
    cache_ttl: int = Field(default=7 * 24 * 60 * 60, alias="CACHE_TTL")
    data_cache_version: str = Field(default="2", alias="DATA_CACHE_VERSION")
    entry_lookback_days: int = Field(default=2, alias="ENTRY_LOOKBACK_DAYS")

    # Durable store (file based); unset means disabled
    cache_dir: Optional[str] = Field(default=None, alias="CACHE_DIR")
    cache_max_size_mb: int = Field(default=200, alias="CACHE_MAX_SIZE_MB")
    cache_max_entries: int = Field(default=10000, alias="CACHE_MAX_ENTRIES")

    # Edge (in-process response) cache
    edge_cache_enabled: bool = Field(default=True, alias="EDGE_CACHE_ENABLED")
    edge_cache_max_entries: int = Field(default=2000, alias="EDGE_CACHE_MAX_ENTRIES")

    # Gemini
    google_ai_api_key: Optional[str] = Field(default=None, alias="GOOGLE_AI_API_KEY")
    gemini_api_endpoint: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/models",
        alias="GEMINI_API_ENDPOINT"
    )
    summary_model: str = Field(default="gemini-3-flash-preview", alias="SUMMARY_MODEL")

    # Cloudflare Browser Rendering (article bodies)
    browser_rendering_account_id: Optional[str] = Field(default=None, alias="BROWSER_RENDERING_ACCOUNT_ID")
    browser_rendering_api_token: Optional[str] = Field(default=None, alias="BROWSER_RENDERING_API_TOKEN")
    max_articles: int = Field(default=20, alias="MAX_ARTICLES")
    max_body_length: int = Field(default=3000, alias="MAX_BODY_LENGTH")

    # HTTP
    http_timeout: float = Field(default=30.0, alias="HTTP_TIMEOUT")
    api_rate_limit: int = Field(default=10, alias="RPS")  # Requests per second

    # Application
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    development: bool = Field(default=False, alias="DEVELOPMENT")

    class Config:
        env_file = ".env"
        case_sensitive = False
        populate_by_name = True

    @field_validator('cache_dir', 'google_ai_api_key', 'browser_rendering_account_id',
                     'browser_rendering_api_token', mode='before')
    @classmethod
    def empty_str_to_none(cls, v):
        """Convert empty strings to None for optional fields."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return v

    def get_missing_summary_settings(self) -> List[str]:
        """Return env names required for AI summaries that are not configured."""
        required = [
            ("GOOGLE_AI_API_KEY", self.google_ai_api_key),
            ("BROWSER_RENDERING_ACCOUNT_ID", self.browser_rendering_account_id),
            ("BROWSER_RENDERING_API_TOKEN", self.browser_rendering_api_token),
        ]
        return [name for name, value in required if not value]


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
