"""Settings management and the immutable engine configuration.

WHAT:
    - AttributionSettings: environment / .env driven settings (pydantic-settings)
    - AttributionConfig: frozen value handed to every component after initialize()

WHY:
    The engine is configured exactly once per process. Freezing the config and
    passing it by reference keeps company code, window and flags consistent
    across the resolver, fetcher and store without module-level mutable state.

Environment Variables (all optional, prefix INSERT_AFFILIATE_):
    COMPANY_CODE, VERBOSE_LOGGING, INSERT_LINKS_ENABLED, ATTRIBUTION_WINDOW_SECONDS,
    API_BASE_URL, REQUEST_TIMEOUT_SECONDS, STORAGE_PATH, REDIS_URL, SENTRY_DSN, ENVIRONMENT
"""

from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_API_BASE_URL = "https://api.insertaffiliate.com"
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0


class AttributionConfig(BaseModel):
    """Immutable engine configuration, created once by initialize()."""

    model_config = ConfigDict(frozen=True)

    company_code: str = Field(min_length=1, description="Insert Affiliate company code")
    verbose_logging: bool = False
    insert_links_enabled: bool = False
    # None = identifiers never expire on read
    attribution_window_seconds: Optional[float] = Field(default=None, ge=0)
    api_base_url: str = DEFAULT_API_BASE_URL
    request_timeout_seconds: float = Field(default=DEFAULT_REQUEST_TIMEOUT_SECONDS, gt=0)

    @field_validator("company_code")
    @classmethod
    def _strip_company_code(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("company_code cannot be blank")
        return value

    @field_validator("api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class AttributionSettings(BaseSettings):
    """Settings loaded from environment or .env."""

    company_code: Optional[str] = None
    verbose_logging: bool = False
    insert_links_enabled: bool = False
    attribution_window_seconds: Optional[float] = None
    api_base_url: str = DEFAULT_API_BASE_URL
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS

    # Persistence: Redis wins over a JSON file; neither = in-memory (not durable)
    storage_path: Optional[str] = None
    redis_url: Optional[str] = None

    sentry_dsn: Optional[str] = None
    environment: str = "development"

    model_config = SettingsConfigDict(
        env_prefix="INSERT_AFFILIATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def to_config(self) -> AttributionConfig:
        """Freeze these settings into an AttributionConfig.

        Raises:
            pydantic.ValidationError: if company_code is missing or blank
        """
        return AttributionConfig(
            company_code=self.company_code or "",
            verbose_logging=self.verbose_logging,
            insert_links_enabled=self.insert_links_enabled,
            attribution_window_seconds=self.attribution_window_seconds,
            api_base_url=self.api_base_url,
            request_timeout_seconds=self.request_timeout_seconds,
        )


@lru_cache()
def get_settings() -> AttributionSettings:
    """Return cached settings instance."""
    return AttributionSettings()  # type: ignore[call-arg]
