"""Application configuration with comprehensive validation."""
from typing import Optional, Literal, Dict
from functools import lru_cache
from pydantic import Field, field_validator, model_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# PROVIDER NAME MAPPINGS
# =============================================================================
# Maps tile type -> remote analytic provider that backs it.
# Tile types not listed here fall back to the tile type with "_" -> "-".
# =============================================================================

TILE_PROVIDERS: Dict[str, str] = {
    "market_size": "market-size",
    "competition": "competition",
    "sentiment": "sentiment",
    "search_trends": "google-trends",
    "social_signals": "reddit-sentiment",
    "pmf_score": "smoothbrains-score",
}


def get_provider_name(tile_type: str) -> str:
    """
    Get the provider name for a tile type.

    Args:
        tile_type: Tile type identifier (e.g., "market_size")

    Returns:
        Provider name used in the remote invocation path
    """
    tile_type = tile_type.strip().lower()
    return TILE_PROVIDERS.get(tile_type, tile_type.replace("_", "-"))


class Settings(BaseSettings):
    """Application settings with production-grade validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Validation Hub Tile Pipeline"
    APP_VERSION: str = "1.0.0"
    APP_ENV: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = False
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    LOG_FORMAT: Literal["json", "console"] = "json"

    # API
    API_V1_PREFIX: str = "/api/v1"

    # Redis (persisted tier)
    REDIS_URL: str = "redis://localhost:6379/0"
    PERSISTED_CACHE_ENABLED: bool = True
    PERSISTED_TTL_MINUTES: int = Field(default=1440, ge=1)

    # Ephemeral (process-local) tier
    EPHEMERAL_TTL_MINUTES: int = Field(default=60, ge=1, le=10080)
    EPHEMERAL_MAX_ENTRIES: int = Field(default=500, ge=10, le=100000)

    # Freshness thresholds
    FRESHNESS_LIVE_MINUTES: float = Field(default=5.0, gt=0)
    FRESHNESS_STALE_MINUTES: float = Field(default=60.0, gt=0)

    # Provider gateway
    PROVIDER_BASE_URL: str = "http://localhost:54321/functions/v1"
    PROVIDER_API_KEY: Optional[SecretStr] = None
    PROVIDER_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0, le=300)

    # Circuit breaker (per provider)
    CIRCUIT_FAILURE_THRESHOLD: int = Field(default=5, ge=1, le=100)
    CIRCUIT_RECOVERY_SECONDS: float = Field(default=30.0, gt=0)
    CIRCUIT_SUCCESS_THRESHOLD: int = Field(default=1, ge=1, le=10)

    @field_validator("PROVIDER_BASE_URL")
    @classmethod
    def validate_provider_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("PROVIDER_BASE_URL must be an http(s) URL")
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_freshness_thresholds(self):
        """Live window must close before the stale window opens."""
        if self.FRESHNESS_LIVE_MINUTES >= self.FRESHNESS_STALE_MINUTES:
            raise ValueError(
                "FRESHNESS_LIVE_MINUTES must be lower than FRESHNESS_STALE_MINUTES, "
                f"got {self.FRESHNESS_LIVE_MINUTES} >= {self.FRESHNESS_STALE_MINUTES}"
            )
        return self

    @model_validator(mode="after")
    def validate_production_settings(self):
        """Ensure production has required security settings."""
        if self.APP_ENV == "production":
            if self.DEBUG:
                raise ValueError("DEBUG must be False in production")
            if self.PROVIDER_API_KEY is None:
                raise ValueError("PROVIDER_API_KEY required in production")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
