"""Route optimizer configuration and settings management."""

from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="ROUTES_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    directions_base_url: str = Field(
        default="https://api.openrouteservice.org",
        description="Base URL of the directions provider (openrouteservice compatible).",
    )
    directions_api_key: Optional[str] = Field(
        default=None,
        description="API key sent in the Authorization header. Without it only haversine distances are used.",
    )
    directions_profile: Literal["driving-car", "driving-hgv"] = Field(
        default="driving-car",
        description="Routing profile used for leg lookups.",
    )
    directions_timeout_seconds: float = Field(default=10.0, gt=0.0)
    directions_max_retries: int = Field(default=2, ge=0)
    directions_backoff_seconds: float = Field(default=0.5, ge=0.0)
    max_parallel_requests: int = Field(
        default=4,
        ge=1,
        le=8,
        description="Leg lookups allowed in flight at once (provider rate limits).",
    )
    two_opt_max_iterations: int = Field(default=100, ge=0)
    optimize_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Deadline for a whole optimization call; the best tour so far is returned when it expires.",
    )

    @field_validator("directions_base_url", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return str(value).strip().rstrip("/")

    @field_validator("directions_api_key", mode="before")
    @classmethod
    def _blank_key_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = str(value).strip()
        return value or None


settings = Settings()
