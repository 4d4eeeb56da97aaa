from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./rewards.db"
    database_echo: bool = False

    # Award amounts
    daily_checkin_points: int = 5
    referral_bonus_points: int = 10_000
    checkin_history_days: int = 7

    # Spotlight evidence storage
    spotlight_evidence_bucket: str | None = "spotlight-claims"
    spotlight_evidence_prefix: str = ""
    spotlight_evidence_region: str | None = None
    spotlight_evidence_endpoint: str | None = None
    spotlight_evidence_force_path_style: bool = False
    spotlight_evidence_acl: str = "private"
    spotlight_evidence_max_bytes: int = 10 * 1024 * 1024
    spotlight_evidence_cache_control: str = "max-age=3600"

    # Internal API security
    observability_api_key: str = ""

    # Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str | None = None
    otlp_headers: str | None = None

    @field_validator("daily_checkin_points", "referral_bonus_points")
    @classmethod
    def _require_positive_award(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("award amounts must be positive")
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
