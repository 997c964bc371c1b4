from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    gee_api_base_url: str = Field(default="http://localhost:5000/api", alias="GEE_API_BASE_URL")
    gee_api_key: str | None = Field(default=None, alias="GEE_API_KEY")
    gee_api_timeout_seconds: float = Field(
        default=120.0,
        alias="GEE_API_TIMEOUT_SECONDS",
        gt=0,
        le=3600,
    )
    gee_api_retries: int = Field(default=3, alias="GEE_API_RETRIES", ge=0, le=10)
    gee_api_backoff_seconds: float = Field(
        default=1.0,
        alias="GEE_API_BACKOFF_SECONDS",
        ge=0.0,
        le=60.0,
    )
    gee_api_backoff_factor: float = Field(
        default=2.0,
        alias="GEE_API_BACKOFF_FACTOR",
        ge=1.0,
        le=10.0,
    )
    gee_api_max_backoff_seconds: float = Field(
        default=30.0,
        alias="GEE_API_MAX_BACKOFF_SECONDS",
        ge=0.0,
        le=600.0,
    )

    gee_log_level: str = Field(default="INFO", alias="GEE_LOG_LEVEL")
    gee_log_json: bool = Field(default=False, alias="GEE_LOG_JSON")
    gee_export_dir: Path = Field(default=Path("./exports"), alias="GEE_EXPORT_DIR")
    gee_default_indices: str = Field(default="NDVI", alias="GEE_DEFAULT_INDICES")

    @property
    def base_url(self) -> str:
        return self.gee_api_base_url.strip().rstrip("/")

    @property
    def default_indices(self) -> list[str]:
        items = [item.strip().upper() for item in self.gee_default_indices.split(",")]
        return [item for item in items if item] or ["NDVI"]

    def ensure_export_dir(self) -> Path:
        self.gee_export_dir.mkdir(parents=True, exist_ok=True)
        return self.gee_export_dir


@lru_cache
def get_settings() -> Settings:
    return Settings()
