from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_name: str = Field(default="BucketLens API", alias="APP_NAME")
    app_env: str = Field(default="development", alias="APP_ENV")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # CORS
    # Keep as string to support simple comma-separated values in `.env` without requiring JSON.
    cors_origins: str = Field(default="", alias="CORS_ORIGINS")

    # MinIO (S3-compatible object storage)
    minio_endpoint: str = Field(default="localhost:9000", alias="MINIO_ENDPOINT")
    minio_access_key: str = Field(default="", alias="MINIO_ACCESS_KEY")
    minio_secret_key: str = Field(default="", alias="MINIO_SECRET_KEY")
    minio_secure: bool = Field(default=False, alias="MINIO_SECURE")
    minio_region: str = Field(default="", alias="MINIO_REGION")
    minio_default_bucket: str = Field(default="", alias="MINIO_DEFAULT_BUCKET")
    preview_url_expiry_sec: int = Field(default=3600, alias="PREVIEW_URL_EXPIRY_SEC")

    # Preview limits
    preview_auto_load_bytes: int = Field(default=256 * 1024, alias="PREVIEW_AUTO_LOAD_BYTES")
    preview_max_bytes: int = Field(default=2 * 1024 * 1024, alias="PREVIEW_MAX_BYTES")
    preview_max_chars: int = Field(default=200_000, alias="PREVIEW_MAX_CHARS")
    preview_max_lines: int = Field(default=5_000, alias="PREVIEW_MAX_LINES")
    preview_max_table_rows: int = Field(default=500, alias="PREVIEW_MAX_TABLE_ROWS")
    preview_max_table_columns: int = Field(default=50, alias="PREVIEW_MAX_TABLE_COLUMNS")
    preview_session_idle_sec: int = Field(default=1800, alias="PREVIEW_SESSION_IDLE_SEC")

    # Point-cloud viewer bundle
    point_cloud_viewer_base_url: str = Field(
        default="https://cdn.jsdelivr.net/npm/@playcanvas/supersplat-viewer@{version}/dist",
        alias="POINT_CLOUD_VIEWER_BASE_URL",
    )
    point_cloud_viewer_version: str = Field(default="1.4.0", alias="POINT_CLOUD_VIEWER_VERSION")
    point_cloud_viewer_timeout_sec: float = Field(default=15.0, alias="POINT_CLOUD_VIEWER_TIMEOUT_SEC")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return (value or "INFO").strip().upper()

    @field_validator(
        "preview_auto_load_bytes",
        "preview_max_bytes",
        "preview_max_chars",
        "preview_max_lines",
        "preview_max_table_rows",
        "preview_max_table_columns",
        "preview_url_expiry_sec",
        "preview_session_idle_sec",
    )
    @classmethod
    def _require_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @model_validator(mode="after")
    def _check_byte_caps(self) -> "Settings":
        # Manual loads must be able to fetch more than automatic ones.
        if self.preview_max_bytes <= self.preview_auto_load_bytes:
            raise ValueError("PREVIEW_MAX_BYTES must be greater than PREVIEW_AUTO_LOAD_BYTES")
        return self

    def cors_origins_list(self) -> list[str]:
        value = self.cors_origins
        if not value or not value.strip():
            return []
        return [item.strip() for item in value.split(",") if item.strip()]

    def point_cloud_viewer_url(self) -> str:
        return self.point_cloud_viewer_base_url.format(version=self.point_cloud_viewer_version).rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
