# FILE: manga_viewer/config.py
"""
Configuration management for Manga Viewer
Loads from environment variables with validation
"""
import os
from typing import List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True
    )

    # Backend server
    backend_host: str = Field(default="0.0.0.0", alias="BACKEND_HOST")
    backend_port: int = Field(default=8000, alias="BACKEND_PORT")
    environment: str = Field(default="development", alias="ENVIRONMENT")

    # Data paths
    data_dir: str = Field(default="./data", alias="DATA_DIR")
    blob_dir: str = Field(default="./data/blobs", alias="BLOB_DIR")
    catalog_db_path: str = Field(default="./data/catalog.db", alias="CATALOG_DB_PATH")
    logs_dir: str = Field(default="./logs", alias="LOGS_DIR")

    # Blob storage
    blob_signing_secret: str = Field(default="", alias="BLOB_SIGNING_SECRET")
    public_base_url: str = Field(default="http://localhost:8000", alias="PUBLIC_BASE_URL")
    signed_url_ttl_seconds: int = Field(
        default=300,
        alias="SIGNED_URL_TTL_SECONDS",
        description="Validity window of signed archive retrieval URLs. "
                    "Long enough for a full download, short enough to limit exposure."
    )
    fetch_timeout_seconds: float = Field(default=60.0, alias="FETCH_TIMEOUT_SECONDS")

    # Upload
    max_upload_mb: int = Field(default=100, alias="MAX_UPLOAD_MB")

    # Page serving
    page_cache_max_age: int = Field(
        default=3600,
        alias="PAGE_CACHE_MAX_AGE",
        description="Cache-Control max-age for extracted pages (derived content, kept short)"
    )

    # Archive cache (optional, off by default)
    archive_cache_enabled: bool = Field(default=False, alias="ARCHIVE_CACHE_ENABLED")
    archive_cache_ttl_seconds: int = Field(default=300, alias="ARCHIVE_CACHE_TTL_SECONDS")
    archive_cache_max_entries: int = Field(default=8, alias="ARCHIVE_CACHE_MAX_ENTRIES")
    archive_cache_max_mb: int = Field(default=512, alias="ARCHIVE_CACHE_MAX_MB")

    # Thumbnails
    thumbnail_max_width: int = Field(default=400, alias="THUMBNAIL_MAX_WIDTH")
    thumbnail_max_height: int = Field(default=600, alias="THUMBNAIL_MAX_HEIGHT")

    # Telemetry
    telemetry_enabled: bool = Field(default=True, alias="TELEMETRY_ENABLED")
    telemetry_retention_days: int = Field(default=90, alias="TELEMETRY_RETENTION_DAYS")

    # CORS
    cors_origins: List[str] = Field(default=["http://localhost:5173"], alias="CORS_ORIGINS")

    # Validators
    @field_validator(
        "signed_url_ttl_seconds",
        "max_upload_mb",
        "archive_cache_ttl_seconds",
        "archive_cache_max_entries",
        "archive_cache_max_mb",
        "thumbnail_max_width",
        "thumbnail_max_height",
    )
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("fetch_timeout_seconds")
    @classmethod
    def validate_fetch_timeout(cls, v):
        if v <= 0:
            raise ValueError("fetch_timeout_seconds must be positive")
        return v

    @field_validator("public_base_url")
    @classmethod
    def validate_public_base_url(cls, v):
        if not v.startswith(("http://", "https://")):
            raise ValueError("public_base_url must be an http(s) URL")
        return v.rstrip("/")

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @property
    def storage_configured(self) -> bool:
        return bool(self.blob_signing_secret)

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Ensure directories exist
        for dir_path in [
            self.data_dir, self.blob_dir, self.logs_dir,
            os.path.dirname(self.catalog_db_path) or "."
        ]:
            os.makedirs(dir_path, exist_ok=True)


APP_VERSION = "0.1.0"

_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create singleton settings instance"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings():
    """Reload settings (useful for testing)"""
    global _settings
    _settings = None
    return get_settings()
