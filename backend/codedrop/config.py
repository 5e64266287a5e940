"""Application configuration from environment variables."""
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


@dataclass(frozen=True)
class ShareConfig:
    """Explicit configuration handed to each component at construction."""

    metadata_dir: Path
    retention_window: timedelta
    cleanup_secret: str = ""
    strict_persistence: bool = False
    max_upload_bytes: int = 0
    sweep_orphan_blobs: bool = False


class Settings(BaseSettings):
    """All config comes from env vars or .env.backend file."""

    ENVIRONMENT: str = "development"  # "development" or "production"
    API_PORT: int = 8721
    CORS_ORIGINS: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    # Metadata records (one JSON file per sharing code).
    # Empty means /tmp/metadata in production, ./data/metadata in development.
    METADATA_DIR: str = ""
    STRICT_PERSISTENCE: Optional[bool] = None

    # Retention policy shared by download expiry and the cleanup sweep
    RETENTION_HOURS: float = 24.0
    CRON_SECRET: str = ""
    SWEEP_ORPHAN_BLOBS: bool = False

    # Blob storage
    BLOB_STORAGE_TYPE: str = "local"  # "local" or "vercel_blob"
    BLOB_STORAGE_PATH: str = "./data/blobs"
    PUBLIC_BASE_URL: str = "http://localhost:8721"
    BLOB_READ_WRITE_TOKEN: str = ""
    BLOB_API_URL: str = "https://blob.vercel-storage.com"
    BLOB_PUBLIC_HOST_SUFFIX: str = "public.blob.vercel-storage.com"
    BLOB_TIMEOUT_SECONDS: float = 60.0

    MAX_UPLOAD_BYTES: int = 100 * 1024 * 1024

    class Config:
        env_file = ".env.backend"
        env_file_encoding = "utf-8"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def metadata_path(self) -> Path:
        if self.METADATA_DIR:
            return Path(self.METADATA_DIR)
        if self.is_production:
            return Path("/tmp/metadata")
        return Path.cwd() / "data" / "metadata"

    def share_config(self) -> ShareConfig:
        strict = self.STRICT_PERSISTENCE
        if strict is None:
            # Production keeps the user-visible flow alive when metadata can't be written
            strict = not self.is_production
        return ShareConfig(
            metadata_dir=self.metadata_path,
            retention_window=timedelta(hours=self.RETENTION_HOURS),
            cleanup_secret=self.CRON_SECRET,
            strict_persistence=strict,
            max_upload_bytes=self.MAX_UPLOAD_BYTES,
            sweep_orphan_blobs=self.SWEEP_ORPHAN_BLOBS,
        )


settings = Settings()
