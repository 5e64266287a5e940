"""
Pytest configuration and fixtures for codedrop tests.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from codedrop.config import Settings, ShareConfig
from codedrop.main import create_app
from codedrop.services.blob_store import LocalBlobStore
from codedrop.services.metadata_store import MetadataStore

CRON_SECRET = "test-cron-secret"


class FakeClock:
    """Callable clock the services accept in place of utcnow."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def share_config(tmp_path: Path) -> ShareConfig:
    return ShareConfig(
        metadata_dir=tmp_path / "metadata",
        retention_window=timedelta(hours=24),
        cleanup_secret=CRON_SECRET,
        strict_persistence=True,
        max_upload_bytes=1024 * 1024,
    )


@pytest.fixture
def metadata_store(share_config: ShareConfig) -> MetadataStore:
    return MetadataStore(share_config.metadata_dir, strict=share_config.strict_persistence)


@pytest.fixture
def local_blobs(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "blobs", "http://testserver")


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings isolated from the developer's environment and .env file."""
    return Settings(
        _env_file=None,
        ENVIRONMENT="development",
        METADATA_DIR=str(tmp_path / "metadata"),
        BLOB_STORAGE_TYPE="local",
        BLOB_STORAGE_PATH=str(tmp_path / "blobs"),
        PUBLIC_BASE_URL="http://testserver",
        CRON_SECRET=CRON_SECRET,
        RETENTION_HOURS=24,
        MAX_UPLOAD_BYTES=1024 * 1024,
    )


@pytest.fixture
def client(test_settings: Settings) -> Generator[TestClient, None, None]:
    """TestClient with the lifespan run, so app.state is populated."""
    with TestClient(create_app(test_settings)) as test_client:
        yield test_client
