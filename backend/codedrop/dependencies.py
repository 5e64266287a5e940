"""FastAPI dependencies exposing the components built at startup.

Usage in routes:
    from codedrop.dependencies import get_download_service

    @router.get("/{code}")
    async def download(code: str, service: DownloadService = Depends(get_download_service)):
        ...
"""
from fastapi import Request

from codedrop.config import ShareConfig
from codedrop.services.blob_store import BlobStore
from codedrop.services.cleanup import CleanupSweeper
from codedrop.services.download import DownloadService
from codedrop.services.metadata_store import MetadataStore
from codedrop.services.upload import UploadService


def get_share_config(request: Request) -> ShareConfig:
    return request.app.state.share_config


def get_metadata_store(request: Request) -> MetadataStore:
    return request.app.state.metadata_store


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


def get_upload_service(request: Request) -> UploadService:
    return request.app.state.upload_service


def get_download_service(request: Request) -> DownloadService:
    return request.app.state.download_service


def get_cleanup_sweeper(request: Request) -> CleanupSweeper:
    return request.app.state.cleanup_sweeper
