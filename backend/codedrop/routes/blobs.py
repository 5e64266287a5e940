"""Serves blobs written by the local storage backend (development only)."""
import mimetypes

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from codedrop.dependencies import get_blob_store
from codedrop.errors import NotFoundError
from codedrop.schemas.file import ErrorResponse
from codedrop.services.blob_store import BlobStore, LocalBlobStore

router = APIRouter(prefix="/api/blobs", tags=["blobs"], responses={404: {"model": ErrorResponse}})


@router.get("/{name}")
async def get_blob(name: str, blobs: BlobStore = Depends(get_blob_store)):
    if not isinstance(blobs, LocalBlobStore):
        raise NotFoundError("Blob not found")
    path = blobs.path_for(name)
    if path is None or not path.is_file():
        raise NotFoundError("Blob not found")
    media_type, _ = mimetypes.guess_type(name)
    return FileResponse(path=path, media_type=media_type or "application/octet-stream")
