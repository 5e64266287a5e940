"""Upload API routes."""
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from codedrop.dependencies import get_upload_service
from codedrop.schemas.file import ErrorResponse, RegisterRequest, RegisterResponse, UploadResponse
from codedrop.services.upload import UploadService

router = APIRouter(
    prefix="/api",
    tags=["upload"],
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)


@router.post("/upload", response_model=UploadResponse)
async def upload_file(
    file: Optional[UploadFile] = File(None),
    code: Optional[str] = Form(None),
    service: UploadService = Depends(get_upload_service),
):
    """Upload a file under a sharing code."""
    if file is None:
        contents = None
    else:
        # Refuse oversized uploads before pulling them into memory
        service.check_size(file.size)
        contents = await file.read()
    result = await service.upload(
        contents,
        original_name=file.filename if file is not None else None,
        mime_type=file.content_type if file is not None else None,
        code=code,
    )
    return UploadResponse(file_id=result.file_id, code=result.code, url=result.url)


@router.post("/upload-metadata", response_model=RegisterResponse)
async def register_upload(
    body: RegisterRequest,
    service: UploadService = Depends(get_upload_service),
):
    """Record a file the client already put in blob storage."""
    record = await service.register(
        body.url,
        code=body.code,
        original_name=body.original_name,
        mime_type=body.mimetype,
        size_bytes=body.size,
    )
    return RegisterResponse(metadata=record)
