"""Upload/download/cleanup request and response schemas."""
from typing import Optional

from pydantic import BaseModel

from codedrop.models.file_record import FileRecord
from codedrop.schemas.base import CamelModel


class UploadResponse(CamelModel):
    success: bool = True
    message: str = "File uploaded successfully"
    file_id: str
    code: str
    url: str


class RegisterRequest(CamelModel):
    """Metadata for a blob the client uploaded directly."""
    url: Optional[str] = None
    code: Optional[str] = None
    original_name: Optional[str] = None
    mimetype: Optional[str] = None
    size: Optional[int] = None


class RegisterResponse(CamelModel):
    success: bool = True
    metadata: FileRecord


class CleanupResponse(CamelModel):
    deleted: int
    failed: int = 0
    orphans_deleted: int = 0


class ErrorResponse(BaseModel):
    error: str
