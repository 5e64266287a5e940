"""FileRecord - sharing-code metadata (actual bytes live in the blob store)."""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import Field, field_validator

from codedrop.schemas.base import CamelModel

DEFAULT_MIME_TYPE = "application/octet-stream"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_record_id() -> str:
    return uuid.uuid4().hex


class FileRecord(CamelModel):
    """One shared file. Persisted as a single JSON object keyed by ``code``."""

    id: str = Field(default_factory=new_record_id)
    stored_name: str
    original_name: str
    mime_type: str = DEFAULT_MIME_TYPE
    size_bytes: int = Field(ge=0)
    uploaded_at: datetime = Field(default_factory=utcnow)
    storage_locator: str
    code: str
    download_count: int = Field(default=0, ge=0)

    @field_validator("uploaded_at")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        """Records written without an offset are treated as UTC."""
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def age(self, now: Optional[datetime] = None) -> timedelta:
        return (now or utcnow()) - self.uploaded_at

    def is_expired(self, retention: timedelta, now: Optional[datetime] = None) -> bool:
        """Strictly older than the retention window."""
        return self.age(now) > retention

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)
