"""Upload handler: blob first, then the metadata record."""
import logging
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import unquote, urlparse

from codedrop.config import ShareConfig
from codedrop.errors import PersistenceError, ValidationError
from codedrop.models.file_record import DEFAULT_MIME_TYPE, FileRecord, utcnow
from codedrop.services.blob_store import BlobStore
from codedrop.services.codes import generate_code, is_valid_code, make_stored_name, normalize_code
from codedrop.services.metadata_store import MetadataStore

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    file_id: str
    code: str
    url: str
    record: FileRecord
    persisted: bool = True


class UploadService:
    def __init__(
        self,
        config: ShareConfig,
        metadata: MetadataStore,
        blobs: BlobStore,
        clock: Callable = utcnow,
    ):
        self.config = config
        self.metadata = metadata
        self.blobs = blobs
        self.clock = clock

    async def upload(
        self,
        data: Optional[bytes],
        original_name: Optional[str],
        mime_type: Optional[str] = None,
        code: Optional[str] = None,
        generate: bool = False,
    ) -> UploadResult:
        """Store the bytes, then record them under a sharing code.

        ``code`` is required unless ``generate`` is set, in which case a fresh
        one is drawn when none was supplied.
        """
        if not data:
            raise ValidationError("No file received.")
        code = self._check_code(code, generate)
        self.check_size(len(data))

        original_name = original_name or "unnamed"
        mime_type = mime_type or DEFAULT_MIME_TYPE
        stored_name = make_stored_name(original_name)

        # StorageError propagates before anything is written to metadata
        blob = await self.blobs.put(stored_name, data, mime_type)
        logger.info("Uploaded %s (%d bytes) to %s", stored_name, len(data), self.blobs.name)

        record = FileRecord(
            stored_name=stored_name,
            original_name=original_name,
            mime_type=mime_type,
            size_bytes=len(data),
            uploaded_at=self.clock(),
            storage_locator=blob.url,
            code=code,
        )
        persisted = await self._persist(record)
        return UploadResult(
            file_id=record.id, code=record.code, url=blob.url, record=record, persisted=persisted,
        )

    async def register(
        self,
        url: Optional[str],
        code: Optional[str],
        original_name: Optional[str],
        mime_type: Optional[str] = None,
        size_bytes: Optional[int] = None,
    ) -> FileRecord:
        """Record a blob the client already uploaded directly to the store."""
        if not url:
            raise ValidationError("No file URL provided.")
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError("File URL must be an absolute http(s) URL.")
        if not self.blobs.owns(url):
            raise ValidationError("File URL is not in this service's blob storage.")
        code = self._check_code(code, generate=False)
        if size_bytes is not None and size_bytes < 0:
            raise ValidationError("File size cannot be negative.")

        stored_name = unquote(parsed.path.rstrip("/").rsplit("/", 1)[-1]) or "unnamed"
        record = FileRecord(
            stored_name=stored_name,
            original_name=original_name or stored_name,
            mime_type=mime_type or DEFAULT_MIME_TYPE,
            size_bytes=size_bytes or 0,
            uploaded_at=self.clock(),
            storage_locator=url,
            code=code,
        )
        await self._persist(record)
        return record

    def check_size(self, size: Optional[int]) -> None:
        """Reject sizes over MAX_UPLOAD_BYTES. Unknown sizes (None) pass."""
        limit = self.config.max_upload_bytes
        if limit and size is not None and size > limit:
            raise ValidationError(f"File is too large (limit is {limit} bytes).")

    def _check_code(self, code: Optional[str], generate: bool) -> str:
        code = normalize_code(code)
        if not code:
            if not generate:
                raise ValidationError("No sharing code provided.")
            return generate_code()
        if not is_valid_code(code):
            raise ValidationError("Sharing code must be 4-16 letters or digits.")
        return code

    async def _persist(self, record: FileRecord) -> bool:
        try:
            await self.metadata.put(record)
        except PersistenceError:
            if self.config.strict_persistence:
                raise
            # Blob stays orphaned until the orphan sweep reclaims it
            logger.exception(
                "Metadata save failed for code %s (blob %s); continuing",
                record.code, record.storage_locator,
            )
            return False
        logger.info("Saved metadata %s for code %s", record.id, record.code)
        return True
