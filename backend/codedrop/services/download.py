"""Download handler: code -> counted, time-limited pointer into the blob store.

Expiry is enforced here at read time, independently of the sweeper. A code
past its retention window is refused even if its blob still exists.
"""
import logging
from dataclasses import dataclass
from typing import Callable

from codedrop.config import ShareConfig
from codedrop.errors import ExpiredError, InternalError, NotFoundError, ShareError
from codedrop.models.file_record import utcnow
from codedrop.services.codes import normalize_code
from codedrop.services.metadata_store import MetadataStore

logger = logging.getLogger(__name__)


@dataclass
class DownloadTicket:
    url: str
    filename: str
    mime_type: str
    size_bytes: int
    download_count: int


class DownloadService:
    def __init__(self, config: ShareConfig, metadata: MetadataStore, clock: Callable = utcnow):
        self.config = config
        self.metadata = metadata
        self.clock = clock

    async def resolve(self, code: str) -> DownloadTicket:
        code = normalize_code(code)
        try:
            record = await self.metadata.get(code)
        except Exception as e:
            raise InternalError(f"Lookup failed for code {code}: {e}") from e
        if record is None:
            raise NotFoundError("Invalid code or file has expired")

        if record.is_expired(self.config.retention_window, now=self.clock()):
            raise ExpiredError("File has expired")

        try:
            updated = await self.metadata.update(code, download_count=record.download_count + 1)
        except NotFoundError:
            # Swept between the read and the write
            raise NotFoundError("Invalid code or file has expired") from None
        except ShareError as e:
            raise InternalError(f"Failed to count download for {code}: {e}") from e

        logger.info("Download %d for code %s", updated.download_count, code)
        return DownloadTicket(
            url=updated.storage_locator,
            filename=updated.original_name,
            mime_type=updated.mime_type,
            size_bytes=updated.size_bytes,
            download_count=updated.download_count,
        )
