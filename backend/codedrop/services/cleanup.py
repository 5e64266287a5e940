"""Cleanup sweeper: best-effort, age-based garbage collection.

Each expired record has its blob deleted first, then its metadata. Failures
on one record are logged and the sweep moves on; re-running picks up whatever
is still present, and deleting something already gone is a no-op, so
overlapping sweeps are safe.
"""
import logging
from dataclasses import dataclass
from typing import Callable

from codedrop.config import ShareConfig
from codedrop.errors import ShareError
from codedrop.models.file_record import utcnow
from codedrop.services.blob_store import BlobStore
from codedrop.services.metadata_store import MetadataStore

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    deleted: int = 0
    failed: int = 0
    orphans_deleted: int = 0


class CleanupSweeper:
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

    async def sweep(self) -> SweepReport:
        now = self.clock()
        report = SweepReport()
        records = await self.metadata.list_all()
        live_urls = set()

        for record in records:
            if not record.is_expired(self.config.retention_window, now=now):
                live_urls.add(record.storage_locator)
                continue
            try:
                await self.blobs.delete(record.storage_locator)
                # The code may have been reissued since list_all(); leave a newer record alone
                if not await self.metadata.delete(record.code, expected_id=record.id):
                    logger.info(f"Code {record.code} was reissued during the sweep; kept its new record")
            except ShareError as e:
                report.failed += 1
                logger.error(f"Cleanup failed for code {record.code}: {e}")
                continue
            report.deleted += 1
            logger.info(f"Deleted expired file for code {record.code}")

        if self.config.sweep_orphan_blobs:
            report.orphans_deleted = await self._sweep_orphans(live_urls, now)

        logger.info(
            "Sweep finished: %d deleted, %d failed, %d orphan blobs",
            report.deleted, report.failed, report.orphans_deleted,
        )
        return report

    async def _sweep_orphans(self, live_urls: set, now) -> int:
        """Delete old blobs no surviving record points at."""
        try:
            blobs = await self.blobs.list()
        except ShareError as e:
            logger.error(f"Could not list blobs for orphan sweep: {e}")
            return 0

        deleted = 0
        for blob in blobs:
            if blob.url in live_urls:
                continue
            if now - blob.uploaded_at <= self.config.retention_window:
                continue
            try:
                await self.blobs.delete(blob.url)
            except ShareError as e:
                logger.error(f"Failed to delete orphan blob {blob.url}: {e}")
                continue
            deleted += 1
            logger.info(f"Deleted orphan blob {blob.pathname}")
        return deleted
