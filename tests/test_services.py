"""
Tests for the upload handler, download handler and cleanup sweeper.
"""

from dataclasses import replace
from typing import List

import pytest

from codedrop.config import ShareConfig
from codedrop.errors import (
    ExpiredError,
    NotFoundError,
    PersistenceError,
    StorageError,
    ValidationError,
)
from codedrop.services.blob_store import BlobObject, LocalBlobStore
from codedrop.services.cleanup import CleanupSweeper
from codedrop.services.download import DownloadService
from codedrop.services.metadata_store import MetadataStore
from codedrop.services.upload import UploadService


class FailingMetadataStore(MetadataStore):
    async def put(self, record):
        raise PersistenceError("disk full")


class FlakyBlobStore(LocalBlobStore):
    """Local store with switchable put and per-URL delete failures."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_urls: List[str] = []
        self.fail_puts = False

    async def put(self, name: str, data: bytes, content_type: str) -> BlobObject:
        if self.fail_puts:
            raise StorageError("store unavailable", status=503, url=name)
        return await super().put(name, data, content_type)

    async def delete(self, url: str) -> None:
        if url in self.fail_urls:
            raise StorageError("delete refused", status=500, url=url)
        await super().delete(url)


@pytest.fixture
def flaky_blobs(tmp_path) -> FlakyBlobStore:
    return FlakyBlobStore(tmp_path / "blobs", "http://testserver")


@pytest.fixture
def uploader(share_config, metadata_store, flaky_blobs, clock) -> UploadService:
    return UploadService(share_config, metadata_store, flaky_blobs, clock=clock)


@pytest.fixture
def downloader(share_config, metadata_store, clock) -> DownloadService:
    return DownloadService(share_config, metadata_store, clock=clock)


@pytest.fixture
def sweeper(share_config, metadata_store, flaky_blobs, clock) -> CleanupSweeper:
    return CleanupSweeper(share_config, metadata_store, flaky_blobs, clock=clock)


class TestUpload:
    @pytest.mark.asyncio
    async def test_upload_stores_blob_and_record(self, uploader, metadata_store, flaky_blobs, clock) -> None:
        result = await uploader.upload(b"0123456789", "a.txt", "text/plain", code="abc123")

        assert result.code == "ABC123"
        record = await metadata_store.get("ABC123")
        assert record.id == result.file_id
        assert record.original_name == "a.txt"
        assert record.size_bytes == 10
        assert record.download_count == 0
        assert record.uploaded_at == clock.now
        assert record.storage_locator == result.url
        assert record.stored_name.endswith(".txt")
        assert (flaky_blobs.base_path / record.stored_name).read_bytes() == b"0123456789"

    @pytest.mark.asyncio
    async def test_missing_file_is_rejected(self, uploader) -> None:
        with pytest.raises(ValidationError, match="No file"):
            await uploader.upload(b"", "a.txt", code="ABC123")
        with pytest.raises(ValidationError, match="No file"):
            await uploader.upload(None, "a.txt", code="ABC123")

    @pytest.mark.asyncio
    async def test_missing_code_is_rejected(self, uploader) -> None:
        with pytest.raises(ValidationError, match="code"):
            await uploader.upload(b"data", "a.txt")

    @pytest.mark.asyncio
    async def test_malformed_code_is_rejected(self, uploader) -> None:
        with pytest.raises(ValidationError):
            await uploader.upload(b"data", "a.txt", code="../../x")

    @pytest.mark.asyncio
    async def test_code_is_generated_on_request(self, uploader, metadata_store) -> None:
        result = await uploader.upload(b"data", "a.txt", generate=True)
        assert len(result.code) == 6
        assert await metadata_store.get(result.code) is not None

    @pytest.mark.asyncio
    async def test_oversized_file_is_rejected(self, uploader, flaky_blobs) -> None:
        with pytest.raises(ValidationError, match="too large"):
            await uploader.upload(b"x" * (1024 * 1024 + 1), "big.bin", code="BIG123")
        assert not flaky_blobs.base_path.exists()

    @pytest.mark.asyncio
    async def test_missing_mime_type_defaults(self, uploader, metadata_store) -> None:
        await uploader.upload(b"data", "blob", code="MIME12")
        assert (await metadata_store.get("MIME12")).mime_type == "application/octet-stream"

    @pytest.mark.asyncio
    async def test_storage_failure_aborts_before_metadata(self, uploader, flaky_blobs, metadata_store) -> None:
        flaky_blobs.fail_puts = True
        with pytest.raises(StorageError):
            await uploader.upload(b"data", "a.txt", code="ABC123")
        assert await metadata_store.list_all() == []

    @pytest.mark.asyncio
    async def test_metadata_failure_raises_in_strict_mode(self, share_config, flaky_blobs, clock) -> None:
        service = UploadService(share_config, FailingMetadataStore(share_config.metadata_dir), flaky_blobs, clock=clock)
        with pytest.raises(PersistenceError):
            await service.upload(b"data", "a.txt", code="ABC123")

    @pytest.mark.asyncio
    async def test_metadata_failure_is_swallowed_in_production(self, share_config, flaky_blobs, clock) -> None:
        lenient = replace(share_config, strict_persistence=False)
        service = UploadService(lenient, FailingMetadataStore(lenient.metadata_dir), flaky_blobs, clock=clock)

        result = await service.upload(b"data", "a.txt", code="ABC123")

        assert result.code == "ABC123"
        assert result.persisted is False
        # the blob is left behind for the orphan sweep
        assert len(await flaky_blobs.list()) == 1


class TestRegister:
    @pytest.mark.asyncio
    async def test_register_records_client_upload(self, uploader, metadata_store) -> None:
        record = await uploader.register(
            "http://testserver/api/blobs/1700-abc.pdf",
            code="pdf123",
            original_name="report.pdf",
            mime_type="application/pdf",
            size_bytes=2048,
        )

        stored = await metadata_store.get("PDF123")
        assert stored == record
        assert stored.stored_name == "1700-abc.pdf"
        assert stored.download_count == 0

    @pytest.mark.asyncio
    async def test_register_requires_url_and_code(self, uploader) -> None:
        with pytest.raises(ValidationError):
            await uploader.register(None, code="ABC123", original_name="a.txt")
        with pytest.raises(ValidationError):
            await uploader.register("http://testserver/api/blobs/x", code=None, original_name="a.txt")
        with pytest.raises(ValidationError):
            await uploader.register("ftp://public.blob.example/x", code="ABC123", original_name="a.txt")

    @pytest.mark.asyncio
    async def test_register_rejects_urls_outside_blob_storage(self, uploader, metadata_store) -> None:
        with pytest.raises(ValidationError, match="blob storage"):
            await uploader.register("https://evil.example/x.bin", code="ABC123", original_name="x.bin")
        with pytest.raises(ValidationError):
            await uploader.register("http://testserver/api/blobs/../secret", code="ABC123", original_name="x")
        assert await metadata_store.get("ABC123") is None

    def test_unknown_size_passes_check(self, uploader) -> None:
        uploader.check_size(None)
        uploader.check_size(1024 * 1024)
        with pytest.raises(ValidationError, match="too large"):
            uploader.check_size(1024 * 1024 + 1)


class TestDownload:
    @pytest.mark.asyncio
    async def test_download_returns_locator_and_name(self, uploader, downloader) -> None:
        uploaded = await uploader.upload(b"0123456789", "a.txt", "text/plain", code="ABC123")

        ticket = await downloader.resolve("ABC123")

        assert ticket.url == uploaded.url
        assert ticket.filename == "a.txt"
        assert ticket.download_count == 1

    @pytest.mark.asyncio
    async def test_each_download_counts_once(self, uploader, downloader, metadata_store) -> None:
        await uploader.upload(b"data", "a.txt", code="ABC123")
        for _ in range(5):
            await downloader.resolve("abc123")
        assert (await metadata_store.get("ABC123")).download_count == 5

    @pytest.mark.asyncio
    async def test_unknown_code_is_not_found(self, downloader) -> None:
        with pytest.raises(NotFoundError):
            await downloader.resolve("ABCXYZ")

    @pytest.mark.asyncio
    async def test_expired_even_if_blob_still_exists(self, uploader, downloader, metadata_store, flaky_blobs, clock) -> None:
        await uploader.upload(b"data", "a.txt", code="ABC123")
        clock.advance(hours=24, seconds=1)

        with pytest.raises(ExpiredError):
            await downloader.resolve("ABC123")
        assert len(await flaky_blobs.list()) == 1
        assert (await metadata_store.get("ABC123")).download_count == 0

    @pytest.mark.asyncio
    async def test_exactly_at_window_is_still_served(self, uploader, downloader, clock) -> None:
        await uploader.upload(b"data", "a.txt", code="ABC123")
        clock.advance(hours=24)
        assert (await downloader.resolve("ABC123")).download_count == 1


class TestCleanupSweeper:
    @pytest.mark.asyncio
    async def test_sweep_deletes_only_expired(self, uploader, sweeper, metadata_store, flaky_blobs, clock) -> None:
        await uploader.upload(b"old", "old.txt", code="OLD111")
        clock.advance(hours=20)
        await uploader.upload(b"new", "new.txt", code="NEW222")
        clock.advance(hours=5)

        report = await sweeper.sweep()

        assert report.deleted == 1
        assert report.failed == 0
        assert await metadata_store.get("OLD111") is None
        assert await metadata_store.get("NEW222") is not None
        assert len(await flaky_blobs.list()) == 1

    @pytest.mark.asyncio
    async def test_second_sweep_deletes_nothing(self, uploader, sweeper, clock) -> None:
        await uploader.upload(b"a", "a.txt", code="AAAA11")
        await uploader.upload(b"b", "b.txt", code="BBBB22")
        clock.advance(days=2)

        assert (await sweeper.sweep()).deleted == 2
        assert (await sweeper.sweep()).deleted == 0

    @pytest.mark.asyncio
    async def test_per_item_failure_does_not_stop_sweep(self, uploader, sweeper, metadata_store, flaky_blobs, clock) -> None:
        bad = await uploader.upload(b"a", "a.txt", code="AAAA11")
        await uploader.upload(b"b", "b.txt", code="BBBB22")
        flaky_blobs.fail_urls.append(bad.url)
        clock.advance(days=2)

        report = await sweeper.sweep()
        assert report.deleted == 1
        assert report.failed == 1
        # record kept alongside its blob so the next sweep retries
        assert await metadata_store.get("AAAA11") is not None

        flaky_blobs.fail_urls.clear()
        retry = await sweeper.sweep()
        assert retry.deleted == 1
        assert await metadata_store.list_all() == []

    @pytest.mark.asyncio
    async def test_orphan_blobs_are_swept_when_enabled(
        self, share_config: ShareConfig, metadata_store, flaky_blobs, clock
    ) -> None:
        lenient = replace(share_config, strict_persistence=False, sweep_orphan_blobs=True)
        failing = UploadService(lenient, FailingMetadataStore(lenient.metadata_dir), flaky_blobs, clock=clock)
        uploader = UploadService(lenient, metadata_store, flaky_blobs, clock=clock)
        sweeper = CleanupSweeper(lenient, metadata_store, flaky_blobs, clock=clock)

        await failing.upload(b"lost", "lost.txt", code="LOST11")
        kept = await uploader.upload(b"kept", "kept.txt", code="KEPT22")

        # local blob ages come from file mtimes, so judge them from far in the future
        clock.advance(days=3650)
        await metadata_store.put(kept.record.model_copy(update={"uploaded_at": clock.now}))

        report = await sweeper.sweep()

        assert report.deleted == 0
        assert report.orphans_deleted == 1
        assert [b.url for b in await flaky_blobs.list()] == [kept.url]

    @pytest.mark.asyncio
    async def test_code_reissued_mid_sweep_keeps_new_record(
        self, share_config: ShareConfig, uploader, downloader, metadata_store, tmp_path, clock
    ) -> None:
        class ReissuingBlobStore(FlakyBlobStore):
            """Re-uploads under the same code while the sweep is deleting the old blob."""

            reissued = None

            async def delete(self, url: str) -> None:
                await super().delete(url)
                if self.reissued is None:
                    self.reissued = await fresh_uploader.upload(b"fresh", "fresh.txt", code="ABC123")

        blobs = ReissuingBlobStore(tmp_path / "blobs", "http://testserver")
        fresh_uploader = UploadService(share_config, metadata_store, blobs, clock=clock)
        await uploader.upload(b"stale", "stale.txt", code="ABC123")
        clock.advance(days=2)

        report = await CleanupSweeper(share_config, metadata_store, blobs, clock=clock).sweep()

        assert report.deleted == 1
        current = await metadata_store.get("ABC123")
        assert current is not None
        assert current.id == blobs.reissued.file_id
        assert [b.url for b in await blobs.list()] == [blobs.reissued.url]
        ticket = await downloader.resolve("ABC123")
        assert ticket.filename == "fresh.txt"
