"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from codedrop.config import Settings, settings as default_settings
from codedrop.dependencies import get_blob_store, get_metadata_store
from codedrop.errors import InternalError, ShareError
from codedrop.services.blob_store import BlobStore, create_blob_store
from codedrop.services.cleanup import CleanupSweeper
from codedrop.services.download import DownloadService
from codedrop.services.metadata_store import MetadataStore
from codedrop.services.upload import UploadService

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build the stores and handlers once; close the blob session on shutdown."""
        logging.basicConfig(
            level=settings.LOG_LEVEL.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        config = settings.share_config()
        metadata = MetadataStore(config.metadata_dir, strict=config.strict_persistence)
        await metadata.ensure_ready()

        blobs = create_blob_store(settings)
        await blobs.open()
        logger.info(
            "Storage: blobs=%s metadata=%s token=%s",
            blobs.name, config.metadata_dir,
            "present" if settings.BLOB_READ_WRITE_TOKEN else "missing",
        )

        app.state.share_config = config
        app.state.metadata_store = metadata
        app.state.blob_store = blobs
        app.state.upload_service = UploadService(config, metadata, blobs)
        app.state.download_service = DownloadService(config, metadata)
        app.state.cleanup_sweeper = CleanupSweeper(config, metadata, blobs)

        yield

        await blobs.close()

    app = FastAPI(
        title="codedrop API",
        version="1.0.0",
        description="Share a file with a short code; downloads expire after the retention window.",
        lifespan=lifespan,
    )

    # CORS
    origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ShareError)
    async def share_error_handler(request: Request, exc: ShareError):
        if exc.status_code >= 500:
            logger.error(
                "%s %s failed: %s", request.method, request.url.path, exc,
                exc_info=(type(exc), exc, exc.__traceback__),
            )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.public_message})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(
            "%s %s crashed: %r", request.method, request.url.path, exc,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        return JSONResponse(status_code=500, content={"error": InternalError.default_public_message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Malformed request."})

    @app.get("/api/health")
    async def health_check(
        metadata: MetadataStore = Depends(get_metadata_store),
        blobs: BlobStore = Depends(get_blob_store),
    ):
        """Verify the metadata directory and report the blob backend."""
        try:
            ready = await metadata.ensure_ready()
        except ShareError as e:
            logger.error(f"Health check failed: {e}")
            ready = False
        return {
            "status": "ok" if ready else "error",
            "metadata": "writable" if ready else "unavailable",
            "blobStorage": blobs.name,
        }

    # Register routers
    from codedrop.routes.upload import router as upload_router
    from codedrop.routes.download import router as download_router
    from codedrop.routes.cleanup import router as cleanup_router
    from codedrop.routes.blobs import router as blobs_router
    app.include_router(upload_router)
    app.include_router(download_router)
    app.include_router(cleanup_router)
    app.include_router(blobs_router)

    return app


app = create_app()
