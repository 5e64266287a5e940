"""Cleanup trigger for an external scheduler (cron)."""
import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header

from codedrop.config import ShareConfig
from codedrop.dependencies import get_cleanup_sweeper, get_share_config
from codedrop.errors import UnauthorizedError
from codedrop.schemas.file import CleanupResponse, ErrorResponse
from codedrop.services.cleanup import CleanupSweeper

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cleanup", tags=["cleanup"], responses={401: {"model": ErrorResponse}})


def verify_cron_secret(
    authorization: Optional[str] = Header(None),
    config: ShareConfig = Depends(get_share_config),
) -> None:
    """Bearer check against CRON_SECRET. Open when no secret is configured."""
    if not config.cleanup_secret:
        logger.warning("CRON_SECRET not set; cleanup endpoint is unauthenticated")
        return
    expected = f"Bearer {config.cleanup_secret}"
    if not secrets.compare_digest((authorization or "").encode(), expected.encode()):
        raise UnauthorizedError("Unauthorized")


@router.api_route(
    "",
    methods=["GET", "POST"],
    response_model=CleanupResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def run_cleanup(sweeper: CleanupSweeper = Depends(get_cleanup_sweeper)):
    """Run one sweep and report how much was deleted."""
    report = await sweeper.sweep()
    return CleanupResponse(
        deleted=report.deleted,
        failed=report.failed,
        orphans_deleted=report.orphans_deleted,
    )
