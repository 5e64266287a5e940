"""Download API routes."""
from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse

from codedrop.dependencies import get_download_service
from codedrop.schemas.file import ErrorResponse
from codedrop.services.download import DownloadService

router = APIRouter(
    prefix="/api/download",
    tags=["download"],
    responses={404: {"model": ErrorResponse}, 410: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)


@router.get("/{code}")
async def download_file(
    code: str,
    service: DownloadService = Depends(get_download_service),
):
    """Redirect to the stored bytes; the blob store does the transfer."""
    ticket = await service.resolve(code)
    return RedirectResponse(
        ticket.url,
        status_code=307,
        headers={"Content-Disposition": f'attachment; filename="{quote(ticket.filename)}"'},
    )
