"""
HEARDROP Backend — Stored File Route
======================================

What:  Serves uploaded Street Spotted photos and generated brand artwork.
Who:   Image URLs returned by the API (`/api/files/<relative path>`).

Caching: stored files are immutable (every write gets a fresh UUID name),
so responses are cacheable for a day.
"""

from fastapi import APIRouter
from fastapi.responses import FileResponse

from heardrop.schemas.common import ErrorResponse
from heardrop.services.file_service import file_service

router = APIRouter(prefix="/api/files", tags=["Files"])


@router.get(
    "/{file_path:path}",
    response_class=FileResponse,
    responses={
        400: {"description": "Path outside the storage root", "model": ErrorResponse},
        404: {"description": "File not found", "model": ErrorResponse},
    },
    summary="Download a stored image",
)
async def get_file(file_path: str) -> FileResponse:
    full_path = file_service.resolve(file_path)
    return FileResponse(
        path=full_path,
        headers={"Cache-Control": "public, max-age=86400"},
    )
