"""
SnapCap Backend: Media Route
==============================

Serves stored uploads at /media/{public_id}. Public ids are the relative
paths handed out by StorageService (`2026/10/19/<uuid>.jpg`).
"""

from fastapi import APIRouter
from fastapi.responses import FileResponse

from snapcap.exceptions import NotFoundError
from snapcap.services.storage_service import storage_service

router = APIRouter(tags=["Media"])


@router.get("/media/{public_id:path}", include_in_schema=False)
async def serve_media(public_id: str):
    path = storage_service.resolve(public_id)
    if not path.is_file():
        raise NotFoundError(message="File not found", resource="media", resource_id=public_id)
    return FileResponse(path)
