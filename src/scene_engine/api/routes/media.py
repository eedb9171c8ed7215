"""Serving of locally stored objects through signed URLs."""

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import FileResponse

from scene_engine.adapters.storage.local import LocalObjectStorage
from scene_engine.services.factory import get_object_storage

router = APIRouter(prefix="/media", tags=["Media"])


@router.get("/{key:path}", summary="Signed media download", include_in_schema=False)
async def get_media(
    key: str,
    expires: int = Query(...),
    signature: str = Query(...),
) -> FileResponse:
    storage = get_object_storage()
    if not isinstance(storage, LocalObjectStorage):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    if not storage.verify(key, expires, signature):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired URL")

    try:
        path = storage.path_for(key)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    if not path.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    return FileResponse(path)
