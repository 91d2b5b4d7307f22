"""
Blob download endpoint for generated statement files.
"""

from fastapi import APIRouter, Depends, Path
from fastapi.responses import FileResponse

from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.services.blob_storage import XLSX_CONTENT_TYPE, LocalBlobStorage, get_blob_storage

router = APIRouter(prefix="/blobs", tags=["Blobs"])


@router.get("/{path:path}")
async def get_blob(
    path: str = Path(..., description="Blob path"),
    storage: LocalBlobStorage = Depends(get_blob_storage)
):
    if not await storage.exists(path):
        raise ResourceNotFoundError("Blob", path)

    target = storage.resolve(path)

    media_type = XLSX_CONTENT_TYPE if target.suffix == ".xlsx" else "application/octet-stream"
    return FileResponse(target, media_type=media_type, filename=target.name)
