"""File upload API router."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.dependencies import get_blob_storage, require_principal
from app.schemas.auth_schema import Principal
from app.services.storage_service import BlobStorage

logger = structlog.get_logger()

router = APIRouter(prefix="/api/files", tags=["files"])

BlobStorageDep = Annotated[BlobStorage, Depends(get_blob_storage)]


def _error(message: str, status_code: int = status.HTTP_400_BAD_REQUEST) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post("/upload", response_model=None)
async def upload_file(
    storage: BlobStorageDep,
    principal: Principal = Depends(require_principal),
    file: UploadFile | None = File(default=None),
) -> JSONResponse:
    """Validate and store an attachment; returns the stored blob."""
    if file is None:
        return _error("No file uploaded")

    upload_config = settings.file_upload
    too_large = f"File size should be less than {upload_config.max_file_size_mb}MB"
    if file.size is not None and file.size > upload_config.max_file_size_bytes:
        return _error(too_large)

    data = await file.read()
    if len(data) > upload_config.max_file_size_bytes:
        return _error(too_large)

    content_type = (file.content_type or "").lower()
    if content_type not in upload_config.allowed_content_types_list:
        return _error("File type not supported")

    try:
        blob = await storage.put(file.filename or "file", data, content_type)
    except OSError:
        logger.exception("Upload failed", user_id=principal.id)
        return _error("Upload failed", status.HTTP_500_INTERNAL_SERVER_ERROR)

    logger.info("File uploaded", user_id=principal.id, pathname=blob.pathname)
    return JSONResponse(content=blob.model_dump(by_alias=True))
