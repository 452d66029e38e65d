from fastapi import APIRouter, Depends, UploadFile, File, Form
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
import logging
import os
from typing import List, Optional

from backend.app.api.deps import get_app_settings, get_batch_manager
from backend.app.config import Settings
from backend.app.core.models import SourceFile, WatermarkOptions
from backend.app.workflow.batch_manager import BatchManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Upload"])

# ✅ Supported media types
ALLOWED_IMAGE_TYPES = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
)
ALLOWED_VIDEO_TYPES = (
    "video/mp4",
    "video/quicktime",
    "video/x-msvideo",
    "video/x-matroska",
    "video/webm",
)
ALLOWED_MIME_TYPES = ALLOWED_IMAGE_TYPES + ALLOWED_VIDEO_TYPES

ARCHIVE_FILENAME = "watermarked-files.zip"


class UploadRejected(Exception):
    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _read_upload(
    watermark: Optional[UploadFile],
    files: Optional[List[UploadFile]],
    settings: Settings
):
    """
    Validate and read the multipart upload.
    Returns (watermark bytes, [SourceFile]); raises UploadRejected.
    """
    files = [f for f in (files or []) if f.filename]
    if watermark is None or not watermark.filename or not files:
        raise UploadRejected("Please provide both watermark and files to process")

    if len(files) > settings.max_files:
        raise UploadRejected(f"Too many files (max {settings.max_files})")

    if watermark.content_type not in ALLOWED_IMAGE_TYPES:
        raise UploadRejected(f"Invalid file type: {watermark.filename} ({watermark.content_type})")

    for file in files:
        if file.content_type not in ALLOWED_MIME_TYPES:
            raise UploadRejected(f"Invalid file type: {file.filename} ({file.content_type})")

    watermark_bytes = await watermark.read()
    if len(watermark_bytes) > settings.max_upload_bytes:
        raise UploadRejected(f"File too large: {watermark.filename}", status_code=413)

    sources = []
    for file in files:
        content = await file.read()
        if len(content) > settings.max_upload_bytes:
            raise UploadRejected(f"File too large: {file.filename}", status_code=413)
        sources.append(SourceFile(
            name=os.path.basename(file.filename),
            content=content,
            media_type=file.content_type
        ))

    return watermark_bytes, sources


@router.post("/upload")
async def upload(
    watermark: Optional[UploadFile] = File(None),
    files: Optional[List[UploadFile]] = File(None),
    position: Optional[str] = Form(None),
    opacity: Optional[str] = Form(None),
    scale: Optional[str] = Form(None),
    manager: BatchManager = Depends(get_batch_manager),
    settings: Settings = Depends(get_app_settings)
):
    """
    Upload a watermark and the files to process.
    Processing runs in the background; poll /status/{uploadId} and
    fetch the result from /download/{uploadId}.
    """
    try:
        watermark_bytes, sources = await _read_upload(watermark, files, settings)
    except UploadRejected as e:
        return _error(e.message, e.status_code)

    options = WatermarkOptions(position=position, opacity=opacity, scale=scale)
    upload_id = await run_in_threadpool(manager.start_batch, watermark_bytes, sources, options)

    logger.info("Upload %s accepted: %d file(s), %s", upload_id, len(sources), options)

    return {
        "success": True,
        "uploadId": upload_id,
        "message": "Processing started"
    }


@router.post("/upload/sync")
async def upload_sync(
    watermark: Optional[UploadFile] = File(None),
    files: Optional[List[UploadFile]] = File(None),
    position: Optional[str] = Form(None),
    opacity: Optional[str] = Form(None),
    scale: Optional[str] = Form(None),
    manager: BatchManager = Depends(get_batch_manager),
    settings: Settings = Depends(get_app_settings)
):
    """
    Synchronous variant: processes everything in memory and returns the ZIP.
    Best for small batches.
    """
    try:
        watermark_bytes, sources = await _read_upload(watermark, files, settings)
    except UploadRejected as e:
        return _error(e.message, e.status_code)

    options = WatermarkOptions(position=position, opacity=opacity, scale=scale)
    result = await run_in_threadpool(manager.run_batch, watermark_bytes, sources, options)

    headers = {
        "Content-Disposition": f'attachment; filename="{ARCHIVE_FILENAME}"',
        "X-Processed-Count": str(len(result.processed)),
        "X-Error-Count": str(len(result.errors)),
    }
    return Response(content=result.archive, media_type="application/zip", headers=headers)


@router.delete("/upload/{upload_id}")
def delete_upload(upload_id: str, manager: BatchManager = Depends(get_batch_manager)):
    """Remove the archive and status of a batch."""
    if upload_id not in manager.store:
        return _error("Upload not found", 404)
    manager.cleanup(upload_id)
    return {"success": True}
