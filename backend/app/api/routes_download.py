import logging
import time

from fastapi import APIRouter, BackgroundTasks, Depends
from fastapi.responses import FileResponse, JSONResponse

from backend.app.api.deps import get_app_settings, get_batch_manager
from backend.app.api.routes_upload import ARCHIVE_FILENAME
from backend.app.config import Settings
from backend.app.core.errors import BatchNotFound
from backend.app.workflow.batch_manager import BatchManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Download"])


def cleanup_after_delay(manager: BatchManager, upload_id: str, delay: float):
    """Give the client time to finish reading the file, then clean up."""
    if delay > 0:
        time.sleep(delay)
    manager.cleanup(upload_id)


@router.get("/download/{upload_id}")
def download(
    upload_id: str,
    background_tasks: BackgroundTasks,
    manager: BatchManager = Depends(get_batch_manager),
    settings: Settings = Depends(get_app_settings)
):
    try:
        path = manager.archive_path(upload_id)
    except BatchNotFound:
        return JSONResponse(status_code=404, content={"error": "File not found"})

    background_tasks.add_task(cleanup_after_delay, manager, upload_id, settings.cleanup_delay_seconds)
    logger.info("Serving archive for %s", upload_id)

    return FileResponse(
        path,
        media_type="application/zip",
        filename=ARCHIVE_FILENAME
    )
