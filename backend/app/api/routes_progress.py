from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from backend.app.api.deps import get_batch_manager
from backend.app.workflow.batch_manager import BatchManager

router = APIRouter(tags=["Progress"])


@router.get("/status/{upload_id}")
def get_batch_progress(upload_id: str, manager: BatchManager = Depends(get_batch_manager)):
    status = manager.get_status(upload_id)

    if "error" in status and "batch_id" not in status:
        return JSONResponse(status_code=404, content=status)

    total = status["total"]
    processed = status["processed"]
    status["percent"] = round((processed / total) * 100, 2) if total else 100.0

    return status
