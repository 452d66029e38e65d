import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.app.api import download_router, health_router, progress_router, upload_router
from backend.app.api.deps import shutdown_batch_manager
from backend.app.config import get_settings
from backend.app.core.errors import ArchiveWriteFailed, BatchNotFound, WatermarkUnreadable

# ===============================
# Logging
# ===============================
logging.basicConfig(
    level=getattr(logging, get_settings().log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    shutdown_batch_manager()


app = FastAPI(
    title="Batch Media Watermarking Service",
    version="1.0.0",
    lifespan=lifespan
)

# ===============================
# CORS (Frontend ↔ Backend)
# ===============================
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # for development only
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ===============================
# Error mapping
# ===============================
@app.exception_handler(WatermarkUnreadable)
async def watermark_unreadable_handler(request: Request, exc: WatermarkUnreadable):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(BatchNotFound)
async def batch_not_found_handler(request: Request, exc: BatchNotFound):
    return JSONResponse(status_code=404, content={"error": "File not found"})


@app.exception_handler(ArchiveWriteFailed)
async def archive_failed_handler(request: Request, exc: ArchiveWriteFailed):
    logger.error("Archive write failed: %s", exc)
    return JSONResponse(status_code=500, content={"error": "Failed to process files"})


# ===============================
# API Routes
# ===============================
app.include_router(upload_router)
app.include_router(progress_router)
app.include_router(download_router)
app.include_router(health_router)
