from backend.app.api.routes import router as health_router
from backend.app.api.routes_download import router as download_router
from backend.app.api.routes_progress import router as progress_router
from backend.app.api.routes_upload import router as upload_router

__all__ = [
    "health_router",
    "download_router",
    "progress_router",
    "upload_router",
]
