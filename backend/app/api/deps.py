import threading

from backend.app.config import Settings, get_settings
from backend.app.workflow.batch_manager import BatchManager

# One manager per process (lazy load)
_manager = None
_manager_lock = threading.Lock()


def get_batch_manager() -> BatchManager:
    global _manager
    with _manager_lock:
        if _manager is None:
            _manager = BatchManager.from_settings(get_settings())
        return _manager


def get_app_settings() -> Settings:
    return get_settings()


def shutdown_batch_manager():
    global _manager
    with _manager_lock:
        if _manager is not None:
            _manager.shutdown(wait=False)
            _manager = None
