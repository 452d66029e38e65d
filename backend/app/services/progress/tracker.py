"""
In-memory batch status store.

One StatusStore is owned by the BatchManager and shared by reference.
Entries live until remove() is called; there is no expiry.
"""

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from backend.app.services.progress.models import BatchStatus, FileError

logger = logging.getLogger(__name__)

NOT_FOUND = {"error": "Upload not found"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class StatusStore:
    """Thread-safe map of batch id -> BatchStatus."""

    def __init__(
        self,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = _new_id
    ):
        self._clock = clock
        self._id_factory = id_factory
        self._lock = threading.Lock()
        self._statuses: Dict[str, BatchStatus] = {}

    def new_id(self) -> str:
        return self._id_factory()

    def create(self, total: int, batch_id: Optional[str] = None) -> BatchStatus:
        batch_id = batch_id or self._id_factory()
        status = BatchStatus(
            batch_id=batch_id,
            total=total,
            created_at=self._clock()
        )
        with self._lock:
            self._statuses[batch_id] = status
            return status.model_copy(deep=True)

    def get(self, batch_id: str) -> Optional[BatchStatus]:
        """Snapshot of the batch status, or None for unknown ids."""
        with self._lock:
            status = self._statuses.get(batch_id)
            return status.model_copy(deep=True) if status else None

    def as_dict(self, batch_id: str) -> dict:
        status = self.get(batch_id)
        if status is None:
            return dict(NOT_FOUND)
        return status.model_dump(mode="json")

    def record(self, batch_id: str, filename: str = None, error: str = None):
        """Count one attempted file; `error` marks it as failed."""
        with self._lock:
            status = self._statuses.get(batch_id)
            if status is None:
                logger.warning("record() for unknown batch %s", batch_id)
                return
            if status.processed >= status.total:
                logger.warning("Batch %s already counted %d/%d files", batch_id, status.processed, status.total)
                return
            if error is not None:
                status.errors.append(FileError(file=filename or "", error=error))
            status.processed += 1

    def complete(self, batch_id: str):
        with self._lock:
            status = self._statuses.get(batch_id)
            if status is None:
                return
            if status.processed != status.total:
                raise ValueError(
                    f"Batch {batch_id} cannot complete with {status.processed}/{status.total} files processed"
                )
            status.completed = True

    def fail(self, batch_id: str, message: str):
        with self._lock:
            status = self._statuses.get(batch_id)
            if status is None:
                return
            status.failed = True
            status.error = message

    def remove(self, batch_id: str) -> bool:
        with self._lock:
            return self._statuses.pop(batch_id, None) is not None

    def __contains__(self, batch_id: str) -> bool:
        with self._lock:
            return batch_id in self._statuses

    def __len__(self) -> int:
        with self._lock:
            return len(self._statuses)
