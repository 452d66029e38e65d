"""
Batch Manager
Runs one watermark over a set of files and packs the results into a ZIP.

Two modes:
- start_batch(): disk-backed. Returns a batch id straight away; the batch runs
  on a background executor, progress is polled with get_status() and the
  archive is read with fetch_archive() / archive_path().
- process_batch(): in-memory. Blocks and returns the archive bytes.

A failing file never stops the batch: it is recorded in the status errors and
left out of the archive. Only an unreadable watermark or a failed archive
write rejects the whole batch.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from concurrent.futures import wait as wait_futures
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from PIL import Image

from backend.app.config import Settings
from backend.app.core.errors import BatchNotFound, UnsupportedFormat
from backend.app.core.models import FileOutcome, ProcessedFile, SourceFile, Watermark, WatermarkOptions
from backend.app.core.watermark.base import Compositor
from backend.app.core.watermark.image import ImageCompositor, load_watermark
from backend.app.core.watermark.video import VideoCompositor
from backend.app.services.progress.models import BatchStatus, FileError
from backend.app.services.progress.tracker import StatusStore
from backend.app.services.storage.archive import build_archive, write_archive
from backend.app.services.storage.local import LocalStorageService
from backend.app.workflow.pipeline import IMAGE, VIDEO, media_kind, run_file

logger = logging.getLogger(__name__)

FileInput = Union[SourceFile, Tuple[str, bytes]]
OptionsInput = Union[WatermarkOptions, dict, None]


@dataclass
class BatchResult:
    """Outcome of an in-memory batch."""
    archive: bytes
    total: int
    processed: List[str] = field(default_factory=list)
    errors: List[FileError] = field(default_factory=list)


def _as_sources(files: Iterable[FileInput]) -> List[SourceFile]:
    sources = []
    for item in files:
        if isinstance(item, SourceFile):
            sources.append(item)
        else:
            name, content = item[0], item[1]
            sources.append(SourceFile(name=name, content=content))
    return sources


def _as_options(options: OptionsInput) -> WatermarkOptions:
    if isinstance(options, WatermarkOptions):
        return options
    return WatermarkOptions(**(options or {}))


def _has_video(sources: List[SourceFile]) -> bool:
    for source in sources:
        try:
            if media_kind(source.name) == VIDEO:
                return True
        except UnsupportedFormat:
            continue
    return False


class BatchManager:
    """Owns the status store, the storage layout and the compositors."""

    def __init__(
        self,
        store: StatusStore = None,
        storage: LocalStorageService = None,
        image_compositor: Compositor = None,
        video_compositor: Compositor = None,
        max_workers: int = 1,
        max_batches: int = 2
    ):
        self.store = store or StatusStore()
        self.storage = storage or LocalStorageService()
        self.compositors: Dict[str, Compositor] = {
            IMAGE: image_compositor or ImageCompositor(),
            VIDEO: video_compositor or VideoCompositor(),
        }
        self.max_workers = max(1, max_workers)

        self._executor = ThreadPoolExecutor(max_workers=max(1, max_batches), thread_name_prefix="batch")
        self._futures: Dict[str, Future] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "BatchManager":
        return cls(
            storage=LocalStorageService(settings.data_dir),
            video_compositor=VideoCompositor(
                ffmpeg_path=settings.ffmpeg_path,
                ffprobe_path=settings.ffprobe_path
            ),
            max_workers=settings.max_workers,
            max_batches=settings.max_batches
        )

    # ===============================
    # Processing
    # ===============================
    def _prepare(
        self,
        batch_id: str,
        watermark_bytes: bytes,
        sources: List[SourceFile],
        wm_image: Image.Image = None
    ) -> Tuple[Watermark, Optional[Path]]:
        """
        Decode the watermark once for the whole batch and, for batches with
        videos, write it to the batch work dir so every ffmpeg call can reuse
        the file.
        """
        if wm_image is None:
            wm_image = load_watermark(watermark_bytes)

        if not _has_video(sources):
            return Watermark(content=watermark_bytes, image=wm_image), None

        work_dir = self.storage.work_dir(batch_id)
        watermark_path = work_dir / "watermark.png"
        watermark_path.write_bytes(watermark_bytes)
        return Watermark(content=watermark_bytes, path=str(watermark_path), image=wm_image), work_dir

    def _collect(
        self,
        sources: List[SourceFile],
        watermark: Watermark,
        options: WatermarkOptions,
        work_dir: Optional[Path],
        on_outcome: Callable[[FileOutcome], None]
    ) -> List[FileOutcome]:
        """
        Attempt every file and return the outcomes in input order.

        `on_outcome` is called from this thread as each file resolves.
        """
        work_dir = str(work_dir) if work_dir else None
        outcomes: List[Optional[FileOutcome]] = [None] * len(sources)

        if self.max_workers == 1 or len(sources) <= 1:
            for i, source in enumerate(sources):
                outcomes[i] = run_file(source, watermark, options, self.compositors, work_dir)
                on_outcome(outcomes[i])
            return outcomes

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="file") as pool:
            future_to_index = {
                pool.submit(run_file, source, watermark, options, self.compositors, work_dir): i
                for i, source in enumerate(sources)
            }
            for future in as_completed(future_to_index):
                i = future_to_index[future]
                outcomes[i] = future.result()
                on_outcome(outcomes[i])

        return outcomes

    def _logger_for(self, batch_id: str, total: int) -> Callable[[FileOutcome], None]:
        counter = {"done": 0}

        def log_outcome(outcome: FileOutcome):
            counter["done"] += 1
            if outcome.ok:
                logger.info("[DONE] %s (%d/%d) | batch %s", outcome.name, counter["done"], total, batch_id)
            else:
                logger.warning("[FAILED] %s | Error: %s | batch %s", outcome.name, outcome.error, batch_id)

        return log_outcome

    def run_batch(self, watermark_bytes: bytes, files: Iterable[FileInput], options: OptionsInput = None) -> BatchResult:
        """
        Process a batch in memory and return the archive with the collected errors.

        Raises:
            WatermarkUnreadable: the watermark could not be decoded
            ArchiveWriteFailed: the archive could not be built
        """
        sources = _as_sources(files)
        options = _as_options(options)
        batch_id = f"sync-{self.store.new_id()}"

        logger.info("[BATCH STARTED] %s | Total files: %d", batch_id, len(sources))
        try:
            watermark, work_dir = self._prepare(batch_id, watermark_bytes, sources)
            outcomes = self._collect(sources, watermark, options, work_dir, self._logger_for(batch_id, len(sources)))
        finally:
            self.storage.remove_work_dir(batch_id)

        successes = [o.processed for o in outcomes if o.ok]
        archive = build_archive(successes)
        logger.info("[BATCH COMPLETED] %s | %d/%d succeeded", batch_id, len(successes), len(sources))

        return BatchResult(
            archive=archive,
            total=len(sources),
            processed=[p.name for p in successes],
            errors=[FileError(file=o.name, error=o.error) for o in outcomes if not o.ok]
        )

    def process_batch(self, watermark_bytes: bytes, files: Iterable[FileInput], options: OptionsInput = None) -> bytes:
        return self.run_batch(watermark_bytes, files, options).archive

    def start_batch(self, watermark_bytes: bytes, files: Iterable[FileInput], options: OptionsInput = None) -> str:
        """
        Start a disk-backed batch in the background and return its id.

        The watermark is checked before anything is scheduled, so
        WatermarkUnreadable is raised here rather than from the background task.
        """
        sources = _as_sources(files)
        options = _as_options(options)
        wm_image = load_watermark(watermark_bytes)

        status = self.store.create(total=len(sources))
        batch_id = status.batch_id
        logger.info("[BATCH STARTED] %s | Total files: %d", batch_id, len(sources))

        future = self._executor.submit(self._run_tracked, batch_id, watermark_bytes, wm_image, sources, options)
        with self._lock:
            self._futures[batch_id] = future
        future.add_done_callback(lambda f: self._on_finished(batch_id, f))
        return batch_id

    def _run_tracked(
        self,
        batch_id: str,
        watermark_bytes: bytes,
        wm_image: Image.Image,
        sources: List[SourceFile],
        options: WatermarkOptions
    ):
        log_outcome = self._logger_for(batch_id, len(sources))

        def on_outcome(outcome: FileOutcome):
            self.store.record(batch_id, outcome.name, outcome.error)
            log_outcome(outcome)

        try:
            watermark, work_dir = self._prepare(batch_id, watermark_bytes, sources, wm_image)
            outcomes = self._collect(sources, watermark, options, work_dir, on_outcome)

            successes: List[ProcessedFile] = [o.processed for o in outcomes if o.ok]
            if batch_id not in self.store:
                logger.info("[BATCH DISCARDED] %s | cleaned up while running", batch_id)
                return

            write_archive(successes, self.storage.archive_path(batch_id))

            # cleanup() removes the status entry before the archive
            if batch_id not in self.store:
                self.storage.remove_archive(batch_id)
                logger.info("[BATCH DISCARDED] %s | cleaned up while running", batch_id)
                return
            self.store.complete(batch_id)

            logger.info("[BATCH COMPLETED] %s | %d/%d succeeded", batch_id, len(successes), len(sources))
        except Exception as e:
            self.store.fail(batch_id, str(e) or e.__class__.__name__)
            raise
        finally:
            self.storage.remove_work_dir(batch_id)

    def _on_finished(self, batch_id: str, future: Future):
        error = future.exception()
        if error is not None:
            logger.error("[BATCH FAILED] %s | Error: %s", batch_id, error, exc_info=error)

    # ===============================
    # Queries
    # ===============================
    def get_status(self, batch_id: str) -> dict:
        """Status as a plain dict, or {"error": "Upload not found"}. Never raises."""
        return self.store.as_dict(batch_id)

    def wait(self, batch_id: str, timeout: float = None) -> Optional[BatchStatus]:
        """Block until a background batch finishes; return its final status."""
        with self._lock:
            future = self._futures.get(batch_id)
        if future is not None:
            wait_futures([future], timeout=timeout)
        return self.store.get(batch_id)

    def archive_path(self, batch_id: str) -> Path:
        status = self.store.get(batch_id)
        path = self.storage.archive_path(batch_id)
        if status is None or not status.completed or not path.exists():
            raise BatchNotFound(batch_id)
        return path

    def fetch_archive(self, batch_id: str) -> bytes:
        path = self.archive_path(batch_id)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise BatchNotFound(batch_id) from e

    # ===============================
    # Cleanup
    # ===============================
    def cleanup(self, batch_id: str):
        """
        Remove the status entry, archive and work files. Logs, never raises.

        A batch still running when it is cleaned up finishes without
        leaving an archive behind.
        """
        self.store.remove(batch_id)
        try:
            self.storage.remove_archive(batch_id)
            self.storage.remove_work_dir(batch_id)
        except Exception:
            logger.exception("Cleanup error for batch %s", batch_id)

        with self._lock:
            self._futures.pop(batch_id, None)
        logger.info("Cleaned up batch %s", batch_id)

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)
