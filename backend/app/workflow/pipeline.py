import logging
from pathlib import Path
from typing import Dict

from backend.app.core.errors import FileProcessingError, UnsupportedFormat
from backend.app.core.models import FileOutcome, ProcessedFile, SourceFile, Watermark, WatermarkOptions
from backend.app.core.watermark.base import Compositor
from backend.app.core.watermark.image import IMAGE_EXTENSIONS
from backend.app.core.watermark.video import VIDEO_EXTENSIONS

logger = logging.getLogger(__name__)

IMAGE = "image"
VIDEO = "video"


def media_kind(filename: str) -> str:
    """
    Media kind by lower-cased extension.

    Raises UnsupportedFormat for anything outside the allow-list.
    """
    ext = Path(filename).suffix.lower()
    if ext in IMAGE_EXTENSIONS:
        return IMAGE
    if ext in VIDEO_EXTENSIONS:
        return VIDEO
    raise UnsupportedFormat(ext)


def process_single_file(
    source: SourceFile,
    watermark: Watermark,
    options: WatermarkOptions,
    compositors: Dict[str, Compositor],
    work_dir: str = None
) -> ProcessedFile:
    """
    Process a single file:
    - Pick the compositor by extension
    - Apply the watermark
    - Return the processed bytes under the original name
    """
    compositor = compositors[media_kind(source.name)]
    return compositor.apply(source, watermark, options, work_dir=work_dir)


def run_file(
    source: SourceFile,
    watermark: Watermark,
    options: WatermarkOptions,
    compositors: Dict[str, Compositor],
    work_dir: str = None
) -> FileOutcome:
    """Like process_single_file, but failures become an outcome instead of raising."""
    try:
        processed = process_single_file(source, watermark, options, compositors, work_dir)
    except FileProcessingError as e:
        return FileOutcome(name=source.name, error=str(e))
    except Exception as e:
        logger.exception("Unexpected error while processing %s", source.name)
        return FileOutcome(name=source.name, error=str(e) or e.__class__.__name__)

    return FileOutcome(name=source.name, processed=processed)
