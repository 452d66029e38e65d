"""
Watermarking error taxonomy.

Per-file errors (FileProcessingError subclasses) are recorded against the
file and never stop a batch. BatchFailed subclasses reject the whole batch.
"""


class WatermarkError(Exception):
    """Base class for every error raised by the watermark core."""


# -----------------------------
# Per-file (non-fatal)
# -----------------------------
class FileProcessingError(WatermarkError):
    pass


class UnsupportedFormat(FileProcessingError):
    def __init__(self, ext: str):
        self.ext = ext
        super().__init__(f"Unsupported file format: {ext or '(none)'}")


class DecodeError(FileProcessingError):
    pass


class NoVideoStream(FileProcessingError):
    def __init__(self, message: str = "No video stream found"):
        super().__init__(message)


class ProbeFailed(FileProcessingError):
    pass


class TranscodeFailed(FileProcessingError):
    def __init__(self, exit_code: int, message: str = None):
        self.exit_code = exit_code
        super().__init__(message or f"FFmpeg exited with code {exit_code}")


# -----------------------------
# Batch-level (fatal)
# -----------------------------
class BatchFailed(WatermarkError):
    pass


class WatermarkUnreadable(BatchFailed):
    pass


class ArchiveWriteFailed(BatchFailed):
    pass


class BatchNotFound(WatermarkError):
    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")
