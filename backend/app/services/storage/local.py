import logging
import os
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


class LocalStorageService:
    """
    On-disk layout for batches:

        <base_dir>/work/<batch_id>/   temp files for video jobs
        <base_dir>/output/<batch_id>.zip
    """

    def __init__(self, base_dir: str = "data"):
        self.base_dir = Path(base_dir)
        self.work_root = self.base_dir / "work"
        self.output_dir = self.base_dir / "output"
        os.makedirs(self.work_root, exist_ok=True)
        os.makedirs(self.output_dir, exist_ok=True)

    def archive_path(self, batch_id: str) -> Path:
        return self.output_dir / f"{batch_id}.zip"

    def work_dir(self, batch_id: str) -> Path:
        path = self.work_root / batch_id
        path.mkdir(parents=True, exist_ok=True)
        return path

    def remove_work_dir(self, batch_id: str):
        path = self.work_root / batch_id
        if not path.exists():
            return
        try:
            shutil.rmtree(path)
        except OSError as e:
            logger.warning("Could not remove work dir %s: %s", path, e)

    def remove_archive(self, batch_id: str):
        path = self.archive_path(batch_id)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("Cleanup error for %s: %s", path, e)
