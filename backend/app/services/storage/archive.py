"""
Archive Packager
Packs processed files into one flat ZIP archive (deflate, level 9).

Two output modes:
- write_archive(): stream to a path on disk
- build_archive(): return the archive bytes
An empty file list produces a valid, empty archive.
"""

import io
import logging
import os
import zipfile
from pathlib import Path
from typing import BinaryIO, Iterable, List, Union

from backend.app.core.errors import ArchiveWriteFailed
from backend.app.core.models import ProcessedFile

logger = logging.getLogger(__name__)

COMPRESSION = zipfile.ZIP_DEFLATED
COMPRESS_LEVEL = 9


def archive_name(name: str) -> str:
    """Base filename only; the archive has no directories."""
    base = os.path.basename(name.replace("\\", "/"))
    return base or "file"


def unique_names(names: Iterable[str]) -> List[str]:
    """Flatten names and suffix duplicates: a.png, a_1.png, a_2.png."""
    used = set()
    result = []
    for name in names:
        base, ext = os.path.splitext(archive_name(name))
        candidate = base + ext
        i = 1
        while candidate in used:
            candidate = f"{base}_{i}{ext}"
            i += 1
        used.add(candidate)
        result.append(candidate)
    return result


def _write_entries(target: BinaryIO, files: List[ProcessedFile]):
    with zipfile.ZipFile(target, mode="w", compression=COMPRESSION, compresslevel=COMPRESS_LEVEL) as zf:
        for entry_name, processed in zip(unique_names(f.name for f in files), files):
            zf.writestr(entry_name, processed.content)


def build_archive(files: List[ProcessedFile]) -> bytes:
    buffer = io.BytesIO()
    try:
        _write_entries(buffer, files)
    except (OSError, zipfile.BadZipFile, ValueError) as e:
        raise ArchiveWriteFailed(f"Failed to build archive: {e}") from e
    return buffer.getvalue()


def write_archive(files: List[ProcessedFile], path: Union[str, Path]) -> Path:
    """
    Stream the archive to `path`.

    Written to a sibling .tmp file first and moved into place, so readers
    never see a half-written archive.
    """
    path = Path(path)
    tmp_path = path.with_name(path.name + ".tmp")

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, "wb") as f:
            _write_entries(f, files)
        os.replace(tmp_path, path)
    except (OSError, zipfile.BadZipFile, ValueError) as e:
        try:
            tmp_path.unlink()
        except OSError:
            pass
        raise ArchiveWriteFailed(f"Failed to write archive {path}: {e}") from e

    logger.info("Archive written: %s (%d entries)", path, len(files))
    return path
