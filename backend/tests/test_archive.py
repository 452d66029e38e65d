import io
import os
import zipfile

import pytest

from backend.app.core.errors import ArchiveWriteFailed
from backend.app.core.models import ProcessedFile
from backend.app.services.storage.archive import build_archive, unique_names, write_archive


def read_zip(data: bytes) -> dict:
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        assert zf.testzip() is None
        return {info.filename: zf.read(info.filename) for info in zf.infolist()}


def test_empty_archive_is_valid():
    data = build_archive([])
    assert zipfile.is_zipfile(io.BytesIO(data))
    assert read_zip(data) == {}


def test_round_trip_preserves_bytes():
    files = [
        ProcessedFile("a.png", os.urandom(4096)),
        ProcessedFile("b.jpg", b"\xff\xd8" + b"x" * 10000),
        ProcessedFile("clip.mp4", b""),
    ]
    contents = read_zip(build_archive(files))
    assert contents == {f.name: f.content for f in files}


def test_entries_are_deflated_and_flat():
    files = [ProcessedFile("nested/dir/photo.png", b"a" * 1000)]
    with zipfile.ZipFile(io.BytesIO(build_archive(files))) as zf:
        (info,) = zf.infolist()
    assert info.filename == "photo.png"
    assert info.compress_type == zipfile.ZIP_DEFLATED


def test_duplicate_names_get_suffixes():
    assert unique_names(["a.png", "a.png", "b.png", "x/a.png"]) == ["a.png", "a_1.png", "b.png", "a_2.png"]


def test_write_archive_to_path(tmp_path):
    path = tmp_path / "out" / "batch.zip"
    files = [ProcessedFile("one.png", b"1"), ProcessedFile("two.png", b"2")]

    assert write_archive(files, path) == path
    assert read_zip(path.read_bytes()) == {"one.png": b"1", "two.png": b"2"}
    assert not (tmp_path / "out" / "batch.zip.tmp").exists()


def test_write_empty_archive_to_path(tmp_path):
    path = write_archive([], tmp_path / "empty.zip")
    assert read_zip(path.read_bytes()) == {}


def test_unwritable_path_raises(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_bytes(b"")
    with pytest.raises(ArchiveWriteFailed):
        write_archive([ProcessedFile("a.png", b"a")], blocker / "sub" / "out.zip")
