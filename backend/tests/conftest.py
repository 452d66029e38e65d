import io
from typing import Tuple

import pytest
from PIL import Image

from backend.app.core.errors import NoVideoStream
from backend.app.core.models import ProcessedFile
from backend.app.core.watermark.base import Compositor
from backend.app.services.progress.tracker import StatusStore
from backend.app.services.storage.local import LocalStorageService
from backend.app.workflow.batch_manager import BatchManager


def make_image(
    size: Tuple[int, int] = (200, 150),
    fmt: str = "PNG",
    mode: str = "RGB",
    color=(30, 120, 200)
) -> bytes:
    """Encode a solid-colour test image."""
    img = Image.new(mode, size, color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    img.close()
    return buffer.getvalue()


def make_gradient(size: Tuple[int, int] = (120, 80), fmt: str = "PNG") -> bytes:
    """Encode a gradient so pixel comparisons are meaningful."""
    width, height = size
    img = Image.new("RGB", size)
    img.putdata([
        (int(255 * x / width), int(255 * y / height), 128)
        for y in range(height)
        for x in range(width)
    ])
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


class FakeVideoCompositor(Compositor):
    """
    Stands in for ffmpeg: files whose content starts with b"NOVIDEO" fail
    like a probe with no streams, everything else is echoed back.
    """

    def __init__(self):
        self.calls = []

    def apply(self, source, watermark, options, work_dir=None):
        self.calls.append((source.name, watermark.path, work_dir))
        if source.content.startswith(b"NOVIDEO"):
            raise NoVideoStream()
        return ProcessedFile(name=source.name, content=b"watermarked:" + source.content)


@pytest.fixture
def watermark_png() -> bytes:
    return make_image((100, 100), "PNG", "RGBA", (255, 0, 0, 255))


@pytest.fixture
def storage(tmp_path) -> LocalStorageService:
    return LocalStorageService(str(tmp_path / "data"))


@pytest.fixture
def store() -> StatusStore:
    return StatusStore()


@pytest.fixture
def fake_video() -> FakeVideoCompositor:
    return FakeVideoCompositor()


@pytest.fixture
def manager(store, storage, fake_video):
    manager = BatchManager(store=store, storage=storage, video_compositor=fake_video)
    yield manager
    manager.shutdown()
