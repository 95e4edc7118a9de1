"""Shared pytest fixtures for the Wingman test suite."""

import io
import sys
from pathlib import Path

import pytest
from PIL import Image

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from wingman.capture_queue import CaptureStore  # noqa: E402
from wingman.screen_capture import ScreenCapturer  # noqa: E402


def make_png(size=(40, 30), color=(255, 255, 255)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class RecordingSurface:
    """Window surface double that logs every visibility change."""

    def __init__(self, *, offset=(0, 0), scale=1.0):
        from wingman.window import WindowBounds

        self.events = []
        self.hidden = False
        self._bounds = WindowBounds(offset[0], offset[1], 800, 600)
        self._scale = scale

    def hide(self):
        self.events.append("hide")
        self.hidden = True

    def show(self):
        self.events.append("show")
        self.hidden = False

    def get_bounds(self):
        return self._bounds

    def scale_factor(self):
        return self._scale


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def store(tmp_path) -> CaptureStore:
    return CaptureStore(tmp_path / "screenshots", tmp_path / "extra_screenshots")


@pytest.fixture
def surface() -> RecordingSurface:
    return RecordingSurface()


@pytest.fixture
def capture_size():
    """Pixel size of the PNG written by ``png_capturer``."""
    return (300, 200)


@pytest.fixture
def png_capturer(capture_size) -> ScreenCapturer:
    async def write_png(destination: Path) -> None:
        destination.write_bytes(make_png(capture_size))

    return ScreenCapturer(backend=write_png)
