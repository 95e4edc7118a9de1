"""Region selection math and cropping for snipped captures."""

from __future__ import annotations

import io
import logging
import math
from pathlib import Path

from PIL import Image

from .models import Rect, RegionSelection

logger = logging.getLogger(__name__)


def _round_half_up(value: float) -> int:
    # Math.round semantics; the builtin round() rounds half to even.
    return int(math.floor(value + 0.5))


def _clamp(value: int, low: int, high: int) -> int:
    return min(high, max(low, value))


def to_device_pixels(
    selection: RegionSelection,
    window_offset: tuple[float, float],
    scale_factor: float,
    image_size: tuple[int, int],
) -> Rect:
    """Convert a window-local selection into a crop rect inside the capture.

    The selection is shifted by the on-screen position of the hosting window,
    scaled by the display's device pixel ratio and then clamped so the result
    is always non-empty and fully contained in ``[0, width) x [0, height)``.
    """

    img_w, img_h = image_size
    if img_w <= 0 or img_h <= 0:
        raise ValueError(f"Image size must be positive, got {image_size}")
    scale = scale_factor or 1.0
    win_x, win_y = window_offset

    device_x = _round_half_up((selection.x + win_x) * scale)
    device_y = _round_half_up((selection.y + win_y) * scale)
    device_w = _round_half_up(selection.width * scale)
    device_h = _round_half_up(selection.height * scale)

    x = _clamp(device_x, 0, img_w - 1)
    y = _clamp(device_y, 0, img_h - 1)
    width = _clamp(device_w, 1, img_w - x)
    height = _clamp(device_h, 1, img_h - y)
    return Rect(x=x, y=y, width=width, height=height)


def image_size(path: Path | str) -> tuple[int, int]:
    with Image.open(path) as image:
        return image.size


def crop_to_region(path: Path | str, rect: Rect) -> bytes:
    """Crop the capture at ``path`` in place and return the PNG bytes."""

    path = Path(path)
    with Image.open(path) as image:
        cropped = image.crop(rect.as_box())
    buffer = io.BytesIO()
    cropped.save(buffer, format="PNG")
    data = buffer.getvalue()
    path.write_bytes(data)
    logger.debug("Cropped %s to %s", path, rect)
    return data
