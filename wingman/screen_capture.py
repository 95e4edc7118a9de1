"""Full-screen capture backends writing PNG files to a requested path."""

from __future__ import annotations

import asyncio
import logging
import shutil
import sys
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence

from .errors import CaptureError, CaptureTimeout, PermissionDenied

logger = logging.getLogger(__name__)

try:  # pragma: no cover - optional dependency
    import mss  # type: ignore
    from mss import tools as mss_tools  # type: ignore
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    mss = None  # type: ignore
    mss_tools = None  # type: ignore

try:  # pragma: no cover - optional dependency
    from PIL import ImageGrab  # type: ignore
except ImportError:  # pragma: no cover - optional dependency
    ImageGrab = None  # type: ignore

CaptureBackend = Callable[[Path], Awaitable[None]]

# -m main monitor, -x no sound, -C include cursor, -t png lossless output
SCREENCAPTURE_ARGS: Sequence[str] = ("-m", "-x", "-C", "-t", "png")


class ScreenCapturer:
    """Writes a capture of the primary display to a caller-chosen path."""

    def __init__(
        self,
        *,
        backend: Optional[CaptureBackend] = None,
        monitor_index: int = 1,
        command: str = "screencapture",
    ) -> None:
        self.monitor_index = monitor_index
        self.command = command
        if backend is not None:
            self._backend: Optional[CaptureBackend] = backend
            self.backend_name = getattr(backend, "__name__", "custom")
        else:
            self._backend, self.backend_name = self._select_backend()

    @property
    def available(self) -> bool:
        return self._backend is not None

    async def capture_to(self, destination: Path) -> None:
        if not self._backend:
            raise CaptureError("No screen capture backend is available on this platform.")
        destination.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Capturing screen to %s via %s", destination, self.backend_name)
        await self._backend(destination)

    # ------------------------------------------------------------------
    # Backend selection helpers
    # ------------------------------------------------------------------

    def _select_backend(self) -> tuple[Optional[CaptureBackend], str]:
        if self._is_macos() and shutil.which(self.command):
            return self._capture_with_command, "command"
        if mss is not None and mss_tools is not None:
            return self._capture_with_mss, "mss"
        if ImageGrab is not None:
            return self._capture_with_pillow, "pillow"
        logger.warning("Screen capture backend is not available.")
        return None, "none"

    @staticmethod
    def _is_macos() -> bool:
        return sys.platform == "darwin"

    # ------------------------------------------------------------------
    # Concrete backend implementations
    # ------------------------------------------------------------------

    async def _capture_with_command(self, destination: Path) -> None:
        try:
            process = await asyncio.create_subprocess_exec(
                self.command,
                *SCREENCAPTURE_ARGS,
                str(destination),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise CaptureError(f"Failed to take screenshot: {exc}") from exc
        _, stderr = await process.communicate()
        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            if "permission" in message.lower() or "not authorized" in message.lower():
                raise PermissionDenied()
            raise CaptureError(
                f"Failed to take screenshot: {self.command} exited with {process.returncode}: {message}"
            )

    async def _capture_with_mss(self, destination: Path) -> None:
        await asyncio.to_thread(self._grab_mss, destination)

    def _grab_mss(self, destination: Path) -> None:
        assert mss is not None and mss_tools is not None  # for type checkers
        try:
            with mss.mss() as sct:
                monitors = sct.monitors
                index = min(max(self.monitor_index, 1), len(monitors) - 1)
                shot = sct.grab(monitors[index])
                mss_tools.to_png(shot.rgb, shot.size, output=str(destination))
        except mss.ScreenShotError as exc:
            raise CaptureError(f"Failed to take screenshot: {exc}") from exc

    async def _capture_with_pillow(self, destination: Path) -> None:
        await asyncio.to_thread(self._grab_pillow, destination)

    @staticmethod
    def _grab_pillow(destination: Path) -> None:
        assert ImageGrab is not None  # for type checkers
        try:
            image = ImageGrab.grab()  # type: ignore[attr-defined]
        except OSError as exc:
            raise CaptureError(f"Failed to take screenshot: {exc}") from exc
        image.save(destination, format="PNG")


async def wait_for_file(path: Path, *, timeout: float = 5.0, interval: float = 0.1) -> None:
    """Poll until ``path`` exists with non-zero size or ``timeout`` elapses."""

    deadline = time.monotonic() + timeout
    while True:
        try:
            if path.stat().st_size > 0:
                return
        except FileNotFoundError:
            pass
        if time.monotonic() >= deadline:
            raise CaptureTimeout(f"Screenshot file not found after {int(timeout * 1000)}ms: {path}")
        await asyncio.sleep(interval)
