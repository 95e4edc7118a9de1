"""Capture choreography: hide the surface, grab the screen, queue the file."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Optional

from .capture_queue import CaptureStore
from .config import CaptureConfig
from .errors import CaptureError
from .models import View
from .screen_capture import ScreenCapturer, wait_for_file
from .utils import generate_capture_name
from .window import WindowSurface

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


class CaptureService:
    """Takes full-screen captures one at a time and files them by view.

    The surface's hidden state is global, so every capture holds a single
    gate for the whole hide, capture, restore sequence. Concurrent callers
    wait their turn. The gate is re-entrant for the task that holds it, which
    lets :meth:`capture_for_region` run inside :meth:`hidden`.
    """

    def __init__(
        self,
        store: CaptureStore,
        surface: WindowSurface,
        *,
        capturer: Optional[ScreenCapturer] = None,
        settle_delay: float = 0.3,
        file_timeout: float = 5.0,
        poll_interval: float = 0.1,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.store = store
        self.surface = surface
        self.capturer = capturer or ScreenCapturer()
        self.settle_delay = settle_delay
        self.file_timeout = file_timeout
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._owner: Optional[asyncio.Task] = None
        self._view = View.PRIMARY

    @classmethod
    def from_config(
        cls,
        config: CaptureConfig,
        surface: WindowSurface,
        *,
        capturer: Optional[ScreenCapturer] = None,
    ) -> "CaptureService":
        store = CaptureStore(config.screenshot_dir, config.extra_screenshot_dir)
        return cls(
            store,
            surface,
            capturer=capturer,
            settle_delay=config.settle_delay,
            file_timeout=config.file_timeout,
            poll_interval=config.poll_interval,
        )

    @property
    def view(self) -> View:
        return self._view

    def set_view(self, view: View) -> None:
        self._view = view

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def capture(self, view: Optional[View] = None) -> Path:
        """Hide the surface, capture the primary display and queue the file."""

        async with self.hidden():
            return await self._capture_into(view or self._view)

    async def capture_for_region(self, view: Optional[View] = None) -> Path:
        """Capture without touching visibility; the caller arranged it."""

        async with self._exclusive():
            return await self._capture_into(view or self._view)

    @asynccontextmanager
    async def hidden(self, settle_delay: Optional[float] = None) -> AsyncIterator[None]:
        """Hold the capture gate with the surface hidden; always restores it."""

        delay = self.settle_delay if settle_delay is None else settle_delay
        async with self._exclusive():
            try:
                self.surface.hide()
                if delay > 0:
                    await self._sleep(delay)
                yield
            finally:
                self.surface.show()

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        current = asyncio.current_task()
        if current is not None and self._owner is current:
            yield
            return
        async with self._lock:
            self._owner = current
            try:
                yield
            finally:
                self._owner = None

    async def _capture_into(self, view: View) -> Path:
        path = self.store.directory(view) / generate_capture_name("png")
        logger.info("Taking screenshot to: %s", path)
        try:
            await self.capturer.capture_to(path)
            await wait_for_file(path, timeout=self.file_timeout, interval=self.poll_interval)
        except CaptureError:
            self._discard(path)
            raise
        except OSError as exc:
            self._discard(path)
            raise CaptureError(f"Failed to take screenshot: {exc}") from exc
        self.store.add(path, view)
        return path

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.debug("Could not remove partial capture %s: %s", path, exc)
