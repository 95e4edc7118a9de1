"""Bounded, disk-backed capture queues."""

from __future__ import annotations

import logging
import threading
from collections import deque
from pathlib import Path
from typing import Deque, Iterator, List

from .errors import QueueIOError
from .models import CaptureEntry, View
from .utils import to_data_url

logger = logging.getLogger(__name__)

MAX_CAPTURES = 5


def _delete_file(path: Path) -> None:
    """Remove a capture file, logging instead of raising on failure."""

    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        error = QueueIOError(f"Failed to delete {path}: {exc}")
        logger.error("%s", error)


class CaptureQueue:
    """Keeps the most recent captures for one view, oldest first.

    Pushing past capacity evicts the oldest entry and deletes its file before
    the new entry becomes visible, so readers never see more than ``capacity``
    entries.
    """

    def __init__(self, view: View, *, capacity: int = MAX_CAPTURES) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.view = view
        self.capacity = capacity
        self._entries: Deque[CaptureEntry] = deque()
        self._lock = threading.Lock()

    def push(self, entry: CaptureEntry) -> List[CaptureEntry]:
        """Append ``entry`` and return whatever was evicted to make room."""

        evicted: List[CaptureEntry] = []
        with self._lock:
            while len(self._entries) >= self.capacity:
                oldest = self._entries.popleft()
                _delete_file(oldest.path)
                evicted.append(oldest)
            self._entries.append(entry)
        for old in evicted:
            logger.debug("Evicted %s from %s queue", old.path, self.view.name.lower())
        return evicted

    def list(self) -> List[Path]:
        with self._lock:
            return [entry.path for entry in self._entries]

    def remove(self, path: Path | str) -> bool:
        """Delete ``path`` and drop it from the queue; absent paths are a no-op."""

        target = Path(path)
        with self._lock:
            _delete_file(target)
            before = len(self._entries)
            self._entries = deque(entry for entry in self._entries if entry.path != target)
            return len(self._entries) != before

    def clear(self) -> None:
        with self._lock:
            entries = list(self._entries)
            self._entries.clear()
            for entry in entries:
                _delete_file(entry.path)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        target = Path(path)
        with self._lock:
            return any(entry.path == target for entry in self._entries)

    def __iter__(self) -> Iterator[Path]:
        return iter(self.list())


class CaptureStore:
    """Owns the primary and secondary queues and their directories."""

    def __init__(
        self,
        screenshot_dir: Path | str,
        extra_screenshot_dir: Path | str,
        *,
        capacity: int = MAX_CAPTURES,
    ) -> None:
        self._dirs = {
            View.PRIMARY: Path(screenshot_dir),
            View.SECONDARY: Path(extra_screenshot_dir),
        }
        for directory in self._dirs.values():
            directory.mkdir(parents=True, exist_ok=True)
        self._queues = {view: CaptureQueue(view, capacity=capacity) for view in View}

    def queue(self, view: View) -> CaptureQueue:
        return self._queues[view]

    def directory(self, view: View) -> Path:
        return self._dirs[view]

    def add(self, path: Path | str, view: View) -> CaptureEntry:
        entry = CaptureEntry(path=Path(path), view=view)
        for other in View:
            if other is not view and entry.path in self._queues[other]:
                raise ValueError(f"{entry.path} is already queued in the {other.name.lower()} view")
        self._queues[view].push(entry)
        return entry

    def remove(self, path: Path | str) -> None:
        """Delete the file and drop it from whichever queue holds it."""

        for queue in self._queues.values():
            queue.remove(path)
        logger.debug("Removed capture %s", path)

    def clear(self) -> None:
        """Empty both queues and sweep stray files left in their directories."""

        for queue in self._queues.values():
            queue.clear()
        for directory in self._dirs.values():
            if not directory.exists():
                continue
            for child in directory.iterdir():
                if child.is_file():
                    _delete_file(child)

    @staticmethod
    def preview(path: Path | str) -> str:
        return to_data_url(Path(path).read_bytes(), "image/png")
