"""Window visibility collaborator used around screen captures."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class WindowBounds:
    x: float
    y: float
    width: float
    height: float

    @property
    def offset(self) -> tuple[float, float]:
        return (self.x, self.y)


@runtime_checkable
class WindowSurface(Protocol):
    """The single on-screen surface that must stay out of captures."""

    def hide(self) -> None:
        ...

    def show(self) -> None:
        ...

    def get_bounds(self) -> WindowBounds:
        ...

    def scale_factor(self) -> float:
        ...


class HeadlessSurface:
    """Stand-in surface for command-line use where nothing is on screen.

    Tracks the hidden state so callers can assert on it, and reports a fixed
    bounds and scale factor.
    """

    def __init__(
        self,
        *,
        bounds: WindowBounds | None = None,
        scale: float = 1.0,
    ) -> None:
        self._bounds = bounds or WindowBounds(0, 0, 0, 0)
        self._scale = scale
        self.hidden = False

    def hide(self) -> None:
        self.hidden = True
        logger.debug("Surface hidden")

    def show(self) -> None:
        self.hidden = False
        logger.debug("Surface shown")

    def get_bounds(self) -> WindowBounds:
        return self._bounds

    def scale_factor(self) -> float:
        return self._scale
