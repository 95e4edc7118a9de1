"""Data models shared by the capture and dispatch pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional


class View(str, Enum):
    """Which capture queue a screenshot belongs to."""

    PRIMARY = "queue"
    SECONDARY = "solutions"


class ProviderKind(str, Enum):
    CLOUD = "gemini"
    LOCAL = "ollama"


@dataclass(slots=True, frozen=True)
class CaptureEntry:
    """A screenshot on disk owned by exactly one capture queue."""

    path: Path
    view: View


@dataclass(slots=True, frozen=True)
class RegionSelection:
    """User-drawn rectangle in window-local logical pixels."""

    x: float
    y: float
    width: float
    height: float


@dataclass(slots=True, frozen=True)
class Rect:
    """Crop rectangle in device pixels."""

    x: int
    y: int
    width: int
    height: int

    def as_box(self) -> tuple[int, int, int, int]:
        return (self.x, self.y, self.x + self.width, self.y + self.height)


@dataclass(slots=True, frozen=True)
class ProviderConfig:
    """Immutable snapshot of the active backend configuration.

    Switch operations build a new snapshot and swap it in whole, so a generate
    call never observes an endpoint from one configuration paired with the
    model name of another.
    """

    kind: Optional[ProviderKind] = None
    model_name: str = ""
    endpoint_url: str = ""
    client: Any = None

    @property
    def is_configured(self) -> bool:
        if self.kind is ProviderKind.LOCAL:
            return bool(self.endpoint_url and self.model_name)
        if self.kind is ProviderKind.CLOUD:
            return self.client is not None
        return False


@dataclass(slots=True, frozen=True)
class MediaPart:
    """Inline media sent alongside a prompt."""

    data: bytes
    mime_type: str

    @classmethod
    def from_file(cls, path: Path | str, mime_type: str = "image/png") -> "MediaPart":
        return cls(data=Path(path).read_bytes(), mime_type=mime_type)


@dataclass(slots=True, frozen=True)
class ChatMessage:
    role: str
    text: str

    @property
    def speaker(self) -> str:
        return "User" if self.role == "user" else "Assistant"


@dataclass(slots=True)
class ConnectionStatus:
    success: bool
    error: Optional[str] = None


@dataclass(slots=True)
class OperationResult:
    """Explicit outcome handed back to the presentation layer."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def failed(cls, exc: BaseException) -> "OperationResult":
        return cls(success=False, error=str(exc), error_kind=type(exc).__name__)

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success}
        if self.data is not None:
            payload["data"] = self.data
        if self.error is not None:
            payload["error"] = self.error
            payload["error_kind"] = self.error_kind
        return payload


ProblemContext = Dict[str, Any]


@dataclass(slots=True)
class CaptureResult:
    path: Path
    preview: str = ""
    text: str = ""

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"path": str(self.path), "preview": self.preview}
        if self.text:
            payload["text"] = self.text
        return payload
