"""Wingman core package: screen capture, OCR and model dispatch."""

from .capture_queue import MAX_CAPTURES, CaptureQueue, CaptureStore
from .capture_service import CaptureService
from .models import (
    CaptureEntry,
    ChatMessage,
    ConnectionStatus,
    MediaPart,
    OperationResult,
    ProviderConfig,
    ProviderKind,
    Rect,
    RegionSelection,
    View,
)
from .ocr import TextExtractor
from .orchestrator import Orchestrator
from .providers import CloudProvider, LocalProvider, ModelProvider
from .region import to_device_pixels
from .utils import clean_json_response, parse_json_response
from .window import HeadlessSurface, WindowBounds, WindowSurface

__all__ = [
    "Orchestrator",
    "CaptureService",
    "CaptureQueue",
    "CaptureStore",
    "MAX_CAPTURES",
    "TextExtractor",
    "ModelProvider",
    "CloudProvider",
    "LocalProvider",
    "to_device_pixels",
    "clean_json_response",
    "parse_json_response",
    "HeadlessSurface",
    "WindowBounds",
    "WindowSurface",
    "CaptureEntry",
    "ChatMessage",
    "ConnectionStatus",
    "MediaPart",
    "OperationResult",
    "ProviderConfig",
    "ProviderKind",
    "Rect",
    "RegionSelection",
    "View",
]
