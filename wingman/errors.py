"""Exception hierarchy for capture and dispatch failures."""

from __future__ import annotations


class WingmanError(Exception):
    """Base class for errors surfaced to the presentation layer."""


class CaptureError(WingmanError):
    """Screen capture failed for a reason other than permissions or timeout."""


class PermissionDenied(CaptureError):
    """The OS blocked the capture command (screen recording privacy setting)."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "Permission denied. Please allow Screen Recording for this application in System Settings."
        )


class CaptureTimeout(CaptureError):
    """The capture command returned but the output file never materialized."""


class OcrFailure(WingmanError):
    """Raised inside OCR engines; never escapes the text extractor."""


class QueueIOError(WingmanError):
    """Deleting a queued capture file failed; logged, never propagated."""


class ProviderError(WingmanError):
    """Base class for model provider failures."""


class ProviderUnavailable(ProviderError):
    """No backend is configured."""


class MissingCredential(ProviderError):
    """Switching to the cloud backend without an API key."""


class CapabilityUnsupported(ProviderError):
    """The active backend cannot handle the requested media."""


class BackendError(ProviderError):
    """Transport, HTTP or SDK failure while talking to a backend."""


class ResponseFormatError(BackendError):
    """The backend answered, but not with parseable structured output."""


class RequestCancelled(WingmanError):
    """An in-flight dispatch was aborted by a reset."""
