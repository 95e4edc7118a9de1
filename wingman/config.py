"""Environment-driven configuration for Wingman."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "llama3.2"
DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    return float(raw)


def default_data_dir() -> Path:
    return Path(os.getenv("WINGMAN_DATA_DIR", "~/.wingman")).expanduser()


@dataclass(slots=True)
class CaptureConfig:
    """Where captures land and how long the capture choreography waits."""

    data_dir: Path = field(default_factory=default_data_dir)
    settle_delay: float = 0.3
    snip_settle_delay: float = 0.2
    file_timeout: float = 5.0
    poll_interval: float = 0.1

    @classmethod
    def from_env(cls) -> "CaptureConfig":
        return cls(
            data_dir=default_data_dir(),
            settle_delay=_env_float("WINGMAN_SETTLE_DELAY", 0.3),
            snip_settle_delay=_env_float("WINGMAN_SNIP_SETTLE_DELAY", 0.2),
            file_timeout=_env_float("WINGMAN_CAPTURE_TIMEOUT", 5.0),
        )

    @property
    def screenshot_dir(self) -> Path:
        return self.data_dir / "screenshots"

    @property
    def extra_screenshot_dir(self) -> Path:
        return self.data_dir / "extra_screenshots"


@dataclass(slots=True)
class OcrConfig:
    engine: str = "tesseract"
    language: str = "eng"
    timeout: float = 15.0

    @classmethod
    def from_env(cls) -> "OcrConfig":
        return cls(
            engine=os.getenv("WINGMAN_OCR_ENGINE", "tesseract").strip().lower(),
            language=os.getenv("WINGMAN_OCR_LANG", "eng"),
            timeout=_env_float("WINGMAN_OCR_TIMEOUT", 15.0),
        )


@dataclass(slots=True)
class ProviderSettings:
    """Initial backend selection and network timeouts."""

    api_key: Optional[str] = None
    use_ollama: bool = False
    ollama_model: str = DEFAULT_OLLAMA_MODEL
    ollama_url: str = DEFAULT_OLLAMA_URL
    gemini_model: str = DEFAULT_GEMINI_MODEL
    probe_timeout: float = 2.0
    request_timeout: float = 120.0
    temperature: float = 0.7
    top_p: float = 0.9

    @classmethod
    def from_env(cls) -> "ProviderSettings":
        return cls(
            api_key=os.getenv("WINGMAN_GEMINI_API_KEY") or os.getenv("GEMINI_API_KEY"),
            use_ollama=_env_flag("WINGMAN_USE_OLLAMA"),
            ollama_model=os.getenv("WINGMAN_OLLAMA_MODEL", DEFAULT_OLLAMA_MODEL),
            ollama_url=os.getenv("WINGMAN_OLLAMA_URL", DEFAULT_OLLAMA_URL),
            probe_timeout=_env_float("WINGMAN_PROBE_TIMEOUT", 2.0),
            request_timeout=_env_float("WINGMAN_REQUEST_TIMEOUT", 120.0),
        )
