"""OCR over captured screenshots.

Text extraction is advisory: :class:`TextExtractor` never raises, and any
engine failure (missing binary, missing language data, undecodable image,
timeout) comes back as an empty string.
"""

from __future__ import annotations

import asyncio
import io
import logging
import os
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

import numpy as np
import pytesseract
from PIL import Image, UnidentifiedImageError

from .config import OcrConfig
from .errors import OcrFailure

try:  # pragma: no cover - optional dependency
    import openvino as ov  # type: ignore
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    ov = None  # type: ignore

logger = logging.getLogger(__name__)

_MODEL_ZOO = (
    "https://storage.openvinotoolkit.org/repositories/open_model_zoo/2023.2/models_bin/1/"
    "text-recognition-0014/FP16/text-recognition-0014"
)
_DEFAULT_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ ,.:-_/\\()[]{}@#%&+*=;!?\"'"


class OcrEngine(Protocol):
    def recognize(self, image: Image.Image) -> str:
        ...


class TesseractEngine:
    """Full-page OCR through the tesseract binary."""

    def __init__(self, language: str = "eng", timeout: float = 15.0) -> None:
        self.language = language
        self.timeout = timeout

    def recognize(self, image: Image.Image) -> str:
        try:
            return pytesseract.image_to_string(image, lang=self.language, timeout=self.timeout)
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError, RuntimeError) as exc:
            # pytesseract signals timeouts with a bare RuntimeError
            raise OcrFailure(f"tesseract failed: {exc}") from exc


@dataclass(slots=True)
class OpenVinoOCRConfig:
    """Where the OpenVINO line-recognition model lives and how to decode it."""

    recognition_model: Path
    device: str = "CPU"
    alphabet: str = _DEFAULT_ALPHABET
    blank_id: int = 0

    @classmethod
    def from_env(cls) -> "OpenVinoOCRConfig":
        model_path = os.getenv("WINGMAN_OCR_RECOGNITION_MODEL")
        if model_path:
            recognition_model = Path(model_path).expanduser()
        else:
            root = Path(os.getenv("WINGMAN_MODEL_DIR", "~/.wingman/models")).expanduser()
            recognition_model = root / "ocr" / "text-recognition-0014.xml"
        return cls(
            recognition_model=recognition_model,
            device=os.getenv("WINGMAN_OCR_DEVICE", "CPU"),
            alphabet=os.getenv("WINGMAN_OCR_ALPHABET", _DEFAULT_ALPHABET),
            blank_id=int(os.getenv("WINGMAN_OCR_BLANK_ID", "0")),
        )


class OpenVinoEngine:
    """Single-line text recognizer compiled with OpenVINO.

    Suited to small snips containing one line of text; the whole image is
    resized to the network input and decoded with greedy CTC.
    """

    def __init__(self, config: OpenVinoOCRConfig) -> None:
        if ov is None:
            raise OcrFailure("OpenVINO runtime is not installed")
        _ensure_model_files(config.recognition_model)
        self._alphabet = config.alphabet
        self._blank_id = config.blank_id
        core = ov.Core()
        compiled = core.compile_model(core.read_model(str(config.recognition_model)), config.device)
        self._compiled = compiled
        self._input = compiled.input(0)
        self._output = compiled.output(0)
        shape = list(self._input.shape)
        if len(shape) != 4:
            raise OcrFailure(f"Unsupported recognition model input shape: {shape}")
        _, self._channels, self._height, self._width = (int(dim) for dim in shape)

    def recognize(self, image: Image.Image) -> str:
        tensor = self._to_tensor(image)
        logits = self._compiled({self._input: tensor})[self._output]
        return self._decode(np.asarray(logits))

    def _to_tensor(self, image: Image.Image) -> np.ndarray:
        mode = "L" if self._channels == 1 else "RGB"
        resized = image.convert(mode).resize((self._width, self._height))
        array = np.asarray(resized, dtype=np.float32) / 255.0
        if self._channels == 1:
            array = array[np.newaxis, :, :]
        else:
            array = np.transpose(array, (2, 0, 1))
        return array[np.newaxis, ...]

    def _decode(self, logits: np.ndarray) -> str:
        if logits.ndim == 3:
            token_ids = logits.argmax(axis=2)[0]
        elif logits.ndim == 2:
            token_ids = logits.argmax(axis=1)
        else:
            raise OcrFailure(f"Unsupported logits shape: {logits.shape}")
        chars: list[str] = []
        previous: Optional[int] = None
        for raw in token_ids:
            token = int(raw)
            if token == self._blank_id:
                previous = None
                continue
            if token != previous and 0 <= token < len(self._alphabet):
                chars.append(self._alphabet[token])
            previous = token
        return "".join(chars)


def _ensure_model_files(xml_path: Path) -> None:
    bin_path = xml_path.with_suffix(".bin")
    if xml_path.exists() and bin_path.exists():
        return
    try:
        for target, url in ((xml_path, _MODEL_ZOO + ".xml"), (bin_path, _MODEL_ZOO + ".bin")):
            if not target.exists():
                _download_file(url, target)
    except (OSError, OcrFailure) as exc:
        xml_path.unlink(missing_ok=True)
        bin_path.unlink(missing_ok=True)
        raise OcrFailure(f"Failed to download OpenVINO OCR model: {exc}") from exc


def _download_file(url: str, destination: Path) -> None:
    logger.info("Downloading OpenVINO OCR model from %s", url)
    with urllib.request.urlopen(url, timeout=60) as response:
        data = response.read()
    if not data:
        raise OcrFailure(f"Downloaded file is empty: {url}")
    if destination.suffix == ".xml" and not data.lstrip()[:5] == b"<?xml":
        raise OcrFailure("Downloaded model XML is not valid IR")
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(data)


class TextExtractor:
    """Turns image bytes into text, degrading every failure to ``""``."""

    def __init__(self, config: Optional[OcrConfig] = None, *, engine: Optional[OcrEngine] = None) -> None:
        self.config = config or OcrConfig()
        self._engine = engine
        self._engine_failed = False

    def _get_engine(self) -> Optional[OcrEngine]:
        if self._engine is not None or self._engine_failed:
            return self._engine
        try:
            if self.config.engine == "openvino":
                self._engine = OpenVinoEngine(OpenVinoOCRConfig.from_env())
            else:
                self._engine = TesseractEngine(self.config.language, self.config.timeout)
            logger.info("OCR engine ready: %s", self.config.engine)
        except Exception as exc:  # pragma: no cover - runtime safeguard
            logger.warning("OCR disabled: %s", exc)
            self._engine_failed = True
        return self._engine

    def extract_text(self, image_bytes: bytes) -> str:
        engine = self._get_engine()
        if engine is None:
            return ""
        logger.debug("Running OCR on %d bytes", len(image_bytes))
        try:
            with Image.open(io.BytesIO(image_bytes)) as image:
                image.load()
                text = engine.recognize(image)
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            logger.warning("OCR failed, image could not be decoded: %s", exc)
            return ""
        except OcrFailure as exc:
            logger.warning("OCR failed: %s", exc)
            return ""
        except Exception as exc:  # pragma: no cover - runtime safeguard
            logger.exception("Unexpected OCR failure: %s", exc)
            return ""
        text = text.strip()
        logger.info("OCR extracted %d characters", len(text))
        return text

    async def extract_text_async(self, image_bytes: bytes) -> str:
        return await asyncio.to_thread(self.extract_text, image_bytes)

    def extract_from_file(self, path: Path | str) -> str:
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            logger.warning("OCR skipped, cannot read %s: %s", path, exc)
            return ""
        return self.extract_text(data)
