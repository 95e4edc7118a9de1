"""Tests for OCR text extraction."""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest
import pytesseract

from wingman.config import OcrConfig
from wingman.errors import OcrFailure
from wingman.ocr import OpenVinoEngine, TesseractEngine, TextExtractor, _download_file, _ensure_model_files


class FakeEngine:
    def __init__(self, text="", error=None):
        self.text = text
        self.error = error
        self.sizes = []

    def recognize(self, image):
        self.sizes.append(image.size)
        if self.error:
            raise self.error
        return self.text


class TestTextExtractor:
    """Tests for TextExtractor."""

    def test_returns_stripped_text(self, png_bytes):
        engine = FakeEngine("  def solve():\n    pass\n\n")
        extractor = TextExtractor(engine=engine)

        assert extractor.extract_text(png_bytes) == "def solve():\n    pass"
        assert engine.sizes == [(40, 30)]

    def test_undecodable_bytes_give_empty_text(self):
        extractor = TextExtractor(engine=FakeEngine("never reached"))
        assert extractor.extract_text(b"not an image") == ""

    def test_engine_failure_gives_empty_text(self, png_bytes, caplog):
        extractor = TextExtractor(engine=FakeEngine(error=OcrFailure("no language data")))

        assert extractor.extract_text(png_bytes) == ""
        assert "no language data" in caplog.text

    def test_missing_openvino_runtime_disables_ocr(self, png_bytes):
        extractor = TextExtractor(OcrConfig(engine="openvino"))

        with patch("wingman.ocr.ov", None):
            assert extractor.extract_text(png_bytes) == ""
            assert extractor.extract_text(png_bytes) == ""

    def test_extract_from_missing_file(self, tmp_path):
        extractor = TextExtractor(engine=FakeEngine("text"))
        assert extractor.extract_from_file(tmp_path / "gone.png") == ""

    def test_extract_from_file(self, tmp_path, png_bytes):
        path = tmp_path / "capture.png"
        path.write_bytes(png_bytes)
        extractor = TextExtractor(engine=FakeEngine("hello\n"))
        assert extractor.extract_from_file(path) == "hello"

    @pytest.mark.asyncio
    async def test_async_extraction(self, png_bytes):
        extractor = TextExtractor(engine=FakeEngine("async text"))
        assert await extractor.extract_text_async(png_bytes) == "async text"


class TestTesseractEngine:
    """Tests for the tesseract adapter."""

    def test_passes_language_and_timeout(self, png_bytes):
        extractor = TextExtractor(OcrConfig(engine="tesseract", language="deu", timeout=3))

        with patch("wingman.ocr.pytesseract.image_to_string", return_value=" Hallo \n") as ocr:
            assert extractor.extract_text(png_bytes) == "Hallo"

        assert ocr.call_args.kwargs == {"lang": "deu", "timeout": 3}

    def test_timeout_maps_to_empty_text(self, png_bytes):
        extractor = TextExtractor(OcrConfig(engine="tesseract"))

        with patch("wingman.ocr.pytesseract.image_to_string", side_effect=RuntimeError("Tesseract process timeout")):
            assert extractor.extract_text(png_bytes) == ""

    def test_missing_binary_raises_ocr_failure(self):
        engine = TesseractEngine()
        with patch(
            "wingman.ocr.pytesseract.image_to_string",
            side_effect=pytesseract.TesseractNotFoundError(),
        ):
            with pytest.raises(OcrFailure):
                engine.recognize(object())


class TestCtcDecode:
    """Greedy CTC decoding used by the OpenVINO recognizer."""

    @staticmethod
    def _engine(alphabet="#abc"):
        engine = OpenVinoEngine.__new__(OpenVinoEngine)
        engine._alphabet = alphabet
        engine._blank_id = 0
        return engine

    @staticmethod
    def _logits(token_ids, classes=4):
        logits = np.zeros((len(token_ids), classes), dtype=np.float32)
        for step, token in enumerate(token_ids):
            logits[step, token] = 1.0
        return logits

    def test_collapses_repeats_and_drops_blanks(self):
        engine = self._engine()
        assert engine._decode(self._logits([1, 1, 0, 1, 2, 2, 3])) == "aabc"

    def test_batched_logits(self):
        engine = self._engine()
        logits = self._logits([3, 0, 2])[np.newaxis, ...]
        assert engine._decode(logits) == "cb"

    def test_rejects_unknown_shapes(self):
        with pytest.raises(OcrFailure):
            self._engine()._decode(np.zeros(4))


class TestModelDownload:
    """Fetching the OpenVINO recognition model on first use."""

    @staticmethod
    def _response(body):
        response = MagicMock()
        response.__enter__.return_value.read.return_value = body
        return response

    def test_existing_files_are_not_downloaded(self, tmp_path):
        xml_path = tmp_path / "model.xml"
        xml_path.write_text("<?xml version='1.0'?>")
        xml_path.with_suffix(".bin").write_bytes(b"weights")

        with patch("wingman.ocr._download_file") as download:
            _ensure_model_files(xml_path)

        download.assert_not_called()

    def test_failed_weights_download_removes_partial_model(self, tmp_path):
        xml_path = tmp_path / "ocr" / "model.xml"
        bin_path = xml_path.with_suffix(".bin")

        def fetch(url, destination):
            if destination.suffix == ".bin":
                raise OSError("connection reset")
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_text("<?xml version='1.0'?>")

        with patch("wingman.ocr._download_file", side_effect=fetch):
            with pytest.raises(OcrFailure, match="connection reset"):
                _ensure_model_files(xml_path)

        assert not xml_path.exists()
        assert not bin_path.exists()

    def test_html_instead_of_ir_is_rejected(self, tmp_path):
        destination = tmp_path / "model.xml"

        with patch("wingman.ocr.urllib.request.urlopen", return_value=self._response(b"<html>Not Found</html>")):
            with pytest.raises(OcrFailure, match="not valid IR"):
                _download_file("https://example.invalid/model.xml", destination)

        assert not destination.exists()

    def test_empty_download_is_rejected(self, tmp_path):
        with patch("wingman.ocr.urllib.request.urlopen", return_value=self._response(b"")):
            with pytest.raises(OcrFailure, match="empty"):
                _download_file("https://example.invalid/model.bin", tmp_path / "model.bin")

    def test_weights_are_written(self, tmp_path):
        destination = tmp_path / "nested" / "model.bin"

        with patch("wingman.ocr.urllib.request.urlopen", return_value=self._response(b"\x00\x01")):
            _download_file("https://example.invalid/model.bin", destination)

        assert destination.read_bytes() == b"\x00\x01"
