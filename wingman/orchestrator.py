"""End-to-end orchestration for Wingman."""

from __future__ import annotations

import asyncio
import base64
import logging
from pathlib import Path
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Sequence, Set

from . import prompts
from .capture_queue import CaptureStore
from .capture_service import CaptureService
from .config import CaptureConfig, OcrConfig, ProviderSettings
from .errors import CapabilityUnsupported, RequestCancelled, ResponseFormatError, WingmanError
from .models import (
    CaptureResult,
    ChatMessage,
    ConnectionStatus,
    MediaPart,
    OperationResult,
    ProblemContext,
    RegionSelection,
    View,
)
from .ocr import TextExtractor
from .providers import ModelProvider
from .region import crop_to_region, image_size, to_device_pixels
from .utils import parse_json_response, timestamp_ms, to_data_url
from .window import HeadlessSurface, WindowSurface

logger = logging.getLogger(__name__)

NO_SCREENSHOTS = "No screenshots to process"
NO_EXTRA_SCREENSHOTS = "No extra screenshots to process"


class Orchestrator:
    """Coordinates capture, OCR and model dispatch for the presentation layer.

    Every public coroutine returns an :class:`OperationResult`; failures in
    the pipeline come back as ``success=False`` with a readable message
    rather than escaping as exceptions.
    """

    def __init__(
        self,
        *,
        provider: ModelProvider,
        capture_service: CaptureService,
        extractor: Optional[TextExtractor] = None,
        snip_settle_delay: float = 0.2,
    ) -> None:
        self.provider = provider
        self.capture_service = capture_service
        self.extractor = extractor or TextExtractor()
        self.snip_settle_delay = snip_settle_delay
        self.problem: Optional[ProblemContext] = None
        self.solution: Optional[Dict[str, Any]] = None
        self._inflight: Set[asyncio.Task] = set()

    @classmethod
    def from_env(cls, surface: Optional[WindowSurface] = None) -> "Orchestrator":
        capture_config = CaptureConfig.from_env()
        service = CaptureService.from_config(capture_config, surface or HeadlessSurface())
        return cls(
            provider=ModelProvider(ProviderSettings.from_env()),
            capture_service=service,
            extractor=TextExtractor(OcrConfig.from_env()),
            snip_settle_delay=capture_config.snip_settle_delay,
        )

    @property
    def store(self) -> CaptureStore:
        return self.capture_service.store

    @property
    def view(self) -> View:
        return self.capture_service.view

    def set_view(self, view: View) -> None:
        self.capture_service.set_view(view)

    async def start(self) -> None:
        await self.provider.start()

    async def close(self) -> None:
        self.cancel_ongoing_requests()
        await self.provider.close()

    # ------------------------------------------------------------------
    # Dispatch plumbing
    # ------------------------------------------------------------------

    async def _dispatch(self, call: Awaitable[Any]) -> Any:
        """Run ``call`` as a task that :meth:`reset` can cancel.

        Whole model flows go through here as well as the individual provider
        calls inside them, so a reset arriving between steps (while media is
        still being read, say) stops the flow before it writes any state.
        """

        task = asyncio.ensure_future(call)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task.cancelled():
            raise RequestCancelled("Request cancelled")
        return task.result()

    def cancel_ongoing_requests(self) -> int:
        pending = [task for task in self._inflight if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            logger.info("Cancelled %d in-flight request(s)", len(pending))
        return len(pending)

    def _require_media_support(self, what: str) -> None:
        if self.provider.is_local:
            raise CapabilityUnsupported(f"{what} requires Gemini; the local Ollama provider only handles text.")

    @staticmethod
    async def _guard(work: Awaitable[Any]) -> OperationResult:
        try:
            return OperationResult.ok(await work)
        except (WingmanError, OSError, ValueError) as exc:
            logger.error("%s: %s", type(exc).__name__, exc)
            return OperationResult.failed(exc)

    async def _guard_flow(self, work: Awaitable[Any]) -> OperationResult:
        return await self._guard(self._dispatch(work))

    @staticmethod
    async def _read_parts(paths: Iterable[Path | str], mime_type: str = "image/png") -> List[MediaPart]:
        return [await asyncio.to_thread(MediaPart.from_file, path, mime_type) for path in paths]

    # ------------------------------------------------------------------
    # Captures
    # ------------------------------------------------------------------

    async def take_capture(self, view: Optional[View] = None) -> OperationResult:
        async def run() -> Dict[str, Any]:
            path = await self.capture_service.capture(view)
            return CaptureResult(path=path, preview=self.store.preview(path)).as_dict()

        return await self._guard(run())

    async def capture_and_extract(self) -> OperationResult:
        """Capture the screen and OCR the whole image."""

        async def run() -> Dict[str, Any]:
            path = await self.capture_service.capture()
            data = await asyncio.to_thread(path.read_bytes)
            text = await self.extractor.extract_text_async(data)
            return CaptureResult(path=path, text=text).as_dict()

        return await self._guard(run())

    async def snip(self, selection: RegionSelection) -> OperationResult:
        """Capture with the surface hidden, crop to ``selection`` and OCR it."""

        async def run() -> Dict[str, Any]:
            surface = self.capture_service.surface
            bounds = surface.get_bounds()
            async with self.capture_service.hidden(self.snip_settle_delay):
                path = await self.capture_service.capture_for_region()
            size = await asyncio.to_thread(image_size, path)
            rect = to_device_pixels(selection, bounds.offset, surface.scale_factor(), size)
            data = await asyncio.to_thread(crop_to_region, path, rect)
            text = await self.extractor.extract_text_async(data)
            return CaptureResult(path=path, preview=to_data_url(data), text=text).as_dict()

        return await self._guard(run())

    def list_captures(self, view: Optional[View] = None) -> List[Dict[str, str]]:
        captures: List[Dict[str, str]] = []
        for path in self.store.queue(view or self.view).list():
            try:
                captures.append({"path": str(path), "preview": self.store.preview(path)})
            except OSError as exc:
                logger.warning("Skipping unreadable capture %s: %s", path, exc)
        return captures

    def delete_capture(self, path: Path | str) -> OperationResult:
        self.store.remove(path)
        return OperationResult.ok()

    def reset(self) -> OperationResult:
        """Abort in-flight requests, drop all captures and return to the primary view."""

        self.cancel_ongoing_requests()
        self.store.clear()
        self.problem = None
        self.solution = None
        self.set_view(View.PRIMARY)
        return OperationResult.ok()

    # ------------------------------------------------------------------
    # Model flows
    # ------------------------------------------------------------------

    @staticmethod
    def _as_problem(payload: Any) -> ProblemContext:
        if not isinstance(payload, dict):
            raise ResponseFormatError(
                f"Expected a JSON object describing the problem, got {type(payload).__name__}"
            )
        return payload

    @staticmethod
    def _as_solution(payload: Any) -> Dict[str, Any]:
        if not isinstance(payload, dict) or not isinstance(payload.get("solution"), dict):
            raise ResponseFormatError('Expected a JSON object of the form {"solution": {...}}')
        return payload

    @staticmethod
    def _current_code(solution: Optional[Dict[str, Any]]) -> str:
        code = (solution or {}).get("solution", {}).get("code")
        return code if isinstance(code, str) else ""

    async def _extract_problem(self, paths: Sequence[Path | str]) -> ProblemContext:
        self._require_media_support("Image extraction")
        parts = await self._read_parts(paths)
        text = await self._dispatch(self.provider.generate_multimodal(prompts.extract_problem_prompt(), parts))
        return self._as_problem(parse_json_response(text))

    async def _generate_solution(self, problem: ProblemContext) -> Dict[str, Any]:
        text = await self._dispatch(self.provider.generate_text(prompts.solution_prompt(problem)))
        return self._as_solution(parse_json_response(text))

    async def _debug_solution(
        self, problem: ProblemContext, current_code: str, paths: Sequence[Path | str]
    ) -> Dict[str, Any]:
        self._require_media_support("Visual debugging")
        parts = await self._read_parts(paths)
        prompt = prompts.debug_prompt(problem, current_code)
        text = await self._dispatch(self.provider.generate_multimodal(prompt, parts))
        return self._as_solution(parse_json_response(text))

    async def extract_problem(self, paths: Sequence[Path | str]) -> OperationResult:
        return await self._guard_flow(self._extract_problem(paths))

    async def generate_solution(self, problem: ProblemContext) -> OperationResult:
        return await self._guard_flow(self._generate_solution(problem))

    async def debug_solution(
        self, problem: ProblemContext, current_code: str, paths: Sequence[Path | str]
    ) -> OperationResult:
        return await self._guard_flow(self._debug_solution(problem, current_code, paths))

    async def process_captures(self) -> OperationResult:
        """Solve from the primary queue, or debug using the secondary queue."""

        async def run() -> Dict[str, Any]:
            if self.view is View.PRIMARY:
                paths = self.store.queue(View.PRIMARY).list()
                if not paths:
                    raise WingmanError(NO_SCREENSHOTS)
                problem = await self._extract_problem(paths)
                solution = await self._generate_solution(problem)
                self.problem, self.solution = problem, solution
                self.set_view(View.SECONDARY)
                return {"problem": problem, "solution": solution}
            paths = self.store.queue(View.SECONDARY).list()
            if not paths:
                raise WingmanError(NO_EXTRA_SCREENSHOTS)
            if self.problem is None:
                raise WingmanError("No problem has been extracted yet")
            debugged = await self._debug_solution(self.problem, self._current_code(self.solution), paths)
            self.solution = debugged
            return {"problem": self.problem, "solution": debugged}

        return await self._guard_flow(run())

    async def analyze_image(self, path: Path | str) -> OperationResult:
        async def run() -> Dict[str, Any]:
            self._require_media_support("Image analysis")
            parts = await self._read_parts([path])
            text = await self._dispatch(self.provider.generate_multimodal(prompts.image_analysis_prompt(), parts))
            return {"text": text, "timestamp": timestamp_ms()}

        return await self._guard_flow(run())

    async def analyze_audio(self, path: Path | str, mime_type: str = "audio/mp3") -> OperationResult:
        async def run() -> Dict[str, Any]:
            self._require_media_support("Audio analysis")
            parts = await self._read_parts([path], mime_type)
            return await self._describe_audio(parts)

        return await self._guard_flow(run())

    async def analyze_audio_base64(self, data: str, mime_type: str) -> OperationResult:
        async def run() -> Dict[str, Any]:
            self._require_media_support("Audio analysis")
            try:
                raw = base64.b64decode(data, validate=True)
            except ValueError as exc:
                raise ValueError(f"Audio payload is not valid base64: {exc}") from exc
            return await self._describe_audio([MediaPart(data=raw, mime_type=mime_type)])

        return await self._guard_flow(run())

    async def _describe_audio(self, parts: List[MediaPart]) -> Dict[str, Any]:
        text = await self._dispatch(self.provider.generate_multimodal(prompts.audio_analysis_prompt(), parts))
        return {"text": text, "timestamp": timestamp_ms()}

    async def chat(self, message: str, history: Optional[Iterable[ChatMessage]] = None) -> OperationResult:
        async def run() -> str:
            return await self._dispatch(self.provider.generate_text(prompts.chat_prompt(message, history)))

        return await self._guard_flow(run())

    # ------------------------------------------------------------------
    # Provider settings
    # ------------------------------------------------------------------

    def llm_config(self) -> Dict[str, Any]:
        return {
            "provider": self.provider.current_provider(),
            "model": self.provider.current_model(),
            "is_ollama": self.provider.is_local,
        }

    async def available_models(self) -> List[str]:
        return await self.provider.list_models()

    async def switch_to_local(self, model: Optional[str] = None, endpoint_url: Optional[str] = None) -> OperationResult:
        async def run() -> Dict[str, Any]:
            await self.provider.switch_to_local(model, endpoint_url)
            return self.llm_config()

        return await self._guard(run())

    async def switch_to_cloud(self, api_key: Optional[str] = None) -> OperationResult:
        async def run() -> Dict[str, Any]:
            await self.provider.switch_to_cloud(api_key)
            return self.llm_config()

        return await self._guard(run())

    async def test_connection(self) -> ConnectionStatus:
        return await self.provider.test_connection()
