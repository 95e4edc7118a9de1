"""Wingman command-line front end for the capture and dispatch pipeline."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Optional

from wingman.capture_service import CaptureService
from wingman.config import CaptureConfig, OcrConfig, ProviderSettings
from wingman.models import OperationResult, RegionSelection, View
from wingman.ocr import TextExtractor
from wingman.orchestrator import Orchestrator
from wingman.providers import ModelProvider
from wingman.window import HeadlessSurface

logger = logging.getLogger(__name__)


def build_orchestrator(args: argparse.Namespace) -> Orchestrator:
    settings = ProviderSettings.from_env()
    if args.api_key:
        settings.api_key = args.api_key
    capture_config = CaptureConfig.from_env()
    surface = HeadlessSurface(scale=getattr(args, "scale", 1.0))
    return Orchestrator(
        provider=ModelProvider(settings),
        capture_service=CaptureService.from_config(capture_config, surface),
        extractor=TextExtractor(OcrConfig.from_env()),
        snip_settle_delay=capture_config.snip_settle_delay,
    )


def _printable(data: Any) -> Any:
    if isinstance(data, dict):
        return {key: _printable(value) for key, value in data.items() if key != "preview"}
    if isinstance(data, list):
        return [_printable(item) for item in data]
    return data


def emit(result: OperationResult) -> int:
    if not result.success:
        sys.stderr.write(f"error ({result.error_kind}): {result.error}\n")
        return 1
    data = _printable(result.data)
    if isinstance(data, str):
        print(data)
    elif data is not None:
        print(json.dumps(data, indent=2, ensure_ascii=False))
    return 0


async def configure_provider(orchestrator: Orchestrator, args: argparse.Namespace) -> Optional[OperationResult]:
    if args.ollama:
        result = await orchestrator.switch_to_local(args.model, args.ollama_url)
        return None if result.success else result
    await orchestrator.start()
    return None


async def run_command(args: argparse.Namespace) -> int:
    orchestrator = build_orchestrator(args)
    try:
        failure = await configure_provider(orchestrator, args)
        if failure is not None:
            return emit(failure)
        if args.command == "capture":
            view = View.SECONDARY if args.secondary else View.PRIMARY
            return emit(await orchestrator.take_capture(view))
        if args.command == "ocr":
            return emit(await orchestrator.capture_and_extract())
        if args.command == "snip":
            selection = RegionSelection(x=args.x, y=args.y, width=args.width, height=args.height)
            return emit(await orchestrator.snip(selection))
        if args.command == "ask":
            return emit(await orchestrator.chat(" ".join(args.message)))
        if args.command == "analyze":
            return emit(await orchestrator.analyze_image(args.image))
        if args.command == "solve":
            extracted = await orchestrator.extract_problem(args.images)
            if not extracted.success:
                return emit(extracted)
            return emit(await orchestrator.generate_solution(extracted.data))
        if args.command == "models":
            for name in await orchestrator.available_models():
                print(name)
            return 0
        if args.command == "test":
            status = await orchestrator.test_connection()
            print(json.dumps({"success": status.success, "error": status.error}, indent=2))
            return 0 if status.success else 1
        raise ValueError(f"Unknown command: {args.command}")
    finally:
        await orchestrator.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Wingman screen capture assistant")
    parser.add_argument("--ollama", action="store_true", help="Use the local Ollama daemon instead of Gemini")
    parser.add_argument("--model", help="Ollama model name; auto-selected when omitted")
    parser.add_argument("--ollama-url", help="Ollama endpoint, e.g. http://localhost:11434")
    parser.add_argument("--api-key", help="Gemini API key (defaults to WINGMAN_GEMINI_API_KEY)")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    sub = parser.add_subparsers(dest="command", required=True)

    capture = sub.add_parser("capture", help="Capture the primary display")
    capture.add_argument("--secondary", action="store_true", help="File the capture in the secondary queue")

    sub.add_parser("ocr", help="Capture the screen and print the recognized text")

    snip = sub.add_parser("snip", help="Capture, crop to a region and OCR it")
    for name in ("x", "y", "width", "height"):
        snip.add_argument(name, type=float)
    snip.add_argument("--scale", type=float, default=1.0, help="Display device pixel ratio")

    ask = sub.add_parser("ask", help="Send a chat message")
    ask.add_argument("message", nargs="+")

    analyze = sub.add_parser("analyze", help="Describe a screenshot (Gemini only)")
    analyze.add_argument("image")

    solve = sub.add_parser("solve", help="Extract a problem from screenshots and solve it")
    solve.add_argument("images", nargs="+")

    sub.add_parser("models", help="List models on the active provider")
    sub.add_parser("test", help="Check connectivity to the active provider")
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        code = asyncio.run(run_command(args))
    except KeyboardInterrupt:
        print("\nCancelled.")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
