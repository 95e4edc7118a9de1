"""Utilities supporting Wingman modules."""

from __future__ import annotations

import base64
import json
import re
import time
import uuid
from typing import Any

from .errors import ResponseFormatError

_LEADING_FENCE = re.compile(r"^\s*```[\w+-]*[ \t]*\r?\n")
_TRAILING_FENCE = re.compile(r"\r?\n?```\s*$")


def generate_capture_name(suffix: str = "png") -> str:
    """Return a collision-free file name for a new capture."""

    return f"{uuid.uuid4()}.{suffix}"


def timestamp_ms() -> int:
    """Return current UTC timestamp in milliseconds."""

    return int(time.time() * 1000)


def to_data_url(data: bytes, mime_type: str = "image/png") -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def clean_json_response(text: str) -> str:
    """Strip a single wrapping code fence and surrounding whitespace.

    Backends are asked for bare JSON but sometimes wrap it in a fenced block,
    optionally tagged with a language. Only one leading and one trailing fence
    are removed; anything else is left for the JSON parser to judge.
    """

    text = _LEADING_FENCE.sub("", text, count=1)
    text = _TRAILING_FENCE.sub("", text, count=1)
    return text.strip()


def parse_json_response(text: str) -> Any:
    """Clean and decode a structured backend answer."""

    cleaned = clean_json_response(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        preview = cleaned if len(cleaned) <= 120 else cleaned[:117] + "..."
        raise ResponseFormatError(f"Model returned invalid JSON ({exc.msg}): {preview}") from exc
