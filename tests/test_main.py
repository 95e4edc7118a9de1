"""Tests for the command-line front end."""

import json

from main import build_parser, emit
from wingman.models import OperationResult


def test_snip_arguments():
    args = build_parser().parse_args(["--ollama", "snip", "10", "20", "100", "50", "--scale", "2"])

    assert args.ollama is True
    assert (args.x, args.y, args.width, args.height) == (10.0, 20.0, 100.0, 50.0)
    assert args.scale == 2.0


def test_emit_drops_previews(capsys):
    code = emit(OperationResult.ok({"path": "/tmp/a.png", "preview": "data:image/png;base64,AAAA", "text": "hi"}))

    assert code == 0
    assert json.loads(capsys.readouterr().out) == {"path": "/tmp/a.png", "text": "hi"}


def test_emit_reports_errors(capsys):
    code = emit(OperationResult(success=False, error="No LLM provider configured", error_kind="ProviderUnavailable"))

    assert code == 1
    assert "ProviderUnavailable" in capsys.readouterr().err
