"""Tests for script loading and run artifact storage."""
from __future__ import annotations

import base64
import json

import pytest

from sandbox_executor.loader import load_script, write_run_artifacts
from sandbox_executor.models import ExecutionResult, TraceData, TraceStep
from script_compiler.errors import SchemaValidationError
from script_compiler.models import GotoAction

SCRIPT = {"version": "1.0.0", "actions": [{"type": "goto", "url": "https://example.com"}]}


def _step(index, action, screenshot):
    return TraceStep(index=index, action=action, details="", timestamp=0, screenshot=screenshot, url="")


def test_load_script_reads_plain_script(tmp_path):
    path = tmp_path / "script.json"
    path.write_text(json.dumps(SCRIPT), encoding="utf-8")

    assert load_script(path).actions == [GotoAction("https://example.com")]


def test_load_script_accepts_generation_reply(tmp_path):
    path = tmp_path / "reply.json"
    path.write_text(json.dumps({"message": "hi", "script": SCRIPT}), encoding="utf-8")

    assert load_script(str(path)).version == "1.0.0"


def test_load_script_rejects_invalid_file(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"version": "1.0.0", "actions": [{"type": "scroll"}]}), encoding="utf-8")

    with pytest.raises(SchemaValidationError):
        load_script(path)


def test_load_script_rejects_unknown_source_type():
    with pytest.raises(TypeError):
        load_script(42)


def test_write_run_artifacts_stores_result_and_screenshots(tmp_path):
    image = b"\xff\xd8\xffjpeg"
    trace = TraceData(
        start_time=0,
        end_time=10,
        duration=10,
        success=False,
        error="Timeout",
        steps=[
            _step(0, "goto", base64.b64encode(image).decode("ascii")),
            _step(1, "error", "%%% not base64 %%%"),
            _step(2, "click", ""),
        ],
    )
    result = ExecutionResult(exit_code=0, stdout="", stderr="", trace=trace)

    written = write_run_artifacts(result, tmp_path / "run")

    assert [path.name for path in written] == ["00_goto.jpg"]
    assert written[0].read_bytes() == image
    stored = json.loads((tmp_path / "run" / "result.json").read_text(encoding="utf-8"))
    assert stored["trace"]["error"] == "Timeout"
    assert stored["spotlight"] is None


def test_write_run_artifacts_without_trace(tmp_path):
    result = ExecutionResult(exit_code=1, stdout="", stderr="crash")
    assert write_run_artifacts(result, tmp_path / "run") == []
    assert (tmp_path / "run" / "result.json").exists()
