"""Helpers for loading action scripts and storing run artifacts."""
from __future__ import annotations

import base64
import binascii
import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from script_compiler.models import ActionScript
from script_compiler.schema import validate_script

from .models import ExecutionResult

LOGGER = logging.getLogger("sandbox_executor.loader")


def _ensure_path(source: Any) -> Path:
    if isinstance(source, (str, Path)):
        return Path(source)
    raise TypeError(f"Unsupported path type: {type(source)!r}")


def load_json(source: Any) -> Dict[str, Any]:
    path = _ensure_path(source)
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def load_script(source: Any) -> ActionScript:
    """Read and validate a script JSON file.

    A file holding a generation reply (``{"message", "script"}``) is accepted
    as well; its ``script`` field is used.
    """
    raw = load_json(source)
    if isinstance(raw, dict) and "script" in raw and "actions" not in raw:
        raw = raw["script"]
    return validate_script(raw)


def write_run_artifacts(result: ExecutionResult, run_dir: Path) -> List[Path]:
    """写出 ``result.json`` 以及每个步骤的 JPEG 截图，返回图片路径列表。"""
    run_dir.mkdir(parents=True, exist_ok=True)
    with (run_dir / "result.json").open("w", encoding="utf-8") as handle:
        json.dump(result.to_dict(), handle, ensure_ascii=False, indent=2)

    written: List[Path] = []
    if result.trace is None:
        return written

    steps_dir = run_dir / "steps"
    steps_dir.mkdir(exist_ok=True)
    for step in result.trace.steps:
        if not step.screenshot:
            continue
        try:
            image = base64.b64decode(step.screenshot, validate=True)
        except (binascii.Error, ValueError) as exc:
            LOGGER.warning("Step %d has an unreadable screenshot: %s", step.index, exc)
            continue
        path = steps_dir / f"{step.index:02d}_{step.action}.jpg"
        path.write_bytes(image)
        written.append(path)
    return written
