"""Splits a run's stdout into console text and the framed trace/spotlight payloads."""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from script_compiler.assembler import SPOTLIGHT_END, SPOTLIGHT_START, TRACE_END, TRACE_START

from .models import ExecutionResult, RawExecutionOutput, SpotlightData, SpotlightEvent, TraceData

LOGGER = logging.getLogger("sandbox_executor.demux")

TRACE_RE = re.compile(re.escape(TRACE_START) + r"(.*?)" + re.escape(TRACE_END), re.DOTALL)
SPOTLIGHT_RE = re.compile(re.escape(SPOTLIGHT_START) + r"(.*?)" + re.escape(SPOTLIGHT_END), re.DOTALL)


@dataclass(frozen=True)
class DemuxResult:
    trace: Optional[TraceData]
    spotlight: Optional[SpotlightData]
    clean_stdout: str


def _parse_trace(body: str) -> TraceData:
    raw = json.loads(body)
    if not isinstance(raw, dict):
        raise ValueError("trace payload is not an object")
    return TraceData.from_dict(raw)


def _parse_spotlight(body: str) -> SpotlightData:
    raw = json.loads(body)
    if not isinstance(raw, list):
        raise ValueError("spotlight payload is not a list")
    if not all(isinstance(item, dict) for item in raw):
        raise ValueError("spotlight events must be objects")
    return [SpotlightEvent.from_dict(item) for item in raw]


def _extract(
    text: str,
    pattern: re.Pattern,
    parse: Callable[[str], Any],
    label: str,
) -> Tuple[Optional[Any], str]:
    match = pattern.search(text)
    if match is None:
        return None, text

    remaining = text[:match.start()] + text[match.end():]
    try:
        return parse(match.group(1)), remaining
    except (ValueError, KeyError, TypeError, AttributeError, OverflowError) as exc:
        LOGGER.warning("Discarding malformed %s payload: %s", label, exc)
        return None, remaining


def demux(stdout: str) -> DemuxResult:
    """Extract trace and spotlight payloads from ``stdout``.

    A malformed payload yields ``None`` for its field; its marker span is
    still removed. The remaining console text is returned stripped.
    """
    trace, remaining = _extract(stdout, TRACE_RE, _parse_trace, "trace")
    spotlight, remaining = _extract(remaining, SPOTLIGHT_RE, _parse_spotlight, "spotlight")
    return DemuxResult(trace=trace, spotlight=spotlight, clean_stdout=remaining.strip())


def to_execution_result(raw: RawExecutionOutput) -> ExecutionResult:
    parts = demux(raw.stdout)
    return ExecutionResult(
        exit_code=raw.exit_code,
        stdout=parts.clean_stdout,
        stderr=raw.stderr,
        trace=parts.trace,
        spotlight=parts.spotlight,
    )
