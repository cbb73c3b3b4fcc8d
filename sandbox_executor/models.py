"""Data models for sandbox runs and the results they produce."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def _require_object(raw: Any, label: str) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise ValueError(f"{label} must be an object, got {type(raw).__name__}")
    return raw


@dataclass(frozen=True)
class RawExecutionOutput:
    """Verbatim output of a command run inside a sandbox."""

    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass
class TraceStep:
    """One captured step: screenshot and page URL after an action."""

    index: int
    action: str
    details: str
    timestamp: int
    screenshot: str
    url: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "action": self.action,
            "details": self.details,
            "timestamp": self.timestamp,
            "screenshot": self.screenshot,
            "url": self.url,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "TraceStep":
        raw = _require_object(raw, "trace step")
        return cls(
            index=int(raw["index"]),
            action=str(raw["action"]),
            details=str(raw.get("details", "")),
            timestamp=int(raw["timestamp"]),
            screenshot=str(raw.get("screenshot", "")),
            url=str(raw.get("url", "")),
        )


@dataclass
class TraceData:
    """Timeline and outcome of one run."""

    start_time: int
    end_time: int
    duration: int
    success: bool
    error: Optional[str] = None
    steps: List[TraceStep] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration,
            "success": self.success,
            "error": self.error,
            "steps": [step.to_dict() for step in self.steps],
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "TraceData":
        raw = _require_object(raw, "trace")
        steps = raw.get("steps") or []
        if not isinstance(steps, list):
            raise ValueError("trace 'steps' must be a list")
        error = raw.get("error")
        return cls(
            start_time=int(raw["startTime"]),
            end_time=int(raw["endTime"]),
            duration=int(raw["duration"]),
            success=bool(raw["success"]),
            error=None if error is None else str(error),
            steps=[TraceStep.from_dict(step) for step in steps],
        )


@dataclass
class SpotlightEvent:
    """A Sentry envelope captured from the page during the run."""

    type: str
    timestamp: int
    data: Any
    envelope_id: Optional[str] = None
    headers: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type, "timestamp": self.timestamp, "data": self.data}
        if self.envelope_id is not None:
            payload["envelopeId"] = self.envelope_id
        if self.headers is not None:
            payload["headers"] = self.headers
        return payload

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "SpotlightEvent":
        raw = _require_object(raw, "spotlight event")
        headers = raw.get("headers")
        if headers is not None and not isinstance(headers, dict):
            raise ValueError("spotlight 'headers' must be an object")
        return cls(
            type=str(raw["type"]),
            timestamp=int(raw["timestamp"]),
            data=raw.get("data"),
            envelope_id=raw.get("envelopeId"),
            headers=headers,
        )


SpotlightData = List[SpotlightEvent]


@dataclass(frozen=True)
class ExecutionResult:
    """Everything a caller gets back from a run."""

    exit_code: int
    stdout: str
    stderr: str
    trace: Optional[TraceData] = None
    spotlight: Optional[SpotlightData] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exitCode": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "trace": self.trace.to_dict() if self.trace is not None else None,
            "spotlight": [event.to_dict() for event in self.spotlight] if self.spotlight is not None else None,
        }
