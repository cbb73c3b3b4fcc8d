"""Data structures for versioned action scripts."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

CURRENT_VERSION = "1.0.0"

# Each version owns a closed set of action types. Add a version, never widen one.
SUPPORTED_ACTIONS: Dict[str, frozenset] = {
    CURRENT_VERSION: frozenset({"goto", "click", "sleep"}),
}


@dataclass(frozen=True)
class GotoAction:
    """Navigate the page to ``url``."""

    url: str
    type: str = field(default="goto", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "url": self.url}


@dataclass(frozen=True)
class ClickAction:
    """Click the first element matching ``selector``."""

    selector: str
    type: str = field(default="click", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "selector": self.selector}


@dataclass(frozen=True)
class SleepAction:
    """Pause the run for ``milliseconds``."""

    milliseconds: Union[int, float]
    type: str = field(default="sleep", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "milliseconds": self.milliseconds}


Action = Union[GotoAction, ClickAction, SleepAction]


def action_from_dict(raw: Dict[str, Any]) -> Action:
    """Build an action from an already validated mapping."""
    action_type = raw.get("type")
    if action_type == "goto":
        return GotoAction(url=raw["url"])
    if action_type == "click":
        return ClickAction(selector=raw["selector"])
    if action_type == "sleep":
        return SleepAction(milliseconds=raw["milliseconds"])
    raise ValueError(f"Unknown action type: {action_type!r}")


@dataclass(frozen=True)
class ActionScript:
    """Ordered, versioned list of browser actions."""

    version: str
    actions: List[Action] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "actions": [action.to_dict() for action in self.actions],
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ActionScript":
        return cls(
            version=raw["version"],
            actions=[action_from_dict(item) for item in raw.get("actions", [])],
        )
