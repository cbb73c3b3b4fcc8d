"""Lowers action scripts into instrumented Playwright statements."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple, Union

from .codegen import Call, Name, render_statement
from .errors import SchemaValidationError, UnsupportedVersionError
from .models import Action, ActionScript, ClickAction, GotoAction, SleepAction

LOGGER = logging.getLogger("script_compiler.compiler")

PAGE = Name("page")
CAPTURE_STEP = "capture_step"
ADD_SPOTLIGHT = "add_spotlight"

Lowering = Callable[[Action, bool], List[Call]]


@dataclass(frozen=True)
class CompiledBlock:
    """Statements of a compiled script, in execution order."""

    statements: Tuple[Call, ...]
    step_count: int

    @property
    def lines(self) -> List[str]:
        return [render_statement(statement) for statement in self.statements]

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    def is_empty(self) -> bool:
        return not self.statements


def format_duration(milliseconds: Union[int, float]) -> str:
    if isinstance(milliseconds, float) and milliseconds.is_integer():
        milliseconds = int(milliseconds)
    return f"{milliseconds}ms"


def describe_action(action: Action) -> str:
    """步骤截图旁展示的动作描述。"""
    if isinstance(action, GotoAction):
        return action.url
    if isinstance(action, ClickAction):
        return action.selector
    if isinstance(action, SleepAction):
        return format_duration(action.milliseconds)
    return ""


def _lower_goto(action: GotoAction, telemetry: bool) -> List[Call]:
    statements = [Call("page.goto", (action.url,))]
    if telemetry:
        # 整页跳转后 Sentry 脚本会丢失，需要重新注入
        statements.append(Call(ADD_SPOTLIGHT, (PAGE,)))
    return statements


def _lower_click(action: ClickAction, telemetry: bool) -> List[Call]:
    return [Call("page.click", (action.selector,))]


def _lower_sleep(action: SleepAction, telemetry: bool) -> List[Call]:
    return [Call("page.wait_for_timeout", (action.milliseconds,))]


LOWERINGS: Dict[str, Dict[str, Lowering]] = {
    "1.0.0": {
        "goto": _lower_goto,
        "click": _lower_click,
        "sleep": _lower_sleep,
    },
}


def compile_script(script: ActionScript, *, telemetry: bool = True) -> CompiledBlock:
    """Compile ``script`` into a block of instrumented statements.

    Every action is followed by one ``capture_step`` call carrying the action
    index, its type and its summary.

    Raises:
        UnsupportedVersionError: ``script.version`` has no lowering table.
    """
    lowerings = LOWERINGS.get(script.version)
    if lowerings is None:
        raise UnsupportedVersionError(script.version)

    statements: List[Call] = []
    for index, action in enumerate(script.actions):
        lower = lowerings.get(action.type)
        if lower is None:
            raise SchemaValidationError(f"Action type '{action.type}' is not part of script version {script.version}")
        statements.extend(lower(action, telemetry))
        statements.append(Call(CAPTURE_STEP, (PAGE, index, action.type, describe_action(action))))

    LOGGER.debug("Compiled %d actions into %d statements", len(script.actions), len(statements))
    return CompiledBlock(statements=tuple(statements), step_count=len(script.actions))
