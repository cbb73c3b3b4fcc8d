"""Statement IR for generated Playwright programs and its Python renderer.

Compiled actions are described as ``Call`` nodes whose arguments are plain
values or ``Name`` references. Only :func:`render_statement` turns them into
source text, so every user-supplied string reaches the generated program
through :func:`render_literal` and its escaping.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Tuple

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")

_ESCAPES = {
    "\\": "\\\\",
    "'": "\\'",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
}


@dataclass(frozen=True)
class Name:
    """Reference to a variable of the generated program (e.g. ``page``)."""

    identifier: str

    def __post_init__(self) -> None:
        _check_identifier(self.identifier)


@dataclass(frozen=True)
class Call:
    """A single expression statement calling ``target`` with ``args``."""

    target: str
    args: Tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        _check_identifier(self.target)


def _check_identifier(value: str) -> None:
    if not isinstance(value, str) or not IDENTIFIER_RE.match(value):
        raise ValueError(f"Invalid identifier for generated code: {value!r}")


def escape_string(text: str) -> str:
    """Escape ``text`` for use inside a single- or double-quoted literal."""
    parts = []
    for char in text:
        code = ord(char)
        if char in _ESCAPES:
            parts.append(_ESCAPES[char])
        elif code < 0x20 or code == 0x7F:
            parts.append(f"\\x{code:02x}")
        elif 0xD800 <= code <= 0xDFFF:
            # lone surrogates cannot be written as UTF-8 source
            parts.append(f"\\u{code:04x}")
        else:
            parts.append(char)
    return "".join(parts)


def render_literal(value: Any) -> str:
    if isinstance(value, Name):
        return value.identifier
    if value is None or isinstance(value, bool):
        return repr(value)
    if isinstance(value, str):
        return f"'{escape_string(value)}'"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"Cannot render non-finite number: {value!r}")
        return repr(value)
    raise TypeError(f"Unsupported literal type: {type(value).__name__}")


def render_statement(statement: Call) -> str:
    arguments = ", ".join(render_literal(arg) for arg in statement.args)
    return f"{statement.target}({arguments})"
