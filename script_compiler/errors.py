"""Exceptions raised while validating, compiling and generating action scripts."""
from __future__ import annotations

from typing import List, Optional


class SchemaValidationError(ValueError):
    """Raised when a payload does not describe a valid action script."""

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.errors = errors or [message]


class UnsupportedVersionError(ValueError):
    """Raised when a script declares a version the compiler does not know."""

    def __init__(self, version: object) -> None:
        super().__init__(f"Unsupported script version: {version!r}")
        self.version = version


class GenerationAgentError(RuntimeError):
    """Raised when the LLM could not produce a usable script."""
