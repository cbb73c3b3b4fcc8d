"""Exceptions raised while running programs in a sandbox."""
from __future__ import annotations


class SandboxUnavailableError(RuntimeError):
    """Raised when the sandbox browser never became ready."""

    def __init__(self, sandbox_name: str, attempts: int, last_error: str | None = None) -> None:
        detail = f": {last_error}" if last_error else ""
        super().__init__(f"Sandbox '{sandbox_name}' not ready after {attempts} attempts{detail}")
        self.sandbox_name = sandbox_name
        self.attempts = attempts
        self.last_error = last_error
