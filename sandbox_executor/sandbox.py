"""Named sandboxes that can store a file and run shell commands."""
from __future__ import annotations

import logging
import os
import subprocess
import threading
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, Iterator, List, Optional, Protocol

from .models import RawExecutionOutput

LOGGER = logging.getLogger("sandbox_executor.sandbox")

DEFAULT_EXEC_TIMEOUT = 300.0


class Sandbox(Protocol):
    """What the gateway needs from an execution environment.

    Commands run with the sandbox workspace as working directory and file
    paths are relative to that workspace.
    """

    name: str

    def exec(self, command: str, timeout: Optional[float] = None) -> RawExecutionOutput:
        ...

    def write_file(self, path: str, contents: str) -> None:
        ...


class LocalSandbox:
    """A workspace directory on this host; commands run through the shell."""

    def __init__(self, name: str, root: Path, default_timeout: float = DEFAULT_EXEC_TIMEOUT) -> None:
        self.name = name
        self.workspace = Path(root) / name / "workspace"
        self.workspace.mkdir(parents=True, exist_ok=True)
        self.default_timeout = default_timeout

    def _resolve(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Sandbox paths must stay inside the workspace: {path!r}")
        return self.workspace.joinpath(*relative.parts)

    def write_file(self, path: str, contents: str) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(contents, encoding="utf-8")
        LOGGER.debug("Sandbox %s: wrote %s (%d bytes)", self.name, target, len(contents))

    def exec(self, command: str, timeout: Optional[float] = None) -> RawExecutionOutput:
        limit = timeout if timeout is not None else self.default_timeout
        LOGGER.debug("Sandbox %s: exec %s", self.name, command)
        try:
            completed = subprocess.run(
                command,
                shell=True,
                cwd=self.workspace,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=limit,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            return RawExecutionOutput(
                stdout=_as_text(exc.stdout),
                stderr=_as_text(exc.stderr) + f"\nCommand timed out after {limit:g}s",
                exit_code=124,
            )
        return RawExecutionOutput(stdout=completed.stdout, stderr=completed.stderr, exit_code=completed.returncode)


def _as_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class SandboxPool:
    """Sandboxes keyed by name, with one lease per name at a time.

    ``get`` returns the same handle for the same name. ``lease`` holds the
    name's lock so concurrent runs against one sandbox take turns.
    """

    def __init__(self, factory: Callable[[str], Sandbox]) -> None:
        self._factory = factory
        self._sandboxes: Dict[str, Sandbox] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, name: str) -> Sandbox:
        if not name:
            raise ValueError("sandbox name must not be empty")
        with self._guard:
            sandbox = self._sandboxes.get(name)
            if sandbox is None:
                LOGGER.info("Creating sandbox %s", name)
                sandbox = self._factory(name)
                self._sandboxes[name] = sandbox
                self._locks[name] = threading.Lock()
            return sandbox

    @contextmanager
    def lease(self, name: str) -> Iterator[Sandbox]:
        sandbox = self.get(name)
        lock = self._locks[name]
        if not lock.acquire(blocking=False):
            LOGGER.info("Sandbox %s is busy, waiting for the current run", name)
            lock.acquire()
        try:
            yield sandbox
        finally:
            lock.release()

    def names(self) -> List[str]:
        with self._guard:
            return sorted(self._sandboxes)


_sandbox_pool: Optional[SandboxPool] = None


def get_sandbox_pool() -> SandboxPool:
    """Return the process-wide pool of local sandboxes."""
    global _sandbox_pool
    if _sandbox_pool is None:
        root = Path(os.getenv("MOMOS_SANDBOX_ROOT", "tmp/sandboxes"))
        _sandbox_pool = SandboxPool(lambda name: LocalSandbox(name, root))
    return _sandbox_pool
