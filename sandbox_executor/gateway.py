"""Runs action scripts inside a named sandbox browser."""
from __future__ import annotations

import json
import logging
import os
import shlex
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

from script_compiler.assembler import AssemblerOptions, assemble
from script_compiler.compiler import compile_script
from script_compiler.models import ActionScript

from .demux import to_execution_result
from .errors import SandboxUnavailableError
from .models import ExecutionResult, RawExecutionOutput
from .sandbox import Sandbox, SandboxPool, get_sandbox_pool

LOGGER = logging.getLogger("sandbox_executor.gateway")

HEALTH_CHECK_COMMAND = "curl -s http://localhost:9222/json/version"

T = TypeVar("T")


class HealthCheckError(RuntimeError):
    """沙箱已响应，但浏览器尚未就绪。"""


def retry_with_backoff(
    fn: Callable[[], T],
    *,
    retries: int,
    initial_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "operation",
) -> T:
    """Call ``fn`` until it returns, doubling the pause after each failure.

    The last exception is re-raised once ``retries`` attempts have failed.
    """
    if retries < 1:
        raise ValueError("retries must be at least 1")
    delay = initial_delay
    for attempt in range(1, retries + 1):
        try:
            return fn()
        except Exception as exc:  # pylint: disable=broad-except
            if attempt == retries:
                raise
            LOGGER.info("%s failed (attempt %d/%d): %s; retrying in %.1fs", label, attempt, retries, exc, delay)
            sleep(delay)
            delay *= 2
    raise AssertionError("unreachable")


def parse_debugger_url(output: RawExecutionOutput) -> str:
    if output.exit_code != 0:
        raise HealthCheckError(f"health check exited with {output.exit_code}: {output.stderr.strip()}")
    try:
        data = json.loads(output.stdout)
    except json.JSONDecodeError as exc:
        raise HealthCheckError(f"health check returned invalid JSON: {exc}") from exc
    url = data.get("webSocketDebuggerUrl") if isinstance(data, dict) else None
    if not isinstance(url, str) or not url:
        raise HealthCheckError("health check response has no webSocketDebuggerUrl")
    return url


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() not in ("0", "false", "no", "off")


@dataclass
# pylint: disable=too-many-instance-attributes
class GatewaySettings:
    """执行网关的运行参数。"""

    sandbox_name: str = "my-sandbox"
    health_check_command: str = HEALTH_CHECK_COMMAND
    health_retries: int = 10
    initial_delay_ms: int = 1000
    python_command: str = "python"
    program_path: str = "main.py"
    exec_timeout: float = 300.0
    telemetry: bool = True
    assembler: AssemblerOptions = field(default_factory=AssemblerOptions)

    @classmethod
    def from_env(cls) -> "GatewaySettings":
        retries = os.getenv("MOMOS_HEALTH_RETRIES")
        timeout = os.getenv("MOMOS_EXEC_TIMEOUT")
        return cls(
            sandbox_name=os.getenv("MOMOS_SANDBOX_NAME") or cls.sandbox_name,
            health_retries=int(retries) if retries else cls.health_retries,
            python_command=os.getenv("MOMOS_PYTHON") or cls.python_command,
            exec_timeout=float(timeout) if timeout else cls.exec_timeout,
            telemetry=_env_flag("MOMOS_SPOTLIGHT", True),
            assembler=AssemblerOptions.from_env(),
        )


class ExecutionGateway:
    """Compiles a script, waits for the sandbox browser and runs the program."""

    def __init__(
        self,
        settings: Optional[GatewaySettings] = None,
        pool: Optional[SandboxPool] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or GatewaySettings()
        self.pool = pool or get_sandbox_pool()
        self._sleep = sleep

    def build_program(self, script: ActionScript, connection_target: str) -> str:
        block = compile_script(script, telemetry=self.settings.telemetry)
        return assemble(block, connection_target, telemetry=self.settings.telemetry, options=self.settings.assembler)

    def wait_for_browser(self, sandbox: Sandbox) -> str:
        """Poll the health check until the browser reports its CDP endpoint.

        Raises:
            SandboxUnavailableError: every attempt failed.
        """

        def check_health() -> str:
            return parse_debugger_url(sandbox.exec(self.settings.health_check_command))

        try:
            return retry_with_backoff(
                check_health,
                retries=self.settings.health_retries,
                initial_delay=self.settings.initial_delay_ms / 1000,
                sleep=self._sleep,
                label=f"Health check on sandbox {sandbox.name}",
            )
        except Exception as exc:  # pylint: disable=broad-except
            raise SandboxUnavailableError(sandbox.name, self.settings.health_retries, str(exc)) from exc

    def execute(self, script: ActionScript) -> RawExecutionOutput:
        """Run ``script`` and return the sandbox output verbatim."""
        # 版本不支持时直接失败，不占用沙箱
        block = compile_script(script, telemetry=self.settings.telemetry)

        with self.pool.lease(self.settings.sandbox_name) as sandbox:
            connection_target = self.wait_for_browser(sandbox)
            LOGGER.info("Sandbox %s ready at %s", sandbox.name, connection_target)
            program = assemble(
                block,
                connection_target,
                telemetry=self.settings.telemetry,
                options=self.settings.assembler,
            )
            sandbox.write_file(self.settings.program_path, program)
            command = f"{self.settings.python_command} {shlex.quote(self.settings.program_path)}"
            LOGGER.info("Running %d actions in sandbox %s", len(script.actions), sandbox.name)
            output = sandbox.exec(command, timeout=self.settings.exec_timeout)

        LOGGER.info("Sandbox %s finished with exit code %d", self.settings.sandbox_name, output.exit_code)
        return output

    def run(self, script: ActionScript) -> ExecutionResult:
        result = to_execution_result(self.execute(script))
        if result.trace is None:
            LOGGER.warning("Run produced no trace (exit code %d)", result.exit_code)
        elif not result.trace.success:
            LOGGER.warning("Run failed after %d steps: %s", len(result.trace.steps), result.trace.error)
        return result
