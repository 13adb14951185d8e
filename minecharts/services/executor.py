"""Remote command execution inside game-server containers.

Runs a shell command through the driver's exec stream, buffering stdout
and stderr as frames arrive. Whatever was captured before a failure or
timeout is attached to the raised error, never dropped.
"""

from __future__ import annotations

import asyncio
import json
import shlex
from dataclasses import dataclass

import structlog

from minecharts.config import ExecutorConfig
from minecharts.drivers.base import Driver, DriverError, ExecChannel
from minecharts.errors import (
    CommandExecutionError,
    CommandTimeoutError,
    ValidationError,
)

logger = structlog.get_logger()


@dataclass
class ExecResult:
    command: str
    stdout: str
    stderr: str
    exit_code: int = 0


def _exit_code_from_status(status: dict) -> int | None:
    """Pull the exit code out of a Kubernetes exec Status object.

    ``{"status": "Success"}`` -> 0. Failures carry it as an ``ExitCode``
    cause; other failures (e.g. container not found) have none.
    """
    if status.get("status") == "Success":
        return 0
    for cause in (status.get("details") or {}).get("causes") or []:
        if cause.get("reason") == "ExitCode":
            try:
                return int(cause.get("message", ""))
            except ValueError:
                return None
    return None


class RemoteExecutor:
    """Bounded command channel into a running container."""

    def __init__(
        self,
        driver: Driver,
        config: ExecutorConfig,
        *,
        container: str,
    ) -> None:
        self._driver = driver
        self._timeout = config.timeout_seconds
        self._console_command = config.console_command
        self._shell = config.shell
        self._container = container
        self._log = logger.bind(component="executor")

    async def run(
        self,
        instance: str,
        command: str,
        *,
        timeout: float | None = None,
    ) -> ExecResult:
        """Run ``command`` via ``<shell> -c`` in ``instance``.

        Raises:
            CommandTimeoutError: the stream outlived ``timeout``
            CommandExecutionError: non-zero exit, remote failure status,
                or the stream broke
        """
        timeout = self._timeout if timeout is None else timeout
        stdout = bytearray()
        stderr = bytearray()
        status: dict | None = None

        def partial() -> dict:
            return {
                "stdout": stdout.decode(errors="replace"),
                "stderr": stderr.decode(errors="replace"),
            }

        log = self._log.bind(pod_name=instance)
        log.info("exec.start", timeout=timeout)

        try:
            async with asyncio.timeout(timeout):
                async with self._driver.exec_stream(
                    instance, self._container, [self._shell, "-c", command]
                ) as frames:
                    async for channel, payload in frames:
                        if channel == ExecChannel.STDOUT:
                            stdout.extend(payload)
                        elif channel == ExecChannel.STDERR:
                            stderr.extend(payload)
                        elif channel == ExecChannel.ERROR and payload:
                            try:
                                status = json.loads(payload)
                            except ValueError:
                                status = {"status": "Failure", "message": payload.decode(errors="replace")}
        except TimeoutError as e:
            log.warning("exec.timeout", timeout=timeout)
            raise CommandTimeoutError(
                f"Command timed out after {timeout:g}s", **partial()
            ) from e
        except DriverError as e:
            log.warning("exec.stream_failed", status=e.status, reason=e.reason)
            raise CommandExecutionError(f"Exec stream failed: {e}", **partial()) from e

        if status is None:
            # The status frame is always last; without it the stream was cut
            log.warning("exec.no_status")
            raise CommandExecutionError("Exec stream closed before the command finished", **partial())

        result = ExecResult(command=command, **partial())
        exit_code = _exit_code_from_status(status)
        if exit_code != 0:
            message = status.get("message") or "Command failed"
            log.warning("exec.failed", exit_code=exit_code)
            raise CommandExecutionError(message, exit_code=exit_code, **partial())

        log.info("exec.done", stdout_bytes=len(stdout), stderr_bytes=len(stderr))
        return result

    async def send_console_command(
        self,
        instance: str,
        console_command: str,
        *,
        timeout: float | None = None,
    ) -> ExecResult:
        """Dispatch an in-game console command (``say hi``, ``whitelist add x``)."""
        console_command = console_command.strip()
        if not console_command:
            raise ValidationError("Command must not be empty")
        wrapped = f"{self._console_command} {shlex.quote(console_command)}"
        return await self.run(instance, wrapped, timeout=timeout)

    async def save_world(self, instance: str) -> ExecResult:
        return await self.send_console_command(instance, "save-all")
