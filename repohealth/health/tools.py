"""Bounded execution of optional external tools (audits, compilers, git)."""

import json
import logging
import shutil
import subprocess
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_TOOL_TIMEOUT = 30.0


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one external tool invocation."""

    command: str
    exit_code: int | None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    available: bool = True
    cancelled: bool = False

    @classmethod
    def unavailable(cls, command: str, reason: str = "") -> "ToolResult":
        """Sentinel for a tool that is not installed or disabled."""
        return cls(command=command, exit_code=None, stderr=reason, available=False)

    @property
    def usable(self) -> bool:
        """True when the tool ran to completion (any exit code)."""
        return self.available and not self.timed_out and not self.cancelled

    @property
    def ok(self) -> bool:
        return self.usable and self.exit_code == 0

    def json(self) -> Any | None:
        """Parse stdout as JSON, or None if it is not valid JSON."""
        if not self.usable or not self.stdout.strip():
            return None
        try:
            return json.loads(self.stdout)
        except json.JSONDecodeError:
            logger.debug(f"{self.command} produced non-JSON output")
            return None

    @property
    def skip_reason(self) -> str:
        """Why the result cannot be used, for INFO findings."""
        if not self.available:
            return f"{self.command} not available"
        if self.cancelled:
            return f"{self.command} cancelled"
        if self.timed_out:
            return f"{self.command} timed out"
        return ""


class ToolRunner:
    """Runs external commands with a per-call timeout.

    Never raises for a missing binary; reports a sentinel result instead.
    ``cancel()`` kills every in-flight process and short-circuits later calls.
    Failed invocations are never retried.
    """

    def __init__(
        self,
        default_timeout: float = DEFAULT_TOOL_TIMEOUT,
        cancel_event: threading.Event | None = None,
        enabled: bool = True,
    ) -> None:
        self.default_timeout = default_timeout
        self.cancel_event = cancel_event or threading.Event()
        self.enabled = enabled
        self._processes: set[subprocess.Popen[str]] = set()
        self._lock = threading.Lock()

    def run_tool(
        self,
        command: str,
        args: Sequence[str] = (),
        timeout: float | None = None,
        cwd: Path | None = None,
    ) -> ToolResult:
        """Run ``command`` with ``args`` and capture its output.

        Args:
            command: Executable name, resolved on PATH
            args: Arguments to pass
            timeout: Seconds before the process is killed
            cwd: Working directory

        Returns:
            ToolResult; ``available`` is False when the binary is missing
        """
        if not self.enabled:
            return ToolResult.unavailable(command, "external tools disabled")
        if self.cancel_event.is_set():
            return ToolResult(command=command, exit_code=None, cancelled=True)

        executable = shutil.which(command)
        if executable is None:
            logger.debug(f"Tool not found on PATH: {command}")
            return ToolResult.unavailable(command, "not found on PATH")

        timeout = timeout if timeout is not None else self.default_timeout
        logger.debug(f"Running {command} {' '.join(args)} (timeout {timeout}s)")

        try:
            process = subprocess.Popen(
                [executable, *args],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
                cwd=cwd,
            )
        except OSError as e:
            logger.debug(f"Failed to start {command}: {e}")
            return ToolResult.unavailable(command, str(e))

        with self._lock:
            self._processes.add(process)
        try:
            stdout, stderr = process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            stdout, stderr = process.communicate()
            logger.debug(f"{command} timed out after {timeout}s")
            return ToolResult(
                command=command,
                exit_code=None,
                stdout=stdout or "",
                stderr=stderr or "",
                timed_out=True,
            )
        finally:
            with self._lock:
                self._processes.discard(process)

        if self.cancel_event.is_set():
            return ToolResult(command=command, exit_code=process.returncode, cancelled=True)

        return ToolResult(
            command=command,
            exit_code=process.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
        )

    def cancel(self) -> None:
        """Cancel the run: kill in-flight processes and refuse new ones."""
        self.cancel_event.set()
        with self._lock:
            processes = list(self._processes)
        for process in processes:
            logger.debug(f"Killing {process.args[0]} (pid {process.pid})")
            process.kill()
