"""Subprocess execution with Result-based error handling.

Provides a clean wrapper around subprocess.run that captures output
and returns structured errors instead of requiring try/except blocks.

Usage:
    result = run(["git", "status"], cwd=Path("."))
    match result:
        case Ok(stdout):
            print(stdout)
        case Err(error):
            print(f"Failed: {error.stderr}")

Long-running build commands use ``run_cancellable`` instead: output goes to a
log file, the call honours a deadline and an abort event, and an abort only
*asks* the child to stop.
"""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path

from relflow.core.result import Err, Ok, Result

__all__ = ["ProcessError", "run", "run_cancellable"]

_POLL_INTERVAL_SECONDS = 0.2
_STOP_GRACE_SECONDS = 10.0

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProcessError:
    """Error from a failed subprocess execution.

    Attributes:
        command: The command that was executed.
        returncode: The exit code of the process (-1 if it never ran or was stopped).
        stdout: Standard output (may be empty).
        stderr: Standard error (contains error details).
        timed_out: The deadline expired before the process exited.
        cancelled: The abort event was set before the process exited.
    """

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False
    cancelled: bool = False

    def __str__(self) -> str:
        """Format error for display."""
        cmd_str = " ".join(self.command[:3])
        if len(self.command) > 3:
            cmd_str += " ..."
        if self.timed_out:
            return f"{cmd_str} timed out"
        if self.cancelled:
            return f"{cmd_str} cancelled"
        return f"{cmd_str} failed (exit {self.returncode})"


def run(
    cmd: list[str],
    cwd: Path,
    env: dict[str, str] | None = None,
    *,
    timeout: float | None = None,
) -> Result[str, ProcessError]:
    """Execute a command and return stdout or error.

    Args:
        cmd: Command and arguments to execute.
        cwd: Working directory for the command.
        env: Environment variables (uses current env if None).
        timeout: Maximum seconds to wait (None for no limit).

    Returns:
        Ok(stdout) on success, Err(ProcessError) on failure.
    """
    logger.debug("run: %s (cwd=%s)", " ".join(cmd), cwd)
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd),
            env=env,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=-1,
                stdout=e.stdout if isinstance(e.stdout, str) else "",
                stderr=f"Command timed out after {timeout}s",
                timed_out=True,
            )
        )
    except OSError as e:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=-1,
                stdout="",
                stderr=str(e),
            )
        )

    if proc.returncode != 0:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=proc.returncode,
                stdout=proc.stdout,
                stderr=proc.stderr,
            )
        )

    return Ok(proc.stdout)


def run_cancellable(
    cmd: list[str],
    cwd: Path,
    env: dict[str, str] | None = None,
    *,
    log_path: Path | None = None,
    timeout: float | None = None,
    cancel: threading.Event | None = None,
) -> Result[None, ProcessError]:
    """Execute a long-running command that can be aborted cooperatively.

    stdout and stderr are streamed to ``log_path`` (or discarded). When the
    deadline expires or ``cancel`` is set, the child receives ``terminate()``
    and is given a grace period to exit on its own; it is never killed.

    Returns:
        Ok(None) on exit code 0, Err(ProcessError) otherwise.
    """
    deadline = None if timeout is None else time.monotonic() + timeout

    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        sink = open(log_path, "w", encoding="utf-8") if log_path is not None else None
    except OSError as e:
        return Err(ProcessError(command=tuple(cmd), returncode=-1, stdout="", stderr=str(e)))

    try:
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=str(cwd),
                env=env,
                stdout=sink if sink is not None else subprocess.DEVNULL,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except OSError as e:
            return Err(
                ProcessError(command=tuple(cmd), returncode=-1, stdout="", stderr=str(e))
            )

        logger.debug("started pid=%s: %s", proc.pid, " ".join(cmd))
        while True:
            try:
                returncode = proc.wait(timeout=_POLL_INTERVAL_SECONDS)
                break
            except subprocess.TimeoutExpired:
                pass

            if cancel is not None and cancel.is_set():
                _request_stop(proc)
                return Err(
                    ProcessError(
                        command=tuple(cmd),
                        returncode=-1,
                        stdout="",
                        stderr="Command cancelled",
                        cancelled=True,
                    )
                )
            if deadline is not None and time.monotonic() >= deadline:
                _request_stop(proc)
                return Err(
                    ProcessError(
                        command=tuple(cmd),
                        returncode=-1,
                        stdout="",
                        stderr=f"Command timed out after {timeout}s",
                        timed_out=True,
                    )
                )
    finally:
        if sink is not None:
            sink.close()

    if returncode != 0:
        tail = _read_tail(log_path)
        return Err(
            ProcessError(command=tuple(cmd), returncode=returncode, stdout="", stderr=tail)
        )
    return Ok(None)


def _request_stop(proc: subprocess.Popen[str]) -> None:
    proc.terminate()
    try:
        proc.wait(timeout=_STOP_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        logger.warning(
            "pid=%s did not stop within %.0fs; leaving it running",
            proc.pid,
            _STOP_GRACE_SECONDS,
        )


def _read_tail(path: Path | None, *, lines: int = 20) -> str:
    if path is None:
        return ""
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return ""
    return "\n".join(text.splitlines()[-lines:])
