"""Lint/test gate run before any release logic."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from relflow.core.result import Err, Ok, Result
from relflow.output.console import ConsoleProtocol, Style
from relflow.platform.process import run as run_process
from relflow.services.release.errors import ReleaseError
from relflow.services.release.timeouts import VALIDATE_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


class TestRunner(Protocol):
    """Runs the project's lint and test suite; any failure blocks the release."""

    def run(self) -> Result[None, ReleaseError]: ...


class CommandTestRunner:
    """Runs each configured command in order and stops at the first failure."""

    __test__ = False  # not a pytest class

    def __init__(
        self,
        *,
        project_root: Path,
        commands: Sequence[Sequence[str]],
        console: ConsoleProtocol,
        timeout: float = VALIDATE_TIMEOUT_SECONDS,
    ) -> None:
        self._root = project_root
        self._commands = [list(c) for c in commands]
        self._console = console
        self._timeout = timeout

    def run(self) -> Result[None, ReleaseError]:
        for cmd in self._commands:
            shown = " ".join(cmd)
            self._console.print(f"$ {shown}", Style.DIM)
            result = run_process(cmd, cwd=self._root, timeout=self._timeout)
            if isinstance(result, Err):
                e = result.error
                tail = "\n".join((e.stderr or e.stdout).strip().splitlines()[-20:])
                logger.debug("validation output for %s:\n%s", shown, e.stdout)
                return Err(
                    ReleaseError(
                        kind="validation_failed",
                        message=f"{shown} failed (exit {e.returncode})",
                        hint=tail or None,
                    )
                )
        return Ok(None)
