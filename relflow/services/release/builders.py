"""Platform builders used by the fan-out coordinator.

A builder turns one ``BuildRequest`` into the artifact paths of one platform.
The production ``CommandBuilder`` shells out to the project's own bundler; tests
substitute plain callables that honour the same protocol.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from relflow.core.result import Err, Ok, Result
from relflow.platform.process import run_cancellable
from relflow.services.release.model import FailureReason

logger = logging.getLogger(__name__)


def _never_cancelled() -> threading.Event:
    return threading.Event()


@dataclass(frozen=True, slots=True)
class BuildRequest:
    platform: str
    version: str
    timeout_seconds: float | None = None
    cancel: threading.Event = field(default_factory=_never_cancelled)


@dataclass(frozen=True, slots=True)
class BuildFailure:
    reason: FailureReason
    detail: str


class PlatformBuilder(Protocol):
    """Builds one platform for the fan-out.

    Implementations must honour ``request.timeout_seconds`` and ``request.cancel``
    themselves: the coordinator only classifies the outcome once ``build`` returns,
    so a builder that ignores its deadline holds up the join.
    """

    def build(self, request: BuildRequest) -> Result[tuple[Path, ...], BuildFailure]:
        """Build one platform and return its artifact paths."""
        ...


def expand(template: str, *, platform: str, version: str) -> str:
    """Substitute ``{platform}`` and ``{version}``; other braces are left alone."""
    return template.replace("{platform}", platform).replace("{version}", version)


def collect_artifacts(root: Path, patterns: Sequence[str]) -> tuple[Path, ...]:
    """Files matching any glob under ``root``, in pattern order, without duplicates."""
    seen: set[Path] = set()
    out: list[Path] = []
    for pattern in patterns:
        for path in sorted(root.glob(pattern)):
            if not path.is_file() or path in seen:
                continue
            seen.add(path)
            out.append(path)
    return tuple(out)


class CommandBuilder:
    """Runs the configured build command for a platform and collects its bundles.

    The command sees ``RELFLOW_PLATFORM`` and ``APP_VERSION`` in its
    environment; its output goes to ``<log_dir>/<platform>.log``.
    """

    def __init__(
        self,
        *,
        project_root: Path,
        command: Sequence[str],
        artifact_globs: Sequence[str],
        log_dir: Path,
    ) -> None:
        self._root = project_root
        self._command = tuple(command)
        self._globs = tuple(artifact_globs)
        self._log_dir = log_dir

    def build(self, request: BuildRequest) -> Result[tuple[Path, ...], BuildFailure]:
        argv = [
            expand(part, platform=request.platform, version=request.version)
            for part in self._command
        ]
        env = dict(os.environ)
        env["RELFLOW_PLATFORM"] = request.platform
        env["APP_VERSION"] = request.version
        log_path = self._log_dir / f"{request.platform}.log"

        logger.info("building %s %s: %s", request.platform, request.version, " ".join(argv))
        result = run_cancellable(
            argv,
            cwd=self._root,
            env=env,
            log_path=log_path,
            timeout=request.timeout_seconds,
            cancel=request.cancel,
        )
        if isinstance(result, Err):
            e = result.error
            if e.cancelled:
                return Err(BuildFailure(FailureReason.CANCELLED, "build cancelled"))
            if e.timed_out:
                return Err(
                    BuildFailure(
                        FailureReason.TIMEOUT,
                        f"build exceeded {request.timeout_seconds}s (log: {log_path})",
                    )
                )
            detail = f"{e} (log: {log_path})"
            if e.stderr.strip():
                detail += "\n" + e.stderr.strip()
            return Err(BuildFailure(FailureReason.ERROR, detail))

        globs = [
            expand(g, platform=request.platform, version=request.version) for g in self._globs
        ]
        artifacts = collect_artifacts(self._root, globs)
        if not artifacts:
            return Err(
                BuildFailure(
                    FailureReason.ERROR,
                    f"no artifacts matched: {', '.join(globs)}",
                )
            )
        return Ok(artifacts)
