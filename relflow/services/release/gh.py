"""GitHub Releases host backed by the GitHub CLI (``gh``).

Reads (``gh release view``) are idempotent and retried on transient network
errors. Writes are never retried: a failed create surfaces to the operator,
who re-runs the pipeline, and the upsert logic makes the re-run safe.
"""

from __future__ import annotations

import json
import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path
from time import sleep

from relflow.core.result import Err, Ok, Result
from relflow.core.structured import as_obj_list, as_str_dict, get_bool, get_str
from relflow.platform.process import ProcessError
from relflow.platform.process import run as run_process
from relflow.services.release.errors import ReleaseError, ReleaseErrorKind
from relflow.services.release.model import PublishBundle, ReleaseRecord
from relflow.services.release.timeouts import (
    GH_READ_RETRY_ATTEMPTS,
    GH_READ_RETRY_DELAY_SECONDS,
    GH_TIMEOUT_SECONDS,
    GH_UPLOAD_TIMEOUT_SECONDS,
)

_NOT_FOUND_MARKERS = ("release not found", "http 404")


def _is_transient_gh_error(error: ProcessError) -> bool:
    text = f"{error.stderr}\n{error.stdout}".lower()
    markers = (
        "timed out",
        "timeout",
        "connection reset",
        "connection refused",
        "temporarily unavailable",
        "service unavailable",
        "bad gateway",
        "gateway timeout",
        "tls handshake timeout",
        "network is unreachable",
        "http 429",
        "http 500",
        "http 502",
        "http 503",
        "http 504",
    )
    if error.returncode == -1 and "timed out" in text:
        return True
    return any(marker in text for marker in markers)


def run_gh_read(
    *,
    project_root: Path,
    cmd: list[str],
    kind: ReleaseErrorKind,
    message: str,
    hint: str | None = None,
    timeout: float = GH_TIMEOUT_SECONDS,
    retry_attempts: int = GH_READ_RETRY_ATTEMPTS,
) -> Result[str, ProcessError | ReleaseError]:
    """Run a read-only gh command, retrying transient failures.

    A non-transient failure is returned as the raw ProcessError so callers can
    inspect it (e.g. "release not found"); exhausting retries yields a
    ReleaseError.
    """
    attempts = max(1, retry_attempts)
    for attempt in range(attempts):
        result = run_process(cmd, cwd=project_root, timeout=timeout)
        if isinstance(result, Ok):
            return result

        error = result.error
        if not _is_transient_gh_error(error):
            return Err(error)
        if attempt < attempts - 1:
            sleep(GH_READ_RETRY_DELAY_SECONDS * (attempt + 1))
            continue

        return Err(ReleaseError(kind=kind, message=message, hint=error.stderr.strip() or hint))

    return Err(ReleaseError(kind=kind, message=message, hint=hint))


def ensure_gh_available() -> Result[None, ReleaseError]:
    if shutil.which("gh") is None:
        return Err(
            ReleaseError(
                kind="publish_failed",
                message="gh: missing",
                hint="Install GitHub CLI: https://cli.github.com/",
            )
        )
    return Ok(None)


def _parse_release(payload: str, *, version: str) -> Result[ReleaseRecord, ReleaseError]:
    try:
        obj: object = json.loads(payload)
    except json.JSONDecodeError as e:
        return Err(
            ReleaseError(
                kind="publish_failed",
                message=f"invalid JSON from gh release view: {e}",
                hint=version,
            )
        )

    data = as_str_dict(obj)
    if data is None:
        return Err(ReleaseError(kind="publish_failed", message="unexpected gh release payload"))

    prerelease = get_bool(data, "isPrerelease")
    if prerelease is None:
        return Err(ReleaseError(kind="publish_failed", message="missing isPrerelease"))

    artifacts: set[tuple[str, str]] = set()
    for item in as_obj_list(data.get("assets")) or []:
        d = as_str_dict(item)
        if d is None:
            continue
        name = get_str(d, "name")
        if name is None:
            continue
        # Newer API versions expose "sha256:<hex>"; older ones give no digest.
        digest = get_str(d, "digest") or ""
        artifacts.add((name, digest.removeprefix("sha256:")))

    body = data.get("body")
    return Ok(
        ReleaseRecord(
            version=version,
            prerelease=prerelease,
            notes=body if isinstance(body, str) else "",
            artifacts=frozenset(artifacts),
        )
    )


class GhReleaseHost:
    """Upserts releases on ``repo`` (owner/name); the tag is ``prefix + version``."""

    def __init__(self, *, project_root: Path, repo: str, tag_prefix: str = "v") -> None:
        self._root = project_root
        self._repo = repo
        self._prefix = tag_prefix

    def _tag(self, version: str) -> str:
        return f"{self._prefix}{version}"

    def get(self, version: str) -> Result[ReleaseRecord | None, ReleaseError]:
        tag = self._tag(version)
        result = run_gh_read(
            project_root=self._root,
            cmd=[
                "gh",
                "release",
                "view",
                tag,
                "--repo",
                self._repo,
                "--json",
                "tagName,isPrerelease,body,assets",
            ],
            kind="publish_failed",
            message=f"failed to query release {tag}",
            hint=self._repo,
        )
        if isinstance(result, Err):
            error = result.error
            if isinstance(error, ReleaseError):
                return Err(error)
            if any(m in error.stderr.lower() for m in _NOT_FOUND_MARKERS):
                return Ok(None)
            return Err(
                ReleaseError(
                    kind="publish_failed",
                    message=f"failed to query release {tag}",
                    hint=error.stderr.strip() or self._repo,
                )
            )

        parsed = _parse_release(result.value, version=version)
        if isinstance(parsed, Err):
            return parsed
        return Ok(parsed.value)

    def create(self, bundle: PublishBundle) -> Result[None, ReleaseError]:
        tag = self._tag(bundle.version)
        files = [str(a.path) for a in sorted(bundle.artifacts, key=lambda a: a.name)]
        return self._with_notes_file(
            bundle.notes,
            lambda notes_file: [
                "gh",
                "release",
                "create",
                tag,
                *files,
                "--repo",
                self._repo,
                "--title",
                tag,
                "--notes-file",
                str(notes_file),
                "--verify-tag",
                *(["--prerelease"] if bundle.is_prerelease else []),
            ],
            timeout=GH_UPLOAD_TIMEOUT_SECONDS,
            message=f"failed to create release {tag}",
        )

    def update(self, bundle: PublishBundle) -> Result[None, ReleaseError]:
        tag = self._tag(bundle.version)
        flag = "true" if bundle.is_prerelease else "false"
        return self._with_notes_file(
            bundle.notes,
            lambda notes_file: [
                "gh",
                "release",
                "edit",
                tag,
                "--repo",
                self._repo,
                "--notes-file",
                str(notes_file),
                f"--prerelease={flag}",
            ],
            timeout=GH_TIMEOUT_SECONDS,
            message=f"failed to update release {tag}",
        )

    def _with_notes_file(
        self,
        notes: str,
        build_cmd: Callable[[Path], list[str]],
        *,
        timeout: float,
        message: str,
    ) -> Result[None, ReleaseError]:
        with tempfile.TemporaryDirectory(prefix="relflow-notes-") as tmp:
            notes_file = Path(tmp) / "notes.md"
            try:
                notes_file.write_text(notes, encoding="utf-8")
            except OSError as e:
                return Err(ReleaseError(kind="io_failed", message=f"failed to write notes: {e}"))

            result = run_process(build_cmd(notes_file), cwd=self._root, timeout=timeout)
            if isinstance(result, Err):
                return Err(
                    ReleaseError(
                        kind="publish_failed",
                        message=message,
                        hint=result.error.stderr.strip() or self._repo,
                    )
                )
        return Ok(None)
