"""Git repository abstraction.

This module provides the Repository class for the git operations the release
pipeline needs: reading the commit range to classify, listing version tags,
and recording the release commit and tag.
All operations return Result types for proper error handling.

Usage:
    repo = Repository(Path("/path/to/project"))

    match repo.log("v1.4.2..HEAD"):
        case Ok(commits):
            for c in commits:
                print(c.sha, c.subject)
        case Err(e):
            print(f"Error: {e.message}")
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from relflow.core.result import Err, Ok, Result
from relflow.platform.process import ProcessError
from relflow.platform.process import run as run_process

_GIT_TIMEOUT_SECONDS = 30.0
_GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0

__all__ = [
    "GitCommit",
    "GitError",
    "Repository",
]

# Record and field separators for `git log --format`; they never occur in messages.
_RS = "\x1e"
_FS = "\x1f"

_NO_TAG_MARKERS = ("no names found", "no tags can describe", "cannot describe anything")


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        command: The git command that failed
        message: Error message
        returncode: Process return code
    """

    command: str
    message: str
    returncode: int = 1


@dataclass(frozen=True, slots=True)
class GitCommit:
    """One entry of ``git log``: full sha, committer date (ISO 8601), full message."""

    sha: str
    date_iso: str
    message: str

    @property
    def subject(self) -> str:
        lines = self.message.splitlines()
        return lines[0].strip() if lines else ""


class Repository:
    """Git repository abstraction.

    Attributes:
        path: Path to the repository root
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def current_branch(self) -> str | None:
        """Get current branch name.

        Returns None if detached HEAD or error.
        """
        result = self._run(["rev-parse", "--abbrev-ref", "HEAD"])
        match result:
            case Ok(stdout):
                branch = stdout.strip()
                return None if branch == "HEAD" else branch
            case Err(_):
                return None

    def head_sha(self) -> Result[str, GitError]:
        result = self._run(["rev-parse", "HEAD"])
        match result:
            case Err(e):
                return Err(self._error("rev-parse HEAD", e))
            case Ok(stdout):
                return Ok(stdout.strip())

    def log(self, rev_range: str) -> Result[list[GitCommit], GitError]:
        """List commits in ``rev_range``, newest first.

        Args:
            rev_range: Anything `git log` accepts, e.g. "v1.4.2..HEAD" or "HEAD".
        """
        fmt = f"%H{_FS}%cI{_FS}%B{_RS}"
        result = self._run(["log", f"--format={fmt}", rev_range])
        match result:
            case Err(e):
                return Err(self._error(f"log {rev_range}", e))
            case Ok(stdout):
                return Ok(self._parse_log(stdout))

    def tags(self, pattern: str) -> Result[list[str], GitError]:
        """List tags matching ``pattern``, oldest first.

        Tags are ordered by creation date; ties (same second) fall back to
        version order with prereleases before their release.
        """
        result = self._run(
            [
                "-c",
                "versionsort.suffix=-",
                "tag",
                "--list",
                pattern,
                "--sort=v:refname",
                "--sort=creatordate",
            ]
        )
        match result:
            case Err(e):
                return Err(self._error("tag --list", e))
            case Ok(stdout):
                return Ok([ln.strip() for ln in stdout.splitlines() if ln.strip()])

    def last_tag(
        self,
        *,
        match: str,
        exclude: tuple[str, ...] = (),
        rev: str = "HEAD",
    ) -> Result[str | None, GitError]:
        """Nearest tag reachable from ``rev`` matching ``match``.

        Returns Ok(None) when no tag matches.
        """
        args = ["describe", "--tags", "--abbrev=0", f"--match={match}"]
        args.extend(f"--exclude={pattern}" for pattern in exclude)
        args.append(rev)

        result = self._run(args)
        match result:
            case Ok(stdout):
                return Ok(stdout.strip() or None)
            case Err(e):
                text = e.stderr.lower()
                if any(marker in text for marker in _NO_TAG_MARKERS):
                    return Ok(None)
                return Err(self._error("describe", e))

    def add(self, paths: list[Path]) -> Result[None, GitError]:
        if not paths:
            return Ok(None)
        result = self._run(["add", "--", *[str(p) for p in paths]])
        if isinstance(result, Err):
            return Err(self._error("add", result.error))
        return Ok(None)

    def commit(self, message: str) -> Result[str, GitError]:
        """Commit the staged changes and return the new HEAD sha."""
        result = self._run(["commit", "-m", message])
        if isinstance(result, Err):
            return Err(self._error("commit", result.error))
        return self.head_sha()

    def create_tag(self, name: str, *, message: str) -> Result[None, GitError]:
        """Create an annotated tag on HEAD."""
        result = self._run(["tag", "-a", name, "-m", message])
        if isinstance(result, Err):
            return Err(self._error(f"tag {name}", result.error))
        return Ok(None)

    def push(self, *, remote: str = "origin", follow_tags: bool = True) -> Result[None, GitError]:
        args = ["push", remote]
        if follow_tags:
            args.append("--follow-tags")
        result = self._run(args)
        if isinstance(result, Err):
            return Err(self._error("push", result.error))
        return Ok(None)

    def _run(self, args: list[str]) -> Result[str, ProcessError]:
        """Run a git command in this repository."""
        command = next((a for a in args if not a.startswith("-") and "=" not in a), "")
        timeout = (
            _GIT_NETWORK_TIMEOUT_SECONDS
            if command in {"fetch", "pull", "push", "clone"}
            else _GIT_TIMEOUT_SECONDS
        )
        return run_process(["git", "-C", str(self.path), *args], cwd=self.path, timeout=timeout)

    def _error(self, command: str, e: ProcessError) -> GitError:
        return GitError(
            command=command,
            message=e.stderr.strip() or e.stdout.strip() or f"git {command} failed",
            returncode=e.returncode,
        )

    def _parse_log(self, output: str) -> list[GitCommit]:
        commits: list[GitCommit] = []
        for record in output.split(_RS):
            record = record.strip("\n")
            if not record.strip():
                continue
            parts = record.split(_FS, 2)
            if len(parts) != 3:
                continue
            sha, date_iso, message = parts
            commits.append(
                GitCommit(sha=sha.strip(), date_iso=date_iso.strip(), message=message.strip())
            )
        return commits
