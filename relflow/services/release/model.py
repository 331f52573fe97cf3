from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from pathlib import Path
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from relflow.services.release.semver import SemanticVersion


TriggerEvent = Literal["push", "pull_request"]


class ChangeKind(IntEnum):
    """Severity of a change; the order is the bump precedence."""

    NONE = 0
    FIX = 1
    FEATURE = 2
    BREAKING = 3

    def __str__(self) -> str:
        return self.name.lower()


class Channel(Enum):
    STABLE = "stable"
    BETA = "beta"
    RC = "rc"

    @property
    def label(self) -> str | None:
        """Prerelease label carried by versions on this channel."""
        return None if self is Channel.STABLE else self.value

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class CommitRecord:
    sha: str
    message: str
    timestamp: datetime

    @property
    def short_sha(self) -> str:
        return self.sha[:8]

    @property
    def subject(self) -> str:
        lines = self.message.splitlines()
        return lines[0].strip() if lines else ""


@dataclass(frozen=True, slots=True)
class Trigger:
    """What started this invocation: a push or a pull request on ``branch``."""

    branch: str
    event: TriggerEvent = "push"
    # Explicit `git log` range; None means "since the channel's last release tag".
    commit_range: str | None = None


@dataclass(frozen=True, slots=True)
class ReleaseDecision:
    should_release: bool
    channel: Channel | None
    version: SemanticVersion | None = None
    kind: ChangeKind = ChangeKind.NONE
    notes: str = ""
    commits: tuple[CommitRecord, ...] = ()
    # Why no release happens; empty when should_release is True.
    reason: str = ""

    def __post_init__(self) -> None:
        if self.should_release and self.version is None:
            raise ValueError("a positive release decision requires a version")
        if not self.should_release and self.version is not None:
            raise ValueError("a negative release decision must not carry a version")

    @classmethod
    def skip(cls, *, channel: Channel | None, reason: str) -> ReleaseDecision:
        return cls(should_release=False, channel=channel, reason=reason)


class BuildStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        return self.value


class FailureReason(Enum):
    ERROR = "error"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class BuildJob:
    """One platform build.

    Created PENDING by the coordinator; every later transition is made by the
    task that runs the job.
    """

    platform: str
    version: str
    status: BuildStatus = BuildStatus.PENDING
    artifacts: tuple[Path, ...] = ()
    reason: FailureReason | None = None
    detail: str | None = None
    duration_seconds: float = 0.0

    def start(self) -> None:
        self.status = BuildStatus.RUNNING

    def succeed(self, artifacts: tuple[Path, ...], *, duration_seconds: float) -> None:
        self.status = BuildStatus.SUCCEEDED
        self.artifacts = artifacts
        self.duration_seconds = duration_seconds

    def fail(self, reason: FailureReason, detail: str, *, duration_seconds: float) -> None:
        self.status = BuildStatus.FAILED
        self.reason = reason
        self.detail = detail
        self.duration_seconds = duration_seconds

    def cancel(self, detail: str, *, duration_seconds: float = 0.0) -> None:
        self.status = BuildStatus.CANCELLED
        self.reason = FailureReason.CANCELLED
        self.detail = detail
        self.duration_seconds = duration_seconds


@dataclass(frozen=True, slots=True)
class FanoutResult:
    """Aggregate of a fan-out: SUCCEEDED only if every job succeeded."""

    version: str
    status: BuildStatus
    jobs: tuple[BuildJob, ...]

    @property
    def succeeded(self) -> tuple[BuildJob, ...]:
        return tuple(j for j in self.jobs if j.status is BuildStatus.SUCCEEDED)

    @property
    def failed(self) -> tuple[BuildJob, ...]:
        return tuple(j for j in self.jobs if j.status is BuildStatus.FAILED)

    @property
    def cancelled(self) -> tuple[BuildJob, ...]:
        return tuple(j for j in self.jobs if j.status is BuildStatus.CANCELLED)


@dataclass(frozen=True, slots=True)
class Artifact:
    name: str
    path: Path
    sha256: str


@dataclass(frozen=True, slots=True)
class PublishBundle:
    version: str
    channel: Channel | None
    is_prerelease: bool
    notes: str
    artifacts: frozenset[Artifact] = field(default_factory=frozenset)

    @property
    def fingerprint(self) -> frozenset[tuple[str, str]]:
        """Identity of the artifact set: (name, sha256) pairs."""
        return frozenset((a.name, a.sha256) for a in self.artifacts)


@dataclass(frozen=True, slots=True)
class ReleaseRecord:
    """A release as stored by a release host, keyed by version string."""

    version: str
    prerelease: bool
    notes: str
    artifacts: frozenset[tuple[str, str]]


PublishAction = Literal["created", "updated", "unchanged"]


@dataclass(frozen=True, slots=True)
class PublishOutcome:
    version: str
    action: PublishAction
    is_prerelease: bool
    artifact_count: int
