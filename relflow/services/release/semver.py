from __future__ import annotations

import re
from dataclasses import dataclass

from relflow.core.result import Err, Ok, Result
from relflow.services.release.errors import ReleaseError
from relflow.services.release.model import ChangeKind

_VERSION_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-([a-z][0-9a-z]*)\.(0|[1-9]\d*))?$"
)


@dataclass(frozen=True, slots=True)
class Prerelease:
    label: str
    counter: int

    def __str__(self) -> str:
        return f"{self.label}.{self.counter}"


@dataclass(frozen=True, slots=True)
class SemanticVersion:
    """MAJOR.MINOR.PATCH with an optional ``label.counter`` prerelease.

    A prerelease sorts strictly below the same core without one.
    """

    major: int
    minor: int
    patch: int
    prerelease: Prerelease | None = None

    def __post_init__(self) -> None:
        if min(self.major, self.minor, self.patch) < 0:
            raise ValueError("version components must be non-negative")
        if self.prerelease is not None and self.prerelease.counter < 1:
            raise ValueError("prerelease counter must be >= 1")

    @property
    def core(self) -> SemanticVersion:
        return SemanticVersion(self.major, self.minor, self.patch)

    @property
    def is_prerelease(self) -> bool:
        return self.prerelease is not None

    @property
    def sort_key(self) -> tuple[int, int, int, int, str, int]:
        if self.prerelease is None:
            return (self.major, self.minor, self.patch, 1, "", 0)
        return (
            self.major,
            self.minor,
            self.patch,
            0,
            self.prerelease.label,
            self.prerelease.counter,
        )

    def __lt__(self, other: SemanticVersion) -> bool:
        return self.sort_key < other.sort_key

    def __le__(self, other: SemanticVersion) -> bool:
        return self.sort_key <= other.sort_key

    def __gt__(self, other: SemanticVersion) -> bool:
        return self.sort_key > other.sort_key

    def __ge__(self, other: SemanticVersion) -> bool:
        return self.sort_key >= other.sort_key

    def bump(self, kind: ChangeKind) -> SemanticVersion:
        """Next core version for ``kind``; any prerelease is dropped."""
        match kind:
            case ChangeKind.BREAKING:
                return SemanticVersion(self.major + 1, 0, 0)
            case ChangeKind.FEATURE:
                return SemanticVersion(self.major, self.minor + 1, 0)
            case ChangeKind.FIX:
                return SemanticVersion(self.major, self.minor, self.patch + 1)
            case _:
                raise AssertionError(f"unexpected bump kind: {kind}")

    def with_prerelease(self, label: str, counter: int) -> SemanticVersion:
        return SemanticVersion(self.major, self.minor, self.patch, Prerelease(label, counter))

    def to_tag(self, prefix: str = "v") -> str:
        return f"{prefix}{self}"

    def __str__(self) -> str:
        core = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease is None:
            return core
        return f"{core}-{self.prerelease}"


def parse_version(text: str, *, prefix: str = "") -> Result[SemanticVersion, ReleaseError]:
    """Parse ``[prefix]MAJOR.MINOR.PATCH[-label.N]``."""
    raw = text.strip()
    if prefix:
        if not raw.startswith(prefix):
            return Err(
                ReleaseError(
                    kind="invalid_version_history",
                    message=f"version does not start with {prefix!r}: {text}",
                    hint=text,
                )
            )
        raw = raw[len(prefix) :]

    m = _VERSION_RE.match(raw)
    if m is None:
        return Err(
            ReleaseError(
                kind="invalid_version_history",
                message=f"unparseable version: {text}",
                hint="Expected MAJOR.MINOR.PATCH or MAJOR.MINOR.PATCH-label.N",
            )
        )

    major, minor, patch = int(m.group(1)), int(m.group(2)), int(m.group(3))
    if m.group(4) is None:
        return Ok(SemanticVersion(major, minor, patch))

    counter = int(m.group(5))
    if counter < 1:
        return Err(
            ReleaseError(
                kind="invalid_version_history",
                message=f"prerelease counter must be >= 1: {text}",
                hint=text,
            )
        )
    return Ok(SemanticVersion(major, minor, patch, Prerelease(m.group(4), counter)))
