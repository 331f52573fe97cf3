from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ReleaseErrorKind = Literal[
    "invalid_version_history",
    # Listed for completeness: ambiguity is resolved by taking the maximum severity.
    "classification_ambiguous",
    "build_failure",
    "build_timeout",
    "build_cancelled",
    "incomplete_build_set",
    "publish_conflict",
    "publish_failed",
    "validation_failed",
    "invalid_input",
    "git_failed",
    "io_failed",
]


@dataclass(frozen=True, slots=True)
class ReleaseError:
    """Structured diagnostic surfaced to the invoking environment.

    ``hint`` carries the context (offending tag, file path, stderr tail).
    """

    kind: ReleaseErrorKind
    message: str
    hint: str | None = None
