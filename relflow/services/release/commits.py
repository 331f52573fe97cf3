"""Commit message classification.

Header grammar (first line of the message)::

    header      = type [ "(" scope ")" ] [ "!" ] ": " description
    type        = 1*( %x61-7A )          ; lowercase letters
    scope       = 1*( any char except "(", ")" and newline )
    description = non-blank text

A body line starting with ``BREAKING CHANGE: `` or ``BREAKING-CHANGE: `` marks
the commit breaking too. Headers that do not match are not errors: they map to
``ChangeKind.NONE`` and are skipped.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from relflow.services.release.config import SKIP_RELEASE_MARKER
from relflow.services.release.model import ChangeKind, CommitRecord

_HEADER_RE = re.compile(
    r"^(?P<type>[a-z]+)"
    r"(?:\((?P<scope>[^()\r\n]+)\))?"
    r"(?P<breaking>!)?"
    r": (?P<description>\S.*)$"
)
_BREAKING_FOOTER_RE = re.compile(r"^BREAKING[ -]CHANGE: \S", re.MULTILINE)

_KIND_BY_TYPE: dict[str, ChangeKind] = {
    "feat": ChangeKind.FEATURE,
    "fix": ChangeKind.FIX,
    "perf": ChangeKind.FIX,
}


@dataclass(frozen=True, slots=True)
class ParsedCommit:
    commit: CommitRecord
    type: str
    scope: str | None
    description: str
    breaking: bool

    @property
    def kind(self) -> ChangeKind:
        if self.breaking:
            return ChangeKind.BREAKING
        return _KIND_BY_TYPE.get(self.type, ChangeKind.NONE)


@dataclass(frozen=True, slots=True)
class Classification:
    kind: ChangeKind
    # Commits that contribute a release-worthy change, in input order.
    contributing: tuple[ParsedCommit, ...]


def is_release_commit(commit: CommitRecord) -> bool:
    """True for the commit that recorded a previous version bump."""
    return SKIP_RELEASE_MARKER in commit.message


def parse_commit(commit: CommitRecord) -> ParsedCommit | None:
    m = _HEADER_RE.match(commit.subject)
    if m is None:
        return None

    scope = m.group("scope")
    breaking = m.group("breaking") is not None or bool(
        _BREAKING_FOOTER_RE.search(commit.message)
    )
    return ParsedCommit(
        commit=commit,
        type=m.group("type"),
        scope=scope.strip() if scope else None,
        description=m.group("description").strip(),
        breaking=breaking,
    )


def classify_commits(commits: Iterable[CommitRecord]) -> Classification:
    """Maximum change kind across ``commits``; NONE for an empty or unmatched input."""
    kind = ChangeKind.NONE
    contributing: list[ParsedCommit] = []
    for commit in commits:
        if is_release_commit(commit):
            continue
        parsed = parse_commit(commit)
        if parsed is None or parsed.kind is ChangeKind.NONE:
            continue
        contributing.append(parsed)
        kind = max(kind, parsed.kind)
    return Classification(kind=kind, contributing=tuple(contributing))


def classify(commits: Iterable[CommitRecord]) -> ChangeKind:
    return classify_commits(commits).kind
