from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC
from pathlib import Path

from relflow.core.result import Err, Ok, Result
from relflow.platform.files import atomic_write_text
from relflow.services.release.commits import ParsedCommit
from relflow.services.release.config import CHANGELOG_TITLE
from relflow.services.release.errors import ReleaseError
from relflow.services.release.model import ChangeKind

_SECTIONS: tuple[tuple[ChangeKind, str], ...] = (
    (ChangeKind.BREAKING, "Breaking Changes"),
    (ChangeKind.FEATURE, "Features"),
    (ChangeKind.FIX, "Bug Fixes"),
)


@dataclass(frozen=True, slots=True)
class ReleaseNotes:
    version: str
    heading: str
    body: str

    @property
    def fragment(self) -> str:
        """Heading plus body, as inserted into the running changelog."""
        return f"{self.heading}\n\n{self.body}"


def _entry(p: ParsedCommit) -> str:
    if p.scope:
        return f"- **{p.scope}:** {p.description} ({p.commit.short_sha})"
    return f"- {p.description} ({p.commit.short_sha})"


def build_notes(*, version: str, commits: Sequence[ParsedCommit]) -> ReleaseNotes:
    """Render grouped release notes.

    Sections are Breaking Changes, Features, Bug Fixes; each lists its commits
    newest-first and empty sections are omitted. The heading date is the date
    of the newest commit, so identical input renders byte-identical output.
    """
    ordered = sorted(commits, key=lambda p: p.commit.timestamp, reverse=True)

    blocks: list[str] = []
    for kind, title in _SECTIONS:
        entries = [_entry(p) for p in ordered if p.kind is kind]
        if not entries:
            continue
        blocks.append(f"### {title}\n\n" + "\n".join(entries))

    heading = f"## {version}"
    if ordered:
        day = ordered[0].commit.timestamp.astimezone(UTC).date().isoformat()
        heading = f"{heading} ({day})"

    body = "\n\n".join(blocks) + "\n" if blocks else "No notable changes.\n"
    return ReleaseNotes(version=version, heading=heading, body=body)


def _has_fragment(text: str, version: str) -> bool:
    pattern = re.compile(rf"^## {re.escape(version)}(?: |$)", re.MULTILINE)
    return pattern.search(text) is not None


def insert_fragment(text: str, notes: ReleaseNotes) -> str:
    """Return ``text`` with the new fragment placed right below the title.

    Existing fragments are carried over byte for byte.
    """
    if not text.strip():
        return f"{CHANGELOG_TITLE}\n\n{notes.fragment}"

    lines = text.splitlines(keepends=True)
    if lines and lines[0].startswith("# "):
        title = lines[0].rstrip("\n")
        rest = "".join(lines[1:]).lstrip("\n")
    else:
        title = CHANGELOG_TITLE
        rest = text

    out = f"{title}\n\n{notes.fragment}"
    if rest:
        out += "\n" + rest
    return out


def append_to_changelog(*, path: Path, notes: ReleaseNotes) -> Result[bool, ReleaseError]:
    """Record ``notes`` in the persisted changelog.

    Returns Ok(False) if a fragment for this version is already present.
    """
    try:
        text = path.read_text(encoding="utf-8") if path.exists() else ""
    except OSError as e:
        return Err(
            ReleaseError(
                kind="io_failed",
                message=f"failed to read changelog: {e}",
                hint=str(path),
            )
        )

    if _has_fragment(text, notes.version):
        return Ok(False)

    try:
        atomic_write_text(path, insert_fragment(text, notes), encoding="utf-8")
    except OSError as e:
        return Err(
            ReleaseError(
                kind="io_failed",
                message=f"failed to write changelog: {e}",
                hint=str(path),
            )
        )
    return Ok(True)
