from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from relflow.core.result import Err, Ok, Result
from relflow.services.release.errors import ReleaseError
from relflow.services.release.model import ChangeKind, Channel
from relflow.services.release.semver import SemanticVersion, parse_version

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReleaseHistory:
    """Released versions, read once at pipeline start."""

    latest_stable: SemanticVersion | None
    stable_cores: frozenset[SemanticVersion]
    # (core, label) -> highest prerelease counter
    prerelease_max: dict[tuple[SemanticVersion, str], int]
    # label -> highest core that has a prerelease on that label
    latest_prerelease_core: dict[str, SemanticVersion]
    released: frozenset[str]

    @classmethod
    def empty(cls) -> ReleaseHistory:
        return cls(
            latest_stable=None,
            stable_cores=frozenset(),
            prerelease_max={},
            latest_prerelease_core={},
            released=frozenset(),
        )


def _is_version_tag(tag: str, prefix: str) -> bool:
    rest = tag[len(prefix) :] if tag.startswith(prefix) else None
    return bool(rest) and rest[0].isdigit()


def compute_history(tags: Sequence[str], *, prefix: str) -> Result[ReleaseHistory, ReleaseError]:
    """Build the history from version tags, oldest first.

    Tags that do not look like versions (no ``prefix`` followed by a digit) are
    ignored. Everything else must parse and must form a consistent history:
    no prerelease of a core after that core shipped stable, and no counter
    going backwards within a (core, label) series.
    """
    stable_cores: set[SemanticVersion] = set()
    prerelease_max: dict[tuple[SemanticVersion, str], int] = {}
    latest_core: dict[str, SemanticVersion] = {}
    released: set[str] = set()

    for tag in tags:
        if not _is_version_tag(tag, prefix):
            continue

        parsed = parse_version(tag, prefix=prefix)
        if isinstance(parsed, Err):
            return Err(
                ReleaseError(
                    kind="invalid_version_history",
                    message=f"cannot parse released version tag: {tag}",
                    hint=parsed.error.hint,
                )
            )
        v = parsed.value
        released.add(str(v))

        if v.prerelease is None:
            stable_cores.add(v)
            continue

        core = v.core
        label = v.prerelease.label
        n = v.prerelease.counter
        if core in stable_cores:
            return Err(
                ReleaseError(
                    kind="invalid_version_history",
                    message=f"prerelease {tag} was tagged after {core} shipped stable",
                    hint="Delete the stray prerelease tag or re-tag the series.",
                )
            )

        prev = prerelease_max.get((core, label))
        if prev is not None and n <= prev:
            return Err(
                ReleaseError(
                    kind="invalid_version_history",
                    message=(
                        f"prerelease counter went backwards: {tag} after "
                        f"{core}-{label}.{prev}"
                    ),
                    hint="The branch history was probably rebased or force-pushed.",
                )
            )
        prerelease_max[(core, label)] = n

        current = latest_core.get(label)
        if current is None or core > current:
            latest_core[label] = core

    return Ok(
        ReleaseHistory(
            latest_stable=max(stable_cores) if stable_cores else None,
            stable_cores=frozenset(stable_cores),
            prerelease_max=prerelease_max,
            latest_prerelease_core=latest_core,
            released=frozenset(released),
        )
    )


def resolve_next_version(
    *,
    history: ReleaseHistory,
    kind: ChangeKind,
    channel: Channel,
    initial: SemanticVersion,
) -> Result[SemanticVersion | None, ReleaseError]:
    """Next version for ``channel``, or None when nothing warrants a release.

    Stable bumps the latest stable core. A prerelease channel computes the
    same candidate core, continues its current series if that series is
    already ahead of the candidate, and increments the series counter.
    """
    if kind is ChangeKind.NONE:
        return Ok(None)

    if history.latest_stable is None:
        candidate = initial.core
    else:
        candidate = history.latest_stable.bump(kind)

    label = channel.label
    if label is None:
        logger.debug("stable candidate %s (kind=%s)", candidate, kind)
        return Ok(candidate)

    base = candidate
    current = history.latest_prerelease_core.get(label)
    if current is not None and current > base:
        base = current

    if base in history.stable_cores:
        return Err(
            ReleaseError(
                kind="invalid_version_history",
                message=f"{base} is already released stable; cannot continue {label} series",
                hint=f"latest stable: {history.latest_stable}",
            )
        )

    n = history.prerelease_max.get((base, label), 0) + 1
    version = base.with_prerelease(label, n)
    logger.debug("%s candidate %s (kind=%s, core=%s)", label, version, kind, candidate)
    return Ok(version)
