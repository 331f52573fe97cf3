from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from relflow.core.result import Err, Ok, Result
from relflow.platform.files import sha256_file
from relflow.services.release.errors import ReleaseError
from relflow.services.release.model import (
    Artifact,
    BuildStatus,
    Channel,
    FanoutResult,
    PublishBundle,
    PublishOutcome,
    ReleaseRecord,
)

logger = logging.getLogger(__name__)


class ReleaseHost(Protocol):
    """Where published releases live, keyed by version string."""

    def get(self, version: str) -> Result[ReleaseRecord | None, ReleaseError]:
        """Return the stored record, or None if the version was never published."""
        ...

    def create(self, bundle: PublishBundle) -> Result[None, ReleaseError]: ...

    def update(self, bundle: PublishBundle) -> Result[None, ReleaseError]:
        """Rewrite notes and prerelease flag of an existing record in place."""
        ...


def is_prerelease(version: str, *, prefix: str = "") -> bool:
    """True iff the version string carries a prerelease suffix.

    This looks at the string only; which channel produced it is irrelevant.
    """
    raw = version.strip()
    if prefix and raw.startswith(prefix):
        raw = raw[len(prefix) :]
    return "-" in raw


def _artifact(path: Path) -> Result[Artifact, ReleaseError]:
    try:
        digest = sha256_file(path)
    except OSError as e:
        return Err(
            ReleaseError(
                kind="publish_failed",
                message=f"cannot read artifact: {e}",
                hint=str(path),
            )
        )
    return Ok(Artifact(name=path.name, path=path, sha256=digest))


def assemble_bundle(
    *,
    fanout: FanoutResult,
    channel: Channel | None,
    notes: str,
) -> Result[PublishBundle, ReleaseError]:
    """Collect every successful job's artifacts into one bundle.

    Requires an aggregate SUCCEEDED. Artifacts are named by file name; two
    platforms shipping different files under one name is an error.
    """
    if fanout.status is not BuildStatus.SUCCEEDED:
        missing = [
            f"{j.platform} ({j.status})"
            for j in fanout.jobs
            if j.status is not BuildStatus.SUCCEEDED
        ]
        return Err(
            ReleaseError(
                kind="incomplete_build_set",
                message=f"refusing to publish {fanout.version}: build set is {fanout.status}",
                hint=", ".join(missing) or None,
            )
        )

    by_name: dict[str, Artifact] = {}
    for job in fanout.succeeded:
        for path in job.artifacts:
            art = _artifact(path)
            if isinstance(art, Err):
                return art
            prev = by_name.get(art.value.name)
            if prev is not None and prev.sha256 != art.value.sha256:
                return Err(
                    ReleaseError(
                        kind="publish_failed",
                        message=f"artifact name collision: {art.value.name}",
                        hint=f"{prev.path} vs {path}",
                    )
                )
            by_name.setdefault(art.value.name, art.value)

    return Ok(
        PublishBundle(
            version=fanout.version,
            channel=channel,
            is_prerelease=is_prerelease(fanout.version),
            notes=notes,
            artifacts=frozenset(by_name.values()),
        )
    )


def same_artifact_set(record: ReleaseRecord, bundle: PublishBundle) -> bool:
    """Compare by name and, where the host knows it, by SHA-256."""
    stored = dict(record.artifacts)
    incoming = dict(bundle.fingerprint)
    if stored.keys() != incoming.keys():
        return False
    return all(not sha or sha == incoming[name] for name, sha in stored.items())


def publish_bundle(
    *,
    bundle: PublishBundle,
    host: ReleaseHost,
) -> Result[PublishOutcome, ReleaseError]:
    """Upsert ``bundle`` on ``host``.

    Absent: create. Present with the same artifact set: update notes and flag
    in place (or do nothing if they match). Present with a different artifact
    set: PublishConflict, never an overwrite.
    """
    existing = host.get(bundle.version)
    if isinstance(existing, Err):
        return existing

    count = len(bundle.artifacts)
    record = existing.value
    if record is None:
        created = host.create(bundle)
        if isinstance(created, Err):
            return created
        logger.info("created release %s with %d artifact(s)", bundle.version, count)
        return Ok(PublishOutcome(bundle.version, "created", bundle.is_prerelease, count))

    if not same_artifact_set(record, bundle):
        stored = sorted(name for name, _ in record.artifacts)
        return Err(
            ReleaseError(
                kind="publish_conflict",
                message=f"{bundle.version} is already published with a different artifact set",
                hint=f"published: {', '.join(stored) or '(none)'}",
            )
        )

    if record.notes == bundle.notes and record.prerelease == bundle.is_prerelease:
        return Ok(PublishOutcome(bundle.version, "unchanged", bundle.is_prerelease, count))

    updated = host.update(bundle)
    if isinstance(updated, Err):
        return updated
    logger.info("updated release %s", bundle.version)
    return Ok(PublishOutcome(bundle.version, "updated", bundle.is_prerelease, count))


def publish(
    *,
    fanout: FanoutResult,
    channel: Channel | None,
    notes: str,
    host: ReleaseHost,
) -> Result[PublishOutcome, ReleaseError]:
    bundle = assemble_bundle(fanout=fanout, channel=channel, notes=notes)
    if isinstance(bundle, Err):
        return bundle
    return publish_bundle(bundle=bundle.value, host=host)
