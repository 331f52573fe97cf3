from __future__ import annotations

from pathlib import Path

from relflow.core.result import Err, Ok, Result
from relflow.platform.files import sha256_file
from relflow.services.release.errors import ReleaseError
from relflow.services.release.model import (
    Artifact,
    BuildJob,
    BuildStatus,
    Channel,
    FanoutResult,
    PublishBundle,
    ReleaseRecord,
)
from relflow.services.release.publisher import (
    assemble_bundle,
    is_prerelease,
    publish,
    publish_bundle,
    same_artifact_set,
)
from relflow.services.release.store import LocalReleaseStore


class MemoryHost:
    def __init__(self) -> None:
        self.records: dict[str, ReleaseRecord] = {}
        self.calls: list[str] = []

    def get(self, version: str) -> Result[ReleaseRecord | None, ReleaseError]:
        return Ok(self.records.get(version))

    def create(self, bundle: PublishBundle) -> Result[None, ReleaseError]:
        self.calls.append(f"create {bundle.version}")
        self.records[bundle.version] = ReleaseRecord(
            version=bundle.version,
            prerelease=bundle.is_prerelease,
            notes=bundle.notes,
            artifacts=bundle.fingerprint,
        )
        return Ok(None)

    def update(self, bundle: PublishBundle) -> Result[None, ReleaseError]:
        self.calls.append(f"update {bundle.version}")
        self.records[bundle.version] = ReleaseRecord(
            version=bundle.version,
            prerelease=bundle.is_prerelease,
            notes=bundle.notes,
            artifacts=bundle.fingerprint,
        )
        return Ok(None)


def _file(tmp_path: Path, name: str, content: str) -> Path:
    path = tmp_path / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def _job(platform: str, version: str, *artifacts: Path) -> BuildJob:
    return BuildJob(
        platform=platform,
        version=version,
        status=BuildStatus.SUCCEEDED,
        artifacts=tuple(artifacts),
    )


def _fanout(tmp_path: Path, version: str = "1.5.0") -> FanoutResult:
    jobs = (
        _job("linux", version, _file(tmp_path, "linux/app.AppImage", "linux")),
        _job("windows", version, _file(tmp_path, "windows/app.msi", "windows")),
        _job("macos", version, _file(tmp_path, "macos/app.dmg", "macos")),
    )
    return FanoutResult(version=version, status=BuildStatus.SUCCEEDED, jobs=jobs)


def test_is_prerelease_follows_version_string() -> None:
    assert is_prerelease("1.5.0-beta.2")
    assert is_prerelease("1.5.0-rc.1")
    assert not is_prerelease("1.5.0")
    assert is_prerelease("v2.0.0-rc.1", prefix="v")
    assert not is_prerelease("v2.0.0", prefix="v")


def test_bundle_flag_ignores_channel(tmp_path: Path) -> None:
    # A stable-looking version published from the beta channel is still a full release.
    fanout = _fanout(tmp_path, version="1.5.0")
    bundle = assemble_bundle(fanout=fanout, channel=Channel.BETA, notes="n")
    assert isinstance(bundle, Ok)
    assert bundle.value.is_prerelease is False


def test_assemble_collects_all_artifacts(tmp_path: Path) -> None:
    bundle = assemble_bundle(fanout=_fanout(tmp_path), channel=Channel.STABLE, notes="n")

    assert isinstance(bundle, Ok)
    names = {a.name for a in bundle.value.artifacts}
    assert names == {"app.AppImage", "app.msi", "app.dmg"}
    msi = next(a for a in bundle.value.artifacts if a.name == "app.msi")
    assert msi.sha256 == sha256_file(msi.path)


def test_incomplete_build_set_is_refused(tmp_path: Path) -> None:
    fanout = _fanout(tmp_path)
    failed = BuildJob(platform="windows", version="1.5.0", status=BuildStatus.FAILED)
    partial = FanoutResult(
        version="1.5.0",
        status=BuildStatus.FAILED,
        jobs=(fanout.jobs[0], failed, fanout.jobs[2]),
    )
    host = MemoryHost()

    result = publish(fanout=partial, channel=Channel.STABLE, notes="n", host=host)

    assert isinstance(result, Err)
    assert result.error.kind == "incomplete_build_set"
    assert result.error.hint is not None
    assert "windows" in result.error.hint
    assert host.calls == []


def test_artifact_name_collision(tmp_path: Path) -> None:
    a = _file(tmp_path, "a/latest.json", "linux")
    b = _file(tmp_path, "b/latest.json", "windows")
    fanout = FanoutResult(
        version="1.0.0",
        status=BuildStatus.SUCCEEDED,
        jobs=(_job("linux", "1.0.0", a), _job("windows", "1.0.0", b)),
    )

    result = assemble_bundle(fanout=fanout, channel=Channel.STABLE, notes="n")

    assert isinstance(result, Err)
    assert result.error.kind == "publish_failed"
    assert "latest.json" in result.error.message


def test_identical_artifact_from_two_platforms_is_deduped(tmp_path: Path) -> None:
    a = _file(tmp_path, "a/LICENSE.txt", "same")
    b = _file(tmp_path, "b/LICENSE.txt", "same")
    fanout = FanoutResult(
        version="1.0.0",
        status=BuildStatus.SUCCEEDED,
        jobs=(_job("linux", "1.0.0", a), _job("windows", "1.0.0", b)),
    )

    result = assemble_bundle(fanout=fanout, channel=Channel.STABLE, notes="n")

    assert isinstance(result, Ok)
    assert len(result.value.artifacts) == 1


def test_publish_creates_then_is_unchanged(tmp_path: Path) -> None:
    host = MemoryHost()
    fanout = _fanout(tmp_path)

    first = publish(fanout=fanout, channel=Channel.STABLE, notes="notes", host=host)
    second = publish(fanout=fanout, channel=Channel.STABLE, notes="notes", host=host)

    assert isinstance(first, Ok)
    assert first.value.action == "created"
    assert first.value.artifact_count == 3
    assert isinstance(second, Ok)
    assert second.value.action == "unchanged"
    assert host.calls == ["create 1.5.0"]


def test_publish_updates_notes_in_place(tmp_path: Path) -> None:
    host = MemoryHost()
    fanout = _fanout(tmp_path)
    publish(fanout=fanout, channel=Channel.STABLE, notes="old", host=host)

    result = publish(fanout=fanout, channel=Channel.STABLE, notes="new", host=host)

    assert isinstance(result, Ok)
    assert result.value.action == "updated"
    assert host.records["1.5.0"].notes == "new"


def test_differing_artifact_set_is_a_conflict(tmp_path: Path) -> None:
    host = MemoryHost()
    publish(fanout=_fanout(tmp_path / "one"), channel=Channel.STABLE, notes="n", host=host)
    before = host.records["1.5.0"]

    # Same names, different bytes.
    rebuilt = _fanout(tmp_path / "two")
    _file(tmp_path / "two", "macos/app.dmg", "macos, rebuilt")

    result = publish(fanout=rebuilt, channel=Channel.STABLE, notes="n", host=host)

    assert isinstance(result, Err)
    assert result.error.kind == "publish_conflict"
    assert host.records["1.5.0"] == before
    assert host.calls == ["create 1.5.0"]


def test_missing_artifact_is_a_conflict(tmp_path: Path) -> None:
    host = MemoryHost()
    fanout = _fanout(tmp_path)
    publish(fanout=fanout, channel=Channel.STABLE, notes="n", host=host)
    smaller = FanoutResult(version="1.5.0", status=BuildStatus.SUCCEEDED, jobs=fanout.jobs[:2])

    result = publish(fanout=smaller, channel=Channel.STABLE, notes="n", host=host)

    assert isinstance(result, Err)
    assert result.error.kind == "publish_conflict"


def test_same_artifact_set_without_host_digest(tmp_path: Path) -> None:
    record = ReleaseRecord(
        version="1.0.0",
        prerelease=False,
        notes="",
        artifacts=frozenset({("app.dmg", "")}),
    )
    dmg = Artifact(name="app.dmg", path=tmp_path / "app.dmg", sha256="ab" * 32)
    msi = Artifact(name="app.msi", path=tmp_path / "app.msi", sha256="cd" * 32)

    def bundle(*artifacts: Artifact) -> PublishBundle:
        return PublishBundle(
            version="1.0.0",
            channel=None,
            is_prerelease=False,
            notes="",
            artifacts=frozenset(artifacts),
        )

    # Names alone decide when the host reports no digest.
    assert same_artifact_set(record, bundle(dmg))
    assert not same_artifact_set(record, bundle(dmg, msi))
    assert not same_artifact_set(record, bundle())


def test_publish_bundle_to_local_store(tmp_path: Path) -> None:
    store = LocalReleaseStore(tmp_path / "store")
    bundle = assemble_bundle(
        fanout=_fanout(tmp_path / "build", version="2.0.0-rc.1"),
        channel=Channel.RC,
        notes="rc notes",
    )
    assert isinstance(bundle, Ok)

    result = publish_bundle(bundle=bundle.value, host=store)

    assert isinstance(result, Ok)
    assert result.value.is_prerelease
    record = store.get("2.0.0-rc.1")
    assert isinstance(record, Ok)
    assert record.value is not None
    assert record.value.prerelease is True
    assert (tmp_path / "store" / "2.0.0-rc.1" / "app.dmg").read_text() == "macos"
