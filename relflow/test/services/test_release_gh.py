from __future__ import annotations

import json
from pathlib import Path

import pytest

from relflow.core.result import Err, Ok, Result
from relflow.platform.process import ProcessError
from relflow.services.release import gh as gh_mod
from relflow.services.release.model import Artifact, PublishBundle


def _err(*, stderr: str, returncode: int = 1) -> Err[ProcessError]:
    return Err(
        ProcessError(
            command=("gh", "release", "view"),
            returncode=returncode,
            stdout="",
            stderr=stderr,
        )
    )


def _no_sleep(seconds: float) -> None:
    del seconds


def _host(tmp_path: Path) -> gh_mod.GhReleaseHost:
    return gh_mod.GhReleaseHost(project_root=tmp_path, repo="acme/app", tag_prefix="v")


def _bundle(tmp_path: Path, *, prerelease: bool) -> PublishBundle:
    path = tmp_path / "app.dmg"
    path.write_text("dmg", encoding="utf-8")
    return PublishBundle(
        version="1.5.0-beta.2" if prerelease else "1.5.0",
        channel=None,
        is_prerelease=prerelease,
        notes="### Features\n\n- x\n",
        artifacts=frozenset({Artifact(name="app.dmg", path=path, sha256="ab" * 32)}),
    )


def test_get_retries_transient_error(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    calls: list[list[str]] = []
    payload = {
        "tagName": "v1.5.0",
        "isPrerelease": False,
        "body": "notes",
        "assets": [
            {"name": "app.dmg", "digest": "sha256:" + "ab" * 32},
            {"name": "app.msi"},
        ],
    }
    responses: list[Result[str, ProcessError]] = [
        _err(stderr="HTTP 503 Service Unavailable"),
        Ok(json.dumps(payload)),
    ]

    def fake_run(cmd: list[str], *, cwd: Path, timeout: float | None = None):
        del cwd, timeout
        calls.append(cmd)
        return responses.pop(0)

    monkeypatch.setattr(gh_mod, "run_process", fake_run)
    monkeypatch.setattr(gh_mod, "sleep", _no_sleep)

    result = _host(tmp_path).get("1.5.0")

    assert isinstance(result, Ok)
    record = result.value
    assert record is not None
    assert record.prerelease is False
    assert record.notes == "notes"
    assert record.artifacts == frozenset({("app.dmg", "ab" * 32), ("app.msi", "")})
    assert len(calls) == 2
    assert calls[0][:4] == ["gh", "release", "view", "v1.5.0"]


def test_get_not_found_is_none(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    calls: list[list[str]] = []

    def fake_run(cmd: list[str], *, cwd: Path, timeout: float | None = None):
        del cwd, timeout
        calls.append(cmd)
        return _err(stderr="release not found")

    monkeypatch.setattr(gh_mod, "run_process", fake_run)
    monkeypatch.setattr(gh_mod, "sleep", _no_sleep)

    assert _host(tmp_path).get("9.9.9") == Ok(None)
    assert len(calls) == 1


def test_get_gives_up_after_retries(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    calls: list[list[str]] = []

    def fake_run(cmd: list[str], *, cwd: Path, timeout: float | None = None):
        del cwd, timeout
        calls.append(cmd)
        return _err(stderr="connection reset by peer")

    monkeypatch.setattr(gh_mod, "run_process", fake_run)
    monkeypatch.setattr(gh_mod, "sleep", _no_sleep)

    result = _host(tmp_path).get("1.5.0")

    assert isinstance(result, Err)
    assert result.error.kind == "publish_failed"
    assert len(calls) == gh_mod.GH_READ_RETRY_ATTEMPTS


def test_get_non_transient_error(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def fake_run(cmd: list[str], *, cwd: Path, timeout: float | None = None):
        del cmd, cwd, timeout
        return _err(stderr="HTTP 401: Bad credentials")

    monkeypatch.setattr(gh_mod, "run_process", fake_run)

    result = _host(tmp_path).get("1.5.0")

    assert isinstance(result, Err)
    assert result.error.hint is not None
    assert "Bad credentials" in result.error.hint


def test_create_prerelease_uploads_assets(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    seen: dict[str, object] = {}

    def fake_run(cmd: list[str], *, cwd: Path, timeout: float | None = None):
        seen["cmd"] = cmd
        notes_file = Path(cmd[cmd.index("--notes-file") + 1])
        seen["notes"] = notes_file.read_text(encoding="utf-8")
        return Ok("")

    monkeypatch.setattr(gh_mod, "run_process", fake_run)

    bundle = _bundle(tmp_path, prerelease=True)
    assert _host(tmp_path).create(bundle) == Ok(None)

    cmd = seen["cmd"]
    assert isinstance(cmd, list)
    assert cmd[:4] == ["gh", "release", "create", "v1.5.0-beta.2"]
    assert str(tmp_path / "app.dmg") in cmd
    assert "--prerelease" in cmd
    assert "--verify-tag" in cmd
    assert seen["notes"] == bundle.notes


def test_create_stable_has_no_prerelease_flag(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    seen: list[list[str]] = []

    def fake_run(cmd: list[str], *, cwd: Path, timeout: float | None = None):
        seen.append(cmd)
        return Ok("")

    monkeypatch.setattr(gh_mod, "run_process", fake_run)

    assert _host(tmp_path).create(_bundle(tmp_path, prerelease=False)) == Ok(None)
    assert "--prerelease" not in seen[0]


def test_update_sets_flag_explicitly(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    seen: list[list[str]] = []

    def fake_run(cmd: list[str], *, cwd: Path, timeout: float | None = None):
        seen.append(cmd)
        return Ok("")

    monkeypatch.setattr(gh_mod, "run_process", fake_run)

    assert _host(tmp_path).update(_bundle(tmp_path, prerelease=False)) == Ok(None)
    assert seen[0][:4] == ["gh", "release", "edit", "v1.5.0"]
    assert "--prerelease=false" in seen[0]


def test_create_failure_is_not_retried(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    calls: list[list[str]] = []

    def fake_run(cmd: list[str], *, cwd: Path, timeout: float | None = None):
        calls.append(cmd)
        return _err(stderr="HTTP 502 Bad Gateway")

    monkeypatch.setattr(gh_mod, "run_process", fake_run)

    result = _host(tmp_path).create(_bundle(tmp_path, prerelease=False))

    assert isinstance(result, Err)
    assert result.error.kind == "publish_failed"
    assert len(calls) == 1


def test_ensure_gh_available(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(gh_mod.shutil, "which", lambda name: None)
    result = gh_mod.ensure_gh_available()
    assert isinstance(result, Err)
    assert "cli.github.com" in (result.error.hint or "")
