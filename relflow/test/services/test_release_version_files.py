from __future__ import annotations

import json
from pathlib import Path

from relflow.core.result import Err, Ok
from relflow.services.release.version_files import apply_version

FILES = ("package.json", "src-tauri/Cargo.toml", "src-tauri/tauri.conf.json")

CARGO = """[package]
name = "app"
version = "1.4.2"
edition = "2021"

[dependencies]
serde = { version = "1.0", features = ["derive"] }

[build-dependencies]
tauri-build = { version = "2" }
"""


def _project(root: Path) -> None:
    (root / "src-tauri").mkdir(parents=True)
    (root / "package.json").write_text(
        json.dumps({"name": "app", "version": "1.4.2", "private": True}, indent=2) + "\n",
        encoding="utf-8",
    )
    (root / "src-tauri" / "Cargo.toml").write_text(CARGO, encoding="utf-8")
    (root / "src-tauri" / "tauri.conf.json").write_text(
        json.dumps({"productName": "App", "version": "1.4.2"}, indent=2) + "\n",
        encoding="utf-8",
    )


def test_updates_all_descriptor_files(tmp_path: Path) -> None:
    _project(tmp_path)

    result = apply_version(project_root=tmp_path, files=FILES, version="1.5.0-beta.1")

    assert isinstance(result, Ok)
    assert len(result.value) == 3
    pkg = json.loads((tmp_path / "package.json").read_text(encoding="utf-8"))
    assert pkg == {"name": "app", "version": "1.5.0-beta.1", "private": True}
    conf = json.loads((tmp_path / "src-tauri" / "tauri.conf.json").read_text(encoding="utf-8"))
    assert conf["version"] == "1.5.0-beta.1"


def test_cargo_only_package_version_changes(tmp_path: Path) -> None:
    _project(tmp_path)

    apply_version(project_root=tmp_path, files=FILES, version="2.0.0")

    text = (tmp_path / "src-tauri" / "Cargo.toml").read_text(encoding="utf-8")
    assert text == CARGO.replace('version = "1.4.2"', 'version = "2.0.0"')
    assert 'serde = { version = "1.0"' in text


def test_current_version_leaves_files_alone(tmp_path: Path) -> None:
    _project(tmp_path)
    apply_version(project_root=tmp_path, files=FILES, version="1.5.0")

    result = apply_version(project_root=tmp_path, files=FILES, version="1.5.0")

    assert result == Ok([])


def test_missing_files_are_skipped(tmp_path: Path) -> None:
    (tmp_path / "package.json").write_text('{"version": "0.1.0"}\n', encoding="utf-8")

    result = apply_version(project_root=tmp_path, files=FILES, version="0.2.0")

    assert result == Ok([tmp_path / "package.json"])


def test_pyproject_uses_project_table(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        '[build-system]\nrequires = ["x"]\n\n[project]\nname = "a"\nversion = "0.1.0"\n',
        encoding="utf-8",
    )

    result = apply_version(project_root=tmp_path, files=("pyproject.toml",), version="0.2.0")

    assert isinstance(result, Ok)
    assert 'version = "0.2.0"' in (tmp_path / "pyproject.toml").read_text(encoding="utf-8")


def test_toml_without_version_is_error(tmp_path: Path) -> None:
    (tmp_path / "Cargo.toml").write_text('[package]\nname = "a"\n', encoding="utf-8")

    result = apply_version(project_root=tmp_path, files=("Cargo.toml",), version="1.0.0")

    assert isinstance(result, Err)
    assert result.error.kind == "invalid_input"


def test_invalid_json_is_error(tmp_path: Path) -> None:
    (tmp_path / "package.json").write_text("{", encoding="utf-8")

    result = apply_version(project_root=tmp_path, files=("package.json",), version="1.0.0")

    assert isinstance(result, Err)
    assert "invalid JSON" in result.error.message


def test_unsupported_file_type(tmp_path: Path) -> None:
    (tmp_path / "VERSION").write_text("1.0.0\n", encoding="utf-8")

    result = apply_version(project_root=tmp_path, files=("VERSION",), version="1.0.1")

    assert isinstance(result, Err)
