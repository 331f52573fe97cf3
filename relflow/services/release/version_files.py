from __future__ import annotations

import json
import re
from collections.abc import Sequence
from pathlib import Path

from relflow.core.result import Err, Ok, Result
from relflow.core.structured import as_str_dict, get_str
from relflow.platform.files import atomic_write_text
from relflow.services.release.errors import ReleaseError

# TOML sections that own the version key, by file name.
_TOML_SECTIONS = {"Cargo.toml": "package", "pyproject.toml": "project"}


def apply_version(
    *,
    project_root: Path,
    files: Sequence[str],
    version: str,
) -> Result[list[Path], ReleaseError]:
    """Write ``version`` into each descriptor file that exists.

    JSON files (package.json, tauri.conf.json) get their top-level ``version``
    key replaced; TOML manifests get the version line of their package
    section rewritten in place. Returns the files that actually changed.
    """
    changed: list[Path] = []
    for rel in files:
        path = project_root / rel
        if not path.exists():
            continue

        if path.suffix == ".json":
            result = _write_json_version(path=path, version=version)
        elif path.suffix == ".toml":
            result = _write_toml_version(path=path, version=version)
        else:
            return Err(
                ReleaseError(
                    kind="invalid_input",
                    message=f"unsupported version file: {rel}",
                    hint="Expected a .json or .toml descriptor",
                )
            )

        if isinstance(result, Err):
            return result
        if result.value:
            changed.append(path)

    return Ok(changed)


def _read_text(path: Path) -> Result[str, ReleaseError]:
    try:
        return Ok(path.read_text(encoding="utf-8"))
    except OSError as e:
        return Err(
            ReleaseError(
                kind="io_failed",
                message=f"failed to read {path.name}: {e}",
                hint=str(path),
            )
        )


def _write_text(path: Path, text: str) -> Result[bool, ReleaseError]:
    try:
        atomic_write_text(path, text, encoding="utf-8")
    except OSError as e:
        return Err(
            ReleaseError(
                kind="io_failed",
                message=f"failed to write {path.name}: {e}",
                hint=str(path),
            )
        )
    return Ok(True)


def _write_json_version(*, path: Path, version: str) -> Result[bool, ReleaseError]:
    text = _read_text(path)
    if isinstance(text, Err):
        return text

    try:
        obj: object = json.loads(text.value)
    except json.JSONDecodeError as e:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message=f"invalid JSON in {path.name}: {e}",
                hint=str(path),
            )
        )

    data = as_str_dict(obj)
    if data is None:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message=f"invalid JSON root in {path.name}",
                hint=str(path),
            )
        )

    if get_str(data, "version") == version:
        return Ok(False)

    data["version"] = version
    return _write_text(path, json.dumps(data, indent=2, ensure_ascii=False) + "\n")


def _write_toml_version(*, path: Path, version: str) -> Result[bool, ReleaseError]:
    text = _read_text(path)
    if isinstance(text, Err):
        return text

    section = _TOML_SECTIONS.get(path.name, "package")
    header = re.search(rf"(?m)^\[{re.escape(section)}\]\s*$", text.value)
    if header is None:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message=f"missing [{section}] section in {path.name}",
                hint=str(path),
            )
        )

    # Only search up to the next table header.
    start = header.end()
    next_header = re.search(r"(?m)^\[", text.value[start:])
    end = start + next_header.start() if next_header else len(text.value)
    body = text.value[start:end]

    m = re.search(r'(?m)^version\s*=\s*"([^"]+)"[ \t]*$', body)
    if m is None:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message=f"missing {section} version in {path.name}",
                hint=str(path),
            )
        )
    if m.group(1) == version:
        return Ok(False)

    replaced = body[: m.start()] + f'version = "{version}"' + body[m.end() :]
    return _write_text(path, text.value[:start] + replaced + text.value[end:])
