"""File-backed release host.

Layout under the store root::

    releases.json          record per version (schema, notes, flag, artifact digests)
    <version>/<artifact>   copied artifact blobs

This is the default host and the one used for local dry runs and tests.
"""

from __future__ import annotations

import json
import shutil
from pathlib import Path

from relflow.core.result import Err, Ok, Result
from relflow.core.structured import as_obj_list, as_str_dict, get_bool, get_list, get_str
from relflow.platform.files import atomic_write_text
from relflow.services.release.errors import ReleaseError
from relflow.services.release.model import PublishBundle, ReleaseRecord

STORE_SCHEMA = 1
RECORDS_FILE = "releases.json"


class LocalReleaseStore:
    def __init__(self, root: Path) -> None:
        self.root = root

    @property
    def records_path(self) -> Path:
        return self.root / RECORDS_FILE

    def get(self, version: str) -> Result[ReleaseRecord | None, ReleaseError]:
        records = self.list_records()
        if isinstance(records, Err):
            return records
        return Ok(records.value.get(version))

    def create(self, bundle: PublishBundle) -> Result[None, ReleaseError]:
        records = self.list_records()
        if isinstance(records, Err):
            return records

        target = self.root / bundle.version
        try:
            target.mkdir(parents=True, exist_ok=True)
            for art in sorted(bundle.artifacts, key=lambda a: a.name):
                shutil.copy2(art.path, target / art.name)
        except OSError as e:
            return Err(
                ReleaseError(
                    kind="publish_failed",
                    message=f"failed to store artifacts: {e}",
                    hint=str(target),
                )
            )

        updated = dict(records.value)
        updated[bundle.version] = _record(bundle)
        return self._write(updated)

    def update(self, bundle: PublishBundle) -> Result[None, ReleaseError]:
        records = self.list_records()
        if isinstance(records, Err):
            return records
        if bundle.version not in records.value:
            return Err(
                ReleaseError(
                    kind="publish_failed",
                    message=f"cannot update unknown release: {bundle.version}",
                    hint=str(self.records_path),
                )
            )

        updated = dict(records.value)
        updated[bundle.version] = _record(bundle)
        return self._write(updated)

    def list_records(self) -> Result[dict[str, ReleaseRecord], ReleaseError]:
        path = self.records_path
        if not path.exists():
            return Ok({})

        try:
            obj: object = json.loads(path.read_text(encoding="utf-8"))
        except OSError as e:
            return Err(_invalid(f"failed to read release store: {e}", path))
        except json.JSONDecodeError as e:
            return Err(_invalid(f"invalid JSON in release store: {e}", path))

        data = as_str_dict(obj)
        if data is None or data.get("schema") != STORE_SCHEMA:
            return Err(_invalid("unsupported release store schema", path))

        out: dict[str, ReleaseRecord] = {}
        for item in get_list(data, "releases") or []:
            d = as_str_dict(item)
            if d is None:
                return Err(_invalid("release entry must be an object", path))
            version = get_str(d, "version")
            prerelease = get_bool(d, "prerelease")
            if version is None or prerelease is None:
                return Err(_invalid("release entry needs version and prerelease", path))

            artifacts: set[tuple[str, str]] = set()
            for raw in as_obj_list(d.get("artifacts")) or []:
                a = as_str_dict(raw)
                name = get_str(a, "name") if a is not None else None
                sha = get_str(a, "sha256") if a is not None else None
                if name is None or sha is None:
                    return Err(_invalid(f"invalid artifact entry in {version}", path))
                artifacts.add((name, sha))

            notes = d.get("notes")
            out[version] = ReleaseRecord(
                version=version,
                prerelease=prerelease,
                notes=notes if isinstance(notes, str) else "",
                artifacts=frozenset(artifacts),
            )
        return Ok(out)

    def _write(self, records: dict[str, ReleaseRecord]) -> Result[None, ReleaseError]:
        payload: dict[str, object] = {
            "schema": STORE_SCHEMA,
            "releases": [
                {
                    "version": r.version,
                    "prerelease": r.prerelease,
                    "notes": r.notes,
                    "artifacts": [
                        {"name": name, "sha256": sha} for name, sha in sorted(r.artifacts)
                    ],
                }
                for r in sorted(records.values(), key=lambda r: r.version)
            ],
        }
        try:
            atomic_write_text(
                self.records_path, json.dumps(payload, indent=2) + "\n", encoding="utf-8"
            )
        except OSError as e:
            return Err(
                ReleaseError(
                    kind="publish_failed",
                    message=f"failed to write release store: {e}",
                    hint=str(self.records_path),
                )
            )
        return Ok(None)


def _record(bundle: PublishBundle) -> ReleaseRecord:
    return ReleaseRecord(
        version=bundle.version,
        prerelease=bundle.is_prerelease,
        notes=bundle.notes,
        artifacts=bundle.fingerprint,
    )


def _invalid(message: str, path: Path) -> ReleaseError:
    return ReleaseError(kind="publish_failed", message=message, hint=str(path))
