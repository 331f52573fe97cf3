"""Typed configuration loading and access.

This module provides dataclasses for the ``relflow.toml`` structure with
full type safety and validation. Every table is optional; a project without a
config file releases a Tauri app with the defaults below.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from .result import Err, Ok, Result
from .structured import StrDict, as_obj_list, as_str_dict, get_int, get_str, get_str_list, get_table

__all__ = [
    "BuildConfig",
    "ChangelogConfig",
    "Config",
    "ConfigError",
    "ProjectConfig",
    "PublishConfig",
    "ValidateConfig",
    "VersioningConfig",
    "load_config",
    "load_config_or_default",
]

PublishHost = Literal["local", "github"]

DEFAULT_PLATFORMS: tuple[str, ...] = (
    "x86_64-unknown-linux-gnu",
    "x86_64-pc-windows-msvc",
    "aarch64-apple-darwin",
)
DEFAULT_BUILD_COMMAND: tuple[str, ...] = ("pnpm", "tauri", "build", "--target", "{platform}")
_BUNDLE_DIR = "src-tauri/target/{platform}/release/bundle"
# Finished installers only; names carrying the version skip stale bundles.
DEFAULT_ARTIFACT_GLOBS: tuple[str, ...] = (
    f"{_BUNDLE_DIR}/dmg/*_{{version}}_*.dmg",
    f"{_BUNDLE_DIR}/macos/*.app.tar.gz",
    f"{_BUNDLE_DIR}/msi/*_{{version}}_*.msi",
    f"{_BUNDLE_DIR}/nsis/*_{{version}}_*-setup.exe",
    f"{_BUNDLE_DIR}/deb/*_{{version}}_*.deb",
    f"{_BUNDLE_DIR}/rpm/*-{{version}}-*.rpm",
    f"{_BUNDLE_DIR}/appimage/*_{{version}}_*.AppImage",
)
DEFAULT_VALIDATE_COMMANDS: tuple[tuple[str, ...], ...] = (
    ("pnpm", "lint", "--if-present"),
    ("pnpm", "test", "--if-present"),
)
DEFAULT_VERSION_FILES: tuple[str, ...] = (
    "package.json",
    "src-tauri/Cargo.toml",
    "src-tauri/tauri.conf.json",
)
DEFAULT_TIMEOUT_SECONDS = 60 * 60.0
DEFAULT_MAX_PARALLEL = 3


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class ProjectConfig:
    tag_prefix: str = "v"
    # Used for the very first release, when no stable tag exists yet.
    initial_version: str = "1.0.0"


@dataclass(frozen=True, slots=True)
class ValidateConfig:
    """Lint/test commands run before any release logic."""

    commands: tuple[tuple[str, ...], ...] = DEFAULT_VALIDATE_COMMANDS


@dataclass(frozen=True, slots=True)
class BuildConfig:
    """Per-platform build fan-out.

    ``command`` and ``artifacts`` may reference ``{platform}`` and ``{version}``.
    """

    platforms: tuple[str, ...] = DEFAULT_PLATFORMS
    command: tuple[str, ...] = DEFAULT_BUILD_COMMAND
    artifacts: tuple[str, ...] = DEFAULT_ARTIFACT_GLOBS
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_parallel: int = DEFAULT_MAX_PARALLEL


@dataclass(frozen=True, slots=True)
class ChangelogConfig:
    path: str = "CHANGELOG.md"


@dataclass(frozen=True, slots=True)
class VersioningConfig:
    """Project descriptor files rewritten with each new version."""

    files: tuple[str, ...] = DEFAULT_VERSION_FILES


@dataclass(frozen=True, slots=True)
class PublishConfig:
    host: PublishHost = "local"
    repo: str | None = None  # owner/name, required for host="github"
    store: str = ".relflow/releases"


@dataclass(frozen=True, slots=True)
class Config:
    """Main configuration container."""

    project: ProjectConfig = field(default_factory=ProjectConfig)
    validate: ValidateConfig = field(default_factory=ValidateConfig)
    build: BuildConfig = field(default_factory=BuildConfig)
    changelog: ChangelogConfig = field(default_factory=ChangelogConfig)
    versioning: VersioningConfig = field(default_factory=VersioningConfig)
    publish: PublishConfig = field(default_factory=PublishConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Config:
        """Create Config from a mapping (parsed TOML).

        Raises:
            ValueError: If a present key has the wrong shape.
        """
        project: StrDict = get_table(data, "project") or {}
        validate: StrDict = get_table(data, "validate") or {}
        build: StrDict = get_table(data, "build") or {}
        changelog: StrDict = get_table(data, "changelog") or {}
        versioning: StrDict = get_table(data, "versioning") or {}
        publish: StrDict = get_table(data, "publish") or {}

        host = get_str(publish, "host") or "local"
        if host not in ("local", "github"):
            raise ValueError(f"publish.host must be 'local' or 'github', got {host!r}")

        timeout = build.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)
        if isinstance(timeout, bool) or not isinstance(timeout, int | float) or timeout <= 0:
            raise ValueError("build.timeout_seconds must be a positive number")

        max_parallel = get_int(build, "max_parallel")
        if max_parallel is None:
            if "max_parallel" in build:
                raise ValueError("build.max_parallel must be an integer")
            max_parallel = DEFAULT_MAX_PARALLEL
        if max_parallel < 1:
            raise ValueError("build.max_parallel must be >= 1")

        return cls(
            project=ProjectConfig(
                tag_prefix=_optional_str(project, "tag_prefix", "v"),
                initial_version=get_str(project, "initial_version") or "1.0.0",
            ),
            validate=ValidateConfig(
                commands=_commands(validate, "commands", DEFAULT_VALIDATE_COMMANDS),
            ),
            build=BuildConfig(
                platforms=_str_tuple(build, "platforms", DEFAULT_PLATFORMS),
                command=_str_tuple(build, "command", DEFAULT_BUILD_COMMAND),
                artifacts=_str_tuple(build, "artifacts", DEFAULT_ARTIFACT_GLOBS),
                timeout_seconds=float(timeout),
                max_parallel=max_parallel,
            ),
            changelog=ChangelogConfig(path=get_str(changelog, "path") or "CHANGELOG.md"),
            versioning=VersioningConfig(
                files=_str_tuple(versioning, "files", DEFAULT_VERSION_FILES, allow_empty=True),
            ),
            publish=PublishConfig(
                host="github" if host == "github" else "local",
                repo=get_str(publish, "repo"),
                store=get_str(publish, "store") or ".relflow/releases",
            ),
        )


def _optional_str(table: Mapping[str, object], key: str, default: str) -> str:
    # An explicit empty tag_prefix is legal (tags like "1.2.3").
    value = table.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value.strip()


def _str_tuple(
    table: Mapping[str, object],
    key: str,
    default: tuple[str, ...],
    *,
    allow_empty: bool = False,
) -> tuple[str, ...]:
    if key not in table:
        return default
    values = get_str_list(table, key)
    if values is None:
        raise ValueError(f"{key} must be a list of non-empty strings")
    if not values and not allow_empty:
        raise ValueError(f"{key} must not be empty")
    return tuple(values)


def _commands(
    table: Mapping[str, object],
    key: str,
    default: tuple[tuple[str, ...], ...],
) -> tuple[tuple[str, ...], ...]:
    if key not in table:
        return default
    raw = as_obj_list(table.get(key))
    if raw is None:
        raise ValueError(f"{key} must be a list of commands")

    out: list[tuple[str, ...]] = []
    for item in raw:
        argv = get_str_list({"argv": item}, "argv")
        if not argv:
            raise ValueError(f"{key} entries must be non-empty lists of strings")
        out.append(tuple(argv))
    return tuple(out)


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    """Parse a TOML file, handling read and parse errors."""
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
        data = as_str_dict(data_obj)
        if data is None:
            return Err(ConfigError("Config root must be a TOML table", path=path))
        return Ok(data)
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))


def load_config(path: Path) -> Result[Config, ConfigError]:
    """Load and parse configuration from a TOML file.

    Args:
        path: Path to relflow.toml

    Returns:
        Ok(Config) on success, Err(ConfigError) on failure
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        config = Config.from_dict(result.value)
        return Ok(config)
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config structure: {e}", path=path))


def load_config_or_default(path: Path) -> Result[Config, ConfigError]:
    """Load config from file, or return the defaults if the file doesn't exist.

    A file that exists but is invalid is still an error.
    """
    if not path.exists():
        return Ok(Config())
    return load_config(path)
