from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import typer

from relflow.core.config import Config, load_config_or_default
from relflow.core.errors import ErrorCode
from relflow.core.result import Err
from relflow.output.console import ConsoleProtocol, RichConsole
from relflow.services.release.config import CONFIG_FILE_NAME

PROJECT_ROOT_ENV = "RELFLOW_PROJECT_ROOT"


@dataclass(frozen=True, slots=True)
class CLIContext:
    project_root: Path
    config: Config
    console: ConsoleProtocol


def detect_project_root() -> Path:
    override = os.environ.get(PROJECT_ROOT_ENV)
    if override:
        return Path(override)
    return Path.cwd()


def build_context() -> CLIContext:
    root = detect_project_root()
    config_path = root / CONFIG_FILE_NAME

    config_result = load_config_or_default(config_path)
    if isinstance(config_result, Err):
        typer.echo(f"error: {config_result.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.CONFIG_ERROR))

    return CLIContext(
        project_root=root,
        config=config_result.value,
        console=RichConsole(),
    )
