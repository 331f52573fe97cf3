from __future__ import annotations

import os
import threading
from typing import NoReturn

import typer

from relflow.cli.context import CLIContext, build_context
from relflow.core.errors import ErrorCode
from relflow.core.result import Err
from relflow.git.repository import Repository
from relflow.output.console import Style
from relflow.services.release.errors import ReleaseError, ReleaseErrorKind
from relflow.services.release.model import ReleaseDecision, Trigger, TriggerEvent
from relflow.services.release.semver import parse_version
from relflow.services.release.service import (
    build_platforms,
    make_builder,
    plan_release,
    run_release,
)
from relflow.services.release.validate import CommandTestRunner

release_app = typer.Typer(add_completion=False, no_args_is_help=True)

_BUILD_KINDS: frozenset[ReleaseErrorKind] = frozenset(
    {"build_failure", "build_timeout", "validation_failed"}
)
_PUBLISH_KINDS: frozenset[ReleaseErrorKind] = frozenset(
    {"incomplete_build_set", "publish_conflict", "publish_failed"}
)


def exit_code_for(kind: ReleaseErrorKind) -> ErrorCode:
    if kind == "build_cancelled":
        return ErrorCode.CANCELLED
    if kind in _BUILD_KINDS:
        return ErrorCode.BUILD_ERROR
    if kind in _PUBLISH_KINDS:
        return ErrorCode.PUBLISH_ERROR
    return ErrorCode.RESOLUTION_ERROR


def _exit(err: str, *, code: ErrorCode) -> NoReturn:
    typer.echo(f"error: {err}", err=True)
    raise typer.Exit(code=int(code))


def _fail(error: ReleaseError) -> NoReturn:
    typer.echo(f"error: {error.message}", err=True)
    if error.hint:
        typer.echo(f"hint: {error.hint}", err=True)
    raise typer.Exit(code=int(exit_code_for(error.kind)))


def _event(event: str | None) -> TriggerEvent:
    raw = event or os.environ.get("GITHUB_EVENT_NAME") or "push"
    if raw in ("pull_request", "pull_request_target"):
        return "pull_request"
    if raw == "push" or event is None:
        return "push"
    _exit(f"invalid --event: {event} (expected push or pull_request)", code=ErrorCode.CONFIG_ERROR)


def _trigger(
    ctx: CLIContext,
    *,
    branch: str | None,
    event: str | None,
    from_ref: str | None,
    to_ref: str | None,
) -> Trigger:
    name = (
        branch
        or os.environ.get("GITHUB_HEAD_REF")
        or os.environ.get("GITHUB_REF_NAME")
        or Repository(ctx.project_root).current_branch()
    )
    if not name:
        _exit(
            "cannot determine the branch (detached HEAD?); pass --branch",
            code=ErrorCode.CONFIG_ERROR,
        )

    if to_ref is not None and from_ref is None:
        _exit("--to requires --from", code=ErrorCode.CONFIG_ERROR)
    commit_range = f"{from_ref}..{to_ref or 'HEAD'}" if from_ref else None

    return Trigger(branch=name, event=_event(event), commit_range=commit_range)


def _print_decision(ctx: CLIContext, decision: ReleaseDecision) -> None:
    console = ctx.console
    console.field("channel", str(decision.channel) if decision.channel else "(none)")
    if not decision.should_release:
        console.info(f"no release: {decision.reason}")
        return

    console.field("version", str(decision.version))
    console.field("kind", str(decision.kind))
    console.field("commits", str(len(decision.commits)))
    console.newline()
    console.print(decision.notes)


_BRANCH_OPT = typer.Option(None, "--branch", help="Branch to route (default: current)")
_EVENT_OPT = typer.Option(None, "--event", help="push or pull_request")
_FROM_OPT = typer.Option(None, "--from", help="Start of the commit range (exclusive)")
_TO_OPT = typer.Option(None, "--to", help="End of the commit range (default: HEAD)")


@release_app.command("plan")
def plan_cmd(
    branch: str | None = _BRANCH_OPT,
    event: str | None = _EVENT_OPT,
    from_ref: str | None = _FROM_OPT,
    to_ref: str | None = _TO_OPT,
) -> None:
    """Decide the next release (no side effects)."""
    ctx = build_context()
    trigger = _trigger(ctx, branch=branch, event=event, from_ref=from_ref, to_ref=to_ref)
    ctx.console.print(f"branch: {trigger.branch} ({trigger.event})", Style.DIM)

    decision = plan_release(
        repo=Repository(ctx.project_root),
        config=ctx.config,
        trigger=trigger,
    )
    if isinstance(decision, Err):
        _fail(decision.error)
    _print_decision(ctx, decision.value)


@release_app.command("run")
def run_cmd(
    branch: str | None = _BRANCH_OPT,
    event: str | None = _EVENT_OPT,
    from_ref: str | None = _FROM_OPT,
    to_ref: str | None = _TO_OPT,
    push: bool = typer.Option(False, "--push", help="Push the release commit and tag"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Stop after planning"),
) -> None:
    """Validate, version, build every platform and publish."""
    ctx = build_context()
    trigger = _trigger(ctx, branch=branch, event=event, from_ref=from_ref, to_ref=to_ref)
    ctx.console.print(f"branch: {trigger.branch} ({trigger.event})", Style.DIM)

    cancel = threading.Event()
    try:
        report = run_release(
            project_root=ctx.project_root,
            config=ctx.config,
            trigger=trigger,
            console=ctx.console,
            push=push,
            dry_run=dry_run,
            cancel=cancel,
        )
    except KeyboardInterrupt:
        cancel.set()
        _exit("cancelled", code=ErrorCode.CANCELLED)

    if isinstance(report, Err):
        _fail(report.error)


@release_app.command("build")
def build_cmd(
    version: str = typer.Option(..., "--version", help="Version being built (tag prefix optional)"),
    platform: list[str] = typer.Option(
        [], "--platform", help="Target platform (repeatable; default: all configured)"
    ),
) -> None:
    """Build platforms in isolation (no versioning, no publish)."""
    ctx = build_context()

    parsed = parse_version(version.strip().removeprefix(ctx.config.project.tag_prefix))
    if isinstance(parsed, Err):
        _fail(parsed.error)

    platforms = tuple(platform) or ctx.config.build.platforms
    cancel = threading.Event()
    try:
        built = build_platforms(
            version=str(parsed.value),
            platforms=platforms,
            config=ctx.config,
            builder=make_builder(project_root=ctx.project_root, config=ctx.config),
            console=ctx.console,
            cancel=cancel,
        )
    except KeyboardInterrupt:
        cancel.set()
        _exit("cancelled", code=ErrorCode.CANCELLED)

    if isinstance(built, Err):
        _fail(built.error)
    for job in built.value.jobs:
        for path in job.artifacts:
            ctx.console.print(str(path.relative_to(ctx.project_root)), Style.DIM)


@release_app.command("validate")
def validate_cmd() -> None:
    """Run the lint/test gate only (the pull request path)."""
    ctx = build_context()
    runner = CommandTestRunner(
        project_root=ctx.project_root,
        commands=ctx.config.validate.commands,
        console=ctx.console,
    )
    try:
        ok = runner.run()
    except KeyboardInterrupt:
        _exit("cancelled", code=ErrorCode.CANCELLED)

    if isinstance(ok, Err):
        _fail(ok.error)
    ctx.console.success("validation passed")
