from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from relflow.core.config import Config
from relflow.core.result import Err, Ok, Result
from relflow.git.repository import GitError, Repository
from relflow.output.console import ConsoleProtocol, Style
from relflow.services.release import config as release_config
from relflow.services.release.builders import CommandBuilder, PlatformBuilder
from relflow.services.release.changelog import ReleaseNotes, append_to_changelog, build_notes
from relflow.services.release.channels import should_attempt_release
from relflow.services.release.commits import classify_commits
from relflow.services.release.errors import ReleaseError
from relflow.services.release.fanout import run_fanout
from relflow.services.release.gh import GhReleaseHost, ensure_gh_available
from relflow.services.release.model import (
    BuildStatus,
    ChangeKind,
    Channel,
    CommitRecord,
    FailureReason,
    FanoutResult,
    PublishOutcome,
    ReleaseDecision,
    Trigger,
)
from relflow.services.release.planner import (
    ReleaseHistory,
    compute_history,
    resolve_next_version,
)
from relflow.services.release.publisher import ReleaseHost, publish
from relflow.services.release.semver import parse_version
from relflow.services.release.store import LocalReleaseStore
from relflow.services.release.validate import CommandTestRunner, TestRunner
from relflow.services.release.version_files import apply_version

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReleaseReport:
    """What a pipeline run did; fields stay None for stages that never ran."""

    decision: ReleaseDecision
    tag: str | None = None
    fanout: FanoutResult | None = None
    outcome: PublishOutcome | None = None


def _git_error(e: GitError) -> ReleaseError:
    return ReleaseError(kind="git_failed", message=f"git {e.command} failed", hint=e.message)


def load_history(*, repo: Repository, prefix: str) -> Result[ReleaseHistory, ReleaseError]:
    tags = repo.tags(f"{prefix}[0-9]*")
    if isinstance(tags, Err):
        return Err(_git_error(tags.error))
    return compute_history(tags.value, prefix=prefix)


def resolve_commit_range(
    *,
    repo: Repository,
    channel: Channel,
    prefix: str,
) -> Result[str, ReleaseError]:
    """Range of commits not yet covered by a release on ``channel``.

    Stable counts from the last stable tag. A prerelease channel counts from
    the last stable tag or the last tag of its own series, whichever is
    nearer; other channels' prerelease tags are ignored.
    """
    label = channel.label
    if label is None:
        exclude: tuple[str, ...] = ("*-*",)
    else:
        exclude = tuple(f"*-{c.label}.*" for c in Channel if c.label not in (None, label))

    last = repo.last_tag(match=f"{prefix}[0-9]*", exclude=exclude)
    if isinstance(last, Err):
        return Err(_git_error(last.error))
    if last.value is None:
        return Ok("HEAD")
    return Ok(f"{last.value}..HEAD")


def read_commits(*, repo: Repository, rev_range: str) -> Result[list[CommitRecord], ReleaseError]:
    log = repo.log(rev_range)
    if isinstance(log, Err):
        return Err(_git_error(log.error))

    out: list[CommitRecord] = []
    for c in log.value:
        try:
            timestamp = datetime.fromisoformat(c.date_iso)
        except ValueError:
            return Err(
                ReleaseError(
                    kind="git_failed",
                    message=f"unparseable commit date for {c.sha[:8]}",
                    hint=c.date_iso,
                )
            )
        out.append(CommitRecord(sha=c.sha, message=c.message, timestamp=timestamp))
    return Ok(out)


def _plan(
    *,
    repo: Repository,
    config: Config,
    trigger: Trigger,
) -> Result[tuple[ReleaseDecision, ReleaseNotes | None], ReleaseError]:
    attempt, channel, reason = should_attempt_release(trigger)
    if not attempt or channel is None:
        return Ok((ReleaseDecision.skip(channel=channel, reason=reason), None))

    prefix = config.project.tag_prefix
    initial = parse_version(config.project.initial_version)
    if isinstance(initial, Err):
        return Err(
            ReleaseError(
                kind="invalid_input",
                message=f"invalid project.initial_version: {config.project.initial_version}",
                hint=initial.error.hint,
            )
        )

    history = load_history(repo=repo, prefix=prefix)
    if isinstance(history, Err):
        return history

    rev_range = trigger.commit_range
    if rev_range is None:
        resolved = resolve_commit_range(repo=repo, channel=channel, prefix=prefix)
        if isinstance(resolved, Err):
            return resolved
        rev_range = resolved.value

    commits = read_commits(repo=repo, rev_range=rev_range)
    if isinstance(commits, Err):
        return commits

    classification = classify_commits(commits.value)
    logger.info(
        "%d commit(s) in %s, kind=%s", len(commits.value), rev_range, classification.kind
    )
    if classification.kind is ChangeKind.NONE:
        return Ok(
            (
                ReleaseDecision.skip(
                    channel=channel,
                    reason=f"no release-worthy commits in {rev_range}",
                ),
                None,
            )
        )

    version = resolve_next_version(
        history=history.value,
        kind=classification.kind,
        channel=channel,
        initial=initial.value,
    )
    if isinstance(version, Err):
        return version
    if version.value is None:
        return Ok((ReleaseDecision.skip(channel=channel, reason="nothing to release"), None))

    notes = build_notes(version=str(version.value), commits=classification.contributing)
    decision = ReleaseDecision(
        should_release=True,
        channel=channel,
        version=version.value,
        kind=classification.kind,
        notes=notes.fragment,
        commits=tuple(p.commit for p in classification.contributing),
    )
    return Ok((decision, notes))


def plan_release(
    *,
    repo: Repository,
    config: Config,
    trigger: Trigger,
) -> Result[ReleaseDecision, ReleaseError]:
    """Route, classify and resolve without touching anything."""
    planned = _plan(repo=repo, config=config, trigger=trigger)
    if isinstance(planned, Err):
        return planned
    return Ok(planned.value[0])


def make_host(*, project_root: Path, config: Config) -> Result[ReleaseHost, ReleaseError]:
    publish_cfg = config.publish
    if publish_cfg.host == "local":
        return Ok(LocalReleaseStore(project_root / publish_cfg.store))

    if not publish_cfg.repo:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message="publish.host = 'github' requires publish.repo",
                hint="Set repo = \"owner/name\" under [publish] in relflow.toml",
            )
        )
    ok = ensure_gh_available()
    if isinstance(ok, Err):
        return ok
    return Ok(
        GhReleaseHost(
            project_root=project_root,
            repo=publish_cfg.repo,
            tag_prefix=config.project.tag_prefix,
        )
    )


def make_builder(*, project_root: Path, config: Config) -> CommandBuilder:
    return CommandBuilder(
        project_root=project_root,
        command=config.build.command,
        artifact_globs=config.build.artifacts,
        log_dir=project_root / release_config.BUILD_LOG_DIR,
    )


def print_fanout(*, console: ConsoleProtocol, fanout: FanoutResult) -> None:
    for job in fanout.jobs:
        line = f"{job.platform}: {job.status} ({job.duration_seconds:.1f}s)"
        if job.status is BuildStatus.SUCCEEDED:
            console.success(f"{line}, {len(job.artifacts)} artifact(s)")
        elif job.status is BuildStatus.CANCELLED:
            console.warning(line)
        else:
            console.error(f"{line}: {job.reason}")
            if job.detail:
                console.print(job.detail, Style.DIM)


def fanout_error(fanout: FanoutResult) -> ReleaseError | None:
    """The pipeline-level error for a fan-out that did not fully succeed."""
    if fanout.status is BuildStatus.SUCCEEDED:
        return None

    bad = ", ".join(j.platform for j in fanout.jobs if j.status is not BuildStatus.SUCCEEDED)
    if fanout.status is BuildStatus.CANCELLED:
        return ReleaseError(kind="build_cancelled", message="builds were cancelled", hint=bad)

    reasons = {j.reason for j in fanout.failed}
    if reasons == {FailureReason.TIMEOUT}:
        return ReleaseError(kind="build_timeout", message="builds timed out", hint=bad)
    return ReleaseError(kind="build_failure", message="builds failed", hint=bad)


def build_platforms(
    *,
    version: str,
    platforms: tuple[str, ...],
    config: Config,
    builder: PlatformBuilder,
    console: ConsoleProtocol,
    cancel: threading.Event | None = None,
) -> Result[FanoutResult, ReleaseError]:
    console.header(f"Build {version}")
    fanout = run_fanout(
        version=version,
        platforms=platforms,
        builder=builder,
        timeout_seconds=config.build.timeout_seconds,
        max_parallel=config.build.max_parallel,
        cancel=cancel,
    )
    print_fanout(console=console, fanout=fanout)
    error = fanout_error(fanout)
    if error is not None:
        return Err(error)
    return Ok(fanout)


def _record_release(
    *,
    repo: Repository,
    project_root: Path,
    config: Config,
    notes: ReleaseNotes,
    console: ConsoleProtocol,
    push: bool,
) -> Result[str, ReleaseError]:
    version = notes.version
    changed = apply_version(
        project_root=project_root,
        files=config.versioning.files,
        version=version,
    )
    if isinstance(changed, Err):
        return changed
    paths = list(changed.value)
    for p in paths:
        console.print(f"version: {p.relative_to(project_root)}", Style.DIM)

    changelog_path = project_root / config.changelog.path
    written = append_to_changelog(path=changelog_path, notes=notes)
    if isinstance(written, Err):
        return written
    if written.value:
        paths.append(changelog_path)
        console.print(f"changelog: {config.changelog.path}", Style.DIM)

    if paths:
        staged = repo.add(paths)
        if isinstance(staged, Err):
            return Err(_git_error(staged.error))
        message = release_config.RELEASE_COMMIT_TEMPLATE.format(version=version)
        committed = repo.commit(message)
        if isinstance(committed, Err):
            return Err(_git_error(committed.error))
        console.print(f"commit: {committed.value[:8]} {message}", Style.DIM)

    tag = f"{config.project.tag_prefix}{version}"
    tagged = repo.create_tag(tag, message=f"release {tag}")
    if isinstance(tagged, Err):
        return Err(_git_error(tagged.error))
    console.success(f"tag: {tag}")

    if push:
        pushed = repo.push(follow_tags=True)
        if isinstance(pushed, Err):
            return Err(_git_error(pushed.error))
        console.success("pushed")

    return Ok(tag)


def run_release(
    *,
    project_root: Path,
    config: Config,
    trigger: Trigger,
    console: ConsoleProtocol,
    runner: TestRunner | None = None,
    builder: PlatformBuilder | None = None,
    host: ReleaseHost | None = None,
    push: bool = False,
    dry_run: bool = False,
    cancel: threading.Event | None = None,
) -> Result[ReleaseReport, ReleaseError]:
    """Validate, decide, record, build and publish.

    Stops after validation for triggers that do not release (pull requests,
    unrouted branches) and after planning for a dry run. Any error aborts the
    remaining stages.
    """
    repo = Repository(project_root)

    console.header("Validate")
    gate = runner or CommandTestRunner(
        project_root=project_root,
        commands=config.validate.commands,
        console=console,
    )
    ok = gate.run()
    if isinstance(ok, Err):
        return ok
    console.success("validation passed")

    console.header("Plan")
    planned = _plan(repo=repo, config=config, trigger=trigger)
    if isinstance(planned, Err):
        return planned
    decision, notes = planned.value
    if not decision.should_release or notes is None:
        console.info(f"no release: {decision.reason}")
        return Ok(ReleaseReport(decision=decision))

    version = str(decision.version)
    console.field("channel", str(decision.channel))
    console.field("version", version)
    console.field("kind", str(decision.kind))
    if dry_run:
        console.print(notes.fragment)
        console.warning("dry-run: nothing recorded, built or published")
        return Ok(ReleaseReport(decision=decision))

    if host is None:
        made = make_host(project_root=project_root, config=config)
        if isinstance(made, Err):
            return made
        host = made.value

    console.header("Record")
    tag = _record_release(
        repo=repo,
        project_root=project_root,
        config=config,
        notes=notes,
        console=console,
        push=push,
    )
    if isinstance(tag, Err):
        return tag

    built = build_platforms(
        version=version,
        platforms=config.build.platforms,
        config=config,
        builder=builder or make_builder(project_root=project_root, config=config),
        console=console,
        cancel=cancel,
    )
    if isinstance(built, Err):
        return built

    console.header("Publish")
    outcome = publish(
        fanout=built.value,
        channel=decision.channel,
        notes=notes.body,
        host=host,
    )
    if isinstance(outcome, Err):
        return outcome
    kind = "prerelease" if outcome.value.is_prerelease else "release"
    console.success(f"{outcome.value.action} {kind} {version}")

    return Ok(
        ReleaseReport(
            decision=decision,
            tag=tag.value,
            fanout=built.value,
            outcome=outcome.value,
        )
    )
