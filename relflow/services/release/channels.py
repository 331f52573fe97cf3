from __future__ import annotations

from relflow.services.release.config import BETA_BRANCH, RC_BRANCH_PREFIX, STABLE_BRANCH
from relflow.services.release.model import Channel, Trigger

_REF_PREFIX = "refs/heads/"


def normalize_branch(branch: str) -> str:
    """Accept both ``main`` and ``refs/heads/main``."""
    b = branch.strip()
    if b.startswith(_REF_PREFIX):
        return b[len(_REF_PREFIX) :]
    return b


def route_branch(branch: str) -> Channel | None:
    """Release channel for ``branch``, or None if the branch never releases.

    main -> stable, dev -> beta, release/<name> -> rc. Everything else,
    including a bare ``release`` and ``feature/*``, has no channel.
    """
    b = normalize_branch(branch)
    if b == STABLE_BRANCH:
        return Channel.STABLE
    if b == BETA_BRANCH:
        return Channel.BETA
    if b.startswith(RC_BRANCH_PREFIX) and len(b) > len(RC_BRANCH_PREFIX):
        return Channel.RC
    return None


def should_attempt_release(trigger: Trigger) -> tuple[bool, Channel | None, str]:
    """Decide whether the release stage runs at all.

    Pull requests only ever validate. Returns (attempt, channel, reason).
    """
    channel = route_branch(trigger.branch)
    if trigger.event == "pull_request":
        return (False, channel, "pull requests run validation only")
    if channel is None:
        return (False, None, f"branch {normalize_branch(trigger.branch)!r} has no release channel")
    return (True, channel, "")
