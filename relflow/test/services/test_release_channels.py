from __future__ import annotations

import pytest

from relflow.services.release.channels import normalize_branch, route_branch, should_attempt_release
from relflow.services.release.model import Channel, Trigger


@pytest.mark.parametrize(
    ("branch", "channel"),
    [
        ("main", Channel.STABLE),
        ("dev", Channel.BETA),
        ("release/1.5", Channel.RC),
        ("release/next", Channel.RC),
        ("refs/heads/main", Channel.STABLE),
        ("refs/heads/release/2.0", Channel.RC),
        ("feature/login", None),
        ("release", None),
        ("release/", None),
        ("master", None),
        ("development", None),
    ],
)
def test_routing_table(branch: str, channel: Channel | None) -> None:
    assert route_branch(branch) is channel


def test_normalize_branch() -> None:
    assert normalize_branch(" refs/heads/dev ") == "dev"
    assert normalize_branch("dev") == "dev"


def test_channel_labels() -> None:
    assert Channel.STABLE.label is None
    assert Channel.BETA.label == "beta"
    assert Channel.RC.label == "rc"


def test_push_to_routed_branch_attempts_release() -> None:
    attempt, channel, reason = should_attempt_release(Trigger(branch="dev"))
    assert attempt
    assert channel is Channel.BETA
    assert reason == ""


def test_pull_request_never_releases() -> None:
    attempt, channel, reason = should_attempt_release(
        Trigger(branch="main", event="pull_request")
    )
    assert not attempt
    assert channel is Channel.STABLE
    assert "pull request" in reason


def test_unrouted_branch_does_not_release() -> None:
    attempt, channel, reason = should_attempt_release(Trigger(branch="feature/x"))
    assert not attempt
    assert channel is None
    assert "feature/x" in reason
