from __future__ import annotations

from datetime import UTC, datetime

from relflow.services.release.commits import (
    classify,
    classify_commits,
    is_release_commit,
    parse_commit,
)
from relflow.services.release.model import ChangeKind, CommitRecord


def _c(message: str, sha: str = "0123456789abcdef", day: int = 1) -> CommitRecord:
    return CommitRecord(sha=sha, message=message, timestamp=datetime(2024, 5, day, tzinfo=UTC))


def test_feature_with_scope() -> None:
    parsed = parse_commit(_c("feat(ui): add dark mode"))
    assert parsed is not None
    assert parsed.type == "feat"
    assert parsed.scope == "ui"
    assert parsed.description == "add dark mode"
    assert parsed.kind is ChangeKind.FEATURE


def test_fix_and_perf_are_fixes() -> None:
    assert classify([_c("fix: crash on start")]) is ChangeKind.FIX
    assert classify([_c("perf: faster startup")]) is ChangeKind.FIX


def test_bang_marks_breaking() -> None:
    parsed = parse_commit(_c("refactor(api)!: drop v1 endpoints"))
    assert parsed is not None
    assert parsed.breaking
    assert parsed.kind is ChangeKind.BREAKING


def test_footer_marks_breaking() -> None:
    msg = "feat: new config format\n\nBREAKING CHANGE: old files are not read anymore"
    assert classify([_c(msg)]) is ChangeKind.BREAKING


def test_hyphenated_footer_marks_breaking() -> None:
    msg = "fix: rename flag\n\nBREAKING-CHANGE: --old is gone"
    assert classify([_c(msg)]) is ChangeKind.BREAKING


def test_footer_must_start_a_line() -> None:
    msg = "fix: mention\n\nthis is not a BREAKING CHANGE: really"
    assert classify([_c(msg)]) is ChangeKind.FIX


def test_non_conventional_messages_are_ignored() -> None:
    for msg in ["Update README", "WIP", "Feat: capitalised", "feat:missing space", "feat: "]:
        assert parse_commit(_c(msg)) is None
    assert classify([_c("Merge branch 'dev'")]) is ChangeKind.NONE


def test_other_types_do_not_release() -> None:
    assert classify([_c("docs: typo"), _c("chore: deps"), _c("ci: cache")]) is ChangeKind.NONE


def test_empty_sequence_is_none() -> None:
    assert classify([]) is ChangeKind.NONE


def test_maximum_severity_wins() -> None:
    commits = [_c("fix: a"), _c("feat: b"), _c("docs: c"), _c("fix: d")]
    assert classify(commits) is ChangeKind.FEATURE

    commits.append(_c("chore!: drop node 16"))
    assert classify(commits) is ChangeKind.BREAKING


def test_release_commit_is_skipped() -> None:
    release = _c("chore(release): 1.0.0 [skip release]\n\nfeat: listed in notes")
    assert is_release_commit(release)

    result = classify_commits([release])
    assert result.kind is ChangeKind.NONE
    assert result.contributing == ()


def test_contributing_keeps_input_order() -> None:
    result = classify_commits(
        [_c("fix: a", sha="a" * 8), _c("docs: b"), _c("feat: c", sha="c" * 8)]
    )
    assert [p.commit.sha for p in result.contributing] == ["a" * 8, "c" * 8]
