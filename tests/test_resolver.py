"""
Tests for the unreviewed-commit resolver.

Feature: unreviewed-commit resolver
"""

from foureyes.testing import direct_push, in_pr, make_commit, make_pr, make_review, sha
from foureyes.types.verification import (
    CommitBetween,
    MatchKind,
    Resolution,
    UnverifiedReason,
)
from foureyes.verification.resolver import (
    DIRECT_PUSH_DETAIL,
    UnreviewedCommitResolver,
    find_unverified_commits,
)

C1 = make_commit(sha(1), "Add endpoint", minutes=0)
C2 = make_commit(sha(2), "Add tests", minutes=5)


def test_commits_in_deployed_pr_are_set_aside() -> None:
    deployed = make_pr(1, [C1, C2], [make_review("bob")])
    report = find_unverified_commits([in_pr(C1, deployed), in_pr(C2, deployed)], deployed)

    assert report.in_deployed_pr == [C1.sha, C2.sha]
    assert report.unverified == []


def test_deployed_pr_commit_recognised_without_resolution() -> None:
    deployed = make_pr(1, [C1], [make_review("bob")])
    report = find_unverified_commits([CommitBetween(C1, Resolution.UNRESOLVED)], deployed)
    assert report.in_deployed_pr == [C1.sha]
    assert report.unresolved == []


def test_direct_push_detail() -> None:
    pushed = make_commit(sha(9), "Hotfix\n\nbody", author="mallory")
    [unverified] = find_unverified_commits([direct_push(pushed)]).unverified

    assert unverified.reason == UnverifiedReason.DIRECT_PUSH
    assert unverified.detail == DIRECT_PUSH_DETAIL
    assert unverified.message == "Hotfix"
    assert unverified.author == "mallory"


def test_merge_commits_skipped() -> None:
    merge = make_commit(sha(9), "Merge pull request #4", parents=(sha(1), sha(2)))
    report = find_unverified_commits([direct_push(merge)])
    assert report.unverified == []
    assert report.unresolved == []


def test_unresolved_commits_are_never_unverified() -> None:
    report = find_unverified_commits([CommitBetween(C1, Resolution.UNRESOLVED)])
    assert report.unresolved == [C1.sha]
    assert report.unverified == []


def test_approvers_collected_across_prs() -> None:
    first = make_pr(2, [C1], [make_review("bob")])
    second = make_pr(3, [C2], [make_review("carol"), make_review("bob", review_id=2)])
    report = find_unverified_commits([in_pr(C1, first), in_pr(C2, second)])

    assert report.covered_by_other_prs == {C1.sha: 2, C2.sha: 3}
    assert sorted(report.approvers) == ["bob", "carol"]


def test_unapproved_pr_reason_follows_outcome() -> None:
    late = make_commit(sha(3), "After approval", minutes=20)
    pr = make_pr(2, [C1, late], [make_review("bob", minutes=10)])
    report = find_unverified_commits([in_pr(late, pr)])

    [unverified] = report.unverified
    assert unverified.reason == UnverifiedReason.APPROVAL_BEFORE_LAST_COMMIT
    assert unverified.pr_number == 2


def test_heuristic_match_noted_on_unverified_commit() -> None:
    pr = make_pr(2, [C1], [])
    rebased = make_commit(sha(101), "Add endpoint")
    report = find_unverified_commits([in_pr(rebased, pr, MatchKind.REBASE_AMBIGUOUS)])

    [unverified] = report.unverified
    assert unverified.detail.endswith("(PR matched by rebase metadata)")
    [note] = report.heuristic_matches
    assert "most recently merged chosen" in note


def test_approval_evaluated_once_per_pr() -> None:
    c3 = make_commit(sha(3), minutes=6)
    pr = make_pr(2, [C1, C2, c3], [make_review("bob")])
    resolver = UnreviewedCommitResolver()
    resolver.resolve([in_pr(C1, pr), in_pr(C2, pr), in_pr(c3, pr)])

    assert resolver.evaluated_prs == 1
    assert resolver.approval_for(pr).approved
