"""
Tests for deployment verification.

Feature: four-eyes rule engine
"""

from datetime import datetime, timezone

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from foureyes.exceptions import ValidationError
from foureyes.testing import (
    direct_push,
    in_pr,
    make_commit,
    make_input,
    make_pr,
    make_review,
    sha,
)
from foureyes.types.github import ReviewState
from foureyes.types.verification import (
    ApprovalMethod,
    CommitBetween,
    ImplicitApprovalMode,
    ImplicitApprovalSettings,
    MatchKind,
    Resolution,
    UnverifiedReason,
    VerificationPolicy,
    VerificationStatus,
)
from foureyes.verification.verify import verify_deployment

C1 = make_commit(sha(1), "Add endpoint", minutes=0)
C2 = make_commit(sha(2), "Add tests", minutes=5)
C3 = make_commit(sha(3), "Tweak after review", minutes=20)


def _approved_pr(number: int = 1, commits=(C1, C2), approval_minutes: float = 10, **kwargs):
    return make_pr(number, list(commits), [make_review("bob", minutes=approval_minutes)], **kwargs)


# ============================================================================
# Scenarios
# ============================================================================


def test_pr_approved_after_last_commit() -> None:
    pr = _approved_pr()
    result = verify_deployment(
        make_input(C2.sha, deployed_pr=pr, commits_between=[in_pr(C1, pr), in_pr(C2, pr)])
    )

    assert result.status == VerificationStatus.APPROVED_PR
    assert result.has_four_eyes
    assert result.approval_details.method == ApprovalMethod.PR_REVIEW
    assert result.approval_details.approvers == ("bob",)
    assert result.deployed_pr.number == 1
    assert result.unverified_commits == ()


def test_commit_after_approval_is_missing() -> None:
    pr = _approved_pr(commits=(C1, C2, C3))
    result = verify_deployment(
        make_input(
            C3.sha,
            deployed_pr=pr,
            commits_between=[in_pr(C1, pr), in_pr(C2, pr), in_pr(C3, pr)],
        )
    )

    assert result.status == VerificationStatus.MISSING
    assert not result.has_four_eyes
    assert result.unverified_commits == ()
    assert "approval predates last real commit" in result.approval_details.reason


def test_dependabot_commit_after_approval_passes() -> None:
    c1 = make_commit(sha(1), "Bump httpx", author="dependabot[bot]", minutes=0)
    c2 = make_commit(sha(2), "Bump httpx to 0.28", author="dependabot[bot]", minutes=20)
    pr = _approved_pr(commits=(c1, c2), author="dependabot[bot]")
    result = verify_deployment(
        make_input(c2.sha, deployed_pr=pr, commits_between=[in_pr(c1, pr), in_pr(c2, pr)])
    )

    assert result.status == VerificationStatus.APPROVED_PR
    assert result.has_four_eyes
    assert "Dependabot" in result.approval_details.reason


def test_first_deployment_without_auto_baseline() -> None:
    result = verify_deployment(make_input(previous_sha=None))
    assert result.status == VerificationStatus.PENDING_BASELINE
    assert not result.has_four_eyes


def test_first_deployment_with_auto_baseline() -> None:
    result = verify_deployment(
        make_input(previous_sha=None, policy=VerificationPolicy(auto_baseline=True))
    )
    assert result.status == VerificationStatus.BASELINE
    assert result.has_four_eyes
    assert result.approval_details.method == ApprovalMethod.BASELINE


def test_same_commit_as_previous() -> None:
    result = verify_deployment(make_input(sha(5), previous_sha=sha(5)))
    assert result.status == VerificationStatus.NO_CHANGES
    assert result.has_four_eyes
    assert result.approval_details.reason == "Same commit as previous deployment"


def test_no_commits_between() -> None:
    result = verify_deployment(make_input(sha(5), previous_sha=sha(4), commits_between=[]))
    assert result.status == VerificationStatus.NO_CHANGES
    assert result.has_four_eyes


def test_merge_commits_between_deployments_are_ignored() -> None:
    pr = _approved_pr()
    merge = make_commit(
        sha(50), "Merge pull request #1 from navikt/feature-1", parents=(sha(0), C2.sha)
    )
    result = verify_deployment(
        make_input(
            merge.sha,
            deployed_pr=pr,
            commits_between=[
                in_pr(C1, pr),
                in_pr(C2, pr),
                CommitBetween(merge, Resolution.UNRESOLVED),
            ],
        )
    )
    assert result.status == VerificationStatus.APPROVED_PR
    assert result.freshness_gaps == ()


def test_direct_push_between_deployments_is_unverified() -> None:
    pr = _approved_pr()
    pushed = make_commit(sha(9), "Hotfix config", author="mallory", minutes=3)
    result = verify_deployment(
        make_input(
            C2.sha,
            deployed_pr=pr,
            commits_between=[in_pr(C1, pr), direct_push(pushed), in_pr(C2, pr)],
        )
    )

    assert result.status == VerificationStatus.UNVERIFIED_COMMITS
    assert not result.has_four_eyes
    [unverified] = result.unverified_commits
    assert unverified.sha == pushed.sha
    assert unverified.reason == UnverifiedReason.DIRECT_PUSH
    assert unverified.pr_number is None
    assert unverified.message == "Hotfix config"


def test_direct_push_without_deployed_pr_is_unverified() -> None:
    pushed = make_commit(sha(9), author="mallory")
    result = verify_deployment(make_input(pushed.sha, commits_between=[direct_push(pushed)]))

    assert result.status == VerificationStatus.UNVERIFIED_COMMITS
    assert [u.sha for u in result.unverified_commits] == [pushed.sha]


def test_deployed_commit_without_pr_and_nothing_unverified_is_direct_push() -> None:
    merge = make_commit(sha(50), "Merge branch 'release'", parents=(sha(0), sha(49)))
    result = verify_deployment(
        make_input(merge.sha, commits_between=[CommitBetween(merge, Resolution.UNRESOLVED)])
    )
    assert result.status == VerificationStatus.DIRECT_PUSH
    assert not result.has_four_eyes
    assert result.unverified_commits == ()


def test_other_commits_covered_by_approved_prs() -> None:
    deployed = _approved_pr()
    other_commit = make_commit(sha(7), "Other feature", minutes=1)
    other = _approved_pr(2, commits=(other_commit,))
    result = verify_deployment(
        make_input(
            C2.sha,
            deployed_pr=deployed,
            commits_between=[in_pr(other_commit, other), in_pr(C1, deployed), in_pr(C2, deployed)],
        )
    )
    assert result.status == VerificationStatus.APPROVED_PR
    assert "1 other commit(s) covered by approved PRs" in result.approval_details.reason


def test_commit_from_unapproved_pr_is_unverified() -> None:
    deployed = _approved_pr()
    other_commit = make_commit(sha(7), "Sneaky change", minutes=1)
    other = make_pr(2, [other_commit], [make_review("carol", ReviewState.COMMENTED)])
    result = verify_deployment(
        make_input(
            C2.sha,
            deployed_pr=deployed,
            commits_between=[in_pr(other_commit, other), in_pr(C1, deployed), in_pr(C2, deployed)],
        )
    )
    assert result.status == VerificationStatus.UNVERIFIED_COMMITS
    [unverified] = result.unverified_commits
    assert unverified.pr_number == 2
    assert unverified.reason == UnverifiedReason.NO_APPROVED_REVIEWS
    assert unverified.detail.startswith("PR #2: ")


def test_commits_merged_in_from_base_branch_before_approval() -> None:
    base_merge = make_commit(
        sha(4), "Merge branch 'main' into feature-1", minutes=15, parents=(C1.sha, sha(8))
    )
    pr = _approved_pr(commits=(C1, base_merge), approval_minutes=20)
    pushed = make_commit(sha(8), "Direct change on main", author="mallory", minutes=12)
    result = verify_deployment(
        make_input(
            base_merge.sha,
            deployed_pr=pr,
            commits_between=[in_pr(C1, pr), direct_push(pushed), in_pr(base_merge, pr)],
        )
    )

    assert result.status == VerificationStatus.APPROVED_PR_WITH_UNREVIEWED
    assert not result.has_four_eyes
    assert [u.sha for u in result.unverified_commits] == [pushed.sha]
    assert "judged by author date, heuristic" in result.approval_details.reason


def test_direct_push_after_base_merge_is_unverified() -> None:
    base_merge = make_commit(
        sha(4), "Merge branch 'main' into feature-1", minutes=15, parents=(C1.sha, sha(9))
    )
    pr = _approved_pr(commits=(C1, base_merge), approval_minutes=20)
    pushed = make_commit(sha(9), "Direct change on main", author="mallory", minutes=25)
    result = verify_deployment(
        make_input(
            base_merge.sha,
            deployed_pr=pr,
            commits_between=[in_pr(C1, pr), in_pr(base_merge, pr), direct_push(pushed)],
        )
    )

    assert result.status == VerificationStatus.UNVERIFIED_COMMITS
    assert not result.has_four_eyes


def test_unresolved_commit_makes_result_pending() -> None:
    pr = _approved_pr()
    unknown = make_commit(sha(30), "Unknown", minutes=2)
    result = verify_deployment(
        make_input(
            C2.sha,
            deployed_pr=pr,
            commits_between=[
                in_pr(C1, pr),
                CommitBetween(unknown, Resolution.UNRESOLVED),
                in_pr(C2, pr),
            ],
        )
    )
    assert result.status == VerificationStatus.PENDING
    assert not result.has_four_eyes
    assert result.freshness_gaps == (unknown.sha,)


def test_unresolved_commit_does_not_hide_unverified_commit() -> None:
    pushed = make_commit(sha(9), minutes=1)
    unknown = make_commit(sha(30), minutes=2)
    result = verify_deployment(
        make_input(
            unknown.sha,
            commits_between=[direct_push(pushed), CommitBetween(unknown, Resolution.UNRESOLVED)],
        )
    )
    assert result.status == VerificationStatus.UNVERIFIED_COMMITS
    assert result.freshness_gaps == (unknown.sha,)


def test_all_commits_verified_without_deployed_pr() -> None:
    pr = _approved_pr()
    result = verify_deployment(
        make_input(C2.sha, commits_between=[in_pr(C1, pr), in_pr(C2, pr)])
    )
    assert result.status == VerificationStatus.APPROVED_PR
    assert result.approval_details.reason.startswith("All 2 commit(s) verified via PR review")
    assert result.approval_details.approvers == ("bob",)


def test_rebase_matched_commit_is_labelled_heuristic() -> None:
    deployed = _approved_pr()
    rebased = make_commit(sha(70), "Other feature", minutes=1)
    other = _approved_pr(2, commits=(make_commit(sha(71), "Other feature", minutes=1),))
    result = verify_deployment(
        make_input(
            C2.sha,
            deployed_pr=deployed,
            commits_between=[
                in_pr(rebased, other, MatchKind.REBASE),
                in_pr(C1, deployed),
                in_pr(C2, deployed),
            ],
        )
    )
    assert result.status == VerificationStatus.APPROVED_PR
    assert "matched PR #2 by rebase metadata (heuristic)" in result.approval_details.reason


# ============================================================================
# Implicit approval
# ============================================================================


def _unreviewed_pr():
    return make_pr(1, [C1, C2], [], author="alice", merged_by="carol")


def test_implicitly_approved() -> None:
    pr = _unreviewed_pr()
    result = verify_deployment(
        make_input(
            C2.sha,
            deployed_pr=pr,
            commits_between=[in_pr(C1, pr), in_pr(C2, pr)],
            implicit_approval=ImplicitApprovalSettings(mode=ImplicitApprovalMode.ALL),
        )
    )
    assert result.status == VerificationStatus.IMPLICITLY_APPROVED
    assert result.has_four_eyes
    assert result.approval_details.method == ApprovalMethod.IMPLICIT
    assert result.approval_details.approvers == ("carol",)


def test_implicit_approval_does_not_cover_other_commits() -> None:
    pr = _unreviewed_pr()
    pushed = make_commit(sha(9), minutes=1)
    result = verify_deployment(
        make_input(
            C2.sha,
            deployed_pr=pr,
            commits_between=[direct_push(pushed), in_pr(C1, pr), in_pr(C2, pr)],
            implicit_approval=ImplicitApprovalSettings(mode=ImplicitApprovalMode.ALL),
        )
    )
    assert result.status == VerificationStatus.UNVERIFIED_COMMITS


def test_unreviewed_pr_without_implicit_approval_is_missing() -> None:
    pr = _unreviewed_pr()
    result = verify_deployment(
        make_input(C2.sha, deployed_pr=pr, commits_between=[in_pr(C1, pr), in_pr(C2, pr)])
    )
    assert result.status == VerificationStatus.MISSING
    assert result.unverified_commits == ()


# ============================================================================
# Legacy, errors and validation
# ============================================================================


def test_ref_name_deployment_is_legacy() -> None:
    result = verify_deployment(make_input("refs/heads/main"))
    assert result.status == VerificationStatus.LEGACY
    assert not result.has_four_eyes


def test_deployment_before_audit_start_is_legacy() -> None:
    result = verify_deployment(
        make_input(
            audit_start_year=2026,
            created_at=datetime(2025, 6, 1, tzinfo=timezone.utc),
        )
    )
    assert result.status == VerificationStatus.LEGACY
    assert "2026" in result.approval_details.reason


def test_fetch_error_gives_error_status() -> None:
    result = verify_deployment(make_input(fetch_error="[RATE_LIMITED] API rate limit exceeded"))
    assert result.status == VerificationStatus.ERROR
    assert not result.has_four_eyes
    assert "rate limit" in result.approval_details.reason


@pytest.mark.parametrize(
    "kwargs",
    [
        {"commit_sha": ""},
        {"commit_sha": "   "},
        {"repository": ""},
        {"repository": "example-app"},
        {"repository": "navikt/example/app"},
    ],
)
def test_invalid_input_raises_validation_error(kwargs) -> None:
    with pytest.raises(ValidationError):
        verify_deployment(make_input(**kwargs))


# ============================================================================
# Properties
# ============================================================================


@given(
    commit_minutes=st.lists(st.integers(min_value=0, max_value=60), min_size=1, max_size=5),
    approval_minute=st.integers(min_value=0, max_value=90),
    direct_pushes=st.integers(min_value=0, max_value=2),
)
@settings(max_examples=100)
def test_verification_is_deterministic(
    commit_minutes: list[int], approval_minute: int, direct_pushes: int
) -> None:
    commits = [make_commit(sha(i + 1), minutes=m) for i, m in enumerate(sorted(commit_minutes))]
    pr = make_pr(1, commits, [make_review("bob", minutes=approval_minute)])
    between = [in_pr(c, pr) for c in commits]
    between += [direct_push(make_commit(sha(100 + i), minutes=i)) for i in range(direct_pushes)]
    input = make_input(commits[-1].sha, deployed_pr=pr, commits_between=between)

    assert verify_deployment(input) == verify_deployment(input)


@given(later_states=st.lists(
    st.sampled_from([ReviewState.COMMENTED, ReviewState.CHANGES_REQUESTED]),
    min_size=1,
    max_size=4,
))
@settings(max_examples=100)
def test_later_reviews_never_downgrade_approved_deployment(later_states: list[ReviewState]) -> None:
    reviews = [make_review("bob", minutes=10, review_id=1)]
    reviews += [
        make_review("bob", state, minutes=11 + i, review_id=i + 2)
        for i, state in enumerate(later_states)
    ]
    pr = make_pr(1, [C1, C2], reviews)
    result = verify_deployment(
        make_input(C2.sha, deployed_pr=pr, commits_between=[in_pr(C1, pr), in_pr(C2, pr)])
    )
    assert result.status == VerificationStatus.APPROVED_PR
