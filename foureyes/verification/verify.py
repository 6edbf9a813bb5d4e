"""
Deployment verification.

``verify_deployment`` is the single entry point of the rule engine. It is a
pure function of its input: no I/O, no clock, no logging.

Decision order:
1. Legacy deployments are exempt
2. Upstream fetch failure gives ``error``
3. No previous deployment gives ``baseline`` or ``pending_baseline``
4. Same commit, or nothing new, gives ``no_changes``
5. With a deployed PR: the PR's own approval, then implicit approval,
   combined with the verdict on every other commit between deployments
6. Without a deployed PR: every commit must be covered by an approved PR
"""

from collections.abc import Sequence

from foureyes.exceptions import ValidationError
from foureyes.types.verification import (
    ApprovalDetails,
    ApprovalMethod,
    DeployedPrSummary,
    PullRequestData,
    UnverifiedCommit,
    VerificationInput,
    VerificationResult,
    VerificationStatus,
)
from foureyes.verification.resolver import ResolverReport, UnreviewedCommitResolver
from foureyes.verification.rules import (
    check_implicit_approval,
    is_base_branch_merge_commit,
)


def validate_input(input: VerificationInput) -> None:
    """
    Check the identity fields of a verification input.

    Raises:
        ValidationError: If the commit SHA or repository is missing or the
            repository is not ``owner/name``
    """
    if not input.commit_sha or not input.commit_sha.strip():
        raise ValidationError(f"Deployment {input.deployment_id}: commit SHA is required")
    if not input.repository:
        raise ValidationError(f"Deployment {input.deployment_id}: repository is required")
    owner, _, name = input.repository.partition("/")
    if not owner or not name or "/" in name:
        raise ValidationError(
            f"Deployment {input.deployment_id}: invalid repository format: {input.repository!r}"
        )


def legacy_reason(input: VerificationInput) -> str | None:
    """Return why a deployment is legacy, or None if it is not."""
    if input.commit_sha.startswith("refs/"):
        return f"Legacy deployment: {input.commit_sha} is a ref name, not a commit SHA"
    if (
        input.audit_start_year is not None
        and input.created_at is not None
        and input.created_at.year < input.audit_start_year
    ):
        return (
            f"Legacy deployment: created in {input.created_at.year}, "
            f"before audit start year {input.audit_start_year}"
        )
    return None


def _summary(pr: PullRequestData | None) -> DeployedPrSummary | None:
    if pr is None:
        return None
    return DeployedPrSummary(
        number=pr.number, url=pr.url, title=pr.metadata.title, author=pr.metadata.author
    )


def _result(
    input: VerificationInput,
    status: VerificationStatus,
    has_four_eyes: bool,
    method: ApprovalMethod | None,
    reason: str,
    approvers: Sequence[str] = (),
    unverified: Sequence[UnverifiedCommit] = (),
    freshness_gaps: Sequence[str] = (),
) -> VerificationResult:
    return VerificationResult(
        status=status,
        has_four_eyes=has_four_eyes,
        approval_details=ApprovalDetails(method=method, reason=reason, approvers=tuple(approvers)),
        unverified_commits=tuple(unverified),
        deployed_pr=_summary(input.deployed_pr),
        freshness_gaps=tuple(freshness_gaps),
        schema_version=input.data_freshness.schema_version,
    )


def _with_notes(reason: str, report: ResolverReport) -> str:
    notes = list(report.heuristic_matches)
    if report.unresolved:
        notes.append(f"{len(report.unresolved)} commit(s) could not be resolved from cached data")
    if not notes:
        return reason
    return f"{reason} [{'; '.join(notes)}]"


def _explained_by_base_merge(pr: PullRequestData, unverified: Sequence[UnverifiedCommit]) -> bool:
    """
    True when every unverified commit predates the PR's merge of its base branch.

    Author dates can be set freely, so this is a heuristic: a direct push with
    an old author date also qualifies.
    """
    base_merge = next(
        (c for c in pr.commits if is_base_branch_merge_commit(c.message, pr.metadata.base_branch)),
        None,
    )
    if base_merge is None:
        return False
    return all(u.date < base_merge.author_date for u in unverified if u.sha != base_merge.sha)


def _incomplete(input: VerificationInput, report: ResolverReport) -> VerificationResult:
    return _result(
        input,
        VerificationStatus.PENDING,
        False,
        None,
        _with_notes("Verification incomplete: cached data does not cover every commit", report),
        freshness_gaps=report.unresolved,
    )


def _verify_with_pr(
    input: VerificationInput, pr: PullRequestData, resolver: UnreviewedCommitResolver
) -> VerificationResult:
    approval = resolver.approval_for(pr)
    report = resolver.resolve(input.commits_between)
    others = report.unverified
    gaps = report.unresolved

    if approval.approved:
        if others:
            if _explained_by_base_merge(pr, others):
                return _result(
                    input,
                    VerificationStatus.APPROVED_PR_WITH_UNREVIEWED,
                    False,
                    ApprovalMethod.PR_REVIEW,
                    _with_notes(
                        f"{approval.reason}, but {len(others)} unapproved commit(s) appear to come "
                        f"from merging {pr.metadata.base_branch} (judged by author date, heuristic)",
                        report,
                    ),
                    approval.approvers,
                    others,
                    gaps,
                )
            return _result(
                input,
                VerificationStatus.UNVERIFIED_COMMITS,
                False,
                None,
                _with_notes(f"{len(others)} commit(s) not verified", report),
                unverified=others,
                freshness_gaps=gaps,
            )
        if gaps:
            return _incomplete(input, report)
        reason = approval.reason
        if report.covered_by_other_prs:
            reason += f"; {len(report.covered_by_other_prs)} other commit(s) covered by approved PRs"
        return _result(
            input,
            VerificationStatus.APPROVED_PR,
            True,
            ApprovalMethod.PR_REVIEW,
            _with_notes(reason, report),
            approval.approvers,
        )

    implicit = check_implicit_approval(pr, input.implicit_approval_settings, input.policy.bot_accounts)
    if others:
        return _result(
            input,
            VerificationStatus.UNVERIFIED_COMMITS,
            False,
            None,
            _with_notes(f"{len(others)} commit(s) not verified", report),
            unverified=others,
            freshness_gaps=gaps,
        )
    if implicit.qualifies:
        if gaps:
            return _incomplete(input, report)
        return _result(
            input,
            VerificationStatus.IMPLICITLY_APPROVED,
            True,
            ApprovalMethod.IMPLICIT,
            _with_notes(implicit.reason or "Implicit approval", report),
            (pr.metadata.merged_by,) if pr.metadata.merged_by else (),
        )
    return _result(
        input,
        VerificationStatus.MISSING,
        False,
        None,
        _with_notes(approval.reason, report),
        approval.approvers,
        freshness_gaps=gaps,
    )


def _verify_without_pr(
    input: VerificationInput, resolver: UnreviewedCommitResolver
) -> VerificationResult:
    report = resolver.resolve(input.commits_between)
    if report.unverified:
        return _result(
            input,
            VerificationStatus.UNVERIFIED_COMMITS,
            False,
            None,
            _with_notes(f"{len(report.unverified)} commit(s) not verified", report),
            unverified=report.unverified,
            freshness_gaps=report.unresolved,
        )
    if report.unresolved:
        return _incomplete(input, report)
    if input.commit_sha not in report.covered_by_other_prs:
        return _result(
            input,
            VerificationStatus.DIRECT_PUSH,
            False,
            None,
            f"Deployed commit {input.commit_sha[:7]} has no associated PR",
        )
    return _result(
        input,
        VerificationStatus.APPROVED_PR,
        True,
        ApprovalMethod.PR_REVIEW,
        _with_notes(
            f"All {len(report.covered_by_other_prs)} commit(s) verified via PR review", report
        ),
        report.approvers,
    )


def verify_deployment(input: VerificationInput) -> VerificationResult:
    """
    Compute the four-eyes status of one deployment.

    Args:
        input: Everything known about the deployment

    Returns:
        VerificationResult. Identical inputs give identical results.

    Raises:
        ValidationError: If the input lacks a commit SHA or a valid repository
    """
    validate_input(input)

    legacy = legacy_reason(input)
    if legacy is not None:
        return _result(input, VerificationStatus.LEGACY, False, None, legacy)

    if input.fetch_error is not None:
        return _result(
            input,
            VerificationStatus.ERROR,
            False,
            None,
            f"Fetching GitHub data failed: {input.fetch_error}",
        )

    previous = input.previous_deployment
    if previous is None:
        if input.policy.auto_baseline:
            return _result(
                input,
                VerificationStatus.BASELINE,
                True,
                ApprovalMethod.BASELINE,
                "First deployment to this environment, accepted as baseline",
            )
        return _result(
            input,
            VerificationStatus.PENDING_BASELINE,
            False,
            None,
            "First deployment - no previous deployment to compare against",
        )

    if input.commit_sha == previous.commit_sha:
        return _result(
            input,
            VerificationStatus.NO_CHANGES,
            True,
            ApprovalMethod.NO_CHANGES,
            "Same commit as previous deployment",
        )
    if not input.commits_between:
        return _result(
            input,
            VerificationStatus.NO_CHANGES,
            True,
            ApprovalMethod.NO_CHANGES,
            "No new commits since previous deployment",
        )

    resolver = UnreviewedCommitResolver(input.deployed_pr, input.policy.bot_accounts)
    if input.deployed_pr is not None:
        return _verify_with_pr(input, input.deployed_pr, resolver)
    return _verify_without_pr(input, resolver)
