"""Four-eyes rule engine and the data normalizer that feeds it."""

from foureyes.verification.normalizer import Normalizer, NormalizerMode
from foureyes.verification.rebase import (
    commits_match_by_metadata,
    find_rebased_pr,
    match_commit_to_pr,
    resolve_rebased_pr,
)
from foureyes.verification.resolver import (
    ResolverReport,
    UnreviewedCommitResolver,
    find_unverified_commits,
)
from foureyes.verification.rules import (
    ApprovalOutcome,
    ImplicitApproval,
    PrApproval,
    check_implicit_approval,
    evaluate_pull_request,
    is_base_branch_merge_commit,
    is_bot_account,
    latest_review_per_user,
)
from foureyes.verification.verify import legacy_reason, validate_input, verify_deployment

__all__ = [
    # Engine
    "verify_deployment",
    "validate_input",
    "legacy_reason",
    # Approval rules
    "ApprovalOutcome",
    "ImplicitApproval",
    "PrApproval",
    "check_implicit_approval",
    "evaluate_pull_request",
    "is_base_branch_merge_commit",
    "is_bot_account",
    "latest_review_per_user",
    # Rebase matching
    "commits_match_by_metadata",
    "find_rebased_pr",
    "match_commit_to_pr",
    "resolve_rebased_pr",
    # Resolver
    "ResolverReport",
    "UnreviewedCommitResolver",
    "find_unverified_commits",
    # Normalizer
    "Normalizer",
    "NormalizerMode",
]
