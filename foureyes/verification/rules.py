"""
Pull request approval rules.

Pure functions deciding whether a single PR shows four-eyes approval.
No I/O; every timestamp compared comes from the PR data itself.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache

from foureyes.types.github import PrReview, ReviewState
from foureyes.types.verification import (
    DEFAULT_BOT_ACCOUNTS,
    ImplicitApprovalMode,
    ImplicitApprovalSettings,
    PullRequestData,
    UnverifiedReason,
)


class ApprovalOutcome(str, Enum):
    """Which rule decided a PR's approval."""

    APPROVED_AFTER_LAST_COMMIT = "approved_after_last_commit"
    NO_COMMITS_AFTER_APPROVAL = "no_commits_after_approval"
    BOT_COMMITS_AFTER_APPROVAL = "bot_commits_after_approval"
    BASE_MERGES_AFTER_APPROVAL = "base_merges_after_approval"
    APPROVAL_BEFORE_LAST_COMMIT = "approval_before_last_commit"
    NO_APPROVED_REVIEWS = "no_approved_reviews"
    NO_COMMITS = "no_commits"

    @property
    def unverified_reason(self) -> UnverifiedReason:
        """The reason recorded on commits covered by a PR with this outcome."""
        if self is ApprovalOutcome.NO_APPROVED_REVIEWS:
            return UnverifiedReason.NO_APPROVED_REVIEWS
        if self is ApprovalOutcome.APPROVAL_BEFORE_LAST_COMMIT:
            return UnverifiedReason.APPROVAL_BEFORE_LAST_COMMIT
        if self is ApprovalOutcome.NO_COMMITS:
            return UnverifiedReason.NO_COMMITS
        return UnverifiedReason.PR_NOT_APPROVED


@dataclass(frozen=True)
class PrApproval:
    """Approval verdict for one PR."""

    approved: bool
    outcome: ApprovalOutcome
    reason: str
    approvers: tuple[str, ...] = ()


@dataclass(frozen=True)
class ImplicitApproval:
    qualifies: bool
    reason: str | None = None


@lru_cache(maxsize=64)
def _base_merge_patterns(base_branch: str) -> tuple[re.Pattern[str], ...]:
    patterns = []
    for branch in dict.fromkeys([base_branch, "main", "master"]):
        name = re.escape(branch)
        patterns.append(
            re.compile(
                rf"^merge (remote-tracking )?branch ['\"](origin/)?{name}['\"]( of \S+)?( into .+)?$",
                re.IGNORECASE,
            )
        )
    return tuple(patterns)


def is_base_branch_merge_commit(message: str, base_branch: str = "main") -> bool:
    """
    Detect a merge of the base branch into a feature branch by message.

    Matches the messages git and GitHub generate, e.g.
    ``Merge branch 'main' into feature`` or
    ``Merge remote-tracking branch 'origin/main' into feature``.
    ``main`` and ``master`` are always treated as base branches.
    """
    first_line = message.split("\n", 1)[0].strip()
    return any(p.match(first_line) for p in _base_merge_patterns(base_branch))


def is_bot_account(
    username: str | None, bot_accounts: Iterable[str] = DEFAULT_BOT_ACCOUNTS
) -> bool:
    if not username:
        return False
    return username.lower() in {b.lower() for b in bot_accounts}


def latest_review_per_user(reviews: Iterable[PrReview]) -> list[PrReview]:
    """
    Keep one review per reviewer.

    The most recent submitted review wins, except that an APPROVED state is
    never replaced by a later non-APPROVED review from the same user.
    Unsubmitted (pending) reviews are ignored. Usernames compare
    case-insensitively.

    Args:
        reviews: Reviews in any order

    Returns:
        One review per user, ordered by submission time
    """
    submitted = [
        r for r in reviews if r.submitted_at is not None and r.state != ReviewState.PENDING
    ]
    submitted.sort(key=lambda r: (r.submitted_at, r.review_id))

    by_user: dict[str, PrReview] = {}
    for review in submitted:
        key = review.username.lower()
        existing = by_user.get(key)
        if (
            existing is not None
            and existing.state == ReviewState.APPROVED
            and review.state != ReviewState.APPROVED
        ):
            continue
        by_user[key] = review

    return sorted(by_user.values(), key=lambda r: (r.submitted_at, r.review_id))


def evaluate_pull_request(
    pr: PullRequestData, bot_accounts: Iterable[str] = DEFAULT_BOT_ACCOUNTS
) -> PrApproval:
    """
    Decide whether a PR carries a qualifying approval.

    Rules, in order:
    1. An APPROVED review submitted strictly after the last commit passes.
    2. Otherwise take the most recent approval and the commits authored
       after it. None: pass. A bot-created PR whose later commits are all
       authored by that same bot or are base-branch merges: pass. Only
       base-branch merges: pass. Anything else: fail.
    3. No approval at all: fail.

    Args:
        pr: PR metadata, reviews and commits
        bot_accounts: Usernames treated as dependency bots

    Returns:
        PrApproval with the deciding outcome and a human-readable reason
    """
    bot_accounts = frozenset(bot_accounts)
    commits = pr.commits
    if not commits:
        return PrApproval(False, ApprovalOutcome.NO_COMMITS, f"No commits found in PR #{pr.number}")

    approvals = [r for r in latest_review_per_user(pr.reviews) if r.state == ReviewState.APPROVED]
    if not approvals:
        return PrApproval(
            False, ApprovalOutcome.NO_APPROVED_REVIEWS, f"PR #{pr.number} has no approved reviews"
        )
    approvers = tuple(r.username for r in approvals)

    last_commit_date = commits[-1].author_date
    after_last = [r for r in approvals if r.submitted_at > last_commit_date]
    if after_last:
        return PrApproval(
            True,
            ApprovalOutcome.APPROVED_AFTER_LAST_COMMIT,
            f"Approved by {after_last[0].username} after last commit",
            approvers,
        )

    latest = max(approvals, key=lambda r: (r.submitted_at, r.review_id))
    after_approval = [c for c in commits if c.author_date > latest.submitted_at]
    if not after_approval:
        return PrApproval(
            True,
            ApprovalOutcome.NO_COMMITS_AFTER_APPROVAL,
            f"Approved by {latest.username}, no commits after approval",
            approvers,
        )

    base_branch = pr.metadata.base_branch
    creator = pr.metadata.author
    if is_bot_account(creator, bot_accounts) and all(
        c.author.lower() == creator.lower()
        or is_base_branch_merge_commit(c.message, base_branch)
        for c in after_approval
    ):
        bot_label = "Dependabot" if "dependabot" in creator.lower() else "Bot"
        return PrApproval(
            True,
            ApprovalOutcome.BOT_COMMITS_AFTER_APPROVAL,
            f"Approved by {latest.username}, {bot_label} PR with bot commits after approval",
            approvers,
        )

    if all(is_base_branch_merge_commit(c.message, base_branch) for c in after_approval):
        return PrApproval(
            True,
            ApprovalOutcome.BASE_MERGES_AFTER_APPROVAL,
            f"Approved by {latest.username}, only base-branch merges after approval",
            approvers,
        )

    real = sum(1 for c in after_approval if not is_base_branch_merge_commit(c.message, base_branch))
    return PrApproval(
        False,
        ApprovalOutcome.APPROVAL_BEFORE_LAST_COMMIT,
        f"Approved by {latest.username}, but {real} non-merge commit(s) after approval; "
        "approval predates last real commit",
        approvers,
    )


def check_implicit_approval(
    pr: PullRequestData,
    settings: ImplicitApprovalSettings,
    bot_accounts: Iterable[str] = DEFAULT_BOT_ACCOUNTS,
) -> ImplicitApproval:
    """
    Check whether the merge itself counts as a second pair of eyes.

    Qualifies when the merger is neither the PR author nor the author of the
    PR's last commit, and the mode permits it: ``all`` for any PR,
    ``dependabot_only`` only for PRs created by a bot account whose commits
    are all bot-authored.
    """
    mode = settings.mode
    if mode == ImplicitApprovalMode.OFF:
        return ImplicitApproval(False)

    merged_by = pr.metadata.merged_by
    if not merged_by:
        return ImplicitApproval(False)

    creator = pr.metadata.author
    last_author = pr.commits[-1].author if pr.commits else ""
    if merged_by.lower() in (creator.lower(), last_author.lower()):
        return ImplicitApproval(False)

    if mode == ImplicitApprovalMode.ALL:
        return ImplicitApproval(
            True,
            f"Merged by {merged_by}, who neither created the PR ({creator}) "
            f"nor authored the last commit ({last_author})",
        )
    if mode == ImplicitApprovalMode.DEPENDABOT_ONLY:
        only_bot_commits = all(is_bot_account(c.author, bot_accounts) for c in pr.commits)
        if is_bot_account(creator, bot_accounts) and only_bot_commits:
            return ImplicitApproval(
                True,
                f"Bot PR by {creator} merged by {merged_by}, "
                f"who did not author the last commit ({last_author})",
            )
        return ImplicitApproval(False)
    raise ValueError(f"Unhandled implicit approval mode: {mode}")
