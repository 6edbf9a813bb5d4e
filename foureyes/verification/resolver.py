"""
Unreviewed-commit resolution.

Walks the commits between two deployments and decides, for each commit that
is not part of the deployed PR, whether another approved PR covers it.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

from foureyes.types.github import Commit
from foureyes.types.verification import (
    DEFAULT_BOT_ACCOUNTS,
    CommitBetween,
    MatchKind,
    PullRequestData,
    Resolution,
    UnverifiedCommit,
    UnverifiedReason,
)
from foureyes.verification.rebase import match_commit_to_pr
from foureyes.verification.rules import PrApproval, evaluate_pull_request

DIRECT_PUSH_DETAIL = "Direct push (no PR)"


@dataclass
class ResolverReport:
    """What the resolver found for one set of commits."""

    unverified: list[UnverifiedCommit] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)
    in_deployed_pr: list[str] = field(default_factory=list)
    covered_by_other_prs: dict[str, int] = field(default_factory=dict)
    approvers: list[str] = field(default_factory=list)
    heuristic_matches: list[str] = field(default_factory=list)


def _unverified(
    commit: Commit, pr_number: int | None, reason: UnverifiedReason, detail: str
) -> UnverifiedCommit:
    return UnverifiedCommit(
        sha=commit.sha,
        message=commit.first_line,
        author=commit.author,
        date=commit.author_date,
        html_url=commit.html_url,
        pr_number=pr_number,
        reason=reason,
        detail=detail,
    )


def _heuristic_note(commit: Commit, pr_number: int, match: MatchKind) -> str:
    note = f"{commit.sha[:7]} matched PR #{pr_number} by rebase metadata (heuristic)"
    if match == MatchKind.REBASE_AMBIGUOUS:
        note += "; several PRs matched, most recently merged chosen"
    return note


class UnreviewedCommitResolver:
    """
    Resolve commits between deployments against their PRs.

    Approval verdicts are memoized per PR number for the lifetime of one
    resolver, so create a new resolver for each verification.

    Args:
        deployed_pr: The PR of the deployed commit, if any
        bot_accounts: Usernames treated as dependency bots
    """

    def __init__(
        self,
        deployed_pr: PullRequestData | None = None,
        bot_accounts: Iterable[str] = DEFAULT_BOT_ACCOUNTS,
    ) -> None:
        self.deployed_pr = deployed_pr
        self.bot_accounts = frozenset(bot_accounts)
        self._approvals: dict[int, PrApproval] = {}

    def approval_for(self, pr: PullRequestData) -> PrApproval:
        """Evaluate a PR once per resolver."""
        cached = self._approvals.get(pr.number)
        if cached is None:
            cached = evaluate_pull_request(pr, self.bot_accounts)
            self._approvals[pr.number] = cached
        return cached

    @property
    def evaluated_prs(self) -> int:
        return len(self._approvals)

    def _in_deployed_pr(self, entry: CommitBetween) -> MatchKind | None:
        if self.deployed_pr is None:
            return None
        if entry.pr is not None and entry.pr.pr.number == self.deployed_pr.number:
            return entry.pr.match
        return match_commit_to_pr(entry.commit, self.deployed_pr)

    def resolve(self, commits_between: Iterable[CommitBetween]) -> ResolverReport:
        """
        Classify every commit between two deployments.

        Merge commits are skipped. Commits belonging to the deployed PR are
        reported in ``in_deployed_pr`` and judged by the caller together
        with that PR. Commits with no cached resolution are reported in
        ``unresolved`` and never marked unverified.

        Args:
            commits_between: Commits in history order

        Returns:
            ResolverReport
        """
        report = ResolverReport()
        for entry in commits_between:
            commit = entry.commit
            if commit.is_merge_commit:
                continue

            deployed_match = self._in_deployed_pr(entry)
            if deployed_match is not None:
                report.in_deployed_pr.append(commit.sha)
                if deployed_match.is_heuristic:
                    report.heuristic_matches.append(
                        _heuristic_note(commit, self.deployed_pr.number, deployed_match)
                    )
                continue

            if entry.resolution == Resolution.UNRESOLVED:
                report.unresolved.append(commit.sha)
                continue

            if entry.resolution == Resolution.DIRECT_PUSH or entry.pr is None:
                report.unverified.append(
                    _unverified(commit, None, UnverifiedReason.DIRECT_PUSH, DIRECT_PUSH_DETAIL)
                )
                continue

            pr = entry.pr.pr
            approval = self.approval_for(pr)
            if entry.pr.match.is_heuristic:
                report.heuristic_matches.append(_heuristic_note(commit, pr.number, entry.pr.match))
            if approval.approved:
                report.covered_by_other_prs[commit.sha] = pr.number
                for username in approval.approvers:
                    if username not in report.approvers:
                        report.approvers.append(username)
                continue

            detail = f"PR #{pr.number}: {approval.reason}"
            if entry.pr.match.is_heuristic:
                detail += " (PR matched by rebase metadata)"
            report.unverified.append(
                _unverified(commit, pr.number, approval.outcome.unverified_reason, detail)
            )
        return report


def find_unverified_commits(
    commits_between: Iterable[CommitBetween],
    deployed_pr: PullRequestData | None = None,
    bot_accounts: Iterable[str] = DEFAULT_BOT_ACCOUNTS,
) -> ResolverReport:
    """Run a fresh resolver over ``commits_between``."""
    return UnreviewedCommitResolver(deployed_pr, bot_accounts).resolve(commits_between)
