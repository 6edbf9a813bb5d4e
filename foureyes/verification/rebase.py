"""
Commit-to-PR matching.

Exact matches use the commit SHA or the PR's merge/squash commit SHA.
When a PR was rebased on merge its commits land on the base branch with new
SHAs, so a commit can also be matched by metadata: same author, author date
within a second, same first message line. That is a best-effort heuristic
and every match it produces is labelled as such.
"""

from collections.abc import Iterable
from datetime import timedelta

from foureyes.exceptions import AmbiguousMatchError
from foureyes.types.github import Commit, PrMetadata
from foureyes.types.verification import MatchKind, PullRequestData

REBASE_DATE_TOLERANCE = timedelta(seconds=1)


def commits_match_by_metadata(commit: Commit, candidate: Commit) -> bool:
    """True when two commits look like the same change with different SHAs."""
    if commit.author.lower() != candidate.author.lower():
        return False
    if abs(commit.author_date - candidate.author_date) >= REBASE_DATE_TOLERANCE:
        return False
    return commit.first_line == candidate.first_line


def find_rebase_match(commit: Commit, pr_commits: Iterable[Commit]) -> Commit | None:
    for candidate in pr_commits:
        if commits_match_by_metadata(commit, candidate):
            return candidate
    return None


def match_commit_to_pr(commit: Commit, pr: PullRequestData) -> MatchKind | None:
    """
    Decide whether a commit belongs to a PR.

    Args:
        commit: A commit from the base branch history
        pr: The PR to test against

    Returns:
        How the commit matched, or None when it does not belong to the PR
    """
    if any(c.sha == commit.sha for c in pr.commits):
        return MatchKind.SHA
    if pr.metadata.merge_commit_sha and pr.metadata.merge_commit_sha == commit.sha:
        return MatchKind.MERGE_COMMIT
    if find_rebase_match(commit, pr.commits) is not None:
        return MatchKind.REBASE
    return None


def find_rebased_pr(
    commit: Commit, candidates: Iterable[PullRequestData]
) -> PullRequestData | None:
    """
    Find the single PR whose commits match ``commit`` by metadata.

    Raises:
        AmbiguousMatchError: If more than one PR matches. Its ``candidates``
            are the matching PRs' metadata.
    """
    matches = [pr for pr in candidates if find_rebase_match(commit, pr.commits) is not None]
    if not matches:
        return None
    if len(matches) == 1:
        return matches[0]
    raise AmbiguousMatchError(commit.sha, [pr.metadata for pr in matches])


def resolve_rebased_pr(
    commit: Commit, candidates: Iterable[PullRequestData]
) -> tuple[PullRequestData, MatchKind] | None:
    """
    Like ``find_rebased_pr`` but settles ambiguity deterministically.

    Several matches resolve to the most recently merged PR and are reported
    as ``MatchKind.REBASE_AMBIGUOUS``.
    """
    candidates = list(candidates)
    try:
        pr = find_rebased_pr(commit, candidates)
    except AmbiguousMatchError as e:
        chosen: PrMetadata = e.resolve()
        pr = next(c for c in candidates if c.number == chosen.number)
        return pr, MatchKind.REBASE_AMBIGUOUS
    if pr is None:
        return None
    return pr, MatchKind.REBASE
