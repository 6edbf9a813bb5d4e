"""
Pytest fixtures and data factories for four-eyes testing.

The ``make_*`` helpers build realistic domain objects with sensible defaults
so that a test only spells out what it is about.
"""

from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest

from foureyes.cache import InMemorySnapshotCache
from foureyes.jobs import InMemoryJobHooks
from foureyes.persistence import InMemoryDeploymentStore
from foureyes.testing.mock import MockGitHubClient
from foureyes.types.github import Commit, PrMetadata, PrReview, ReviewState
from foureyes.types.verification import (
    CommitBetween,
    CommitPr,
    DeploymentRef,
    ImplicitApprovalSettings,
    MatchKind,
    PreviousDeployment,
    PullRequestData,
    Resolution,
    VerificationInput,
    VerificationPolicy,
)
from foureyes.verification.normalizer import Normalizer

REPOSITORY = "navikt/example-app"
BASE_TIME = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


def at(minutes: float) -> datetime:
    """``BASE_TIME`` plus ``minutes``."""
    return BASE_TIME + timedelta(minutes=minutes)


def sha(n: int) -> str:
    """A deterministic 40 character SHA for ``n``."""
    return f"{n:040x}"


# ============================================================================
# Factories
# ============================================================================


def make_commit(
    commit_sha: str,
    message: str = "Change something",
    author: str = "alice",
    minutes: float = 0,
    parents: tuple[str, ...] = (),
) -> Commit:
    return Commit(
        sha=commit_sha,
        message=message,
        author=author,
        author_date=at(minutes),
        parent_shas=parents,
        committer_date=at(minutes),
        html_url=f"https://github.com/{REPOSITORY}/commit/{commit_sha}",
    )


def make_review(
    username: str,
    state: ReviewState = ReviewState.APPROVED,
    minutes: float | None = 10,
    review_id: int = 1,
) -> PrReview:
    return PrReview(
        username=username,
        state=state,
        submitted_at=None if minutes is None else at(minutes),
        review_id=review_id,
    )


def make_pr_metadata(
    number: int,
    author: str = "alice",
    title: str | None = None,
    merged_by: str | None = "bob",
    merged_minutes: float | None = 30,
    merge_commit_sha: str | None = None,
    base_branch: str = "main",
) -> PrMetadata:
    merged = merged_minutes is not None
    return PrMetadata(
        number=number,
        title=title or f"Feature {number}",
        author=author,
        base_branch=base_branch,
        head_branch=f"feature-{number}",
        head_sha="",
        state="closed" if merged else "open",
        merged=merged,
        created_at=at(-60),
        merged_at=at(merged_minutes) if merged else None,
        merged_by=merged_by if merged else None,
        merge_commit_sha=merge_commit_sha,
        html_url=f"https://github.com/{REPOSITORY}/pull/{number}",
    )


def make_pr(
    number: int,
    commits: list[Commit],
    reviews: list[PrReview] | None = None,
    **metadata_kwargs,
) -> PullRequestData:
    """
    Build a ``PullRequestData``.

    Example:
        ```python
        pr = make_pr(1, [make_commit(sha(1))], [make_review("bob", minutes=5)])
        ```
    """
    return PullRequestData(
        number=number,
        url=f"https://github.com/{REPOSITORY}/pull/{number}",
        metadata=make_pr_metadata(number, **metadata_kwargs),
        reviews=tuple(reviews or ()),
        commits=tuple(commits),
    )


def in_pr(commit: Commit, pr: PullRequestData, match: MatchKind = MatchKind.SHA) -> CommitBetween:
    return CommitBetween(commit, Resolution.PR, CommitPr(pr, match))


def direct_push(commit: Commit) -> CommitBetween:
    return CommitBetween(commit, Resolution.DIRECT_PUSH)


def make_input(
    commit_sha: str = sha(99),
    deployed_pr: PullRequestData | None = None,
    commits_between: list[CommitBetween] | None = None,
    previous_sha: str | None = sha(0),
    implicit_approval: ImplicitApprovalSettings | None = None,
    policy: VerificationPolicy | None = None,
    **kwargs,
) -> VerificationInput:
    """A ``VerificationInput`` for a deployment made at ``BASE_TIME`` plus one day."""
    previous = None
    if previous_sha is not None:
        previous = PreviousDeployment(id=1, commit_sha=previous_sha, created_at=at(-24 * 60))
    return VerificationInput(
        deployment_id=kwargs.pop("deployment_id", 2),
        commit_sha=commit_sha,
        repository=kwargs.pop("repository", REPOSITORY),
        environment_name=kwargs.pop("environment_name", "prod"),
        created_at=kwargs.pop("created_at", at(24 * 60)),
        implicit_approval_settings=implicit_approval or ImplicitApprovalSettings(),
        policy=policy or VerificationPolicy(),
        previous_deployment=previous,
        deployed_pr=deployed_pr,
        commits_between=tuple(commits_between or ()),
        **kwargs,
    )


def make_deployment(
    deployment_id: int,
    commit_sha: str,
    minutes: float,
    app_id: int = 1,
    environment_name: str = "prod",
) -> DeploymentRef:
    return DeploymentRef(
        id=deployment_id,
        commit_sha=commit_sha,
        repository=REPOSITORY,
        environment_name=environment_name,
        created_at=at(minutes),
        app_id=app_id,
    )


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def mock_github() -> Generator[MockGitHubClient, None, None]:
    """
    Provide an empty MockGitHubClient.

    Example:
        ```python
        def test_fetch(mock_github):
            mock_github.add_pull_request(REPOSITORY, make_pr_metadata(1))
            ...
            assert mock_github.was_called("get_pull_request_metadata")
        ```
    """
    client = MockGitHubClient()
    yield client
    client.reset()


@pytest.fixture
def snapshot_cache() -> InMemorySnapshotCache:
    return InMemorySnapshotCache()


@pytest.fixture
def deployment_store() -> InMemoryDeploymentStore:
    return InMemoryDeploymentStore()


@pytest.fixture
def job_hooks() -> InMemoryJobHooks:
    return InMemoryJobHooks()


@pytest.fixture
def live_normalizer(
    snapshot_cache: InMemorySnapshotCache, mock_github: MockGitHubClient
) -> Normalizer:
    """A live normalizer over ``snapshot_cache`` and ``mock_github``."""
    return Normalizer(snapshot_cache, mock_github)
