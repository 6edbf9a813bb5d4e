"""
GitHub REST client.

``GitHubCollaborator`` is the interface the normalizer depends on;
``GitHubClient`` implements it over ``GitHubTransport``.
"""

from typing import Any, Protocol

from foureyes.config import Settings
from foureyes.github.transport import GitHubTransport, RetryConfig
from foureyes.types.github import (
    AssociatedPr,
    Commit,
    CompareResult,
    PrMetadata,
    PrReview,
    ReviewState,
    parse_timestamp,
    require_timestamp,
)


class GitHubCollaborator(Protocol):
    """Read operations the verification engine needs from GitHub.

    Every method may raise ``RateLimitedError`` or ``NotFoundError`` (both
    ``UpstreamFetchError``); a missing PR or commit is never reported as an
    empty result.
    """

    def get_pull_request_metadata(self, repository: str, number: int) -> PrMetadata: ...

    def get_pull_request_reviews(self, repository: str, number: int) -> list[PrReview]: ...

    def get_pull_request_commits(self, repository: str, number: int) -> list[Commit]: ...

    def compare_commits(self, repository: str, base: str, head: str) -> CompareResult: ...

    def get_commit(self, repository: str, sha: str) -> Commit: ...

    def list_pull_requests_for_commit(self, repository: str, sha: str) -> list[AssociatedPr]: ...

    def list_merged_pull_requests(
        self, repository: str, base_branch: str, limit: int
    ) -> list[PrMetadata]: ...


def _login(user: dict[str, Any] | None) -> str | None:
    if not user:
        return None
    return user.get("login")


def parse_pull_request(data: dict[str, Any]) -> PrMetadata:
    return PrMetadata(
        number=data["number"],
        title=data.get("title") or "",
        author=_login(data.get("user")) or "unknown",
        base_branch=data.get("base", {}).get("ref", ""),
        head_branch=data.get("head", {}).get("ref", ""),
        head_sha=data.get("head", {}).get("sha", ""),
        state=data.get("state", "open"),
        merged=bool(data.get("merged") or data.get("merged_at")),
        created_at=require_timestamp(data["created_at"]),
        merged_at=parse_timestamp(data.get("merged_at")),
        merged_by=_login(data.get("merged_by")),
        merge_commit_sha=data.get("merge_commit_sha"),
        html_url=data.get("html_url", ""),
        draft=bool(data.get("draft", False)),
        labels=tuple(label["name"] for label in data.get("labels", []) if "name" in label),
    )


def parse_review(data: dict[str, Any]) -> PrReview:
    return PrReview(
        username=_login(data.get("user")) or "unknown",
        state=ReviewState(data.get("state", "COMMENTED")),
        submitted_at=parse_timestamp(data.get("submitted_at")),
        review_id=data.get("id", 0),
        body=data.get("body") or None,
    )


def parse_commit(data: dict[str, Any]) -> Commit:
    """Parse a commit from the commits, PR commits or compare endpoints."""
    detail = data.get("commit", {})
    git_author = detail.get("author") or {}
    git_committer = detail.get("committer") or {}
    return Commit(
        sha=data["sha"],
        message=detail.get("message", ""),
        # Commits not linked to a GitHub account fall back to the git author name
        author=_login(data.get("author")) or git_author.get("name") or "unknown",
        author_date=require_timestamp(git_author.get("date")),
        parent_shas=tuple(p["sha"] for p in data.get("parents", [])),
        committer_date=parse_timestamp(git_committer.get("date")),
        html_url=data.get("html_url", ""),
    )


def parse_associated_pr(data: dict[str, Any]) -> AssociatedPr:
    return AssociatedPr(
        number=data["number"],
        base_branch=data.get("base", {}).get("ref", "unknown"),
        merged=data.get("merged_at") is not None,
        merged_at=parse_timestamp(data.get("merged_at")),
        merge_commit_sha=data.get("merge_commit_sha"),
    )


class GitHubClient:
    """
    GitHub REST implementation of ``GitHubCollaborator``.

    Example:
        ```python
        from foureyes.github import GitHubClient

        with GitHubClient.from_env() as github:
            pr = github.get_pull_request_metadata("octo/app", 42)
        ```
    """

    DEFAULT_BASE_URL = "https://api.github.com"
    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        retry_config: RetryConfig | None = None,
    ) -> None:
        """
        Initialize the GitHub client.

        Args:
            token: GitHub token
            base_url: Base URL for API requests (default: https://api.github.com)
            timeout: Request timeout in seconds (default: 30.0)
            retry_config: Configuration for retry behavior (optional)
        """
        self.base_url = base_url
        self.timeout = timeout
        self._transport = GitHubTransport(
            token=token,
            base_url=base_url,
            timeout=timeout,
            retry_config=retry_config,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, retry_config: RetryConfig | None = None
    ) -> "GitHubClient":
        """
        Create a client from loaded settings.

        Raises:
            ConfigurationError: If no GitHub token is configured
        """
        return cls(
            token=settings.require_token(),
            base_url=settings.github_api_url,
            timeout=settings.http_timeout,
            retry_config=retry_config,
        )

    @classmethod
    def from_env(cls, retry_config: RetryConfig | None = None) -> "GitHubClient":
        """Create a client from ``GITHUB_TOKEN`` and friends."""
        return cls.from_settings(Settings.from_env(), retry_config)

    @property
    def transport(self) -> GitHubTransport:
        """Get the underlying HTTP transport (for advanced use cases)."""
        return self._transport

    @property
    def rate_limit_remaining(self) -> int | None:
        return self._transport.rate_limit_remaining

    def close(self) -> None:
        self._transport.close()

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def get_pull_request_metadata(self, repository: str, number: int) -> PrMetadata:
        data = self._transport.get(f"/repos/{repository}/pulls/{number}")
        return parse_pull_request(data)

    def get_pull_request_reviews(self, repository: str, number: int) -> list[PrReview]:
        items = self._transport.get_all(f"/repos/{repository}/pulls/{number}/reviews")
        return [parse_review(item) for item in items]

    def get_pull_request_commits(self, repository: str, number: int) -> list[Commit]:
        """PR commits in branch order; GitHub caps this list at 250 commits."""
        items = self._transport.get_all(f"/repos/{repository}/pulls/{number}/commits")
        return [parse_commit(item) for item in items]

    def compare_commits(self, repository: str, base: str, head: str) -> CompareResult:
        commits: list[Commit] = []
        for page in self._transport.iter_pages(f"/repos/{repository}/compare/{base}...{head}"):
            commits.extend(parse_commit(item) for item in page.get("commits", []))
        return CompareResult(base_sha=base, head_sha=head, commits=tuple(commits))

    def get_commit(self, repository: str, sha: str) -> Commit:
        data = self._transport.get(f"/repos/{repository}/commits/{sha}")
        return parse_commit(data)

    def list_pull_requests_for_commit(self, repository: str, sha: str) -> list[AssociatedPr]:
        items = self._transport.get_all(f"/repos/{repository}/commits/{sha}/pulls")
        return [parse_associated_pr(item) for item in items]

    def list_merged_pull_requests(
        self, repository: str, base_branch: str, limit: int
    ) -> list[PrMetadata]:
        """Most recently updated merged PRs into ``base_branch``, newest first."""
        merged: list[PrMetadata] = []
        params = {"state": "closed", "base": base_branch, "sort": "updated", "direction": "desc"}
        for page in self._transport.iter_pages(f"/repos/{repository}/pulls", params):
            for item in page:
                if item.get("merged_at"):
                    merged.append(parse_pull_request(item))
                if len(merged) >= limit:
                    return merged
        return merged
