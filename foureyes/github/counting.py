"""Request counting around any GitHub collaborator."""

import threading
from collections import Counter
from typing import Any

from foureyes.github.client import GitHubCollaborator
from foureyes.logging import get_logger
from foureyes.types.github import AssociatedPr, Commit, CompareResult, PrMetadata, PrReview

logger = get_logger("github")


class CountingGitHubClient:
    """
    Decorator that counts requests per operation.

    After every call it reads ``rate_limit_remaining`` from the wrapped
    client (when it has one) and logs a warning once the budget drops below
    ``low_budget_threshold``.

    Args:
        inner: The collaborator to wrap
        low_budget_threshold: Remaining-request level that triggers a warning
    """

    def __init__(self, inner: GitHubCollaborator, low_budget_threshold: int = 100) -> None:
        self.inner = inner
        self.low_budget_threshold = low_budget_threshold
        self._counts: Counter[str] = Counter()
        self._lock = threading.Lock()

    @property
    def counts(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counts)

    @property
    def total(self) -> int:
        with self._lock:
            return sum(self._counts.values())

    @property
    def rate_limit_remaining(self) -> int | None:
        return getattr(self.inner, "rate_limit_remaining", None)

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()

    def _call(self, operation: str, *args: Any) -> Any:
        with self._lock:
            self._counts[operation] += 1
        try:
            return getattr(self.inner, operation)(*args)
        finally:
            remaining = self.rate_limit_remaining
            if remaining is not None and remaining < self.low_budget_threshold:
                logger.warning(
                    "GitHub rate limit budget low: %d requests remaining", remaining
                )

    def get_pull_request_metadata(self, repository: str, number: int) -> PrMetadata:
        return self._call("get_pull_request_metadata", repository, number)

    def get_pull_request_reviews(self, repository: str, number: int) -> list[PrReview]:
        return self._call("get_pull_request_reviews", repository, number)

    def get_pull_request_commits(self, repository: str, number: int) -> list[Commit]:
        return self._call("get_pull_request_commits", repository, number)

    def compare_commits(self, repository: str, base: str, head: str) -> CompareResult:
        return self._call("compare_commits", repository, base, head)

    def get_commit(self, repository: str, sha: str) -> Commit:
        return self._call("get_commit", repository, sha)

    def list_pull_requests_for_commit(self, repository: str, sha: str) -> list[AssociatedPr]:
        return self._call("list_pull_requests_for_commit", repository, sha)

    def list_merged_pull_requests(
        self, repository: str, base_branch: str, limit: int
    ) -> list[PrMetadata]:
        return self._call("list_merged_pull_requests", repository, base_branch, limit)
