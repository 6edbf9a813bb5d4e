"""Four-eyes audit exception classes."""

from datetime import datetime, timezone
from typing import Any

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class FourEyesError(Exception):
    """Base exception for all four-eyes audit errors."""

    def __init__(
        self, code: str, message: str, request_id: str | None = None
    ) -> None:
        self.code = code
        self.message = message
        self.request_id = request_id
        super().__init__(f"[{code}] {message}")


class ConfigurationError(FourEyesError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str) -> None:
        super().__init__("CONFIGURATION_ERROR", message)


class ValidationError(FourEyesError):
    """Raised when a verification input is malformed.

    Always a caller bug; never retried.
    """

    def __init__(self, message: str) -> None:
        super().__init__("VALIDATION_ERROR", message)


class UpstreamFetchError(FourEyesError):
    """Raised when fetching data from GitHub fails."""

    pass


class AuthenticationError(UpstreamFetchError):
    """Raised when the GitHub token is rejected."""

    pass


class NotFoundError(UpstreamFetchError):
    """Raised when a GitHub resource does not exist (or is no longer retained)."""

    pass


class RateLimitedError(UpstreamFetchError):
    """Raised when GitHub rate limits the caller.

    Callers should back off and try again later.
    """

    def __init__(
        self,
        code: str,
        message: str,
        retry_after: int,
        request_id: str | None = None,
    ) -> None:
        super().__init__(code, message, request_id)
        self.retry_after = retry_after


class ServerError(UpstreamFetchError):
    """Raised on GitHub server errors (5xx) and network failures."""

    pass


class AmbiguousMatchError(FourEyesError):
    """
    Raised when rebase matching finds several equally plausible PRs.

    The heuristic is best-effort, so the caller decides how to proceed.
    ``resolve()`` returns the deterministic choice: the most recently merged
    candidate, ties broken by the highest PR number.

    Args:
        sha: The commit SHA that could not be matched unambiguously
        candidates: Candidate PRs (any objects with ``number`` and ``merged_at``)
    """

    def __init__(self, sha: str, candidates: list[Any]) -> None:
        self.sha = sha
        self.candidates = list(candidates)
        numbers = ", ".join(f"#{c.number}" for c in self.candidates)
        super().__init__(
            "AMBIGUOUS_MATCH",
            f"Commit {sha[:7]} matches several PRs by metadata: {numbers}",
        )

    def resolve(self) -> Any:
        """Pick the most recently merged candidate."""
        return max(
            self.candidates,
            key=lambda c: (c.merged_at is not None, c.merged_at or _EPOCH, c.number),
        )
