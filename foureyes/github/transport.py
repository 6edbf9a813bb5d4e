"""
HTTP transport for the GitHub REST API.

Handles authentication, automatic retry with backoff, pagination and mapping
of error responses into typed exceptions.
"""

import random
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

import httpx

from foureyes.exceptions import (
    AuthenticationError,
    FourEyesError,
    NotFoundError,
    RateLimitedError,
    ServerError,
    UpstreamFetchError,
)
from foureyes.logging import get_logger, log_http_request, log_http_response

logger = get_logger("github")

GITHUB_API_VERSION = "2022-11-28"


@dataclass
class RetryConfig:
    """Configuration for automatic retry behavior."""

    max_retries: int = 3
    backoff_factor: float = 2.0
    retry_on: list[int] = field(default_factory=lambda: [429, 500, 502, 503])
    respect_retry_after: bool = True
    max_backoff: float = 60.0  # Maximum backoff time in seconds
    jitter: float = 0.1  # Jitter factor (0.1 = ±10%)


def _int_header(response: httpx.Response, name: str) -> int | None:
    value = response.headers.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


class GitHubTransport:
    """
    HTTP transport layer for GitHub with retry logic.

    Handles:
    - Bearer token authentication and GitHub API version headers
    - Exponential backoff with jitter for retries
    - Retry-After / rate-limit reset headers
    - Link-header pagination
    - Error response parsing into typed exceptions
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        timeout: float = 30.0,
        retry_config: RetryConfig | None = None,
    ) -> None:
        """
        Initialize the transport.

        Args:
            token: GitHub token (personal access token or app installation token)
            base_url: Base URL for API requests (e.g., "https://api.github.com")
            timeout: Request timeout in seconds
            retry_config: Configuration for retry behavior
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()
        self.rate_limit_remaining: int | None = None
        self.rate_limit_reset: int | None = None

        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers={
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {token}",
                "X-GitHub-Api-Version": GITHUB_API_VERSION,
            },
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> "GitHubTransport":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """
        GET a single resource.

        Args:
            path: API path (e.g., "/repos/octo/app/pulls/1")
            params: Query parameters

        Returns:
            Parsed JSON response

        Raises:
            UpstreamFetchError: On API errors
        """
        response = self._execute_with_retry(lambda: self._request("GET", path, params))
        return self._json(response)

    def iter_pages(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        per_page: int = 100,
        max_pages: int | None = None,
    ) -> Iterator[Any]:
        """
        Yield the parsed JSON of every page, following ``Link: rel="next"``.

        Args:
            path: API path of the first page
            params: Query parameters for the first page
            per_page: Page size requested from GitHub
            max_pages: Stop after this many pages (default: no limit)
        """
        url: str = path
        page_params: dict[str, Any] | None = {**(params or {}), "per_page": per_page}
        pages = 0
        while True:
            response = self._execute_with_retry(
                lambda u=url, p=page_params: self._request("GET", u, p)
            )
            yield self._json(response)
            pages += 1
            next_url = response.links.get("next", {}).get("url")
            if not next_url or (max_pages is not None and pages >= max_pages):
                return
            # The next link already carries every query parameter
            url, page_params = next_url, None

    def get_all(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        per_page: int = 100,
        max_items: int | None = None,
    ) -> list[Any]:
        """Collect every item of a paginated list endpoint."""
        items: list[Any] = []
        for page in self.iter_pages(path, params, per_page):
            items.extend(page)
            if max_items is not None and len(items) >= max_items:
                return items[:max_items]
        return items

    def _request(
        self, method: str, path: str, params: dict[str, Any] | None
    ) -> httpx.Response:
        log_http_request(method, path, dict(self._client.headers), params)
        started = time.monotonic()
        response = self._client.request(method, path, params=params)
        self._track_rate_limit(response)
        log_http_response(
            response.status_code,
            path,
            self.rate_limit_remaining,
            (time.monotonic() - started) * 1000,
        )
        return response

    def _track_rate_limit(self, response: httpx.Response) -> None:
        remaining = _int_header(response, "x-ratelimit-remaining")
        if remaining is not None:
            self.rate_limit_remaining = remaining
        reset = _int_header(response, "x-ratelimit-reset")
        if reset is not None:
            self.rate_limit_reset = reset

    def _execute_with_retry(
        self, request_fn: Callable[[], httpx.Response]
    ) -> httpx.Response:
        """
        Execute a request with automatic retry on retryable errors.

        Args:
            request_fn: Function that makes the HTTP request

        Returns:
            The successful response

        Raises:
            UpstreamFetchError: On non-retryable errors or after max retries
        """
        last_error: Exception | None = None

        for attempt in range(self.retry_config.max_retries + 1):
            try:
                response = request_fn()

                if response.status_code < 400:
                    return response

                error = self._parse_error_response(response)

                if not self._should_retry(response.status_code, attempt):
                    raise error

                # Do not sleep through a rate-limit window longer than max_backoff
                if (
                    isinstance(error, RateLimitedError)
                    and error.retry_after > self.retry_config.max_backoff
                ):
                    raise error

                last_error = error
                retry_after = response.headers.get("Retry-After")
                wait_time = self._get_backoff_time(attempt, retry_after)
                logger.info(
                    "Retrying after HTTP %s (attempt %d, waiting %.1fs)",
                    response.status_code,
                    attempt + 1,
                    wait_time,
                )
                time.sleep(wait_time)

            except httpx.RequestError as e:
                # Network errors are retryable
                if attempt >= self.retry_config.max_retries:
                    raise ServerError("CONNECTION_ERROR", str(e)) from e

                last_error = e
                wait_time = self._get_backoff_time(attempt, None)
                logger.info("Retrying after network error: %s", e)
                time.sleep(wait_time)

        if last_error:
            if isinstance(last_error, FourEyesError):
                raise last_error
            raise ServerError("MAX_RETRIES_EXCEEDED", str(last_error))

        raise ServerError("UNKNOWN_ERROR", "Request failed with no error details")

    def _should_retry(self, status_code: int, attempt: int) -> bool:
        """
        Determine if a request should be retried.

        Args:
            status_code: HTTP status code
            attempt: Current attempt number (0-indexed)

        Returns:
            True if the request should be retried
        """
        if attempt >= self.retry_config.max_retries:
            return False

        return status_code in self.retry_config.retry_on

    def _get_backoff_time(
        self, attempt: int, retry_after: str | None
    ) -> float:
        """
        Calculate backoff time for retry.

        Uses exponential backoff with jitter, respecting Retry-After header
        if present.

        Args:
            attempt: Current attempt number (0-indexed)
            retry_after: Value of Retry-After header (if present)

        Returns:
            Time to wait in seconds
        """
        if retry_after and self.retry_config.respect_retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass  # Fall through to exponential backoff

        base_wait = self.retry_config.backoff_factor ** attempt

        jitter_range = base_wait * self.retry_config.jitter
        jitter = random.uniform(-jitter_range, jitter_range)
        wait_time = base_wait + jitter

        return min(wait_time, self.retry_config.max_backoff)

    def _retry_after_seconds(self, response: httpx.Response) -> int:
        retry_after = _int_header(response, "Retry-After")
        if retry_after is not None:
            return retry_after
        reset = _int_header(response, "x-ratelimit-reset")
        if reset is not None:
            return max(0, reset - int(time.time()))
        return 60

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        """Decode a successful response body, failing as an upstream error."""
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamFetchError(
                "INVALID_RESPONSE",
                f"Could not decode JSON from {response.request.url.path}: {e}",
                response.headers.get("x-github-request-id"),
            ) from e

    def _parse_error_response(self, response: httpx.Response) -> UpstreamFetchError:
        """
        Parse an error response into a typed exception.

        Args:
            response: HTTP response with error status

        Returns:
            Appropriate UpstreamFetchError subclass
        """
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        message = data.get("message") or f"HTTP {response.status_code}"
        request_id = response.headers.get("x-github-request-id")
        status_code = response.status_code

        if status_code == 401:
            return AuthenticationError("UNAUTHORIZED", message, request_id)
        elif status_code == 429 or (
            status_code == 403
            and (
                response.headers.get("x-ratelimit-remaining") == "0"
                or "rate limit" in message.lower()
            )
        ):
            return RateLimitedError(
                "RATE_LIMITED", message, self._retry_after_seconds(response), request_id
            )
        elif status_code in (404, 410):
            return NotFoundError("NOT_FOUND", message, request_id)
        elif status_code >= 500:
            return ServerError("SERVER_ERROR", message, request_id)
        else:
            return UpstreamFetchError(f"HTTP_{status_code}", message, request_id)
