"""
Settings loaded from environment variables.

Environment variables:
    GITHUB_TOKEN: GitHub token (required for live fetching)
    GITHUB_API_URL: API base URL (default: https://api.github.com)
    FOUREYES_HTTP_TIMEOUT: Request timeout in seconds (default: 30)
    FOUREYES_AUTO_BASELINE: Accept first deployments as baseline (default: false)
    FOUREYES_BOT_ACCOUNTS: Comma-separated bot usernames (default: dependabot[bot],dependabot)
    FOUREYES_REBASE_LOOKBACK_PRS: Merged PRs considered for rebase matching (default: 50)
    FOUREYES_REBASE_LOOKBACK_DAYS: Age limit for rebase match candidates (default: 90)
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass

from foureyes.exceptions import ConfigurationError
from foureyes.types.verification import DEFAULT_BOT_ACCOUNTS, VerificationPolicy

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(f"Invalid {name}: {value!r}. Must be 'true' or 'false'")


def _parse_number(name: str, value: str, kind: type) -> int | float:
    try:
        parsed = kind(value)
    except ValueError:
        raise ConfigurationError(f"Invalid {name}: {value!r}. Must be a number") from None
    if parsed <= 0:
        raise ConfigurationError(f"Invalid {name}: {value!r}. Must be positive")
    return parsed


@dataclass(frozen=True)
class Settings:
    """Runtime configuration."""

    github_token: str | None = None
    github_api_url: str = "https://api.github.com"
    http_timeout: float = 30.0
    auto_baseline: bool = False
    bot_accounts: frozenset[str] = DEFAULT_BOT_ACCOUNTS
    rebase_lookback_prs: int = 50
    rebase_lookback_days: int = 90

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """
        Load settings from the environment.

        Args:
            environ: Mapping to read instead of ``os.environ``

        Returns:
            Settings

        Raises:
            ConfigurationError: If a value cannot be parsed
        """
        env = os.environ if environ is None else environ

        bot_accounts = DEFAULT_BOT_ACCOUNTS
        raw_bots = env.get("FOUREYES_BOT_ACCOUNTS")
        if raw_bots is not None:
            bot_accounts = frozenset(b.strip() for b in raw_bots.split(",") if b.strip())

        return cls(
            github_token=env.get("GITHUB_TOKEN") or None,
            github_api_url=env.get("GITHUB_API_URL", cls.github_api_url),
            http_timeout=float(
                _parse_number("FOUREYES_HTTP_TIMEOUT", env.get("FOUREYES_HTTP_TIMEOUT", "30"), float)
            ),
            auto_baseline=_parse_bool(
                "FOUREYES_AUTO_BASELINE", env.get("FOUREYES_AUTO_BASELINE", "false")
            ),
            bot_accounts=bot_accounts,
            rebase_lookback_prs=int(
                _parse_number(
                    "FOUREYES_REBASE_LOOKBACK_PRS", env.get("FOUREYES_REBASE_LOOKBACK_PRS", "50"), int
                )
            ),
            rebase_lookback_days=int(
                _parse_number(
                    "FOUREYES_REBASE_LOOKBACK_DAYS", env.get("FOUREYES_REBASE_LOOKBACK_DAYS", "90"), int
                )
            ),
        )

    def require_token(self) -> str:
        """
        Return the GitHub token.

        Raises:
            ConfigurationError: If GITHUB_TOKEN is not set
        """
        if not self.github_token:
            raise ConfigurationError("GITHUB_TOKEN environment variable not set")
        return self.github_token

    def policy(self) -> VerificationPolicy:
        """The engine-side policy these settings describe."""
        return VerificationPolicy(auto_baseline=self.auto_baseline, bot_accounts=self.bot_accounts)
