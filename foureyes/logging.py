"""
Four-eyes audit logging utilities.

Provides configurable logging for GitHub requests, verification decisions and
bulk jobs. Ensures GitHub tokens and other credentials are never logged.
"""

import logging
import re
from typing import Any

_root_logger = logging.getLogger("foureyes")
_github_logger = logging.getLogger("foureyes.github")
_engine_logger = logging.getLogger("foureyes.engine")
_jobs_logger = logging.getLogger("foureyes.jobs")

_SENSITIVE_PATTERNS = [
    # GitHub tokens: classic, fine-grained, app installation, OAuth
    (re.compile(r"\b(ghp|gho|ghu|ghs|ghr)_[A-Za-z0-9]{20,}\b"), "[GITHUB_TOKEN_REDACTED]"),
    (re.compile(r"\bgithub_pat_[A-Za-z0-9_]{20,}\b"), "[GITHUB_TOKEN_REDACTED]"),
    # Authorization headers
    (re.compile(r"(bearer|token)\s+[A-Za-z0-9_\-.=]{8,}", re.IGNORECASE), r"\1 [REDACTED]"),
    (re.compile(r"(secret|token|password|api_key)['\"]?\s*[:=]\s*['\"][^'\"]+['\"]", re.IGNORECASE), r"\1: [REDACTED]"),
]

_DEFAULT_SENSITIVE_KEYS = {"authorization", "secret", "token", "password", "api_key"}


def configure_logging(
    level: int = logging.INFO,
    github_level: int | None = None,
    engine_level: int | None = None,
    handler: logging.Handler | None = None,
    format_string: str | None = None,
) -> None:
    """
    Configure four-eyes logging.

    Args:
        level: Default log level for all package loggers (default: INFO)
        github_level: Log level for GitHub request/response logging (default: same as level)
        engine_level: Log level for verification decisions (default: same as level)
        handler: Custom handler to use (default: StreamHandler to stderr)
        format_string: Custom format string (default: includes timestamp, level, logger name)

    Example:
        ```python
        import logging
        from foureyes.logging import configure_logging

        # Trace every GitHub call
        configure_logging(level=logging.INFO, github_level=logging.DEBUG)
        ```
    """
    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    if handler is None:
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(format_string))

    _root_logger.setLevel(level)
    _root_logger.addHandler(handler)

    _github_logger.setLevel(github_level if github_level is not None else level)
    _engine_logger.setLevel(engine_level if engine_level is not None else level)
    _jobs_logger.setLevel(level)


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Get a four-eyes logger.

    Args:
        name: Logger name suffix (e.g., "github", "engine", "jobs"). If None, returns the package logger.

    Returns:
        Logger instance
    """
    if name is None:
        return _root_logger
    return logging.getLogger(f"foureyes.{name}")


def mask_sensitive_data(text: str) -> str:
    """
    Mask GitHub tokens and credential-looking values in a string.

    Args:
        text: Text that may contain sensitive data

    Returns:
        Text with sensitive data masked
    """
    result = text
    for pattern, replacement in _SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def safe_log_dict(data: dict[str, Any], sensitive_keys: set[str] | None = None) -> dict[str, Any]:
    """
    Create a copy of a dictionary with sensitive values masked.

    Args:
        data: Dictionary that may contain sensitive values
        sensitive_keys: Key fragments to mask (default: authorization, secret, token, password, api_key)

    Returns:
        Dictionary with sensitive values replaced with "[REDACTED]"
    """
    if sensitive_keys is None:
        sensitive_keys = _DEFAULT_SENSITIVE_KEYS

    result: dict[str, Any] = {}
    for key, value in data.items():
        key_lower = key.lower()
        if any(sk in key_lower for sk in sensitive_keys):
            result[key] = "[REDACTED]"
        elif isinstance(value, dict):
            result[key] = safe_log_dict(value, sensitive_keys)
        elif isinstance(value, list):
            result[key] = [
                safe_log_dict(item, sensitive_keys) if isinstance(item, dict) else item
                for item in value
            ]
        elif isinstance(value, str):
            result[key] = mask_sensitive_data(value)
        else:
            result[key] = value
    return result


def log_http_request(
    method: str,
    url: str,
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
) -> None:
    """Log a GitHub request at DEBUG level with credentials masked."""
    if not _github_logger.isEnabledFor(logging.DEBUG):
        return

    log_parts = [f"{method} {url}"]
    if params:
        log_parts.append(f"params={safe_log_dict(params)}")
    if headers:
        log_parts.append(f"headers={safe_log_dict(headers)}")

    _github_logger.debug(" | ".join(log_parts))


def log_http_response(
    status_code: int,
    url: str,
    rate_limit_remaining: int | None = None,
    elapsed_ms: float | None = None,
) -> None:
    """Log a GitHub response at DEBUG level."""
    if not _github_logger.isEnabledFor(logging.DEBUG):
        return

    log_parts = [f"Response {status_code} from {url}"]
    if elapsed_ms is not None:
        log_parts.append(f"elapsed={elapsed_ms:.2f}ms")
    if rate_limit_remaining is not None:
        log_parts.append(f"rate_limit_remaining={rate_limit_remaining}")

    _github_logger.debug(" | ".join(log_parts))


__all__ = [
    "configure_logging",
    "get_logger",
    "mask_sensitive_data",
    "safe_log_dict",
    "log_http_request",
    "log_http_response",
]
