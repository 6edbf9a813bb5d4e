"""
Deployment status metadata.

Every ``VerificationStatus`` has exactly one entry in ``STATUS_INFO``; the
mapping is checked at import time so a new status cannot ship without one.
"""

from dataclasses import dataclass

from foureyes.types.verification import VerificationStatus


@dataclass(frozen=True)
class StatusInfo:
    """Display metadata for a status."""

    label: str
    description: str
    category: str  # "approved", "not_approved", "pending", "legacy", "error"
    needs_attention: bool


STATUS_INFO: dict[VerificationStatus, StatusInfo] = {
    VerificationStatus.PENDING: StatusInfo(
        "Pending", "Not yet verified", "pending", False
    ),
    VerificationStatus.BASELINE: StatusInfo(
        "Baseline",
        "First deployment to this environment, accepted as the comparison anchor",
        "approved",
        False,
    ),
    VerificationStatus.PENDING_BASELINE: StatusInfo(
        "First deployment",
        "First deployment to this environment, awaiting human confirmation",
        "pending",
        True,
    ),
    VerificationStatus.NO_CHANGES: StatusInfo(
        "No changes", "Same commit as the previous deployment", "approved", False
    ),
    VerificationStatus.APPROVED_PR: StatusInfo(
        "Approved PR", "Deployed through a PR with a qualifying review", "approved", False
    ),
    VerificationStatus.APPROVED_PR_WITH_UNREVIEWED: StatusInfo(
        "Approved PR with unreviewed commits",
        "PR approved, but commits merged in from the base branch lack approval",
        "not_approved",
        True,
    ),
    VerificationStatus.IMPLICITLY_APPROVED: StatusInfo(
        "Implicitly approved",
        "Merged by someone other than the PR author and last committer",
        "approved",
        False,
    ),
    VerificationStatus.UNVERIFIED_COMMITS: StatusInfo(
        "Unverified commits",
        "One or more commits between deployments lack an approving PR",
        "not_approved",
        True,
    ),
    VerificationStatus.DIRECT_PUSH: StatusInfo(
        "Direct push", "Deployed commit has no associated PR", "not_approved", True
    ),
    VerificationStatus.LEGACY: StatusInfo(
        "Legacy", "Predates the audit period; exempt", "legacy", False
    ),
    VerificationStatus.LEGACY_PENDING: StatusInfo(
        "Legacy (pending)", "Legacy deployment awaiting manual lookup", "legacy", True
    ),
    VerificationStatus.MANUALLY_APPROVED: StatusInfo(
        "Manually approved", "Approved by a human override", "approved", False
    ),
    VerificationStatus.MISSING: StatusInfo(
        "Missing approval",
        "PR approval does not cover the last commit and no exception applies",
        "not_approved",
        True,
    ),
    VerificationStatus.ERROR: StatusInfo(
        "Error", "Fetching data from GitHub failed", "error", True
    ),
}

# Persisted values from older rule versions that mean the same thing.
STATUS_EQUIVALENCES: dict[str, str] = {
    "approved_pr": "approved",
    "pending_approval": "pending",
}


def _check_exhaustive() -> None:
    missing = set(VerificationStatus) - set(STATUS_INFO)
    if missing:
        names = ", ".join(sorted(s.value for s in missing))
        raise RuntimeError(f"Statuses without display metadata: {names}")


_check_exhaustive()


def status_info(status: VerificationStatus | str) -> StatusInfo:
    """
    Get display metadata for a status.

    Args:
        status: A ``VerificationStatus`` or its string value

    Returns:
        StatusInfo for the status

    Raises:
        ValueError: If the string is not a known status
    """
    return STATUS_INFO[VerificationStatus(status)]


def normalize_status(status: VerificationStatus | str | None) -> str | None:
    """Map a status to its canonical comparison form."""
    if status is None:
        return None
    value = status.value if isinstance(status, VerificationStatus) else status
    return STATUS_EQUIVALENCES.get(value, value)


def is_approved_status(status: VerificationStatus | str) -> bool:
    return normalize_status(status) in _APPROVED


def needs_attention(status: VerificationStatus | str) -> bool:
    return status_info(status).needs_attention


_APPROVED = {
    normalize_status(s) for s, info in STATUS_INFO.items() if info.category == "approved"
}
