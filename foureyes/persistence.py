"""
Persistence collaborator.

``DeploymentStore`` is what the service and jobs need from the database.
``InMemoryDeploymentStore`` is a complete reference implementation, used by
tests and small deployments.
"""

import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol

from foureyes.exceptions import ValidationError
from foureyes.logging import get_logger
from foureyes.types.verification import (
    DeploymentRef,
    ImplicitApprovalSettings,
    PreviousDeployment,
    VerificationResult,
    VerificationStatus,
)

logger = get_logger()

# Statuses set by a human; automation never overwrites them
PROTECTED_STATUSES = frozenset(
    {VerificationStatus.MANUALLY_APPROVED.value, VerificationStatus.LEGACY_PENDING.value}
)


class ChangeSource(str, Enum):
    VERIFICATION = "verification"
    REVERIFICATION = "reverification"
    MANUAL = "manual"


@dataclass(frozen=True)
class AppSettings:
    """Per-application verification settings."""

    app_id: int
    audit_start_year: int | None = None
    implicit_approval_settings: ImplicitApprovalSettings = field(
        default_factory=ImplicitApprovalSettings
    )


@dataclass(frozen=True)
class StoredDeployment:
    """A deployment together with its current persisted verdict.

    ``status`` is a plain string because older rows may hold values that are
    no longer part of ``VerificationStatus`` (see ``normalize_status``).
    """

    ref: DeploymentRef
    status: str = VerificationStatus.PENDING.value
    has_four_eyes: bool = False
    result: VerificationResult | None = None
    verified_at: datetime | None = None

    @property
    def id(self) -> int:
        return self.ref.id


@dataclass(frozen=True)
class StatusHistoryEntry:
    deployment_id: int
    from_status: str | None
    to_status: str
    from_has_four_eyes: bool | None
    to_has_four_eyes: bool
    change_source: ChangeSource
    changed_by: str | None
    changed_at: datetime


class DeploymentStore(Protocol):
    def get_deployment(self, deployment_id: int) -> StoredDeployment | None: ...

    def list_deployments(self, app_id: int) -> list[StoredDeployment]:
        """All deployments of an application, newest first."""
        ...

    def get_previous_deployment(self, deployment: DeploymentRef) -> PreviousDeployment | None:
        """The latest earlier deployment to the same repository and environment."""
        ...

    def get_app_settings(self, app_id: int) -> AppSettings: ...

    def save_verification(
        self,
        deployment_id: int,
        result: VerificationResult,
        change_source: ChangeSource,
        changed_by: str | None = None,
    ) -> bool:
        """Persist a verdict. Returns False when a protected status blocked the write."""
        ...


class InMemoryDeploymentStore:
    """
    Thread-safe in-memory ``DeploymentStore``.

    Status history is append-only: an entry is added whenever the status or
    the compliance bit of a deployment changes.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._deployments: dict[int, StoredDeployment] = {}
        self._settings: dict[int, AppSettings] = {}
        self._history: list[StatusHistoryEntry] = []

    def add_deployment(
        self,
        ref: DeploymentRef,
        status: str = VerificationStatus.PENDING.value,
        has_four_eyes: bool = False,
    ) -> StoredDeployment:
        stored = StoredDeployment(ref=ref, status=status, has_four_eyes=has_four_eyes)
        with self._lock:
            self._deployments[ref.id] = stored
        return stored

    def set_app_settings(self, settings: AppSettings) -> None:
        with self._lock:
            self._settings[settings.app_id] = settings

    def get_deployment(self, deployment_id: int) -> StoredDeployment | None:
        with self._lock:
            return self._deployments.get(deployment_id)

    def list_deployments(self, app_id: int) -> list[StoredDeployment]:
        with self._lock:
            rows = [d for d in self._deployments.values() if d.ref.app_id == app_id]
        return sorted(rows, key=lambda d: (d.ref.created_at, d.id), reverse=True)

    def get_app_settings(self, app_id: int) -> AppSettings:
        with self._lock:
            return self._settings.get(app_id, AppSettings(app_id=app_id))

    def get_previous_deployment(self, deployment: DeploymentRef) -> PreviousDeployment | None:
        # Ordered by deployment time; ids are not chronological
        audit_start_year = None
        if deployment.app_id is not None:
            audit_start_year = self.get_app_settings(deployment.app_id).audit_start_year
        with self._lock:
            earlier = [
                d.ref
                for d in self._deployments.values()
                if d.ref.repository == deployment.repository
                and d.ref.environment_name == deployment.environment_name
                and d.ref.created_at < deployment.created_at
                and d.ref.commit_sha
                and (audit_start_year is None or d.ref.created_at.year >= audit_start_year)
            ]
        if not earlier:
            return None
        latest = max(earlier, key=lambda r: (r.created_at, r.id))
        return PreviousDeployment(id=latest.id, commit_sha=latest.commit_sha, created_at=latest.created_at)

    def _record(
        self,
        current: StoredDeployment,
        to_status: str,
        to_has_four_eyes: bool,
        change_source: ChangeSource,
        changed_by: str | None,
        now: datetime,
    ) -> None:
        if current.status == to_status and current.has_four_eyes == to_has_four_eyes:
            return
        self._history.append(
            StatusHistoryEntry(
                deployment_id=current.id,
                from_status=current.status,
                to_status=to_status,
                from_has_four_eyes=current.has_four_eyes,
                to_has_four_eyes=to_has_four_eyes,
                change_source=change_source,
                changed_by=changed_by,
                changed_at=now,
            )
        )
        logger.info(
            "Deployment %s: %s -> %s (%s)",
            current.id,
            current.status,
            to_status,
            change_source.value,
        )

    def save_verification(
        self,
        deployment_id: int,
        result: VerificationResult,
        change_source: ChangeSource,
        changed_by: str | None = None,
    ) -> bool:
        now = datetime.now(timezone.utc)
        with self._lock:
            current = self._deployments.get(deployment_id)
            if current is None:
                raise ValidationError(f"Unknown deployment {deployment_id}")
            if current.status in PROTECTED_STATUSES:
                logger.info(
                    "Deployment %s is %s; not overwriting with %s",
                    deployment_id,
                    current.status,
                    result.status.value,
                )
                return False
            self._record(
                current, result.status.value, result.has_four_eyes, change_source, changed_by, now
            )
            self._deployments[deployment_id] = replace(
                current,
                status=result.status.value,
                has_four_eyes=result.has_four_eyes,
                result=result,
                verified_at=now,
            )
        return True

    def set_manual_status(
        self,
        deployment_id: int,
        status: VerificationStatus,
        has_four_eyes: bool,
        changed_by: str,
    ) -> None:
        """Record a human override such as ``manually_approved``."""
        now = datetime.now(timezone.utc)
        with self._lock:
            current = self._deployments.get(deployment_id)
            if current is None:
                raise ValidationError(f"Unknown deployment {deployment_id}")
            self._record(current, status.value, has_four_eyes, ChangeSource.MANUAL, changed_by, now)
            self._deployments[deployment_id] = replace(
                current, status=status.value, has_four_eyes=has_four_eyes
            )

    def history(self, deployment_id: int | None = None) -> list[StatusHistoryEntry]:
        with self._lock:
            return [
                h for h in self._history if deployment_id is None or h.deployment_id == deployment_id
            ]
