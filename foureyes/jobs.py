"""
Bulk jobs and the hooks a job runner provides.

Jobs check ``is_cancelled`` before every deployment and call
``report_progress`` after every deployment, so a cancelled or crashed run
leaves accurate counts behind.
"""

import threading
from dataclasses import dataclass, field
from typing import Protocol

from foureyes.logging import get_logger
from foureyes.persistence import DeploymentStore, StoredDeployment
from foureyes.types.verification import VerificationPolicy
from foureyes.verification.normalizer import Normalizer

logger = get_logger("jobs")

MIN_SHA_LENGTH = 7


class JobHooks(Protocol):
    """Callbacks owned by the external job runner."""

    def is_cancelled(self, job_id: str) -> bool: ...

    def report_progress(self, job_id: str, counts: dict[str, int]) -> None: ...


class NullJobHooks:
    """Hooks for runs without a job runner: never cancelled, progress ignored."""

    def is_cancelled(self, job_id: str) -> bool:
        return False

    def report_progress(self, job_id: str, counts: dict[str, int]) -> None:
        pass


class InMemoryJobHooks:
    """Hooks that remember every progress report and support cancellation."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled: set[str] = set()
        self.reports: dict[str, list[dict[str, int]]] = {}

    def cancel(self, job_id: str) -> None:
        with self._lock:
            self._cancelled.add(job_id)

    def is_cancelled(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._cancelled

    def report_progress(self, job_id: str, counts: dict[str, int]) -> None:
        with self._lock:
            self.reports.setdefault(job_id, []).append(dict(counts))

    def last_report(self, job_id: str) -> dict[str, int] | None:
        with self._lock:
            reports = self.reports.get(job_id)
            return dict(reports[-1]) if reports else None


@dataclass(frozen=True)
class JobError:
    deployment_id: int
    error: str


@dataclass
class BulkFetchResult:
    """Counts of a bulk fetch run."""

    total: int = 0
    processed: int = 0
    fetched: int = 0
    skipped: int = 0
    errors: int = 0
    error_details: list[JobError] = field(default_factory=list)
    cancelled: bool = False

    def counts(self) -> dict[str, int]:
        return {
            "total": self.total,
            "processed": self.processed,
            "fetched": self.fetched,
            "skipped": self.skipped,
            "errors": self.errors,
        }


def is_verifiable(stored: StoredDeployment, audit_start_year: int | None) -> bool:
    """Deployments a bulk job should look at: real SHAs inside the audit period."""
    ref = stored.ref
    if not ref.commit_sha or ref.commit_sha.startswith("refs/"):
        return False
    if len(ref.commit_sha) < MIN_SHA_LENGTH:
        return False
    return audit_start_year is None or ref.created_at.year >= audit_start_year


class BulkFetchJob:
    """
    Populate the snapshot cache for every deployment of an application.

    Deployments whose compare and every commit's PR resolution are already
    cached with the current schema are skipped; a deployment interrupted
    partway is fetched again on the next run. A failure for one
    deployment is counted and the run continues.

    Args:
        store: Persistence collaborator
        normalizer: A live normalizer
        hooks: Job runner hooks
        policy: Engine policy passed through to input building
    """

    def __init__(
        self,
        store: DeploymentStore,
        normalizer: Normalizer,
        hooks: JobHooks | None = None,
        policy: VerificationPolicy | None = None,
    ) -> None:
        self.store = store
        self.normalizer = normalizer
        self.hooks = hooks or NullJobHooks()
        self.policy = policy or VerificationPolicy()

    def has_current_data(self, stored: StoredDeployment) -> bool:
        """True when every snapshot the deployment's verification needs is cached."""
        return self.normalizer.has_complete_data(
            stored.ref, self.store.get_previous_deployment(stored.ref)
        )

    def run(self, app_id: int, job_id: str) -> BulkFetchResult:
        """
        Fetch missing data for all deployments of ``app_id``, newest first.

        Args:
            app_id: Application whose deployments to fetch
            job_id: Identifier passed to the hooks

        Returns:
            BulkFetchResult
        """
        settings = self.store.get_app_settings(app_id)
        deployments = [
            d
            for d in self.store.list_deployments(app_id)
            if is_verifiable(d, settings.audit_start_year)
        ]
        result = BulkFetchResult(total=len(deployments))
        logger.info("Job %s: fetching data for %d deployments", job_id, result.total)
        self.hooks.report_progress(job_id, result.counts())

        for stored in deployments:
            if self.hooks.is_cancelled(job_id):
                result.cancelled = True
                logger.info(
                    "Job %s cancelled after %d of %d deployments",
                    job_id,
                    result.processed,
                    result.total,
                )
                break

            try:
                if self.has_current_data(stored):
                    result.skipped += 1
                    logger.debug("Job %s: deployment %s already cached", job_id, stored.id)
                else:
                    self.normalizer.build_input(
                        stored.ref,
                        previous=self.store.get_previous_deployment(stored.ref),
                        audit_start_year=settings.audit_start_year,
                        implicit_approval_settings=settings.implicit_approval_settings,
                        policy=self.policy,
                    )
                    result.fetched += 1
                    logger.debug("Job %s: fetched data for deployment %s", job_id, stored.id)
            except Exception as e:
                result.errors += 1
                result.error_details.append(JobError(stored.id, str(e)))
                logger.warning("Job %s: deployment %s failed: %s", job_id, stored.id, e)
            result.processed += 1
            self.hooks.report_progress(job_id, result.counts())

        logger.info(
            "Job %s finished: %d fetched, %d skipped, %d errors",
            job_id,
            result.fetched,
            result.skipped,
            result.errors,
        )
        return result
