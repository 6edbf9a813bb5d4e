"""
Verification drift detection and correction.

``VerificationDiffJob.compute_diffs`` re-runs the rule engine over cached
GitHub data only and reports every deployment whose stored verdict no longer
matches. Corrections re-verify live and are stored with
``change_source = reverification``.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

from foureyes.cache import find_compare
from foureyes.exceptions import FourEyesError
from foureyes.jobs import JobHooks, NullJobHooks
from foureyes.logging import get_logger
from foureyes.persistence import PROTECTED_STATUSES, ChangeSource, StoredDeployment
from foureyes.service import VerificationService
from foureyes.status import normalize_status
from foureyes.types.verification import VerificationResult
from foureyes.verification.verify import verify_deployment

logger = get_logger("jobs")


@dataclass(frozen=True)
class VerificationDiff:
    """A deployment whose stored verdict differs from a fresh computation."""

    deployment_id: int
    old_status: str | None
    new_status: str
    old_has_four_eyes: bool | None
    new_has_four_eyes: bool


@dataclass
class DiffRunResult:
    deployments_checked: int = 0
    diffs_found: int = 0
    skipped: int = 0
    stale: int = 0
    errors: int = 0
    diffs: list[VerificationDiff] = field(default_factory=list)
    cancelled: bool = False

    def counts(self) -> dict[str, int]:
        return {
            "deployments_checked": self.deployments_checked,
            "diffs_found": self.diffs_found,
            "skipped": self.skipped,
            "stale": self.stale,
            "errors": self.errors,
        }


@dataclass(frozen=True)
class CorrectionResult:
    deployment_id: int
    applied: bool
    result: VerificationResult | None = None
    error: str | None = None


def is_drift(stored: StoredDeployment, result: VerificationResult) -> bool:
    """Compare verdicts, ignoring status renames."""
    if normalize_status(stored.status) != normalize_status(result.status):
        return True
    return stored.has_four_eyes != result.has_four_eyes


class VerificationDiffJob:
    """
    Detect and correct verdict drift for one application at a time.

    Args:
        service: Verification service; its normalizer must be live for
            corrections, diffs always use a cache-only copy of it
        hooks: Job runner hooks
    """

    def __init__(self, service: VerificationService, hooks: JobHooks | None = None) -> None:
        self.service = service
        self.hooks = hooks or NullJobHooks()

    @property
    def store(self):
        return self.service.store

    def _needs_compare_but_missing(self, stored: StoredDeployment) -> bool:
        ref = stored.ref
        previous = self.store.get_previous_deployment(ref)
        if previous is None or previous.commit_sha == ref.commit_sha:
            return False
        cache = self.service.normalizer.cache
        return find_compare(cache, ref.repository, previous.commit_sha, ref.commit_sha) is None

    def compute_diffs(self, app_id: int, job_id: str = "diff") -> DiffRunResult:
        """
        Recompute verdicts from cached data and list the differences.

        Manually decided deployments and deployments without a cached
        compare are skipped. Recomputations with freshness gaps are counted
        as stale and never reported as drift.

        Args:
            app_id: Application to check
            job_id: Identifier passed to the hooks

        Returns:
            DiffRunResult
        """
        normalizer = self.service.normalizer.cache_only()
        result = DiffRunResult()

        for stored in self.store.list_deployments(app_id):
            if self.hooks.is_cancelled(job_id):
                result.cancelled = True
                logger.info("Job %s cancelled after %d deployments", job_id, result.deployments_checked)
                break

            try:
                if stored.status in PROTECTED_STATUSES or self._needs_compare_but_missing(stored):
                    result.skipped += 1
                else:
                    fresh = verify_deployment(self.service.build_input(stored.ref, normalizer))
                    if fresh.freshness_gaps:
                        result.stale += 1
                    elif is_drift(stored, fresh):
                        result.diffs.append(
                            VerificationDiff(
                                deployment_id=stored.id,
                                old_status=stored.status,
                                new_status=fresh.status.value,
                                old_has_four_eyes=stored.has_four_eyes,
                                new_has_four_eyes=fresh.has_four_eyes,
                            )
                        )
            except Exception as e:
                result.errors += 1
                logger.error("Computing diff for deployment %s failed: %s", stored.id, e)
            result.deployments_checked += 1
            result.diffs_found = len(result.diffs)
            self.hooks.report_progress(job_id, result.counts())

        logger.info(
            "Verification diffs computed: %d checked, %d diffs, %d skipped, %d stale, %d errors",
            result.deployments_checked,
            result.diffs_found,
            result.skipped,
            result.stale,
            result.errors,
        )
        return result

    def apply_correction(self, deployment_id: int, changed_by: str | None = None) -> CorrectionResult:
        """
        Re-verify one deployment live and store the result.

        Failures of any kind are returned in the result, not raised.
        """
        try:
            stored = self.store.get_deployment(deployment_id)
            if stored is not None and stored.status in PROTECTED_STATUSES:
                return CorrectionResult(deployment_id, False, error=f"status is {stored.status}")
            result = self.service.verify(deployment_id)
            applied = self.store.save_verification(
                deployment_id, result, ChangeSource.REVERIFICATION, changed_by
            )
        except FourEyesError as e:
            logger.warning("Correction for deployment %s failed: %s", deployment_id, e)
            return CorrectionResult(deployment_id, False, error=str(e))
        except Exception as e:
            logger.error(
                "Correction for deployment %s failed unexpectedly: %s", deployment_id, e, exc_info=True
            )
            return CorrectionResult(deployment_id, False, error=f"{type(e).__name__}: {e}")
        return CorrectionResult(deployment_id, applied, result)

    def apply_all(
        self,
        diffs: Iterable[VerificationDiff],
        changed_by: str | None = None,
        job_id: str = "apply",
    ) -> list[CorrectionResult]:
        """Apply every correction; one failure never stops the rest."""
        results: list[CorrectionResult] = []
        for diff in diffs:
            if self.hooks.is_cancelled(job_id):
                logger.info("Job %s cancelled after %d corrections", job_id, len(results))
                break
            results.append(self.apply_correction(diff.deployment_id, changed_by))
            self.hooks.report_progress(
                job_id,
                {
                    "processed": len(results),
                    "applied": sum(1 for r in results if r.applied),
                    "errors": sum(1 for r in results if r.error is not None),
                },
            )
        return results
