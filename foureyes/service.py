"""
Single-deployment verification.

``VerificationService`` looks a deployment up, builds its input through the
normalizer, runs the rule engine and persists the verdict.
"""

from foureyes.exceptions import RateLimitedError, UpstreamFetchError, ValidationError
from foureyes.logging import get_logger
from foureyes.persistence import ChangeSource, DeploymentStore
from foureyes.types.verification import (
    DeploymentRef,
    ImplicitApprovalSettings,
    VerificationInput,
    VerificationPolicy,
    VerificationResult,
)
from foureyes.verification.normalizer import Normalizer
from foureyes.verification.verify import verify_deployment

logger = get_logger("engine")


class VerificationService:
    """
    Orchestrates input building, verification and persistence.

    Args:
        store: Persistence collaborator
        normalizer: Normalizer used to build inputs (live or cache-only)
        policy: Engine policy applied to every deployment
    """

    def __init__(
        self,
        store: DeploymentStore,
        normalizer: Normalizer,
        policy: VerificationPolicy | None = None,
    ) -> None:
        self.store = store
        self.normalizer = normalizer
        self.policy = policy or VerificationPolicy()

    def _ref(self, deployment_id: int) -> DeploymentRef:
        stored = self.store.get_deployment(deployment_id)
        if stored is None:
            raise ValidationError(f"Unknown deployment {deployment_id}")
        return stored.ref

    def build_input(
        self, deployment: DeploymentRef, normalizer: Normalizer | None = None
    ) -> VerificationInput:
        """
        Build the verification input for a deployment.

        A non-rate-limit fetch failure does not raise: it becomes the
        input's ``fetch_error`` so the engine records an ``error`` status.

        Raises:
            RateLimitedError: If GitHub rate limits the caller
        """
        normalizer = normalizer or self.normalizer
        settings = self.store.get_app_settings(deployment.app_id) if deployment.app_id is not None else None
        previous = self.store.get_previous_deployment(deployment)
        audit_start_year = settings.audit_start_year if settings else None
        implicit = settings.implicit_approval_settings if settings else None
        try:
            return normalizer.build_input(
                deployment,
                previous=previous,
                audit_start_year=audit_start_year,
                implicit_approval_settings=implicit,
                policy=self.policy,
            )
        except RateLimitedError:
            raise
        except UpstreamFetchError as e:
            logger.warning("Fetching data for deployment %s failed: %s", deployment.id, e)
            return VerificationInput(
                deployment_id=deployment.id,
                commit_sha=deployment.commit_sha,
                repository=deployment.repository,
                environment_name=deployment.environment_name,
                base_branch=deployment.base_branch,
                created_at=deployment.created_at,
                audit_start_year=audit_start_year,
                implicit_approval_settings=implicit or ImplicitApprovalSettings(),
                policy=self.policy,
                previous_deployment=previous,
                fetch_error=str(e),
            )

    def verify(self, deployment_id: int, normalizer: Normalizer | None = None) -> VerificationResult:
        """
        Verify a deployment without persisting the result.

        Raises:
            ValidationError: If the deployment is unknown or malformed
            RateLimitedError: If GitHub rate limits the caller
        """
        ref = self._ref(deployment_id)
        result = verify_deployment(self.build_input(ref, normalizer))
        logger.info(
            "Deployment %s verified: %s (four eyes: %s)",
            deployment_id,
            result.status.value,
            result.has_four_eyes,
        )
        return result

    def verify_and_store(
        self,
        deployment_id: int,
        change_source: ChangeSource = ChangeSource.VERIFICATION,
        changed_by: str | None = None,
    ) -> VerificationResult:
        """
        Verify a deployment and persist the verdict.

        Args:
            deployment_id: Deployment to verify
            change_source: Recorded in the status history
            changed_by: User who triggered the verification, if any

        Returns:
            The computed VerificationResult (returned even when a manual
            status prevented it from being stored)
        """
        result = self.verify(deployment_id)
        self.store.save_verification(deployment_id, result, change_source, changed_by)
        return result
