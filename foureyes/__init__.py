"""foureyes - four-eyes deployment verification for GitHub repositories."""

from foureyes.cache import (
    EntityType,
    InMemorySnapshotCache,
    JsonLinesSnapshotCache,
    Snapshot,
    SnapshotCache,
    SnapshotKey,
)
from foureyes.config import Settings
from foureyes.exceptions import (
    AmbiguousMatchError,
    AuthenticationError,
    ConfigurationError,
    FourEyesError,
    NotFoundError,
    RateLimitedError,
    ServerError,
    UpstreamFetchError,
    ValidationError,
)
from foureyes.github import CountingGitHubClient, GitHubClient, GitHubTransport, RetryConfig
from foureyes.jobs import BulkFetchJob, BulkFetchResult, InMemoryJobHooks, JobHooks
from foureyes.logging import configure_logging, get_logger
from foureyes.persistence import (
    AppSettings,
    ChangeSource,
    DeploymentStore,
    InMemoryDeploymentStore,
)
from foureyes.reconcile import DiffRunResult, VerificationDiff, VerificationDiffJob
from foureyes.service import VerificationService
from foureyes.status import normalize_status, status_info
from foureyes.types import (
    DeploymentRef,
    VerificationInput,
    VerificationResult,
    VerificationStatus,
)
from foureyes.verification import Normalizer, NormalizerMode, verify_deployment

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Engine
    "verify_deployment",
    "VerificationInput",
    "VerificationResult",
    "VerificationStatus",
    "DeploymentRef",
    "normalize_status",
    "status_info",
    # Normalizer
    "Normalizer",
    "NormalizerMode",
    # Snapshot cache
    "EntityType",
    "Snapshot",
    "SnapshotKey",
    "SnapshotCache",
    "InMemorySnapshotCache",
    "JsonLinesSnapshotCache",
    # GitHub
    "GitHubClient",
    "CountingGitHubClient",
    "GitHubTransport",
    "RetryConfig",
    # Service and jobs
    "VerificationService",
    "BulkFetchJob",
    "BulkFetchResult",
    "JobHooks",
    "InMemoryJobHooks",
    "VerificationDiffJob",
    "VerificationDiff",
    "DiffRunResult",
    # Persistence
    "DeploymentStore",
    "InMemoryDeploymentStore",
    "AppSettings",
    "ChangeSource",
    # Exceptions
    "FourEyesError",
    "ConfigurationError",
    "ValidationError",
    "UpstreamFetchError",
    "AuthenticationError",
    "NotFoundError",
    "RateLimitedError",
    "ServerError",
    "AmbiguousMatchError",
    # Configuration and logging
    "Settings",
    "configure_logging",
    "get_logger",
]
