"""Four-eyes audit type definitions.

This module exports all data model types used by the verification engine.
"""

from foureyes.types.github import (
    AssociatedPr,
    Commit,
    CompareResult,
    PrMetadata,
    PrReview,
    ReviewState,
)
from foureyes.types.verification import (
    CURRENT_SCHEMA_VERSION,
    ApprovalDetails,
    ApprovalMethod,
    CommitBetween,
    CommitPr,
    DataFreshness,
    DeployedPrSummary,
    DeploymentRef,
    ImplicitApprovalMode,
    ImplicitApprovalSettings,
    MatchKind,
    PreviousDeployment,
    PullRequestData,
    Resolution,
    UnverifiedCommit,
    UnverifiedReason,
    VerificationInput,
    VerificationPolicy,
    VerificationResult,
    VerificationStatus,
)

__all__ = [
    # GitHub snapshot types
    "AssociatedPr",
    "Commit",
    "CompareResult",
    "PrMetadata",
    "PrReview",
    "ReviewState",
    # Verification input
    "CURRENT_SCHEMA_VERSION",
    "CommitBetween",
    "CommitPr",
    "DataFreshness",
    "DeploymentRef",
    "ImplicitApprovalMode",
    "ImplicitApprovalSettings",
    "MatchKind",
    "PreviousDeployment",
    "PullRequestData",
    "Resolution",
    "VerificationInput",
    "VerificationPolicy",
    # Verification result
    "ApprovalDetails",
    "ApprovalMethod",
    "DeployedPrSummary",
    "UnverifiedCommit",
    "UnverifiedReason",
    "VerificationResult",
    "VerificationStatus",
]
