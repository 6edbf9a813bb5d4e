"""Verification input and result models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from foureyes.types.github import Commit, PrMetadata, PrReview

CURRENT_SCHEMA_VERSION = 1

DEFAULT_BOT_ACCOUNTS = frozenset({"dependabot[bot]", "dependabot"})


class VerificationStatus(str, Enum):
    """Closed set of deployment approval statuses."""

    PENDING = "pending"
    BASELINE = "baseline"
    PENDING_BASELINE = "pending_baseline"
    NO_CHANGES = "no_changes"
    APPROVED_PR = "approved_pr"
    APPROVED_PR_WITH_UNREVIEWED = "approved_pr_with_unreviewed"
    IMPLICITLY_APPROVED = "implicitly_approved"
    UNVERIFIED_COMMITS = "unverified_commits"
    DIRECT_PUSH = "direct_push"
    LEGACY = "legacy"
    LEGACY_PENDING = "legacy_pending"
    MANUALLY_APPROVED = "manually_approved"
    MISSING = "missing"
    ERROR = "error"


class ImplicitApprovalMode(str, Enum):
    OFF = "off"
    DEPENDABOT_ONLY = "dependabot_only"
    ALL = "all"


class UnverifiedReason(str, Enum):
    """Why a commit between two deployments lacks approval."""

    DIRECT_PUSH = "direct_push"
    NO_APPROVED_REVIEWS = "no_approved_reviews"
    APPROVAL_BEFORE_LAST_COMMIT = "approval_before_last_commit"
    PR_NOT_APPROVED = "pr_not_approved"
    NO_COMMITS = "no_commits"


class ApprovalMethod(str, Enum):
    PR_REVIEW = "pr_review"
    IMPLICIT = "implicit"
    BASELINE = "baseline"
    NO_CHANGES = "no_changes"


class MatchKind(str, Enum):
    """How a commit was tied to its PR."""

    SHA = "sha"
    MERGE_COMMIT = "merge_commit"
    REBASE = "rebase"
    REBASE_AMBIGUOUS = "rebase_ambiguous"

    @property
    def is_heuristic(self) -> bool:
        return self in (MatchKind.REBASE, MatchKind.REBASE_AMBIGUOUS)


class Resolution(str, Enum):
    """Outcome of looking up the PR for a commit between deployments."""

    PR = "pr"
    DIRECT_PUSH = "direct_push"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class ImplicitApprovalSettings:
    mode: ImplicitApprovalMode = ImplicitApprovalMode.OFF


@dataclass(frozen=True)
class VerificationPolicy:
    """Engine-side policy knobs that are part of every input."""

    auto_baseline: bool = False
    bot_accounts: frozenset[str] = DEFAULT_BOT_ACCOUNTS


@dataclass(frozen=True)
class DeploymentRef:
    """A recorded deployment, as the persistence layer describes it."""

    id: int
    commit_sha: str
    repository: str
    environment_name: str
    created_at: datetime
    base_branch: str = "main"
    app_id: int | None = None


@dataclass(frozen=True)
class PreviousDeployment:
    id: int
    commit_sha: str
    created_at: datetime


@dataclass(frozen=True)
class PullRequestData:
    """A PR with everything the approval algorithm needs."""

    number: int
    url: str
    metadata: PrMetadata
    reviews: tuple[PrReview, ...] = ()
    commits: tuple[Commit, ...] = ()


@dataclass(frozen=True)
class CommitPr:
    """The PR that resolves a commit between deployments."""

    pr: PullRequestData
    match: MatchKind = MatchKind.SHA


@dataclass(frozen=True)
class CommitBetween:
    """A commit reachable from the current deployment but not the previous one."""

    commit: Commit
    resolution: Resolution
    pr: CommitPr | None = None

    @property
    def sha(self) -> str:
        return self.commit.sha


@dataclass(frozen=True)
class DataFreshness:
    deployed_pr_fetched_at: datetime | None = None
    commits_fetched_at: datetime | None = None
    schema_version: int = CURRENT_SCHEMA_VERSION


@dataclass(frozen=True)
class VerificationInput:
    """Everything needed to verify one deployment. Assembled per invocation."""

    deployment_id: int
    commit_sha: str
    repository: str
    environment_name: str
    base_branch: str = "main"
    created_at: datetime | None = None
    audit_start_year: int | None = None
    implicit_approval_settings: ImplicitApprovalSettings = field(
        default_factory=ImplicitApprovalSettings
    )
    policy: VerificationPolicy = field(default_factory=VerificationPolicy)
    previous_deployment: PreviousDeployment | None = None
    deployed_pr: PullRequestData | None = None
    commits_between: tuple[CommitBetween, ...] = ()
    data_freshness: DataFreshness = field(default_factory=DataFreshness)
    fetch_error: str | None = None


@dataclass(frozen=True)
class UnverifiedCommit:
    sha: str
    message: str
    author: str
    date: datetime
    html_url: str
    pr_number: int | None
    reason: UnverifiedReason
    detail: str


@dataclass(frozen=True)
class ApprovalDetails:
    method: ApprovalMethod | None
    reason: str
    approvers: tuple[str, ...] = ()


@dataclass(frozen=True)
class DeployedPrSummary:
    number: int
    url: str
    title: str
    author: str


@dataclass(frozen=True)
class VerificationResult:
    """Verdict for one deployment."""

    status: VerificationStatus
    has_four_eyes: bool
    approval_details: ApprovalDetails
    unverified_commits: tuple[UnverifiedCommit, ...] = ()
    deployed_pr: DeployedPrSummary | None = None
    freshness_gaps: tuple[str, ...] = ()
    schema_version: int = CURRENT_SCHEMA_VERSION
