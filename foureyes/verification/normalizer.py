"""
Commit/PR data normalizer.

Turns GitHub data, live or cached, into a ``VerificationInput``:

- finds the PR of the deployed commit
- lists the commits between the previous and the current deployment
- ties every one of those commits to the PR that introduced it

Live mode reads the snapshot cache first and fetches whatever is missing or
stale, writing every response back. Cache-only mode never touches GitHub;
anything it cannot find becomes an unresolved commit.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from foureyes.cache import (
    EntityType,
    Snapshot,
    SnapshotCache,
    SnapshotKey,
    find_compare,
    get_current,
)
from foureyes.exceptions import ConfigurationError
from foureyes.github.client import GitHubCollaborator
from foureyes.logging import get_logger
from foureyes.types.github import AssociatedPr, Commit, CompareResult, PrMetadata, PrReview
from foureyes.types.verification import (
    CURRENT_SCHEMA_VERSION,
    CommitBetween,
    CommitPr,
    DataFreshness,
    DeploymentRef,
    ImplicitApprovalSettings,
    MatchKind,
    PreviousDeployment,
    PullRequestData,
    Resolution,
    VerificationInput,
    VerificationPolicy,
)
from foureyes.verification.rebase import match_commit_to_pr, resolve_rebased_pr

logger = get_logger("engine")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class NormalizerMode(str, Enum):
    LIVE = "live"
    CACHE_ONLY = "cache_only"


@dataclass
class _Session:
    """Lookups memoized for the duration of one ``build_input`` call."""

    prs: dict[int, PullRequestData | None] = field(default_factory=dict)
    pr_fetched_at: dict[int, datetime] = field(default_factory=dict)
    rebase_candidates: list[PullRequestData] | None = None


def pr_url(repository: str, number: int) -> str:
    return f"https://github.com/{repository}/pull/{number}"


class Normalizer:
    """
    Builds verification inputs from GitHub data.

    Args:
        cache: Snapshot cache to read from (and, in live mode, write to)
        github: GitHub collaborator; required in live mode
        mode: ``NormalizerMode.LIVE`` or ``NormalizerMode.CACHE_ONLY``
        rebase_lookback_prs: Most recently merged PRs searched for rebase matches
        rebase_lookback_days: Only PRs merged this many days before the anchor are searched

    Raises:
        ConfigurationError: If live mode is requested without a GitHub collaborator
    """

    def __init__(
        self,
        cache: SnapshotCache,
        github: GitHubCollaborator | None = None,
        mode: NormalizerMode = NormalizerMode.LIVE,
        rebase_lookback_prs: int = 50,
        rebase_lookback_days: int = 90,
    ) -> None:
        if mode == NormalizerMode.LIVE and github is None:
            raise ConfigurationError("Live normalization needs a GitHub collaborator")
        self.cache = cache
        self.github = github
        self.mode = mode
        self.rebase_lookback_prs = rebase_lookback_prs
        self.rebase_lookback_days = rebase_lookback_days

    @property
    def live(self) -> bool:
        return self.mode == NormalizerMode.LIVE

    def cache_only(self) -> "Normalizer":
        """A cache-only normalizer over the same cache."""
        return Normalizer(
            self.cache,
            None,
            NormalizerMode.CACHE_ONLY,
            self.rebase_lookback_prs,
            self.rebase_lookback_days,
        )

    # Snapshot access

    def _lookup(self, key: SnapshotKey) -> Snapshot | None:
        return get_current(self.cache, key)

    def _store(self, key: SnapshotKey, payload: Any) -> Snapshot:
        return self.cache.put(key, payload, schema_version=CURRENT_SCHEMA_VERSION)

    def _pull_request(
        self, session: _Session, repository: str, number: int
    ) -> PullRequestData | None:
        """PR metadata, reviews and commits; None when cache-only and not cached."""
        if number in session.prs:
            return session.prs[number]

        keys = {
            entity: SnapshotKey.for_pr(repository, entity, number)
            for entity in (EntityType.PR_METADATA, EntityType.PR_REVIEWS, EntityType.PR_COMMITS)
        }
        snapshots = {entity: self._lookup(key) for entity, key in keys.items()}

        if any(s is None for s in snapshots.values()):
            if not self.live:
                logger.debug("PR #%d of %s not cached", number, repository)
                session.prs[number] = None
                return None
            logger.debug("Fetching PR #%d of %s", number, repository)
            metadata = self.github.get_pull_request_metadata(repository, number)
            reviews = self.github.get_pull_request_reviews(repository, number)
            commits = self.github.get_pull_request_commits(repository, number)
            snapshots = {
                EntityType.PR_METADATA: self._store(
                    keys[EntityType.PR_METADATA], metadata.to_snapshot()
                ),
                EntityType.PR_REVIEWS: self._store(
                    keys[EntityType.PR_REVIEWS], [r.to_snapshot() for r in reviews]
                ),
                EntityType.PR_COMMITS: self._store(
                    keys[EntityType.PR_COMMITS], [c.to_snapshot() for c in commits]
                ),
            }

        metadata_snapshot = snapshots[EntityType.PR_METADATA]
        pr = PullRequestData(
            number=number,
            url=pr_url(repository, number),
            metadata=PrMetadata.from_snapshot(metadata_snapshot.payload),
            reviews=tuple(
                PrReview.from_snapshot(r) for r in snapshots[EntityType.PR_REVIEWS].payload
            ),
            commits=tuple(
                Commit.from_snapshot(c) for c in snapshots[EntityType.PR_COMMITS].payload
            ),
        )
        session.prs[number] = pr
        session.pr_fetched_at[number] = metadata_snapshot.fetched_at
        return pr

    def _commit_prs(self, repository: str, sha: str) -> dict[str, Any] | None:
        """Cached PR association for a commit, fetched in live mode."""
        snapshot = self._lookup(SnapshotKey(repository, EntityType.COMMIT_PRS, sha))
        if snapshot is not None:
            return snapshot.payload
        if not self.live:
            return None
        associated = self.github.list_pull_requests_for_commit(repository, sha)
        return {
            "prs": [a.to_snapshot() for a in associated],
            "rebaseMatch": None,
            "rebaseSearched": False,
        }

    def commit_metadata(self, repository: str, sha: str) -> Commit | None:
        """A single commit's metadata; None when cache-only and not cached."""
        key = SnapshotKey(repository, EntityType.COMMIT, sha)
        snapshot = self._lookup(key)
        if snapshot is not None:
            return Commit.from_snapshot(snapshot.payload)
        if not self.live:
            return None
        commit = self.github.get_commit(repository, sha)
        self._store(key, commit.to_snapshot())
        return commit

    def compare(self, repository: str, base_sha: str, head_sha: str) -> Snapshot | None:
        """
        Compare snapshot for ``base_sha...head_sha``.

        Live mode fetches when no current snapshot exists; cache-only mode
        returns None instead.
        """
        snapshot = find_compare(self.cache, repository, base_sha, head_sha)
        if snapshot is not None and snapshot.is_current:
            return snapshot
        if not self.live:
            return None
        logger.debug("Fetching compare %s...%s", base_sha[:7], head_sha[:7])
        result = self.github.compare_commits(repository, base_sha, head_sha)
        for commit in result.commits:
            self._store(SnapshotKey(repository, EntityType.COMMIT, commit.sha), commit.to_snapshot())
        return self._store(
            SnapshotKey(repository, EntityType.COMPARE, head_sha), result.to_snapshot()
        )

    # PR resolution

    def _rebase_candidates(
        self,
        session: _Session,
        repository: str,
        base_branch: str,
        anchor: datetime | None,
    ) -> list[PullRequestData]:
        if session.rebase_candidates is not None:
            return session.rebase_candidates
        merged = self.github.list_merged_pull_requests(
            repository, base_branch, self.rebase_lookback_prs
        )
        if anchor is not None:
            window_start = anchor - timedelta(days=self.rebase_lookback_days)
            merged = [m for m in merged if m.merged_at is not None and m.merged_at >= window_start]
        candidates = []
        for metadata in merged:
            pr = self._pull_request(session, repository, metadata.number)
            if pr is not None:
                candidates.append(pr)
        session.rebase_candidates = candidates
        return candidates

    def _resolve_commit(
        self,
        session: _Session,
        repository: str,
        commit: Commit,
        base_branch: str,
        anchor: datetime | None,
    ) -> CommitBetween:
        association = self._commit_prs(repository, commit.sha)
        if association is None:
            return CommitBetween(commit, Resolution.UNRESOLVED)

        associated = [AssociatedPr.from_snapshot(a) for a in association.get("prs", [])]
        candidates = sorted(
            (a for a in associated if a.merged and a.base_branch == base_branch),
            key=lambda a: (a.merged_at is not None, a.merged_at or _EPOCH, a.number),
            reverse=True,
        )
        for candidate in candidates:
            pr = self._pull_request(session, repository, candidate.number)
            if pr is None:
                return CommitBetween(commit, Resolution.UNRESOLVED)
            # Only the PR that originally contained the commit counts; a PR
            # that merely merged the base branch in does not
            match = match_commit_to_pr(commit, pr)
            if match in (MatchKind.SHA, MatchKind.MERGE_COMMIT):
                self._remember_association(repository, commit.sha, association)
                return CommitBetween(commit, Resolution.PR, CommitPr(pr, match))

        rebase = association.get("rebaseMatch")
        if rebase is not None:
            pr = self._pull_request(session, repository, rebase["number"])
            if pr is None:
                return CommitBetween(commit, Resolution.UNRESOLVED)
            kind = MatchKind.REBASE_AMBIGUOUS if rebase.get("ambiguous") else MatchKind.REBASE
            return CommitBetween(commit, Resolution.PR, CommitPr(pr, kind))

        if not self.live or association.get("rebaseSearched"):
            return CommitBetween(commit, Resolution.DIRECT_PUSH)

        found = resolve_rebased_pr(
            commit, self._rebase_candidates(session, repository, base_branch, anchor)
        )
        if found is None:
            self._remember_association(repository, commit.sha, association, searched=True)
            logger.debug("Commit %s has no PR", commit.sha[:7])
            return CommitBetween(commit, Resolution.DIRECT_PUSH)

        pr, kind = found
        logger.info(
            "Commit %s matched PR #%d by rebase metadata%s",
            commit.sha[:7],
            pr.number,
            " (ambiguous)" if kind == MatchKind.REBASE_AMBIGUOUS else "",
        )
        self._remember_association(
            repository, commit.sha, association, rebase=(pr.number, kind), searched=True
        )
        return CommitBetween(commit, Resolution.PR, CommitPr(pr, kind))

    def _remember_association(
        self,
        repository: str,
        sha: str,
        association: dict[str, Any],
        rebase: tuple[int, MatchKind] | None = None,
        searched: bool = False,
    ) -> None:
        """Write the commit's PR association back, including any rebase match."""
        if not self.live:
            return
        key = SnapshotKey(repository, EntityType.COMMIT_PRS, sha)
        payload = {
            "prs": association.get("prs", []),
            "rebaseMatch": None
            if rebase is None
            else {"number": rebase[0], "ambiguous": rebase[1] == MatchKind.REBASE_AMBIGUOUS},
            "rebaseSearched": searched,
        }
        current = self._lookup(key)
        if current is None or current.payload != payload:
            self._store(key, payload)

    def find_deployed_pr(
        self,
        session: _Session,
        deployment: DeploymentRef,
        anchor: datetime | None,
        compare: CompareResult | None,
    ) -> PullRequestData | None:
        """The PR that the deployed commit came from, if any."""
        commit = None
        if compare is not None:
            commit = next((c for c in compare.commits if c.sha == deployment.commit_sha), None)
        if commit is None:
            commit = self.commit_metadata(deployment.repository, deployment.commit_sha)
        if commit is None:
            return None
        entry = self._resolve_commit(
            session, deployment.repository, commit, deployment.base_branch, anchor
        )
        return entry.pr.pr if entry.pr is not None else None

    def has_complete_data(
        self, deployment: DeploymentRef, previous: PreviousDeployment | None = None
    ) -> bool:
        """
        True when ``build_input`` can run from the cache without a gap.

        The compare, the deployed commit and every non-merge commit between
        the deployments must resolve from current snapshots, including the
        PRs they point to. A run interrupted partway through a compare
        therefore stays incomplete.
        """
        if deployment.commit_sha.startswith("refs/"):
            return True
        cached = self if not self.live else self.cache_only()
        session = _Session()
        repository = deployment.repository
        anchor = previous.created_at if previous is not None else deployment.created_at

        commits: list[Commit] = []
        if previous is not None and previous.commit_sha != deployment.commit_sha:
            snapshot = cached.compare(repository, previous.commit_sha, deployment.commit_sha)
            if snapshot is None:
                return False
            commits = [
                c
                for c in CompareResult.from_snapshot(snapshot.payload).commits
                if not c.is_merge_commit
            ]
        if not any(c.sha == deployment.commit_sha for c in commits):
            deployed = cached.commit_metadata(repository, deployment.commit_sha)
            if deployed is None:
                return False
            commits.append(deployed)

        return all(
            cached._resolve_commit(session, repository, c, deployment.base_branch, anchor).resolution
            != Resolution.UNRESOLVED
            for c in commits
        )

    # Input assembly

    def build_input(
        self,
        deployment: DeploymentRef,
        previous: PreviousDeployment | None = None,
        audit_start_year: int | None = None,
        implicit_approval_settings: ImplicitApprovalSettings | None = None,
        policy: VerificationPolicy | None = None,
    ) -> VerificationInput:
        """
        Assemble the verification input for one deployment.

        Args:
            deployment: The deployment to verify
            previous: Previous deployment in the same environment, if any
            audit_start_year: Deployments before this year are legacy
            implicit_approval_settings: Per-application implicit approval mode
            policy: Engine policy (auto-baseline, bot accounts)

        Returns:
            VerificationInput

        Raises:
            UpstreamFetchError: If a live GitHub call fails
        """
        session = _Session()
        repository = deployment.repository
        anchor = previous.created_at if previous is not None else deployment.created_at

        base = dict(
            deployment_id=deployment.id,
            commit_sha=deployment.commit_sha,
            repository=repository,
            environment_name=deployment.environment_name,
            base_branch=deployment.base_branch,
            created_at=deployment.created_at,
            audit_start_year=audit_start_year,
            implicit_approval_settings=implicit_approval_settings or ImplicitApprovalSettings(),
            policy=policy or VerificationPolicy(),
            previous_deployment=previous,
        )
        if deployment.commit_sha.startswith("refs/"):
            return VerificationInput(**base)

        compare_snapshot = None
        compare = None
        if previous is not None and previous.commit_sha != deployment.commit_sha:
            compare_snapshot = self.compare(repository, previous.commit_sha, deployment.commit_sha)
            if compare_snapshot is not None:
                compare = CompareResult.from_snapshot(compare_snapshot.payload)

        deployed_pr = self.find_deployed_pr(session, deployment, anchor, compare)

        commits_between: list[CommitBetween] = []
        if compare is not None:
            for commit in compare.commits:
                if commit.is_merge_commit:
                    # Merge commits are never judged; skip the lookups
                    commits_between.append(CommitBetween(commit, Resolution.UNRESOLVED))
                    continue
                commits_between.append(
                    self._resolve_commit(session, repository, commit, deployment.base_branch, anchor)
                )
        elif previous is not None and previous.commit_sha != deployment.commit_sha:
            # Cache-only without a compare snapshot: the deployed commit is a known gap
            commit = self.commit_metadata(repository, deployment.commit_sha) or Commit(
                sha=deployment.commit_sha,
                message="",
                author="unknown",
                author_date=deployment.created_at,
            )
            commits_between.append(CommitBetween(commit, Resolution.UNRESOLVED))

        logger.info(
            "Deployment %s: %d commit(s) between deployments, deployed PR %s",
            deployment.id,
            len(commits_between),
            f"#{deployed_pr.number}" if deployed_pr else "none",
        )

        return VerificationInput(
            **base,
            deployed_pr=deployed_pr,
            commits_between=tuple(commits_between),
            data_freshness=DataFreshness(
                deployed_pr_fetched_at=session.pr_fetched_at.get(deployed_pr.number)
                if deployed_pr
                else None,
                commits_fetched_at=compare_snapshot.fetched_at if compare_snapshot else None,
                schema_version=CURRENT_SCHEMA_VERSION,
            ),
        )
