#!/usr/bin/env python3
"""
foureyes - Verify recent deployments of one repository

This example demonstrates the full audit workflow:
1. Load settings and create a GitHub client
2. Register deployments in an in-memory store
3. Fetch GitHub data into a snapshot cache
4. Verify each deployment and store the verdict
5. Re-check stored verdicts against the cache for drift

Usage:
    GITHUB_TOKEN=ghp_... python examples/basic_usage.py navikt/example-app SHA1 SHA2 [SHA3 ...]
"""

import logging
import sys
from datetime import datetime, timedelta, timezone

from foureyes import (
    BulkFetchJob,
    CountingGitHubClient,
    DeploymentRef,
    FourEyesError,
    GitHubClient,
    InMemoryDeploymentStore,
    InMemoryJobHooks,
    JsonLinesSnapshotCache,
    Normalizer,
    Settings,
    VerificationDiffJob,
    VerificationService,
    configure_logging,
)


def main() -> None:
    """Run the audit workflow for the deployments named on the command line."""
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(2)

    repository, shas = sys.argv[1], sys.argv[2:]
    configure_logging(level=logging.INFO)

    print("=== foureyes example ===\n")

    # Step 1: Configuration and GitHub access
    print("1. Loading settings...")
    try:
        settings = Settings.from_env()
        github = GitHubClient.from_settings(settings)
    except FourEyesError as e:
        print(f"   {e}")
        sys.exit(1)
    counting = CountingGitHubClient(github)

    cache = JsonLinesSnapshotCache(".foureyes/snapshots.jsonl")
    normalizer = Normalizer(
        cache,
        counting,
        rebase_lookback_prs=settings.rebase_lookback_prs,
        rebase_lookback_days=settings.rebase_lookback_days,
    )

    # Step 2: Deployments, oldest first, one hour apart
    print(f"2. Registering {len(shas)} deployments of {repository}...")
    store = InMemoryDeploymentStore()
    start = datetime.now(timezone.utc) - timedelta(hours=len(shas))
    for i, sha in enumerate(shas, start=1):
        store.add_deployment(
            DeploymentRef(
                id=i,
                commit_sha=sha,
                repository=repository,
                environment_name="prod",
                created_at=start + timedelta(hours=i),
                app_id=1,
            )
        )

    # Step 3: Populate the snapshot cache
    print("3. Fetching GitHub data...")
    hooks = InMemoryJobHooks()
    fetched = BulkFetchJob(store, normalizer, hooks, settings.policy()).run(app_id=1, job_id="fetch")
    print(f"   {fetched.counts()}")
    print(f"   GitHub requests: {counting.total} ({counting.counts})")

    # Step 4: Verify
    print("4. Verifying deployments...")
    service = VerificationService(store, normalizer, settings.policy())
    for i, sha in enumerate(shas, start=1):
        try:
            result = service.verify_and_store(i)
        except FourEyesError as e:
            print(f"   #{i} {sha[:7]}: {e}")
            continue
        print(f"   #{i} {sha[:7]}: {result.status.value} (four eyes: {result.has_four_eyes})")
        print(f"      {result.approval_details.reason}")
        for commit in result.unverified_commits:
            print(f"      - {commit.sha[:7]} {commit.message}: {commit.detail}")

    # Step 5: Drift check from cached data only
    print("5. Checking stored verdicts for drift...")
    diffs = VerificationDiffJob(service, hooks).compute_diffs(app_id=1)
    print(f"   {diffs.counts()}")
    for diff in diffs.diffs:
        print(f"   #{diff.deployment_id}: {diff.old_status} -> {diff.new_status}")

    github.close()
    print("\n=== Done ===")


if __name__ == "__main__":
    main()
