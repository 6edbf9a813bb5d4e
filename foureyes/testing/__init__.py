"""Testing utilities: an in-memory GitHub collaborator and data factories."""

from foureyes.testing.fixtures import (
    BASE_TIME,
    REPOSITORY,
    at,
    direct_push,
    in_pr,
    make_commit,
    make_deployment,
    make_input,
    make_pr,
    make_pr_metadata,
    make_review,
    sha,
)
from foureyes.testing.mock import MockCall, MockGitHubClient, MockResponse

__all__ = [
    # Mock collaborator
    "MockGitHubClient",
    "MockCall",
    "MockResponse",
    # Factories
    "BASE_TIME",
    "REPOSITORY",
    "at",
    "sha",
    "make_commit",
    "make_review",
    "make_pr_metadata",
    "make_pr",
    "make_input",
    "make_deployment",
    "in_pr",
    "direct_push",
]
