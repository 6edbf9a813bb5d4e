"""GitHub collaborator: REST client, transport and request counting."""

from foureyes.github.client import GitHubClient, GitHubCollaborator
from foureyes.github.counting import CountingGitHubClient
from foureyes.github.transport import GitHubTransport, RetryConfig

__all__ = [
    "CountingGitHubClient",
    "GitHubClient",
    "GitHubCollaborator",
    "GitHubTransport",
    "RetryConfig",
]
