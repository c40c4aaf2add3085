"""Source-control integrations."""

from codetutor.integrations.github import GitHubClient, GitHubError

__all__ = ["GitHubClient", "GitHubError"]
