"""Custom exceptions for Git Manager."""


class GitManagerError(Exception):
    """Base exception for Git Manager errors."""


class BranchError(GitManagerError):
    """Error inspecting, switching or deleting branches."""


class PushError(GitManagerError):
    """Error pushing to remote."""


class PRError(GitManagerError):
    """Error creating a pull request."""


class PublishFailure(GitManagerError):
    """The branch has commits but could not be published as a PR."""
