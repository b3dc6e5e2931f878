"""Git Manager - Handles git and GitHub operations for publishing agent work."""

from autopilot.git_manager.exceptions import (
    BranchError,
    GitManagerError,
    PRError,
    PublishFailure,
    PushError,
)
from autopilot.git_manager.manager import GitManager, sanitize_branch_name
from autopilot.git_manager.models import PR, NoCommits, PrCreated, PrPublishResult, PublishFailed

__all__ = [
    "PR",
    "BranchError",
    "GitManager",
    "GitManagerError",
    "NoCommits",
    "PRError",
    "PrCreated",
    "PrPublishResult",
    "PublishFailed",
    "PublishFailure",
    "PushError",
    "sanitize_branch_name",
]
