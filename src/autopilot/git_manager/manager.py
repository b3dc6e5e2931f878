"""GitManager - Handles git and GitHub operations for publishing agent work."""

from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from autopilot.git_manager.exceptions import (
    BranchError,
    GitManagerError,
    PRError,
    PushError,
)
from autopilot.git_manager.models import PR, NoCommits, PrCreated, PrPublishResult, PublishFailed

if TYPE_CHECKING:
    from autopilot.tracker import Ticket

logger = logging.getLogger("autopilot.git_manager")

MAX_BRANCH_LENGTH = 100

_UNSAFE_BRANCH_CHARS = re.compile(r"[^a-z0-9._/-]+")
_REPEATED_DOTS = re.compile(r"\.{2,}")
_REPEATED_SLASHES = re.compile(r"/{2,}")


def sanitize_branch_name(identifier: str) -> str:
    """Turn a ticket identifier into a safe git branch name.

    The result is lowercase, contains only ``[a-z0-9._/-]``, never contains
    ``..``, never starts with ``-`` and is at most 100 characters long.

    Args:
        identifier: Ticket identifier, e.g. "ABC-123".

    Returns:
        The branch name, "ticket" if nothing usable remains.
    """
    name = _UNSAFE_BRANCH_CHARS.sub("-", identifier.lower())
    name = _REPEATED_DOTS.sub(".", name)
    name = _REPEATED_SLASHES.sub("/", name)
    name = name.lstrip("-./")
    name = name[:MAX_BRANCH_LENGTH].rstrip("./")
    return name or "ticket"


class GitManager:
    """Manages git and GitHub operations for agent branches.

    Git runs locally in each tenant's working tree with argv-only commands
    and per-operation timeouts; pull requests go through the GitHub REST API.
    One instance serves every tenant, so repository paths are per call.
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        git_timeout_ms: int = 30_000,
        push_timeout_ms: int | None = None,
        pr_timeout_ms: int | None = None,
    ) -> None:
        """Initialize Git Manager.

        Args:
            token: GitHub personal access token
            base_url: GitHub API base URL (for testing/enterprise)
            git_timeout_ms: Timeout for local git commands
            push_timeout_ms: Timeout for push (default: 4x git timeout)
            pr_timeout_ms: Timeout for PR creation (default: 2x git timeout)
        """
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.git_timeout_ms = git_timeout_ms
        self.push_timeout_ms = push_timeout_ms or git_timeout_ms * 4
        self.pr_timeout_ms = pr_timeout_ms or git_timeout_ms * 2
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Get or create HTTP client for GitHub API."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {self.token}",
                    "Accept": "application/vnd.github+json",
                    "X-GitHub-Api-Version": "2022-11-28",
                },
                timeout=self.pr_timeout_ms / 1000,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def _run_git(self, repo_path: str | Path, *args: str, timeout_ms: int | None = None) -> str:
        """Run a git command in a repository.

        Args:
            repo_path: Working tree to run in
            *args: Git command arguments
            timeout_ms: Override for the default git timeout

        Returns:
            Command stdout

        Raises:
            subprocess.CalledProcessError: If command fails
            subprocess.TimeoutExpired: If command exceeds its timeout
        """
        result = subprocess.run(
            ["git", *args],
            cwd=Path(repo_path),
            capture_output=True,
            text=True,
            check=True,
            timeout=(timeout_ms or self.git_timeout_ms) / 1000,
        )
        return result.stdout.strip()

    def branch_exists(self, repo_path: str | Path, branch: str) -> bool:
        """Check whether a local branch exists.

        Raises:
            BranchError: If git does not answer in time
        """
        try:
            self._run_git(repo_path, "rev-parse", "--verify", "--quiet", f"refs/heads/{branch}")
        except subprocess.CalledProcessError:
            return False
        except subprocess.TimeoutExpired as e:
            raise BranchError(f"Timed out looking up branch '{branch}'") from e
        return True

    def has_commits(self, repo_path: str | Path, branch: str, base: str = "main") -> bool:
        """Check whether a branch has commits not on base.

        Raises:
            BranchError: If the branches cannot be compared
        """
        try:
            log = self._run_git(repo_path, "log", f"{base}..{branch}", "--oneline")
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
            stderr = getattr(e, "stderr", None) or str(e)
            raise BranchError(f"Failed to compare '{branch}' with '{base}': {stderr}") from e
        return bool(log)

    def push(self, repo_path: str | Path, branch: str) -> None:
        """Push a branch to origin.

        Raises:
            PushError: If push fails
        """
        logger.info("Pushing branch %s to origin", branch)
        try:
            self._run_git(
                repo_path, "push", "-u", "origin", branch, timeout_ms=self.push_timeout_ms
            )
        except subprocess.CalledProcessError as e:
            logger.error("Failed to push branch %s: %s", branch, e.stderr)
            raise PushError(f"Failed to push branch '{branch}': {e.stderr}") from e
        except subprocess.TimeoutExpired as e:
            logger.error("Push of %s timed out", branch)
            raise PushError(f"Push of branch '{branch}' timed out after {e.timeout}s") from e
        logger.info("Pushed branch %s", branch)

    def create_pr(
        self, github_repo: str, branch: str, title: str, body: str, base: str = "main"
    ) -> PR:
        """Create a pull request.

        Args:
            github_repo: Repository in "owner/repo" format
            branch: Head branch (the branch with changes)
            title: PR title
            body: PR description
            base: Base branch to merge into (default: main)

        Returns:
            PR object with id, url, and number

        Raises:
            PRError: If PR creation fails
        """
        logger.info("Creating PR: %s (%s -> %s)", title, branch, base)
        try:
            response = self.client.post(
                f"/repos/{github_repo}/pulls",
                json={
                    "title": title,
                    "body": body,
                    "head": branch,
                    "base": base,
                },
            )
        except httpx.HTTPError as e:
            raise PRError(f"Failed to create PR: {e}") from e

        if response.status_code != 201:
            logger.error("Failed to create PR: %s", response.text)
            raise PRError(f"Failed to create PR: {response.status_code} - {response.text}")

        data = response.json()
        pr = PR(
            id=data["id"],
            url=data["html_url"],
            number=data["number"],
        )
        logger.info("Created PR #%d: %s", pr.number, pr.url)
        return pr

    def publish(
        self,
        repo_path: str | Path,
        branch_name: str,
        ticket: Ticket,
        summary: str | None = None,
        *,
        github_repo: str,
        base: str = "main",
    ) -> PrPublishResult:
        """Publish the agent's branch as a pull request.

        Never raises; every outcome is one of the result variants.

        Args:
            repo_path: Tenant working tree
            branch_name: Feature branch the agent committed to
            ticket: Ticket the work belongs to
            summary: Validation summary appended to the PR body
            github_repo: Repository in "owner/repo" format
            base: Branch the PR targets

        Returns:
            PrCreated with the PR url, NoCommits, or PublishFailed with the error.
        """
        try:
            if not self.branch_exists(repo_path, branch_name):
                # the agent finished without ever checking out its branch
                logger.info("Branch %s was never created, skipping PR creation", branch_name)
                return NoCommits()
            if not self.has_commits(repo_path, branch_name, base):
                logger.info("No commits on %s, skipping PR creation", branch_name)
                return NoCommits()
            self.push(repo_path, branch_name)
            pr = self.create_pr(
                github_repo,
                branch_name,
                title=f"{ticket.identifier}: {ticket.title}",
                body=_pr_body(ticket, summary),
                base=base,
            )
        except GitManagerError as e:
            logger.error("Failed to publish %s: %s", branch_name, e)
            return PublishFailed(error=str(e))
        return PrCreated(url=pr.url)

    def cleanup_branch(self, repo_path: str | Path, branch: str, base: str = "main") -> None:
        """Return to base and delete the local feature branch.

        Raises:
            BranchError: If checkout or deletion fails
        """
        logger.info("Cleaning up branch %s in %s", branch, repo_path)
        try:
            self._run_git(repo_path, "checkout", base)
            self._run_git(repo_path, "branch", "-D", branch)
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
            stderr = getattr(e, "stderr", None) or str(e)
            raise BranchError(f"Failed to clean up branch '{branch}': {stderr}") from e

    def modified_files(
        self, repo_path: str | Path, branch: str, base: str = "main"
    ) -> list[str]:
        """List files changed on a branch relative to base.

        Raises:
            BranchError: If the diff cannot be computed
        """
        try:
            output = self._run_git(repo_path, "diff", "--name-only", f"{base}...{branch}")
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
            stderr = getattr(e, "stderr", None) or str(e)
            raise BranchError(f"Failed to diff '{branch}' against '{base}': {stderr}") from e
        return [line for line in output.splitlines() if line]


def _pr_body(ticket: Ticket, summary: str | None) -> str:
    parts = [
        f"## {ticket.title}",
        ticket.description or "No description provided.",
    ]
    if summary:
        parts.append(summary)
    parts.append(f"---\nLinear: {ticket.identifier}\nGenerated by Ticket Autopilot")
    return "\n\n".join(parts)
