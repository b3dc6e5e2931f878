"""Data models for Git Manager."""

from dataclasses import dataclass


@dataclass
class PR:
    """Pull request data."""

    id: int
    url: str
    number: int


@dataclass(frozen=True)
class PrCreated:
    """The branch was pushed and a pull request opened."""

    url: str


@dataclass(frozen=True)
class NoCommits:
    """The agent made no commits on the branch; nothing to publish."""


@dataclass(frozen=True)
class PublishFailed:
    """Commits exist but pushing or opening the PR failed."""

    error: str


PrPublishResult = PrCreated | NoCommits | PublishFailed
