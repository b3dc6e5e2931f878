"""Data models for per-repository agent memory."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Coarse classification of failure messages."""

    TYPE_ERROR = "type_error"
    TEST_FAILURE = "test_failure"
    LINT_ERROR = "lint_error"
    BUILD_ERROR = "build_error"
    RUNTIME_ERROR = "runtime_error"
    UNKNOWN = "unknown"


@dataclass
class CategorizedError:
    category: ErrorCategory
    message: str
    count: int = 1
    last_seen: str = ""


@dataclass
class FilePattern:
    """Files commonly touched for tickets sharing title keywords."""

    ticket_keywords: list[str]
    common_files: list[str]
    count: int = 1


@dataclass
class ValidationHistory:
    step: str
    failure_count: int = 0
    last_failure: str | None = None
    common_causes: list[str] = field(default_factory=list)


@dataclass
class StepOutcome:
    """One validation step result as remembered from a session."""

    step: str
    passed: bool
    output: str | None = None


@dataclass
class SessionLearnings:
    """What one agent session taught us about a repository.

    Attributes:
        success: Whether the session ended in a completed ticket.
        errors: Failure messages to remember.
        learnings: Free-form patterns worth repeating.
        file_structure: Replacement project structure description.
        modified_files: Files changed on the branch.
        ticket_title: Title used to derive file-pattern keywords.
        validation_results: Per-step validation outcomes.
    """

    success: bool | None = None
    errors: list[str] = field(default_factory=list)
    learnings: list[str] = field(default_factory=list)
    file_structure: str | None = None
    modified_files: list[str] = field(default_factory=list)
    ticket_title: str | None = None
    validation_results: list[StepOutcome] = field(default_factory=list)


@dataclass
class RepoMemory:
    """Accumulated memory for one repository, stored as JSON."""

    patterns: list[str] = field(default_factory=list)
    common_errors: list[str] = field(default_factory=list)
    file_structure: str = ""
    last_updated: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    categorized_errors: list[CategorizedError] = field(default_factory=list)
    file_patterns: list[FilePattern] = field(default_factory=list)
    validation_history: list[ValidationHistory] = field(default_factory=list)
    successful_tickets: int = 0
    failed_tickets: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for error in data["categorized_errors"]:
            error["category"] = ErrorCategory(error["category"]).value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RepoMemory:
        """Build memory from stored JSON, tolerating missing sections."""
        return cls(
            patterns=list(data.get("patterns") or []),
            common_errors=list(data.get("common_errors") or []),
            file_structure=data.get("file_structure") or "",
            last_updated=data.get("last_updated") or datetime.now(UTC).isoformat(),
            categorized_errors=[
                CategorizedError(
                    category=_category(e.get("category")),
                    message=e.get("message", ""),
                    count=int(e.get("count", 1)),
                    last_seen=e.get("last_seen", ""),
                )
                for e in data.get("categorized_errors") or []
            ],
            file_patterns=[
                FilePattern(
                    ticket_keywords=list(p.get("ticket_keywords") or []),
                    common_files=list(p.get("common_files") or []),
                    count=int(p.get("count", 1)),
                )
                for p in data.get("file_patterns") or []
            ],
            validation_history=[
                ValidationHistory(
                    step=v.get("step", ""),
                    failure_count=int(v.get("failure_count", 0)),
                    last_failure=v.get("last_failure"),
                    common_causes=list(v.get("common_causes") or []),
                )
                for v in data.get("validation_history") or []
            ],
            successful_tickets=int(data.get("successful_tickets", 0)),
            failed_tickets=int(data.get("failed_tickets", 0)),
        )


def _category(value: Any) -> ErrorCategory:
    try:
        return ErrorCategory(value)
    except ValueError:
        return ErrorCategory.UNKNOWN
