"""Custom exceptions for the validation gate."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from autopilot.validation.models import ValidationSummary


class ValidationError(Exception):
    """Base exception for validation errors."""


class ValidationFailure(ValidationError):
    """The agent's work did not pass the validation gate."""

    def __init__(self, summary: ValidationSummary, message: str | None = None) -> None:
        self.summary = summary
        failed = ", ".join(r.name for r in summary.failed_results) or "unknown"
        super().__init__(message or f"Validation failed: {failed}")
