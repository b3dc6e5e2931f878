"""Validation - Runs tests, lint and type checks before agent work is published."""

from autopilot.validation.exceptions import ValidationError, ValidationFailure
from autopilot.validation.formatter import format_validation_summary
from autopilot.validation.models import ValidationResult, ValidationSummary
from autopilot.validation.validator import DefaultValidator

__all__ = [
    "DefaultValidator",
    "ValidationError",
    "ValidationFailure",
    "ValidationResult",
    "ValidationSummary",
    "format_validation_summary",
]
