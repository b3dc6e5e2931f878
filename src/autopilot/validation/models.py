"""Data models for the validation gate."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of one validation step.

    Attributes:
        name: Step name, e.g. "tests" or "lint".
        passed: Whether the step succeeded (skipped steps count as passed).
        output: Tail of the combined command output, or a skip reason.
        duration_ms: Wall time spent on the step.
    """

    name: str
    passed: bool
    output: str
    duration_ms: int = 0


@dataclass(frozen=True)
class ValidationSummary:
    """Aggregate outcome of the validation gate."""

    passed: bool
    results: list[ValidationResult] = field(default_factory=list)
    total_duration_ms: int = 0

    @property
    def failed_results(self) -> list[ValidationResult]:
        return [r for r in self.results if not r.passed]
