"""Markdown rendering of validation summaries for comments and PR bodies."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from autopilot.validation.models import ValidationSummary

MAX_STEP_OUTPUT = 1000


def format_validation_summary(summary: ValidationSummary) -> str:
    """Render a validation summary as Markdown.

    Output of failed steps is included, cut to the first 1000 characters.
    """
    lines = ["## Validation Passed" if summary.passed else "## Validation Failed", ""]

    for result in summary.results:
        icon = "✅" if result.passed else "❌"
        timing = f" ({result.duration_ms / 1000:.1f}s)" if result.duration_ms > 0 else ""
        lines.append(f"{icon} **{result.name}**{timing}")

        if not result.passed and result.output:
            lines.append("```")
            lines.append(result.output[:MAX_STEP_OUTPUT])
            if len(result.output) > MAX_STEP_OUTPUT:
                lines.append("...(truncated)")
            lines.append("```")

    lines.append("")
    lines.append(f"Total time: {summary.total_duration_ms / 1000:.1f}s")
    return "\n".join(lines)
