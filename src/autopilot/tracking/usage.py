"""Token usage parsing and cost estimation for agent output."""

from __future__ import annotations

import re
from dataclasses import dataclass

# USD per 1M tokens
INPUT_PRICE_PER_MILLION = 3.00
OUTPUT_PRICE_PER_MILLION = 15.00

_SIMPLE = re.compile(r"tokens?:?\s*(\d+)\s*input\s*,?\s*(\d+)\s*output", re.IGNORECASE)
_LABELED = re.compile(
    r"input[_\s]*tokens?:?\s*(\d+)[\s,]+output[_\s]*tokens?:?\s*(\d+)", re.IGNORECASE
)
_JSON = re.compile(
    r'\{"[^"]*input[^"]*":\s*(\d+)[^}]*"[^"]*output[^"]*":\s*(\d+)[^}]*\}', re.IGNORECASE
)
_TOTAL = re.compile(r"total[_\s]*tokens?[_\s]*used?:?\s*(\d+)", re.IGNORECASE)


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int
    output_tokens: int


def parse_token_usage(output: str) -> TokenUsage | None:
    """Find token counts in agent output.

    Recognizes "Tokens: X input, Y output", "input_tokens: X, output_tokens: Y",
    a JSON object with input/output keys, and "Total tokens used: X" (split
    evenly between input and output).

    Returns:
        TokenUsage, or None if the output reports no usage.
    """
    for pattern in (_SIMPLE, _LABELED, _JSON):
        match = pattern.search(output)
        if match:
            return TokenUsage(int(match.group(1)), int(match.group(2)))

    match = _TOTAL.search(output)
    if match:
        total = int(match.group(1))
        return TokenUsage(total // 2, total - total // 2)
    return None


def estimate_cost(usage: TokenUsage) -> float:
    """Estimated USD cost, rounded to 4 decimal places."""
    cost = (
        usage.input_tokens / 1_000_000 * INPUT_PRICE_PER_MILLION
        + usage.output_tokens / 1_000_000 * OUTPUT_PRICE_PER_MILLION
    )
    return round(cost, 4)
