"""Tracking - Persists completion history and token costs in SQLite."""

from autopilot.tracking.database import Database
from autopilot.tracking.exceptions import TrackingError
from autopilot.tracking.models import Completion, CompletionStats, CostSummary, UsageRecord
from autopilot.tracking.store import TrackingStore
from autopilot.tracking.usage import TokenUsage, estimate_cost, parse_token_usage

__all__ = [
    "Completion",
    "CompletionStats",
    "CostSummary",
    "Database",
    "TokenUsage",
    "TrackingError",
    "TrackingStore",
    "UsageRecord",
    "estimate_cost",
    "parse_token_usage",
]
