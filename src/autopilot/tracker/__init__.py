"""Ticket Tracker - Reads tickets and writes status/comments to Linear."""

from autopilot.tracker.client import LinearTracker
from autopilot.tracker.exceptions import (
    StateNotFoundError,
    TicketNotFoundError,
    TrackerError,
    TrackerUpdateError,
)
from autopilot.tracker.models import Ticket

__all__ = [
    "LinearTracker",
    "StateNotFoundError",
    "Ticket",
    "TicketNotFoundError",
    "TrackerError",
    "TrackerUpdateError",
]
