"""Admission - In-memory FIFO of tickets waiting for an agent slot."""

from autopilot.admission.models import QueuedTicket
from autopilot.admission.queue import AdmissionQueue

__all__ = [
    "AdmissionQueue",
    "QueuedTicket",
]
