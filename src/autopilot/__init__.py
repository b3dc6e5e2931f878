"""Ticket Autopilot - dispatches a coding agent to implement tracked tickets."""

__version__ = "0.1.0"
