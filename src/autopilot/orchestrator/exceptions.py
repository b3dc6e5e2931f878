"""Exceptions for the Orchestrator module."""


class OrchestratorError(Exception):
    """Base exception for orchestrator errors."""


class NotRunningError(OrchestratorError):
    """The orchestrator needs a running event loop for this operation."""
