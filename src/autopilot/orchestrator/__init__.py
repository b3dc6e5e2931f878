"""Orchestrator - Admission control and lifecycle management for coding agents."""

from autopilot.orchestrator.exceptions import NotRunningError, OrchestratorError
from autopilot.orchestrator.models import ActiveAgentRecord, AgentPhase, OrchestratorStatus
from autopilot.orchestrator.orchestrator import Orchestrator
from autopilot.orchestrator.protocols import (
    Collaborators,
    CompletionRecorder,
    MemoryStore,
    Notifier,
    PromptBuilder,
    SourceControl,
    TicketTracker,
    UsageTracker,
    Validator,
)

__all__ = [
    "ActiveAgentRecord",
    "AgentPhase",
    "Collaborators",
    "CompletionRecorder",
    "MemoryStore",
    "NotRunningError",
    "Notifier",
    "Orchestrator",
    "OrchestratorError",
    "OrchestratorStatus",
    "PromptBuilder",
    "SourceControl",
    "TicketTracker",
    "UsageTracker",
    "Validator",
]
