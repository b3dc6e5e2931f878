"""Memory - What agents learned about each repository, fed back into prompts."""

from autopilot.memory.exceptions import MemoryStoreError
from autopilot.memory.models import (
    ErrorCategory,
    RepoMemory,
    SessionLearnings,
    StepOutcome,
)
from autopilot.memory.store import (
    FileMemoryStore,
    categorize_error,
    extract_keywords,
    format_memory,
)

__all__ = [
    "ErrorCategory",
    "FileMemoryStore",
    "MemoryStoreError",
    "RepoMemory",
    "SessionLearnings",
    "StepOutcome",
    "categorize_error",
    "extract_keywords",
    "format_memory",
]
