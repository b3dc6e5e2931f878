"""FileMemoryStore - Per-repository memory persisted as JSON inside the working tree."""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from autopilot.memory.exceptions import MemoryStoreError
from autopilot.memory.models import (
    CategorizedError,
    ErrorCategory,
    FilePattern,
    RepoMemory,
    SessionLearnings,
    ValidationHistory,
)

logger = logging.getLogger("autopilot.memory")

MEMORY_DIR = ".autopilot"
MEMORY_FILE = "memory.json"

MAX_ERRORS = 20
MAX_PATTERNS = 30
MAX_FILE_PATTERNS = 20
MAX_FILES_PER_PATTERN = 10
MAX_CAUSES = 5
CAUSE_CHARS = 200

_STOP_WORDS = frozenset(
    "the a an is are was were be been to of and or for in on at by".split()
)
_NON_WORD = re.compile(r"[^a-z0-9\s]")


def categorize_error(message: str) -> ErrorCategory:
    """Classify a failure message by keywords."""
    lower = message.lower()
    if "type" in lower and ("error" in lower or "is not assignable" in lower):
        return ErrorCategory.TYPE_ERROR
    if "test" in lower and ("fail" in lower or "assert" in lower):
        return ErrorCategory.TEST_FAILURE
    if any(word in lower for word in ("lint", "eslint", "prettier", "ruff", "flake8")):
        return ErrorCategory.LINT_ERROR
    if any(word in lower for word in ("build", "compile", "tsc")):
        return ErrorCategory.BUILD_ERROR
    if any(word in lower for word in ("runtime", "undefined", "null", "none")):
        return ErrorCategory.RUNTIME_ERROR
    return ErrorCategory.UNKNOWN


def extract_keywords(title: str) -> list[str]:
    """Significant lowercase words of a ticket title."""
    words = _NON_WORD.sub("", title.lower()).split()
    return [w for w in words if len(w) > 2 and w not in _STOP_WORDS]


def format_memory(memory: RepoMemory) -> str:
    """Render memory as Markdown sections for the agent prompt.

    Returns:
        The rendered text, or "" if there is nothing worth telling.
    """
    sections = []

    total = memory.successful_tickets + memory.failed_tickets
    if total > 0:
        rate = round(memory.successful_tickets / total * 100)
        sections.append(
            f"**Session history:** {memory.successful_tickets}/{total} tickets "
            f"completed successfully ({rate}%)"
        )

    if memory.patterns:
        lines = "\n".join(f"- {p}" for p in memory.patterns)
        sections.append(f"**Patterns to follow:**\n{lines}")

    if memory.categorized_errors:
        by_category: dict[ErrorCategory, list[CategorizedError]] = {}
        for error in memory.categorized_errors:
            by_category.setdefault(error.category, []).append(error)
        lines = []
        for category, errors in by_category.items():
            lines.append(f"  {category.value}:")
            for error in sorted(errors, key=lambda e: e.count, reverse=True)[:3]:
                seen = f" (seen {error.count}x)" if error.count > 1 else ""
                lines.append(f"    - {error.message[:100]}{seen}")
        sections.append("**Errors to avoid (by category):**\n" + "\n".join(lines))
    elif memory.common_errors:
        lines = "\n".join(f"- {e}" for e in memory.common_errors[-5:])
        sections.append(f"**Errors to avoid:**\n{lines}")

    trouble = [v for v in memory.validation_history if v.failure_count >= 2]
    if trouble:
        lines = []
        for history in trouble:
            cause = (
                f" (common cause: {history.common_causes[0][:80]}...)"
                if history.common_causes
                else ""
            )
            lines.append(f"- {history.step}: failed {history.failure_count}x{cause}")
        sections.append("**Validation steps that often fail:**\n" + "\n".join(lines))

    if memory.file_structure:
        sections.append(f"**Project structure:**\n{memory.file_structure}")

    return "\n\n".join(sections)


class FileMemoryStore:
    """Stores what agents learned about each repository.

    Memory lives at ``<repo>/.autopilot/memory.json``. Writes go through a
    temporary file and an atomic rename so a crash never leaves a torn file.
    """

    def __init__(
        self,
        memory_dir: str = MEMORY_DIR,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.memory_dir = memory_dir
        self._clock = clock

    def path_for(self, repo_path: str | Path) -> Path:
        return Path(repo_path) / self.memory_dir / MEMORY_FILE

    def load(self, repo_path: str | Path) -> RepoMemory:
        """Read a repository's memory; unreadable or missing files give empty memory."""
        path = self.path_for(repo_path)
        if not path.exists():
            return RepoMemory()
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            return RepoMemory.from_dict(data)
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.error("Error reading memory at %s: %s", path, e)
            return RepoMemory()

    def save(self, repo_path: str | Path, memory: RepoMemory) -> None:
        """Write memory atomically.

        Raises:
            MemoryStoreError: If the file cannot be written.
        """
        path = self.path_for(repo_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".memory-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(memory.to_dict(), f, indent=2)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise MemoryStoreError(f"Failed to write memory to {path}: {e}") from e

    def record_session(self, repo_path: str | Path, session: SessionLearnings) -> RepoMemory:
        """Merge one session's learnings into the repository memory.

        Raises:
            MemoryStoreError: If the updated memory cannot be written.
        """
        memory = self.load(repo_path)
        now = self._clock().isoformat()

        if session.success is True:
            memory.successful_tickets += 1
        elif session.success is False:
            memory.failed_tickets += 1

        self._merge_errors(memory, session.errors, now)

        for learning in session.learnings:
            if learning not in memory.patterns:
                memory.patterns.append(learning)
        memory.patterns = memory.patterns[-MAX_PATTERNS:]

        if session.modified_files and session.ticket_title:
            self._merge_file_pattern(memory, session.ticket_title, session.modified_files)

        for outcome in session.validation_results:
            if not outcome.passed:
                self._merge_validation_failure(memory, outcome.step, outcome.output, now)

        if session.file_structure:
            memory.file_structure = session.file_structure

        memory.last_updated = now
        self.save(repo_path, memory)
        logger.debug("Updated memory for %s", repo_path)
        return memory

    def format_for_prompt(self, repo_path: str | Path) -> str:
        return format_memory(self.load(repo_path))

    def relevant_files(self, repo_path: str | Path, ticket_title: str) -> list[str]:
        """Files previously modified for tickets with overlapping title keywords."""
        keywords = set(extract_keywords(ticket_title))
        if not keywords:
            return []
        files: dict[str, None] = {}
        for pattern in self.load(repo_path).file_patterns:
            if keywords.intersection(pattern.ticket_keywords):
                files.update(dict.fromkeys(pattern.common_files))
        return list(files)[:MAX_FILES_PER_PATTERN]

    def _merge_errors(self, memory: RepoMemory, errors: list[str], now: str) -> None:
        if not errors:
            return
        for message in errors:
            if message not in memory.common_errors:
                memory.common_errors.append(message)
            category = categorize_error(message)
            existing = next(
                (
                    e
                    for e in memory.categorized_errors
                    if e.category == category and e.message == message
                ),
                None,
            )
            if existing:
                existing.count += 1
                existing.last_seen = now
            else:
                memory.categorized_errors.append(
                    CategorizedError(category=category, message=message, last_seen=now)
                )
        memory.common_errors = memory.common_errors[-MAX_ERRORS:]
        memory.categorized_errors = memory.categorized_errors[-MAX_ERRORS:]

    def _merge_file_pattern(self, memory: RepoMemory, title: str, files: list[str]) -> None:
        keywords = extract_keywords(title)
        if not keywords:
            return
        existing = next(
            (p for p in memory.file_patterns if set(p.ticket_keywords).intersection(keywords)),
            None,
        )
        if existing:
            for path in files:
                if path not in existing.common_files:
                    existing.common_files.append(path)
            for keyword in keywords:
                if keyword not in existing.ticket_keywords:
                    existing.ticket_keywords.append(keyword)
            existing.count += 1
            existing.common_files = existing.common_files[:MAX_FILES_PER_PATTERN]
        else:
            memory.file_patterns.append(
                FilePattern(
                    ticket_keywords=keywords[:5],
                    common_files=files[:MAX_FILES_PER_PATTERN],
                )
            )
        memory.file_patterns = memory.file_patterns[-MAX_FILE_PATTERNS:]

    def _merge_validation_failure(
        self, memory: RepoMemory, step: str, output: str | None, now: str
    ) -> None:
        cause = output[:CAUSE_CHARS] if output else None
        history = next((v for v in memory.validation_history if v.step == step), None)
        if history is None:
            memory.validation_history.append(
                ValidationHistory(
                    step=step,
                    failure_count=1,
                    last_failure=now,
                    common_causes=[cause] if cause else [],
                )
            )
            return
        history.failure_count += 1
        history.last_failure = now
        if cause and cause not in history.common_causes:
            history.common_causes.append(cause)
            history.common_causes = history.common_causes[-MAX_CAUSES:]
