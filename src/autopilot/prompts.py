"""Prompt construction for the coding agent."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from autopilot.memory import FileMemoryStore
    from autopilot.tracker import Ticket

logger = logging.getLogger("autopilot.prompts")


class AgentPromptBuilder:
    """Builds the instructions handed to the agent for one ticket.

    When a memory store is configured and memory is requested, learnings from
    earlier sessions on the same repository are included.
    """

    def __init__(self, memory: FileMemoryStore | None = None) -> None:
        self.memory = memory

    def build(
        self,
        ticket: Ticket,
        repo_path: str,
        branch_name: str,
        include_memory: bool = True,
    ) -> str:
        """Build the prompt for a ticket.

        Args:
            ticket: The ticket to implement.
            repo_path: Working tree the agent runs in.
            branch_name: Feature branch the agent must create and commit to.
            include_memory: Whether to add context from previous sessions.

        Returns:
            Markdown prompt text.
        """
        prompt_parts = [
            f"You are working on Linear ticket {ticket.identifier}.",
            "",
            "## Ticket Details",
            "",
            f"**Title:** {ticket.title}",
            "",
            "**Description:**",
            ticket.description or "No description provided.",
        ]

        if include_memory and self.memory is not None:
            prompt_parts.extend(self._memory_section(ticket, repo_path))

        prompt_parts.extend(
            [
                "",
                "## Instructions",
                "",
                f"1. First, create and checkout a new branch: `git checkout -b {branch_name}`",
                "2. Read and understand the ticket requirements",
                "3. Implement the changes needed to complete this ticket",
                "4. Run the tests to verify your implementation",
                "5. If tests fail, fix the issues and run tests again",
                "6. Keep iterating until all tests pass",
                "7. Once tests pass, commit your changes with a message that references "
                f"{ticket.identifier}",
                "",
                "## IMPORTANT RULES",
                "",
                "- **DO NOT commit to the default branch** - work only on the feature branch",
                "- **DO NOT push to remote** - the system will handle PR creation",
                "- Create atomic, focused commits",
                "- Follow existing code patterns in the repository",
                "",
                f"Work in the repository at: {repo_path}",
                "",
                "Begin implementing now.",
            ]
        )

        prompt = "\n".join(prompt_parts)
        logger.debug("Built prompt for %s (%d chars)", ticket.identifier, len(prompt))
        return prompt

    def _memory_section(self, ticket: Ticket, repo_path: str) -> list[str]:
        assert self.memory is not None
        context = self.memory.format_for_prompt(repo_path)
        files = self.memory.relevant_files(repo_path, ticket.title)
        if files:
            listing = "\n".join(f"- {f}" for f in files)
            hint = f"**Files often modified for similar tickets:**\n{listing}"
            context = f"{context}\n\n{hint}" if context else hint
        if not context:
            return []
        return ["", "## Context from Previous Sessions", "", context]
