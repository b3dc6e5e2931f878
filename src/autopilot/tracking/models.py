"""SQLAlchemy models for completion and cost tracking."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Current time as a naive UTC datetime, as SQLite stores it."""
    return datetime.now(UTC).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Completion(Base):
    """One finished agent lifecycle, successful or not."""

    __tablename__ = "completions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[str] = mapped_column(String(64), nullable=False)
    ticket_identifier: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    ticket_title: Mapped[str] = mapped_column(String(500), nullable=False)
    tenant: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    pr_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def __init__(
        self,
        ticket_id: str,
        ticket_identifier: str,
        ticket_title: str,
        tenant: str,
        success: bool,
        duration_ms: int,
        pr_url: str | None = None,
        error: str | None = None,
        created_at: datetime | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.ticket_id = ticket_id
        self.ticket_identifier = ticket_identifier
        self.ticket_title = ticket_title
        self.tenant = tenant
        self.success = success
        self.duration_ms = duration_ms
        self.pr_url = pr_url
        self.error = error
        self.created_at = created_at if created_at is not None else utcnow()

    def __repr__(self) -> str:
        return (
            f"<Completion(id={self.id!r}, ticket={self.ticket_identifier!r}, "
            f"success={self.success!r})>"
        )


class UsageRecord(Base):
    """Token usage parsed from one agent run."""

    __tablename__ = "usage_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_identifier: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    tenant: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    input_tokens: Mapped[int] = mapped_column(Integer, nullable=False)
    output_tokens: Mapped[int] = mapped_column(Integer, nullable=False)
    estimated_cost: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def __init__(
        self,
        ticket_identifier: str,
        tenant: str,
        input_tokens: int,
        output_tokens: int,
        estimated_cost: float,
        created_at: datetime | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.ticket_identifier = ticket_identifier
        self.tenant = tenant
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.estimated_cost = estimated_cost
        self.created_at = created_at if created_at is not None else utcnow()

    def __repr__(self) -> str:
        return (
            f"<UsageRecord(id={self.id!r}, ticket={self.ticket_identifier!r}, "
            f"cost={self.estimated_cost!r})>"
        )


@dataclass
class CompletionStats:
    """Aggregated statistics over completions."""

    total: int
    succeeded: int
    failed: int
    avg_duration_ms: float


@dataclass
class CostSummary:
    """Aggregated token usage and estimated cost."""

    runs: int
    input_tokens: int
    output_tokens: int
    estimated_cost: float
