"""TrackingStore - Completion history and token cost records."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import case, func, select
from sqlalchemy.exc import SQLAlchemyError

from autopilot.tracking.database import Database
from autopilot.tracking.exceptions import TrackingError
from autopilot.tracking.models import Completion, CompletionStats, CostSummary, UsageRecord
from autopilot.tracking.usage import estimate_cost, parse_token_usage

if TYPE_CHECKING:
    from autopilot.config import TenantConfig
    from autopilot.tracker import Ticket

logger = logging.getLogger("autopilot.tracking")

MAX_ERROR_CHARS = 2000


class TrackingStore:
    """Records what the orchestrator did, for history and cost reporting.

    Serves as both the usage tracker and the completion recorder of the
    orchestrator.
    """

    def __init__(self, db_path: str = "autopilot.db") -> None:
        """Initialize the store, creating tables if they don't exist.

        Args:
            db_path: Path to SQLite database file
        """
        self._db = Database(db_path)
        self._db.create_tables()

    def close(self) -> None:
        """Close the database connection."""
        self._db.close()

    def record_completion(
        self,
        tenant: TenantConfig,
        ticket: Ticket,
        success: bool,
        duration_ms: int,
        pr_url: str | None = None,
        error: str | None = None,
    ) -> Completion:
        """Record the end of an agent lifecycle.

        Raises:
            TrackingError: If the record cannot be written
        """
        completion = Completion(
            ticket_id=ticket.id,
            ticket_identifier=ticket.identifier,
            ticket_title=ticket.title,
            tenant=tenant.name,
            success=success,
            duration_ms=duration_ms,
            pr_url=pr_url,
            error=error[:MAX_ERROR_CHARS] if error else None,
        )
        try:
            with self._db.session() as session:
                session.add(completion)
        except SQLAlchemyError as e:
            raise TrackingError(f"Failed to record completion of {ticket.identifier}: {e}") from e
        logger.info(
            "Recorded %s completion of %s (%dms)",
            "successful" if success else "failed",
            ticket.identifier,
            duration_ms,
        )
        return completion

    def record_usage(self, tenant: TenantConfig, ticket: Ticket, output: str) -> UsageRecord | None:
        """Parse token usage from agent output and store it.

        Returns:
            The stored record, or None if the output reports no usage.

        Raises:
            TrackingError: If the record cannot be written
        """
        usage = parse_token_usage(output)
        if usage is None:
            logger.debug("No token usage found in output for %s", ticket.identifier)
            return None

        record = UsageRecord(
            ticket_identifier=ticket.identifier,
            tenant=tenant.name,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            estimated_cost=estimate_cost(usage),
        )
        try:
            with self._db.session() as session:
                session.add(record)
        except SQLAlchemyError as e:
            raise TrackingError(f"Failed to record usage of {ticket.identifier}: {e}") from e
        logger.info(
            "Recorded token usage for %s: %d input, %d output, $%.4f",
            ticket.identifier,
            record.input_tokens,
            record.output_tokens,
            record.estimated_cost,
        )
        return record

    def list_completions(
        self,
        tenant: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Completion]:
        """List completions, newest first.

        Args:
            tenant: Filter by tenant name (None = all)
            limit: Maximum number of records
            offset: Number of records to skip
        """
        with self._db.session() as session:
            stmt = select(Completion).order_by(Completion.id.desc())
            if tenant is not None:
                stmt = stmt.where(Completion.tenant == tenant)
            stmt = stmt.limit(limit).offset(offset)
            return list(session.execute(stmt).scalars().all())

    def get_completion_stats(self, tenant: str | None = None) -> CompletionStats:
        """Get aggregated completion counts and average duration."""
        with self._db.session() as session:
            stmt = select(
                func.count(Completion.id).label("total"),
                func.sum(case((Completion.success.is_(True), 1), else_=0)).label("succeeded"),
                func.avg(Completion.duration_ms).label("avg_duration"),
            )
            if tenant is not None:
                stmt = stmt.where(Completion.tenant == tenant)
            result = session.execute(stmt).one()

        total = result.total or 0
        succeeded = result.succeeded or 0
        return CompletionStats(
            total=total,
            succeeded=succeeded,
            failed=total - succeeded,
            avg_duration_ms=float(result.avg_duration or 0.0),
        )

    def get_cost_summary(self, tenant: str | None = None) -> CostSummary:
        """Get total token usage and estimated cost."""
        with self._db.session() as session:
            stmt = select(
                func.count(UsageRecord.id).label("runs"),
                func.sum(UsageRecord.input_tokens).label("input_tokens"),
                func.sum(UsageRecord.output_tokens).label("output_tokens"),
                func.sum(UsageRecord.estimated_cost).label("cost"),
            )
            if tenant is not None:
                stmt = stmt.where(UsageRecord.tenant == tenant)
            result = session.execute(stmt).one()

        return CostSummary(
            runs=result.runs or 0,
            input_tokens=result.input_tokens or 0,
            output_tokens=result.output_tokens or 0,
            estimated_cost=round(float(result.cost or 0.0), 4),
        )
