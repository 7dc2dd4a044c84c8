"""Query history: entries start ``running`` and are completed exactly once."""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from dataflow.errors import ContractViolation, InvalidTransition
from dataflow.models.contracts import CONTRACTS, validate_payload
from dataflow.models.tables import QueryHistory, QueryStatus, Warehouse
from dataflow.services.records import OwnedRecords
from dataflow.services.validators import QueryCompletionInput

_LOGGER = logging.getLogger(__name__)

MS_PER_HOUR = Decimal(3_600_000)
CREDIT_QUANTUM = Decimal("0.000001")
# Only the completion step may set these.
_COMPLETION_FIELDS = ("duration", "rows_returned", "credits_used")


def compute_credits(credits_per_hour: Decimal, duration_ms: int) -> Decimal:
    """Credits consumed by a query of ``duration_ms`` on a warehouse."""

    credits = Decimal(credits_per_hour) * Decimal(duration_ms) / MS_PER_HOUR
    return credits.quantize(CREDIT_QUANTUM, rounding=ROUND_HALF_UP)


class QueryHistoryRecords(OwnedRecords[QueryHistory]):
    def __init__(self) -> None:
        super().__init__(CONTRACTS["query-history"], order_by="executed_at")

    def start(self, session: Session, user_id: int, payload: Any) -> QueryHistory:
        """Record a query that has just been submitted."""

        if isinstance(payload, dict):
            payload = {"status": QueryStatus.RUNNING.value, **payload}
        values = validate_payload(self.contracts.insert, payload).to_values()
        premature = [name for name in _COMPLETION_FIELDS if values.get(name) is not None]
        if premature:
            raise ContractViolation.single(
                premature[0],
                "constraint",
                "Only completed queries carry duration, rows or credits",
            )
        status = values.get("status", QueryStatus.RUNNING)
        if QueryStatus(status) is not QueryStatus.RUNNING:
            raise ContractViolation.single(
                "status", "constraint", "New queries must start in running status"
            )
        values["status"] = QueryStatus.RUNNING
        return self.create(session, user_id, values)

    def complete(
        self, session: Session, user_id: int, record_id: int, payload: Any
    ) -> QueryHistory:
        """Move a running query to ``completed`` or ``error``."""

        completion = validate_payload(QueryCompletionInput, payload)
        record = self.get(session, user_id, record_id)
        if QueryStatus(record.status) is not QueryStatus.RUNNING:
            raise InvalidTransition(
                f"Query {record_id} is already {QueryStatus(record.status).value}",
                constraint="query_status_transition",
            )

        credits = completion.credits_used
        if credits is None and record.warehouse_id is not None:
            warehouse = session.get(Warehouse, record.warehouse_id)
            if warehouse is not None:
                credits = compute_credits(warehouse.credits_per_hour, completion.duration)

        record.status = QueryStatus(completion.status)
        record.duration = completion.duration
        record.rows_returned = completion.rows_returned
        record.credits_used = credits
        session.flush()
        _LOGGER.info(
            "Query %s finished with status %s in %sms",
            record.id,
            record.status.value,
            record.duration,
        )
        return record

    def recent(self, session: Session, user_id: int, limit: int = 100) -> list[QueryHistory]:
        stmt = (
            select(QueryHistory)
            .where(QueryHistory.user_id == user_id)
            .order_by(QueryHistory.executed_at.desc(), QueryHistory.id.desc())
            .limit(limit)
        )
        return list(session.execute(stmt).scalars())


__all__ = ["QueryHistoryRecords", "compute_credits"]
