"""Access to the append-only plan relations the decision feed is built from."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, TypeVar
from uuid import uuid4

from sqlalchemy import Engine, Row, Select, select
from sqlalchemy.orm import InstrumentedAttribute, Session

from learnsig.core.types import EventCursor, ensure_utc, feed_sort_key, from_millis, to_millis, truncate_millis
from learnsig.sm.models import PlanApproval, PlanDecision


@dataclass(slots=True, frozen=True)
class DecisionRow:
    """Detached snapshot of one ``decisions`` row."""

    id: str
    objective: str
    recommendation: str
    confidence: str
    command: str | None
    raw_output_hash: str | None
    created_at: datetime


@dataclass(slots=True, frozen=True)
class ApprovalRow:
    """Detached snapshot of one ``approvals`` row joined with its decision."""

    id: str
    decision_id: str
    approved: bool
    reward: float
    confidence_adjustment: float | None
    created_at: datetime
    objective: str
    recommendation: str


RowT = TypeVar("RowT", DecisionRow, ApprovalRow)


def _in_bucket(
    statement: Select[Any],
    created_column: InstrumentedAttribute[datetime],
    millis: int,
) -> Select[Any]:
    return statement.where(created_column >= from_millis(millis), created_column < from_millis(millis + 1))


def _keyset_candidates(
    session: Session,
    statement: Select[Any],
    created_column: InstrumentedAttribute[datetime],
    after: EventCursor | None,
    limit: int,
) -> list[Row[Any]]:
    """Rows that may hold the first ``limit`` feed keys after ``after``.

    SQL only narrows by millisecond bucket. The cursor's bucket and the bucket
    cut by ``limit`` are read whole, so the exact composite-id order can be
    applied afterwards without losing rows that share a millisecond.
    """
    candidates: dict[str, Row[Any]] = {}
    later = statement
    if after is not None:
        for row in session.execute(_in_bucket(statement, created_column, after.timestamp_ms)):
            candidates[row[0].id] = row
        later = statement.where(created_column >= from_millis(after.timestamp_ms + 1))

    window = session.execute(later.order_by(created_column).limit(limit)).all()
    for row in window:
        candidates[row[0].id] = row
    if len(window) == limit:
        edge_ms = to_millis(ensure_utc(window[-1][0].created_at))
        for row in session.execute(_in_bucket(later, created_column, edge_ms)):
            candidates[row[0].id] = row
    return list(candidates.values())


def _first_after(
    rows: Sequence[RowT],
    event_type: Callable[[RowT], str],
    after: EventCursor | None,
    limit: int,
) -> list[RowT]:
    keyed = [(feed_sort_key(event_type(row), row.id, row.created_at), row) for row in rows]
    if after is not None:
        keyed = [(key, row) for key, row in keyed if key > after.sort_key]
    keyed.sort(key=lambda pair: pair[0])
    return [row for _, row in keyed[:limit]]


def _review_type(row: ApprovalRow) -> str:
    return "plan_approved" if row.approved else "plan_rejected"


class PlanStore:
    """Append helpers and keyset-paginated reads over ``decisions`` and ``approvals``."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def record_decision(
        self,
        *,
        objective: str,
        recommendation: str,
        confidence: str,
        command: str | None = None,
        raw_output_hash: str | None = None,
        decision_id: str | None = None,
        created_at: datetime | None = None,
    ) -> DecisionRow:
        """Append one plan-created row."""
        record = PlanDecision(
            id=decision_id or str(uuid4()),
            objective=objective,
            recommendation=recommendation,
            confidence=confidence,
            command=command,
            raw_output_hash=raw_output_hash,
            created_at=truncate_millis(created_at or datetime.now(UTC)),
        )
        with Session(self._engine) as session:
            session.add(record)
            session.commit()
            return self._decision_row(record)

    def record_approval(
        self,
        *,
        decision_id: str,
        approved: bool,
        reward: float = 0.0,
        confidence_adjustment: float | None = None,
        approval_id: str | None = None,
        created_at: datetime | None = None,
    ) -> ApprovalRow:
        """Append one plan-reviewed row for an existing decision."""
        with Session(self._engine) as session:
            decision = session.get(PlanDecision, decision_id)
            if decision is None:
                raise ValueError(f"Unknown decision_id: {decision_id}")
            record = PlanApproval(
                id=approval_id or str(uuid4()),
                decision_id=decision_id,
                approved=approved,
                reward=reward,
                confidence_adjustment=confidence_adjustment,
                created_at=truncate_millis(created_at or datetime.now(UTC)),
            )
            session.add(record)
            session.commit()
            return self._approval_row(record, decision)

    def get_decision(self, decision_id: str) -> DecisionRow | None:
        """Load one decision by id, or ``None`` when it does not exist."""
        with Session(self._engine) as session:
            record = session.get(PlanDecision, decision_id)
            return None if record is None else self._decision_row(record)

    def fetch_created(self, after: EventCursor | None, limit: int) -> list[DecisionRow]:
        """Oldest decisions strictly after ``after`` in feed order."""
        with Session(self._engine) as session:
            rows = _keyset_candidates(session, select(PlanDecision), PlanDecision.created_at, after, limit)
            decisions = [self._decision_row(row[0]) for row in rows]
        return _first_after(decisions, lambda row: "plan_created", after, limit)

    def fetch_reviewed(
        self,
        after: EventCursor | None,
        limit: int,
        *,
        include_approved: bool = True,
        include_rejected: bool = True,
    ) -> list[ApprovalRow]:
        """Oldest approvals/rejections strictly after ``after`` in feed order.

        Approved rows map to ``plan_approved`` and rejected rows to
        ``plan_rejected``; at equal milliseconds the former sorts first.
        """
        if not include_approved and not include_rejected:
            return []

        statement = select(PlanApproval, PlanDecision).join(
            PlanDecision, PlanDecision.id == PlanApproval.decision_id
        )
        if include_approved != include_rejected:
            statement = statement.where(PlanApproval.approved.is_(include_approved))

        with Session(self._engine) as session:
            rows = _keyset_candidates(session, statement, PlanApproval.created_at, after, limit)
            reviews = [self._approval_row(approval, decision) for approval, decision in rows]
        return _first_after(reviews, _review_type, after, limit)

    def ping(self) -> bool:
        """Round-trip a trivial statement to prove the database is reachable."""
        with Session(self._engine) as session:
            return session.execute(select(1)).scalar_one() == 1

    @staticmethod
    def _decision_row(record: PlanDecision) -> DecisionRow:
        return DecisionRow(
            id=record.id,
            objective=record.objective,
            recommendation=record.recommendation,
            confidence=record.confidence,
            command=record.command,
            raw_output_hash=record.raw_output_hash,
            created_at=ensure_utc(record.created_at),
        )

    @staticmethod
    def _approval_row(record: PlanApproval, decision: PlanDecision) -> ApprovalRow:
        return ApprovalRow(
            id=record.id,
            decision_id=record.decision_id,
            approved=record.approved,
            reward=record.reward,
            confidence_adjustment=record.confidence_adjustment,
            created_at=ensure_utc(record.created_at),
            objective=decision.objective,
            recommendation=decision.recommendation,
        )
