"""Append-only, fingerprint-deduplicated learning event persistence."""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import Engine, func, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from learnsig.core.types import LearningEvent, WriteResult
from learnsig.sm.models import LearningEventRecord

logger = logging.getLogger(__name__)

_CONFLICT_INSERTS = {"postgresql": postgresql_insert, "sqlite": sqlite_insert}


class LearningEventStore:
    """Writes each logical learning event exactly once.

    Two idempotency strategies are offered; both rely on the unique constraint
    on ``inputs_hash`` and both hand back the id of the single stored row.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def append_ignoring_conflict(self, event: LearningEvent) -> WriteResult:
        """Insert with ``ON CONFLICT (inputs_hash) DO NOTHING``, then read back the stored id."""
        insert_factory = _CONFLICT_INSERTS.get(self._engine.dialect.name)
        if insert_factory is None:
            logger.debug(
                "conflict_insert_unsupported dialect=%s using check-then-insert",
                self._engine.dialect.name,
            )
            return self.append_or_get(event)

        statement = (
            insert_factory(LearningEventRecord)
            .values(**self._row_values(event))
            .on_conflict_do_nothing(index_elements=["inputs_hash"])
        )
        with Session(self._engine) as session:
            result = session.execute(statement)
            created = result.rowcount == 1
            session.commit()
            stored_id = self._lookup_id(session, event.inputs_hash)

        if stored_id is None:
            raise RuntimeError(f"learning event vanished after insert inputs_hash={event.inputs_hash}")
        return WriteResult(event_id=stored_id, created=created)

    def append_or_get(self, event: LearningEvent) -> WriteResult:
        """Check-then-insert; a racing duplicate insert resolves to the winner's id."""
        with Session(self._engine) as session:
            existing_id = self._lookup_id(session, event.inputs_hash)
            if existing_id is not None:
                logger.info(
                    "learning_event_duplicate event_id=%s inputs_hash=%s",
                    existing_id,
                    event.inputs_hash,
                )
                return WriteResult(event_id=existing_id, created=False)

            session.add(LearningEventRecord(**self._row_values(event)))
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                winner_id = self._lookup_id(session, event.inputs_hash)
                if winner_id is None:
                    raise
                logger.info(
                    "learning_event_insert_race event_id=%s inputs_hash=%s",
                    winner_id,
                    event.inputs_hash,
                )
                return WriteResult(event_id=winner_id, created=False)

        return WriteResult(event_id=event.event_id, created=True)

    def get_by_hash(self, inputs_hash: str) -> dict[str, Any] | None:
        """Load one stored learning event by fingerprint."""
        with Session(self._engine) as session:
            row = session.execute(
                select(LearningEventRecord).where(LearningEventRecord.inputs_hash == inputs_hash)
            ).scalar_one_or_none()
            if row is None:
                return None
            return {
                "id": row.id,
                "agent_id": row.agent_id,
                "agent_version": row.agent_version,
                "decision_type": row.decision_type,
                "source_id": row.source_id,
                "source_type": row.source_type,
                "inputs_hash": row.inputs_hash,
                "outputs": json.loads(row.outputs_json),
                "confidence": row.confidence,
                "constraints_applied": json.loads(row.constraints_json),
                "created_at": row.created_at.isoformat(),
            }

    def count(self, decision_type: str | None = None) -> int:
        """Count stored learning events, optionally for one decision type."""
        statement = select(func.count()).select_from(LearningEventRecord)
        if decision_type is not None:
            statement = statement.where(LearningEventRecord.decision_type == decision_type)
        with Session(self._engine) as session:
            return int(session.execute(statement).scalar_one())

    @staticmethod
    def _lookup_id(session: Session, inputs_hash: str) -> str | None:
        return session.execute(
            select(LearningEventRecord.id).where(LearningEventRecord.inputs_hash == inputs_hash)
        ).scalar_one_or_none()

    @staticmethod
    def _row_values(event: LearningEvent) -> dict[str, Any]:
        return {
            "id": event.event_id,
            "agent_id": event.agent_id,
            "agent_version": event.agent_version,
            "decision_type": event.decision_type,
            "source_id": event.source_id,
            "source_type": event.decision_type,
            "inputs_hash": event.inputs_hash,
            "outputs_json": json.dumps(event.outputs, ensure_ascii=False),
            "confidence": event.confidence,
            "constraints_json": json.dumps(event.constraints_applied, ensure_ascii=False),
            "created_at": event.created_at,
        }
