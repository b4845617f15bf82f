"""Approval learning agent: turns review outcomes into learning events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from learnsig.core.errors import InternalError, ValidationError
from learnsig.core.fingerprint import compute_inputs_hash
from learnsig.core.types import LearningEvent, parse_timestamp
from learnsig.normalize.approval import approval_confidence, normalize_approval_signal
from learnsig.sm.learning_store import LearningEventStore
from learnsig.sm.plan_store import DecisionRow, PlanStore

logger = logging.getLogger(__name__)

DECISION_TYPE = "approval_learning"


@dataclass(slots=True)
class ApprovalOutcome:
    """One reviewer verdict on a plan or artifact."""

    approved: bool
    decision_id: str | None = None
    confidence_adjustment: float | None = None
    reviewer_role: str | None = None
    review_scope: str | None = None
    artifact_type: str | None = None
    feedback: str | None = None
    timestamp: str | None = None


def fingerprint_inputs(outcome: ApprovalOutcome) -> dict[str, Any]:
    """Fingerprint fields with literal defaults; the defaults are part of the hash."""
    return {
        "decision_id": outcome.decision_id or "none",
        "approved": outcome.approved,
        "confidence_adjustment": outcome.confidence_adjustment or 0.0,
        "reviewer_role": outcome.reviewer_role or "unknown",
        "review_scope": outcome.review_scope or "general",
        "artifact_type": outcome.artifact_type or "unknown",
        "timestamp": outcome.timestamp or "unspecified",
    }


class ApprovalLearningAgent:
    """Normalizes approval outcomes and appends them once per fingerprint.

    Writes use the conflict-ignore strategy: the insert is skipped when the
    fingerprint already exists and the stored event's id is returned.
    """

    def __init__(
        self,
        learning_store: LearningEventStore,
        plan_store: PlanStore,
        *,
        agent_id: str = "approval-learning-agent",
        agent_version: str = "1.0.0",
    ) -> None:
        self._learning_store = learning_store
        self._plan_store = plan_store
        self._agent_id = agent_id
        self._agent_version = agent_version

    def learn(self, outcome: ApprovalOutcome, correlation_id: str = "-") -> dict[str, Any]:
        """Emit exactly one approval learning event and summarize it."""
        created_at = self._event_time(outcome.timestamp)
        source = self._load_source(outcome.decision_id, correlation_id)

        signal = normalize_approval_signal(outcome.approved, outcome.confidence_adjustment)
        confidence = approval_confidence(
            signal,
            has_source_context=source is not None,
            reviewer_role=outcome.reviewer_role,
        )
        inputs_hash = compute_inputs_hash(fingerprint_inputs(outcome))

        event = LearningEvent(
            agent_id=self._agent_id,
            agent_version=self._agent_version,
            decision_type=DECISION_TYPE,
            inputs_hash=inputs_hash,
            outputs={
                "normalized_signal": signal,
                "signal_type": "approval" if outcome.approved else "rejection",
                "signal_strength": abs(signal),
                "feedback": outcome.feedback or None,
                "source_recommendation": source.recommendation if source else None,
                "source_confidence": source.confidence if source else None,
            },
            confidence=confidence,
            constraints_applied={
                "reviewer_role": outcome.reviewer_role or "unknown",
                "review_scope": outcome.review_scope or "general",
                "artifact_type": outcome.artifact_type or "unknown",
                "has_source_context": source is not None,
                "has_feedback": bool(outcome.feedback),
            },
            source_id=outcome.decision_id,
            created_at=created_at,
        )

        try:
            written = self._learning_store.append_ignoring_conflict(event)
        except SQLAlchemyError as exc:
            logger.exception("approval_learning_write_failed correlation_id=%s", correlation_id)
            raise InternalError("Failed to process approval learning") from exc

        logger.info(
            "approval_learning_emitted correlation_id=%s event_id=%s created=%s decision_id=%s "
            "approved=%s signal=%s confidence=%s inputs_hash=%s",
            correlation_id,
            written.event_id,
            written.created,
            outcome.decision_id,
            outcome.approved,
            signal,
            confidence,
            inputs_hash,
        )
        return {
            "id": written.event_id,
            "decision_type": DECISION_TYPE,
            "normalized_signal": signal,
            "confidence": confidence,
            "inputs_hash": inputs_hash,
            "idempotent": True,
            "learning_applied": True,
        }

    def _load_source(self, decision_id: str | None, correlation_id: str) -> DecisionRow | None:
        if not decision_id:
            return None
        try:
            source = self._plan_store.get_decision(decision_id)
        except SQLAlchemyError as exc:
            logger.exception("approval_learning_source_lookup_failed correlation_id=%s", correlation_id)
            raise InternalError("Failed to process approval learning") from exc
        if source is None:
            logger.warning(
                "approval_learning_source_missing correlation_id=%s decision_id=%s "
                "proceeding without context",
                correlation_id,
                decision_id,
            )
        return source

    @staticmethod
    def _event_time(raw: str | None) -> datetime:
        if not raw:
            return datetime.now(UTC)
        try:
            return parse_timestamp(raw)
        except ValueError as exc:
            raise ValidationError(
                "Request validation failed",
                details=[{"path": "timestamp", "message": "Invalid ISO-8601 timestamp"}],
            ) from exc
