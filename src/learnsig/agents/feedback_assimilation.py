"""Feedback assimilation agent: structured learning signals from reviewer feedback."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from learnsig.core.errors import InternalError, ValidationError
from learnsig.core.fingerprint import compute_inputs_hash
from learnsig.core.types import FeedbackSignal, LearningEvent, format_timestamp, parse_timestamp
from learnsig.normalize.feedback import normalize_feedback, summarize_signals
from learnsig.sm.learning_store import LearningEventStore

logger = logging.getLogger(__name__)

DECISION_TYPE = "feedback_assimilation"


@dataclass(slots=True)
class FeedbackSubmission:
    """Reviewer feedback about one artifact, optionally pre-normalized."""

    source_artifact_id: str
    feedback_type: str
    raw_feedback: str
    feedback_source: str
    processing_method: str
    normalized_signals: list[FeedbackSignal] = field(default_factory=list)
    structured_ratings: dict[str, float | None] | None = None
    agent_id: str | None = None
    agent_version: str | None = None
    confidence: float | None = None
    execution_ref: str | None = None
    inputs_hash: str | None = None
    timestamp: str | None = None


def fingerprint_inputs(submission: FeedbackSubmission) -> dict[str, Any]:
    """Fingerprint fields; non-null structured ratings are part of the hash when present."""
    inputs: dict[str, Any] = {
        "source_artifact_id": submission.source_artifact_id,
        "feedback_type": submission.feedback_type,
        "raw_feedback": submission.raw_feedback,
        "feedback_source": submission.feedback_source,
    }
    ratings = {
        dimension: value
        for dimension, value in (submission.structured_ratings or {}).items()
        if value is not None
    }
    if ratings:
        inputs["structured_ratings"] = ratings
    return inputs


class FeedbackAssimilationAgent:
    """Assimilates feedback into one learning event per fingerprint.

    Writes use check-then-insert: an existing fingerprint returns the stored
    id, and a concurrent duplicate insert resolves to the winning row.
    """

    def __init__(
        self,
        learning_store: LearningEventStore,
        *,
        agent_id: str = "feedback-assimilation-agent",
        agent_version: str = "1.0.0",
    ) -> None:
        self._learning_store = learning_store
        self._agent_id = agent_id
        self._agent_version = agent_version

    def assimilate(self, submission: FeedbackSubmission, correlation_id: str = "-") -> dict[str, Any]:
        """Normalize, fingerprint and persist one feedback submission."""
        agent_id = submission.agent_id or self._agent_id
        agent_version = submission.agent_version or self._agent_version
        created_at, event_timestamp = self._event_time(submission.timestamp)

        if submission.normalized_signals:
            signals = list(submission.normalized_signals)
            processing_method = submission.processing_method
        else:
            normalized = normalize_feedback(
                submission.raw_feedback,
                submission.feedback_type,
                submission.structured_ratings,
            )
            signals = normalized["normalized_signals"]
            processing_method = normalized["processing_metadata"]["method"]

        mean_confidence = sum(signal.confidence for signal in signals) / len(signals)
        confidence = (
            submission.confidence
            if submission.normalized_signals and submission.confidence is not None
            else mean_confidence
        )

        inputs_hash = submission.inputs_hash or compute_inputs_hash(fingerprint_inputs(submission))

        event = LearningEvent(
            agent_id=agent_id,
            agent_version=agent_version,
            decision_type=DECISION_TYPE,
            inputs_hash=inputs_hash,
            outputs={
                "normalized_signals": [signal.as_dict() for signal in signals],
                "feedback_summary": summarize_signals(submission.feedback_type, signals),
                "processing_metadata": {
                    "method": processing_method,
                    "dimensions_extracted": len(signals),
                    "feedback_length": len(submission.raw_feedback),
                },
                "execution_ref": submission.execution_ref or f"exec-{uuid4()}",
            },
            confidence=confidence,
            constraints_applied={
                "feedback_source": submission.feedback_source,
                "processing_method": processing_method,
            },
            source_id=submission.source_artifact_id,
            created_at=created_at,
        )

        try:
            written = self._learning_store.append_or_get(event)
        except SQLAlchemyError as exc:
            logger.exception("feedback_assimilation_write_failed correlation_id=%s", correlation_id)
            raise InternalError("Failed to assimilate feedback") from exc

        logger.info(
            "feedback_assimilated correlation_id=%s event_id=%s created=%s artifact_id=%s "
            "feedback_type=%s signals=%s confidence=%s",
            correlation_id,
            written.event_id,
            written.created,
            submission.source_artifact_id,
            submission.feedback_type,
            len(signals),
            confidence,
        )
        return {
            "id": written.event_id,
            "agent_id": agent_id,
            "decision_type": DECISION_TYPE,
            "source_artifact_id": submission.source_artifact_id,
            "feedback_type": submission.feedback_type,
            "normalized_signals_count": len(signals),
            "created": True,
            "timestamp": event_timestamp,
        }

    @staticmethod
    def _event_time(raw: str | None) -> tuple[datetime, str]:
        if not raw:
            now = datetime.now(UTC)
            return now, format_timestamp(now)
        try:
            return parse_timestamp(raw), raw
        except ValueError as exc:
            raise ValidationError(
                "Request validation failed",
                details=[{"path": "timestamp", "message": "Invalid ISO-8601 timestamp"}],
            ) from exc
