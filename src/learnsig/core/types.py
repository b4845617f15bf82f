"""Canonical domain types shared across learning signal layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Literal, TypedDict
from uuid import uuid4

LearningDecisionType = Literal["approval_learning", "feedback_assimilation"]
DecisionEventType = Literal["plan_created", "plan_approved", "plan_rejected", "plan_deferred"]

DECISION_EVENT_TYPES: tuple[DecisionEventType, ...] = (
    "plan_created",
    "plan_approved",
    "plan_rejected",
    "plan_deferred",
)
FEEDBACK_DIMENSIONS: tuple[str, ...] = ("quality", "clarity", "accuracy", "completeness")


@dataclass(slots=True, frozen=True)
class FeedbackSignal:
    """One normalized feedback dimension."""

    dimension: str
    value: float
    confidence: float

    def as_dict(self) -> dict[str, Any]:
        return {"dimension": self.dimension, "value": self.value, "confidence": self.confidence}


@dataclass(slots=True)
class LearningEvent:
    """Append-only record of one normalized human signal."""

    agent_id: str
    agent_version: str
    decision_type: LearningDecisionType
    inputs_hash: str
    outputs: dict[str, Any]
    confidence: float
    constraints_applied: dict[str, Any]
    source_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    event_id: str = field(default_factory=lambda: str(uuid4()))


@dataclass(slots=True, frozen=True)
class WriteResult:
    """Outcome of an idempotent learning-event append."""

    event_id: str
    created: bool


class PlanCreatedPayload(TypedDict):
    plan_id: str
    decision_id: str
    objective: str
    recommendation: str
    confidence: str
    command: str | None
    checksum: str | None


class PlanReviewedPayload(TypedDict):
    plan_id: str
    decision_id: str
    simulation_id: str
    objective: str
    recommendation: str
    reward: float
    confidence_adjustment: float | None
    reviewer_outcome: Literal["approved", "rejected"]


@dataclass(slots=True, frozen=True)
class DecisionEvent:
    """Read-side projection of one plan lifecycle transition.

    ``event_id`` doubles as the pagination cursor and ``sort_key`` is the total
    order the feed is emitted in.
    """

    event_id: str
    event_type: DecisionEventType
    timestamp: datetime
    payload: PlanCreatedPayload | PlanReviewedPayload

    @property
    def sort_key(self) -> tuple[int, str]:
        return (to_millis(self.timestamp), self.event_id)

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.event_id,
            "type": self.event_type,
            "timestamp": format_timestamp(self.timestamp),
            "payload": dict(self.payload),
        }


@dataclass(slots=True, frozen=True)
class EventCursor:
    """Decoded pagination cursor: the sort key of the last event a consumer saw."""

    event_type: str
    row_id: str
    timestamp_ms: int

    @property
    def sort_key(self) -> tuple[int, str]:
        return (self.timestamp_ms, composite_event_id(self.event_type, self.row_id, self.timestamp_ms))


@dataclass(slots=True, frozen=True)
class DecisionPage:
    """One page of the decision-event feed."""

    events: list[DecisionEvent]
    next_cursor: str | None

    def as_dict(self) -> dict[str, Any]:
        return {
            "events": [event.as_dict() for event in self.events],
            "next_cursor": self.next_cursor,
        }


EVENT_ID_SEPARATOR = ":"
_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_MILLISECOND = timedelta(milliseconds=1)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops offsets) and convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_millis(value: datetime) -> int:
    return (ensure_utc(value) - _EPOCH) // _MILLISECOND


def from_millis(millis: int) -> datetime:
    return _EPOCH + millis * _MILLISECOND


def truncate_millis(value: datetime) -> datetime:
    """Drop sub-millisecond precision so cursor timestamps round-trip exactly."""
    return from_millis(to_millis(value))


def composite_event_id(event_type: str, row_id: str, timestamp_ms: int) -> str:
    """Compose ``<type>:<row id>:<unix millis>``, the id and cursor of a feed event."""
    return f"{event_type}{EVENT_ID_SEPARATOR}{row_id}{EVENT_ID_SEPARATOR}{timestamp_ms}"


def feed_sort_key(event_type: str, row_id: str, timestamp: datetime) -> tuple[int, str]:
    """Total feed order: millisecond bucket, then the composite id as a string."""
    timestamp_ms = to_millis(timestamp)
    return (timestamp_ms, composite_event_id(event_type, row_id, timestamp_ms))


def format_timestamp(value: datetime) -> str:
    return ensure_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(raw: str) -> datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing ``Z``.

    Raises:
        ValueError: If ``raw`` is not an ISO-8601 timestamp.
    """
    text = raw.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))
