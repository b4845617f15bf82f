"""Request models for the learning signal API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, StrictBool, field_validator

from learnsig.core.types import parse_timestamp


def _check_timestamp(value: str | None) -> str | None:
    if value is None:
        return value
    try:
        parse_timestamp(value)
    except ValueError as exc:
        raise ValueError("timestamp must be an ISO-8601 datetime") from exc
    return value


class ApprovalLearningIn(BaseModel):
    """Approval or rejection outcome with optional review context."""

    decision_id: str | None = Field(default=None, min_length=1)
    approved: StrictBool
    confidence_adjustment: float | None = Field(default=None, ge=-1.0, le=1.0)
    reviewer_role: str | None = None
    review_scope: str | None = None
    artifact_type: str | None = None
    feedback: str | None = None
    timestamp: str | None = None

    timestamp_is_iso = field_validator("timestamp")(_check_timestamp)


class FeedbackSignalIn(BaseModel):
    dimension: str
    value: float = Field(ge=-1.0, le=1.0)
    confidence: float = Field(ge=0.0, le=1.0)


class StructuredRatingsIn(BaseModel):
    """Explicit per-dimension ratings; any subset may be supplied."""

    quality: float | None = Field(default=None, ge=-1.0, le=1.0)
    clarity: float | None = Field(default=None, ge=-1.0, le=1.0)
    accuracy: float | None = Field(default=None, ge=-1.0, le=1.0)
    completeness: float | None = Field(default=None, ge=-1.0, le=1.0)


class AssimilationMetadataIn(BaseModel):
    feedback_source: str
    processing_method: str


class FeedbackAssimilationIn(BaseModel):
    """Reviewer feedback about one artifact."""

    agent_id: str | None = None
    agent_version: str | None = None
    source_artifact_id: str = Field(min_length=1)
    feedback_type: Literal["qualitative", "quantitative", "mixed"]
    raw_feedback: str = Field(min_length=1)
    normalized_signals: list[FeedbackSignalIn] | None = None
    structured_ratings: StructuredRatingsIn | None = None
    assimilation_metadata: AssimilationMetadataIn
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    execution_ref: str | None = None
    inputs_hash: str | None = None
    timestamp: str | None = None

    timestamp_is_iso = field_validator("timestamp")(_check_timestamp)
