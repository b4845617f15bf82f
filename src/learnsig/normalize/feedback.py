"""Heuristic normalization of free-text reviewer feedback."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from learnsig.core.types import FEEDBACK_DIMENSIONS, FeedbackSignal

NORMALIZATION_METHOD = "heuristic-sentiment-analysis"
DERIVED_CONFIDENCE = 0.6
RATED_CONFIDENCE = 1.0
KEYWORD_WEIGHT = 0.2

BASE_SENTIMENT: dict[str, float] = {
    "approval": 0.8,
    "rejection": -0.8,
    "suggestion": 0.3,
    "critique": -0.3,
    "rating": 0.0,
}
POSITIVE_KEYWORDS = ("excellent", "great", "good", "clear", "accurate", "complete", "well-done")
NEGATIVE_KEYWORDS = ("poor", "bad", "unclear", "inaccurate", "incomplete", "confusing", "missing")


def derive_sentiment(feedback_type: str, raw_feedback: str) -> float:
    """Score text sentiment from the feedback type plus keyword balance.

    Keywords are matched as case-insensitive substrings, so a word such as
    "unclear" counts for both "unclear" and "clear".
    """
    sentiment = BASE_SENTIMENT.get(feedback_type, 0.0)
    lowered = raw_feedback.lower()
    positive = sum(1 for keyword in POSITIVE_KEYWORDS if keyword in lowered)
    negative = sum(1 for keyword in NEGATIVE_KEYWORDS if keyword in lowered)
    return max(-1.0, min(1.0, sentiment + (positive - negative) * KEYWORD_WEIGHT))


def parse_feedback_dimensions(
    raw_feedback: str,
    feedback_type: str,
    structured_ratings: Mapping[str, float | None] | None = None,
) -> list[FeedbackSignal]:
    """Extract per-dimension signals, preferring explicit ratings over text heuristics."""
    signals: list[FeedbackSignal] = []
    if structured_ratings:
        for dimension in FEEDBACK_DIMENSIONS:
            rating = structured_ratings.get(dimension)
            if rating is not None:
                signals.append(FeedbackSignal(dimension, float(rating), RATED_CONFIDENCE))

    if not signals:
        sentiment = derive_sentiment(feedback_type, raw_feedback)
        signals = [
            FeedbackSignal(dimension, sentiment, DERIVED_CONFIDENCE)
            for dimension in FEEDBACK_DIMENSIONS
        ]
    return signals


def summarize_signals(feedback_type: str, signals: list[FeedbackSignal]) -> str:
    avg_value = sum(signal.value for signal in signals) / len(signals)
    if avg_value > 0.3:
        sentiment = "positive"
    elif avg_value < -0.3:
        sentiment = "negative"
    else:
        sentiment = "neutral"
    return f"{feedback_type} feedback with {sentiment} sentiment ({len(signals)} dimensions)"


def normalize_feedback(
    raw_feedback: str,
    feedback_type: str,
    structured_ratings: Mapping[str, float | None] | None = None,
) -> dict[str, Any]:
    """Normalize feedback into signals, a one-line summary and processing metadata."""
    signals = parse_feedback_dimensions(raw_feedback, feedback_type, structured_ratings)
    avg_value = sum(signal.value for signal in signals) / len(signals)
    return {
        "normalized_signals": signals,
        "feedback_summary": summarize_signals(feedback_type, signals),
        "processing_metadata": {
            "method": NORMALIZATION_METHOD,
            "dimensions_extracted": len(signals),
            "had_structured_ratings": bool(structured_ratings),
            "feedback_length": len(raw_feedback),
            "avg_signal_value": avg_value,
        },
    }
