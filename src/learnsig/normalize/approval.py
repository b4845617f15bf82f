"""Approval/rejection outcome normalization."""

from __future__ import annotations

SOURCE_CONTEXT_BOOST = 0.10
REVIEWER_ROLE_BOOST = 0.05
UNKNOWN_ROLE = "unknown"


def _clamp(value: float, low: float = -1.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def normalize_approval_signal(approved: bool, confidence_adjustment: float | None = None) -> float:
    """Map an approval outcome onto [-1, 1].

    The adjustment scales signal strength: 0 keeps it, +1 amplifies (clamped),
    -1 dampens it to zero.
    """
    base_signal = 1.0 if approved else -1.0
    if confidence_adjustment is None:
        return base_signal
    return _clamp(base_signal * (1.0 + confidence_adjustment))


def approval_confidence(
    normalized_signal: float,
    *,
    has_source_context: bool,
    reviewer_role: str | None,
) -> float:
    """Confidence grows with signal strength and available review context."""
    confidence = abs(normalized_signal)
    if has_source_context:
        confidence = min(1.0, confidence + SOURCE_CONTEXT_BOOST)
    if reviewer_role and reviewer_role != UNKNOWN_ROLE:
        confidence = min(1.0, confidence + REVIEWER_ROLE_BOOST)
    return confidence
