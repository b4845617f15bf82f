"""Opaque decision-event cursor codec."""

from __future__ import annotations

from datetime import datetime

from learnsig.core.types import EVENT_ID_SEPARATOR, EventCursor, composite_event_id, to_millis

SEPARATOR = EVENT_ID_SEPARATOR


def build_event_id(event_type: str, row_id: str, timestamp: datetime) -> str:
    """Compose ``<type>:<row id>:<unix millis>``; the result is also the cursor."""
    return composite_event_id(event_type, row_id, to_millis(timestamp))


def parse_cursor(cursor: str | None) -> EventCursor | None:
    """Decode a cursor, returning ``None`` for anything that does not parse.

    Row ids may themselves contain the separator, so everything between the
    leading type tag and the trailing timestamp is the row id.
    """
    if not cursor:
        return None
    parts = cursor.split(SEPARATOR)
    if len(parts) < 3:
        return None
    try:
        timestamp_ms = int(parts[-1])
    except ValueError:
        return None
    return EventCursor(
        event_type=parts[0],
        row_id=SEPARATOR.join(parts[1:-1]),
        timestamp_ms=timestamp_ms,
    )
