from datetime import UTC, datetime

from learnsig.core.types import EventCursor
from learnsig.feed.cursor import build_event_id, parse_cursor


def test_event_id_uses_unix_millis() -> None:
    timestamp = datetime(2026, 3, 1, 12, 0, 0, 250000, tzinfo=UTC)

    event_id = build_event_id("plan_created", "d-1", timestamp)

    assert event_id == f"plan_created:d-1:{int(timestamp.timestamp() * 1000)}"
    assert event_id.endswith(":1772366400250")


def test_naive_timestamps_are_read_as_utc() -> None:
    aware = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    naive = datetime(2026, 3, 1, 12, 0)

    assert build_event_id("plan_created", "x", naive) == build_event_id("plan_created", "x", aware)


def test_parse_round_trip_with_colons_in_row_id() -> None:
    timestamp = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    event_id = build_event_id("plan_rejected", "tenant:a:approval:7", timestamp)

    cursor = parse_cursor(event_id)

    assert cursor == EventCursor(
        event_type="plan_rejected",
        row_id="tenant:a:approval:7",
        timestamp_ms=1772366400000,
    )
    assert cursor.sort_key == (1772366400000, event_id)


def test_unparseable_cursors_are_treated_as_absent() -> None:
    assert parse_cursor(None) is None
    assert parse_cursor("") is None
    assert parse_cursor("garbage") is None
    assert parse_cursor("plan_created:only-two") is None
    assert parse_cursor("plan_created:d-1:not-a-number") is None
