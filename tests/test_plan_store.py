from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy.orm import Session

from learnsig.feed.aggregator import DecisionEventFeed
from learnsig.feed.cursor import parse_cursor
from learnsig.sm.models import PlanApproval, PlanDecision, create_database_engine
from learnsig.sm.plan_store import PlanStore

BASE = datetime(2026, 2, 1, 9, 30, tzinfo=UTC)


def _plan_store(tmp_path: Path) -> PlanStore:
    return PlanStore(create_database_engine(f"sqlite:///{tmp_path / 'plans.db'}"))


def test_record_and_get_decision(tmp_path: Path) -> None:
    store = _plan_store(tmp_path)
    row = store.record_decision(
        objective="reduce churn",
        recommendation="ship onboarding v2",
        confidence="0.82",
        decision_id="d-1",
        created_at=BASE + timedelta(microseconds=123456),
    )

    loaded = store.get_decision("d-1")

    assert loaded == row
    assert loaded.created_at == BASE + timedelta(milliseconds=123)
    assert loaded.created_at.tzinfo is not None
    assert store.get_decision("missing") is None
    assert store.ping() is True


def test_record_approval_requires_known_decision(tmp_path: Path) -> None:
    store = _plan_store(tmp_path)

    with pytest.raises(ValueError, match="Unknown decision_id"):
        store.record_approval(decision_id="nope", approved=True)


def test_fetch_reviewed_filters_by_outcome(tmp_path: Path) -> None:
    store = _plan_store(tmp_path)
    store.record_decision(objective="o", recommendation="r", confidence="c", decision_id="d-1", created_at=BASE)
    store.record_approval(decision_id="d-1", approved=True, approval_id="a-1", created_at=BASE)
    store.record_approval(decision_id="d-1", approved=False, approval_id="a-2", created_at=BASE)

    approved = store.fetch_reviewed(None, 10, include_rejected=False)
    rejected = store.fetch_reviewed(None, 10, include_approved=False)
    both = store.fetch_reviewed(None, 10)

    assert [row.id for row in approved] == ["a-1"]
    assert [row.id for row in rejected] == ["a-2"]
    assert [row.id for row in both] == ["a-1", "a-2"]
    assert both[0].objective == "o"
    assert store.fetch_reviewed(None, 10, include_approved=False, include_rejected=False) == []


def test_feed_pages_through_timestamp_ties_one_by_one(tmp_path: Path) -> None:
    store = _plan_store(tmp_path)
    feed = DecisionEventFeed(store)
    store.record_decision(objective="o", recommendation="r", confidence="c", decision_id="m", created_at=BASE)
    store.record_approval(decision_id="m", approved=False, approval_id="a", created_at=BASE)
    store.record_approval(decision_id="m", approved=True, approval_id="z", created_at=BASE)
    store.record_approval(decision_id="m", approved=True, approval_id="b", created_at=BASE)
    store.record_decision(
        objective="o2",
        recommendation="r2",
        confidence="c",
        decision_id="n",
        created_at=BASE + timedelta(milliseconds=1),
    )

    seen: list[str] = []
    cursor = None
    for _ in range(10):
        page = feed.list_events(after=cursor, limit=1)
        if not page.events:
            break
        seen.extend(event.event_id for event in page.events)
        cursor = page.next_cursor

    millis = int(BASE.timestamp() * 1000)
    assert seen == [
        f"plan_approved:b:{millis}",
        f"plan_approved:z:{millis}",
        f"plan_created:m:{millis}",
        f"plan_rejected:a:{millis}",
        f"plan_created:n:{millis + 1}",
    ]


def test_feed_with_colon_row_ids(tmp_path: Path) -> None:
    store = _plan_store(tmp_path)
    feed = DecisionEventFeed(store)
    for index in range(3):
        store.record_decision(
            objective="o",
            recommendation="r",
            confidence="c",
            decision_id=f"plan:{index}",
            created_at=BASE,
        )

    first = feed.list_events(limit=2)
    second = feed.list_events(after=first.next_cursor, limit=2)

    assert [e.payload["plan_id"] for e in first.events] == ["plan:0", "plan:1"]
    assert [e.payload["plan_id"] for e in second.events] == ["plan:2"]


def test_deferred_only_filter_is_empty(tmp_path: Path) -> None:
    store = _plan_store(tmp_path)
    store.record_decision(objective="o", recommendation="r", confidence="c", decision_id="d-1", created_at=BASE)
    store.record_approval(decision_id="d-1", approved=True, created_at=BASE)

    page = DecisionEventFeed(store).list_events(types="plan_deferred")

    assert page.events == []
    assert page.next_cursor is None


def _walk_row_ids(feed: DecisionEventFeed, limit: int) -> list[str]:
    seen: list[str] = []
    cursor = None
    for _ in range(50):
        page = feed.list_events(after=cursor, limit=limit)
        if not page.events:
            break
        seen.extend(parse_cursor(event.event_id).row_id for event in page.events)
        cursor = page.next_cursor
    return seen


def test_feed_walks_prefix_ids_in_composite_order(tmp_path: Path) -> None:
    store = _plan_store(tmp_path)
    for decision_id in ("1", "10", "2", "1-a"):
        store.record_decision(
            objective="o",
            recommendation="r",
            confidence="c",
            decision_id=decision_id,
            created_at=BASE,
        )
    store.record_decision(
        objective="o",
        recommendation="r",
        confidence="c",
        decision_id="later",
        created_at=BASE + timedelta(milliseconds=3),
    )

    # "plan_created:1-a:T" < "plan_created:10:T" < "plan_created:1:T" < "plan_created:2:T"
    expected = ["1-a", "10", "1", "2", "later"]
    assert _walk_row_ids(DecisionEventFeed(store), limit=1) == expected
    assert _walk_row_ids(DecisionEventFeed(store), limit=2) == expected


def test_feed_walks_prefix_ids_across_review_outcomes(tmp_path: Path) -> None:
    store = _plan_store(tmp_path)
    store.record_decision(objective="o", recommendation="r", confidence="c", decision_id="d", created_at=BASE)
    for approval_id, approved in (("1", True), ("10", True), ("2", False), ("20", False)):
        store.record_approval(decision_id="d", approved=approved, approval_id=approval_id, created_at=BASE)

    assert _walk_row_ids(DecisionEventFeed(store), limit=1) == ["10", "1", "d", "20", "2"]


def test_feed_walks_rows_with_sub_millisecond_timestamps(tmp_path: Path) -> None:
    engine = create_database_engine(f"sqlite:///{tmp_path / 'plans.db'}")
    with Session(engine) as session:
        for decision_id, offset in (
            ("a", timedelta(microseconds=500)),
            ("d", timedelta(milliseconds=5, microseconds=100)),
            ("c", timedelta(milliseconds=5, microseconds=900)),
            ("b", timedelta(milliseconds=5)),
            ("e", timedelta(milliseconds=9, microseconds=999)),
        ):
            session.add(
                PlanDecision(
                    id=decision_id,
                    objective="o",
                    recommendation="r",
                    confidence="c",
                    created_at=BASE + offset,
                )
            )
        session.add(
            PlanApproval(
                id="r",
                decision_id="a",
                approved=True,
                reward=1.0,
                created_at=BASE + timedelta(milliseconds=5, microseconds=1),
            )
        )
        session.commit()
    feed = DecisionEventFeed(PlanStore(engine))

    # Within one millisecond the composite id decides, not the microseconds.
    expected = ["a", "r", "b", "c", "d", "e"]
    assert _walk_row_ids(feed, limit=1) == expected
    assert _walk_row_ids(feed, limit=3) == expected

    first = feed.list_events(limit=1)
    millis = int(BASE.timestamp() * 1000)
    assert first.next_cursor == f"plan_created:a:{millis}"
    assert first.events[0].as_dict()["timestamp"] == "2026-02-01T09:30:00.000Z"
