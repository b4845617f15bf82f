from pathlib import Path

import pytest
from sqlalchemy.exc import IntegrityError

from learnsig.core.types import LearningEvent
from learnsig.sm.learning_store import LearningEventStore
from learnsig.sm.models import create_database_engine


def _store(tmp_path: Path) -> LearningEventStore:
    return LearningEventStore(create_database_engine(f"sqlite:///{tmp_path / 'learning.db'}"))


def _event(inputs_hash: str, decision_type: str = "approval_learning") -> LearningEvent:
    return LearningEvent(
        agent_id="test-agent",
        agent_version="1.0.0",
        decision_type=decision_type,  # type: ignore[arg-type]
        inputs_hash=inputs_hash,
        outputs={"normalized_signal": 1.0},
        confidence=0.9,
        constraints_applied={"reviewer_role": "lead"},
        source_id="d-1",
    )


def test_conflict_ignore_keeps_first_event(tmp_path: Path) -> None:
    store = _store(tmp_path)
    first = _event("h" * 64)
    second = _event("h" * 64)

    written_first = store.append_ignoring_conflict(first)
    written_second = store.append_ignoring_conflict(second)

    assert written_first.created is True
    assert written_first.event_id == first.event_id
    assert written_second.created is False
    assert written_second.event_id == first.event_id
    assert store.count() == 1


def test_check_then_insert_returns_existing_id(tmp_path: Path) -> None:
    store = _store(tmp_path)
    first = _event("f" * 64, "feedback_assimilation")

    assert store.append_or_get(first).created is True
    duplicate = store.append_or_get(_event("f" * 64, "feedback_assimilation"))

    assert duplicate.created is False
    assert duplicate.event_id == first.event_id
    assert store.count("feedback_assimilation") == 1
    assert store.count("approval_learning") == 0


def test_check_then_insert_absorbs_insert_race(tmp_path: Path, monkeypatch) -> None:
    store = _store(tmp_path)
    winner = _event("r" * 64, "feedback_assimilation")
    store.append_or_get(winner)

    real_lookup = LearningEventStore._lookup_id
    calls = {"count": 0}

    def stale_first_lookup(session, inputs_hash):  # type: ignore[no-untyped-def]
        calls["count"] += 1
        if calls["count"] == 1:
            return None
        return real_lookup(session, inputs_hash)

    monkeypatch.setattr(LearningEventStore, "_lookup_id", staticmethod(stale_first_lookup))

    loser = store.append_or_get(_event("r" * 64, "feedback_assimilation"))

    assert calls["count"] == 2
    assert loser.created is False
    assert loser.event_id == winner.event_id
    assert store.count() == 1


def test_race_without_winner_reraises(tmp_path: Path, monkeypatch) -> None:
    store = _store(tmp_path)
    store.append_or_get(_event("x" * 64))

    monkeypatch.setattr(LearningEventStore, "_lookup_id", staticmethod(lambda session, inputs_hash: None))

    with pytest.raises(IntegrityError):
        store.append_or_get(_event("x" * 64))


def test_get_by_hash_decodes_json_columns(tmp_path: Path) -> None:
    store = _store(tmp_path)
    event = _event("g" * 64)
    store.append_ignoring_conflict(event)

    stored = store.get_by_hash("g" * 64)

    assert stored is not None
    assert stored["id"] == event.event_id
    assert stored["source_type"] == "approval_learning"
    assert stored["outputs"] == {"normalized_signal": 1.0}
    assert stored["constraints_applied"] == {"reviewer_role": "lead"}
    assert store.get_by_hash("missing") is None
