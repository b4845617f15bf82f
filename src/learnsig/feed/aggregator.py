"""Decision-event feed: merges plan relations into one cursor-paginated stream."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from sqlalchemy.exc import SQLAlchemyError

from learnsig.core.errors import InternalError
from learnsig.core.types import (
    DECISION_EVENT_TYPES,
    DecisionEvent,
    DecisionEventType,
    DecisionPage,
    EventCursor,
)
from learnsig.feed.cursor import build_event_id, parse_cursor
from learnsig.sm.plan_store import ApprovalRow, DecisionRow, PlanStore

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100
MAX_LIMIT = 1000


def parse_event_types(raw: str | None) -> frozenset[DecisionEventType] | None:
    """Parse a comma-separated type filter; ``None`` means every type.

    Unknown names are dropped, and a filter with no known names is the same as
    no filter at all.
    """
    if not raw:
        return None
    requested = {part.strip().lower() for part in raw.split(",")}
    known = frozenset(t for t in DECISION_EVENT_TYPES if t in requested)
    return known or None


def clamp_limit(
    raw: int | str | None,
    *,
    default: int = DEFAULT_LIMIT,
    maximum: int = MAX_LIMIT,
) -> int:
    """Coerce a requested page size into ``[1, maximum]``.

    Missing, non-numeric and zero values fall back to ``default``.
    """
    try:
        requested = int(raw) if raw is not None else 0
    except (TypeError, ValueError):
        requested = 0
    if requested == 0:
        requested = default
    return max(1, min(requested, maximum))


def created_event(row: DecisionRow) -> DecisionEvent:
    return DecisionEvent(
        event_id=build_event_id("plan_created", row.id, row.created_at),
        event_type="plan_created",
        timestamp=row.created_at,
        payload={
            "plan_id": row.id,
            "decision_id": row.id,
            "objective": row.objective,
            "recommendation": row.recommendation,
            "confidence": row.confidence,
            "command": row.command,
            "checksum": row.raw_output_hash,
        },
    )


def reviewed_event(row: ApprovalRow) -> DecisionEvent:
    event_type: DecisionEventType = "plan_approved" if row.approved else "plan_rejected"
    return DecisionEvent(
        event_id=build_event_id(event_type, row.id, row.created_at),
        event_type=event_type,
        timestamp=row.created_at,
        payload={
            "plan_id": row.decision_id,
            "decision_id": row.decision_id,
            "simulation_id": row.decision_id,
            "objective": row.objective,
            "recommendation": row.recommendation,
            "reward": row.reward,
            "confidence_adjustment": row.confidence_adjustment,
            "reviewer_outcome": "approved" if row.approved else "rejected",
        },
    )


def merge_page(
    batches: Iterable[Sequence[DecisionEvent]],
    limit: int,
    after: EventCursor | None = None,
) -> DecisionPage:
    """Fan in per-family batches into one page ordered by ``(timestamp, id)``.

    Each batch only needs to hold its family's first ``limit`` events after the
    cursor; since a single page is produced, that is always enough candidates.
    """
    merged = [event for batch in batches for event in batch]
    if after is not None:
        merged = [event for event in merged if event.sort_key > after.sort_key]
    merged.sort(key=lambda event: event.sort_key)
    page = merged[:limit]
    next_cursor = page[-1].event_id if page else None
    return DecisionPage(events=page, next_cursor=next_cursor)


class DecisionEventFeed:
    """Builds decision-event pages from the plan relations."""

    def __init__(
        self,
        plan_store: PlanStore,
        *,
        default_limit: int = DEFAULT_LIMIT,
        max_limit: int = MAX_LIMIT,
    ) -> None:
        self._plan_store = plan_store
        self._default_limit = default_limit
        self._max_limit = max_limit

    def list_events(
        self,
        types: str | None = None,
        after: str | None = None,
        limit: int | str | None = None,
    ) -> DecisionPage:
        """Return the next page after ``after`` (or the first page).

        A failure reading either relation aborts the whole page.
        """
        event_types = parse_event_types(types)
        cursor = parse_cursor(after)
        if after and cursor is None:
            logger.warning("decision_feed_bad_cursor after=%s starting from beginning", after)
        page_size = clamp_limit(limit, default=self._default_limit, maximum=self._max_limit)

        def wanted(event_type: DecisionEventType) -> bool:
            return event_types is None or event_type in event_types

        include_approved = wanted("plan_approved")
        include_rejected = wanted("plan_rejected")
        batches: list[list[DecisionEvent]] = []
        try:
            if wanted("plan_created"):
                rows = self._plan_store.fetch_created(cursor, page_size)
                batches.append([created_event(row) for row in rows])
            if include_approved or include_rejected:
                reviewed = self._plan_store.fetch_reviewed(
                    cursor,
                    page_size,
                    include_approved=include_approved,
                    include_rejected=include_rejected,
                )
                batches.append([reviewed_event(row) for row in reviewed])
        except SQLAlchemyError as exc:
            logger.exception("decision_feed_query_failed after=%s", after)
            raise InternalError("Failed to retrieve decision events") from exc

        # plan_deferred has no backing relation yet, so it never contributes rows.
        page = merge_page(batches, page_size, cursor)
        logger.info(
            "decision_feed_page types=%s after=%s limit=%s count=%s next_cursor=%s",
            sorted(event_types) if event_types else "all",
            after,
            page_size,
            len(page.events),
            page.next_cursor,
        )
        return page
