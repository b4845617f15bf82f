"""Example downstream consumer that polls the decision-event feed."""

from __future__ import annotations

import argparse
import time
from collections.abc import Iterator
from typing import Any

import httpx

FEED_PATH = "/events/decisions"


def fetch_page(
    client: httpx.Client,
    *,
    after: str | None = None,
    types: str | None = None,
    limit: int = 100,
) -> dict[str, Any]:
    """Fetch one feed page; HTTP errors are raised, not retried."""
    params: dict[str, str | int] = {"limit": limit}
    if after:
        params["after"] = after
    if types:
        params["types"] = types
    response = client.get(FEED_PATH, params=params)
    response.raise_for_status()
    return response.json()


def iter_decision_events(
    client: httpx.Client,
    *,
    after: str | None = None,
    types: str | None = None,
    limit: int = 100,
) -> Iterator[tuple[dict[str, Any], str]]:
    """Yield ``(event, cursor)`` pairs until the feed returns an empty page."""
    cursor = after
    while True:
        page = fetch_page(client, after=cursor, types=types, limit=limit)
        events = page.get("events", [])
        if not events:
            return
        for event in events:
            yield event, str(event["id"])
        cursor = page.get("next_cursor") or cursor


def run_loop(
    base_url: str,
    *,
    types: str | None = None,
    limit: int = 100,
    iterations: int = 10,
    sleep_s: float = 1.0,
    client: httpx.Client | None = None,
) -> str | None:
    """Poll the feed ``iterations`` times, resuming from the last seen cursor."""
    http = client or httpx.Client(base_url=base_url, timeout=10.0)
    cursor: str | None = None
    try:
        for index in range(iterations):
            seen = 0
            events = iter_decision_events(http, after=cursor, types=types, limit=limit)
            for event, event_cursor in events:
                cursor = event_cursor
                seen += 1
                payload = event.get("payload", {})
                print(
                    f"[{index:02d}] {event['timestamp']} type={event['type']} "
                    f"plan={payload.get('plan_id')} id={event['id']}"
                )
            if seen == 0:
                print(f"[{index:02d}] no new decision events cursor={cursor}")
            if index + 1 < iterations:
                time.sleep(sleep_s)
    finally:
        if client is None:
            http.close()
    return cursor


def main() -> None:
    parser = argparse.ArgumentParser(description="Poll the decision-event feed")
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--types", default=None, help="comma-separated event types")
    parser.add_argument("--limit", type=int, default=100)
    parser.add_argument("--iterations", type=int, default=10)
    parser.add_argument("--sleep", type=float, default=1.0)
    args = parser.parse_args()
    run_loop(
        args.base_url,
        types=args.types,
        limit=args.limit,
        iterations=args.iterations,
        sleep_s=args.sleep,
    )


if __name__ == "__main__":
    main()
