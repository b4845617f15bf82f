"""FastAPI interface for the learning signal service."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Awaitable, Callable
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError

from api.schemas import ApprovalLearningIn, FeedbackAssimilationIn
from learnsig import __version__
from learnsig.agents.approval_learning import ApprovalLearningAgent, ApprovalOutcome
from learnsig.agents.feedback_assimilation import FeedbackAssimilationAgent, FeedbackSubmission
from learnsig.core.config import Settings
from learnsig.core.errors import LearningSignalError, ValidationError
from learnsig.core.types import FeedbackSignal
from learnsig.feed.aggregator import DecisionEventFeed
from learnsig.sm.learning_store import LearningEventStore
from learnsig.sm.models import create_database_engine
from learnsig.sm.plan_store import PlanStore

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "x-correlation-id"


def _error_body(
    error: str,
    message: str,
    correlation_id: str,
    details: list[dict[str, str]] | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {"error": error, "message": message, "correlationId": correlation_id}
    if details is not None:
        body["details"] = details
    return body


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or str(uuid4())


def _validation_details(exc: RequestValidationError) -> list[dict[str, str]]:
    details = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query")]
        details.append({"path": ".".join(location), "message": str(error.get("msg", ""))})
    return details


def build_app(settings: Settings | None = None, engine: Engine | None = None) -> FastAPI:
    """Build the FastAPI app with an explicit dependency container in ``app.state``."""
    settings = settings or Settings()
    logging.basicConfig(level=settings.log_level.upper())
    engine = engine or create_database_engine(settings.db_url)

    app = FastAPI(title="Learning Signals API", version=__version__)

    app.state.settings = settings
    app.state.learning_store = LearningEventStore(engine)
    app.state.plan_store = PlanStore(engine)
    app.state.approval_agent = ApprovalLearningAgent(
        app.state.learning_store,
        app.state.plan_store,
        agent_id=settings.approval_agent_id,
        agent_version=settings.agent_version,
    )
    app.state.feedback_agent = FeedbackAssimilationAgent(
        app.state.learning_store,
        agent_id=settings.feedback_agent_id,
        agent_version=settings.agent_version,
    )
    app.state.decision_feed = DecisionEventFeed(
        app.state.plan_store,
        default_limit=settings.default_page_size,
        max_limit=settings.max_page_size,
    )

    @app.middleware("http")
    async def correlate(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid4())
        request.state.correlation_id = correlation_id
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "unhandled_error correlation_id=%s method=%s path=%s",
                correlation_id,
                request.method,
                request.url.path,
            )
            response = JSONResponse(
                status_code=500,
                content=_error_body("internal_error", "Internal server error", correlation_id),
            )
        response.headers[CORRELATION_HEADER] = correlation_id
        return response

    @app.exception_handler(RequestValidationError)
    async def request_validation_failed(request: Request, exc: RequestValidationError) -> JSONResponse:
        correlation_id = _correlation_id(request)
        details = _validation_details(exc)
        logger.warning(
            "validation_failed correlation_id=%s path=%s details=%s",
            correlation_id,
            request.url.path,
            details,
        )
        return JSONResponse(
            status_code=400,
            content=_error_body("validation_error", "Request validation failed", correlation_id, details),
        )

    @app.exception_handler(LearningSignalError)
    async def learning_signal_failed(request: Request, exc: LearningSignalError) -> JSONResponse:
        correlation_id = _correlation_id(request)
        details = exc.details if isinstance(exc, ValidationError) else None
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.error_code, str(exc), correlation_id, details),
        )

    @app.post("/learning/learn", status_code=201)
    def learn(request: Request, body: ApprovalLearningIn) -> dict[str, object]:
        """Record one approval/rejection outcome as a learning signal."""
        outcome = ApprovalOutcome(**body.model_dump())
        return request.app.state.approval_agent.learn(outcome, _correlation_id(request))

    @app.post("/learning/assimilate", status_code=201)
    def assimilate(request: Request, body: FeedbackAssimilationIn) -> dict[str, object]:
        """Record reviewer feedback as normalized learning signals."""
        submission = FeedbackSubmission(
            source_artifact_id=body.source_artifact_id,
            feedback_type=body.feedback_type,
            raw_feedback=body.raw_feedback,
            feedback_source=body.assimilation_metadata.feedback_source,
            processing_method=body.assimilation_metadata.processing_method,
            normalized_signals=[
                FeedbackSignal(signal.dimension, signal.value, signal.confidence)
                for signal in body.normalized_signals or []
            ],
            structured_ratings=(
                body.structured_ratings.model_dump() if body.structured_ratings else None
            ),
            agent_id=body.agent_id,
            agent_version=body.agent_version,
            confidence=body.confidence,
            execution_ref=body.execution_ref,
            inputs_hash=body.inputs_hash,
            timestamp=body.timestamp,
        )
        return request.app.state.feedback_agent.assimilate(submission, _correlation_id(request))

    @app.get("/events/decisions")
    def list_decision_events(
        request: Request,
        types: str | None = Query(None),
        after: str | None = Query(None),
        limit: str | None = Query(None),
    ) -> dict[str, object]:
        """Cursor-paginated feed of plan lifecycle events."""
        page = request.app.state.decision_feed.list_events(types=types, after=after, limit=limit)
        return page.as_dict()

    @app.get("/health")
    def health(request: Request) -> JSONResponse:
        """Liveness probe including a database round-trip."""
        try:
            database_ok = request.app.state.plan_store.ping()
        except SQLAlchemyError:
            logger.exception("health_database_unreachable correlation_id=%s", _correlation_id(request))
            database_ok = False
        return JSONResponse(
            status_code=200 if database_ok else 503,
            content={
                "status": "healthy" if database_ok else "unhealthy",
                "database": database_ok,
                "version": __version__,
            },
        )

    return app


app = build_app()


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the learning signal API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()

    import uvicorn

    uvicorn.run(app, host=args.host, port=args.port)
    return 0


__all__ = ["app", "build_app", "main"]

if __name__ == "__main__":
    raise SystemExit(main())
