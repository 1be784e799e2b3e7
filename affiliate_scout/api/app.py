"""HTTP surface: NDJSON streaming search plus the start/status/results polling protocol.

Caller identity comes from the ``X-User-Id`` header. Request-level errors
(400/401/402/404) are returned before any streaming starts; everything
after that is reported in-band as ``error`` events.
"""

import logging
import sqlite3
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from affiliate_scout.core.config import Settings
from affiliate_scout.core.db import init_db
from affiliate_scout.core.schemas import Error, SearchRequest
from affiliate_scout.pipeline.credit_ledger import CreditLedger
from affiliate_scout.pipeline.orchestrator import END_FRAME, SearchOrchestrator, event_to_ndjson
from affiliate_scout.pipeline.search_jobs import SearchJobRegistry
from affiliate_scout.platforms.client import JobApiClient, SearchApiClient

logger = logging.getLogger(__name__)

NDJSON_MEDIA_TYPE = "application/x-ndjson"

# Fields a client may send; owner and mode are set by the server.
_REQUEST_FIELDS = (
    "keyword", "platforms", "country", "language", "brand_domain",
    "competitors", "exclude_domains", "timeout_s",
)


def _api_error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "message": message})


def _require_user(x_user_id: str | None) -> str:
    if not x_user_id or not x_user_id.strip():
        raise _api_error(status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", "X-User-Id header is required")
    return x_user_id.strip()


def parse_search_request(
    payload: dict[str, Any],
    owner: str,
    mode: str,
    default_timeout_s: float,
) -> SearchRequest:
    """Validate a client payload into a SearchRequest, mapping failures to 400."""
    data = {k: payload[k] for k in _REQUEST_FIELDS if payload.get(k) is not None}
    data.setdefault("timeout_s", default_timeout_s)
    try:
        return SearchRequest(owner=owner, mode=mode, **data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in e['loc']) or 'request'}: {e['msg']}" for e in exc.errors()
        )
        raise _api_error(status.HTTP_400_BAD_REQUEST, "INVALID_REQUEST", problems) from exc


def create_app(
    settings: Settings,
    conn: sqlite3.Connection | None = None,
    orchestrator: SearchOrchestrator | None = None,
) -> FastAPI:
    """Build the app. Without an injected orchestrator, provider clients are created at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        clients: list[SearchApiClient | JobApiClient] = []
        if app.state.orchestrator is None:
            search_client = SearchApiClient.from_config(settings.providers, settings.retry)
            job_client = JobApiClient.from_config(settings.providers, settings.retry)
            clients = [search_client, job_client]
            app.state.orchestrator = SearchOrchestrator.from_clients(
                settings, app.state.conn, search_client, job_client, app.state.ledger,
            )
            app.state.registry = SearchJobRegistry(app.state.orchestrator, app.state.conn)
        logger.info("API ready (credits enforced: %s)", settings.credits.enforce)
        try:
            yield
        finally:
            await app.state.orchestrator.wait_background()
            for client in clients:
                await client.aclose()
            logger.info("API shut down")

    app = FastAPI(title="affiliate-scout", lifespan=lifespan)
    app.state.conn = conn if conn is not None else init_db(settings.database.path)
    app.state.ledger = CreditLedger(app.state.conn, settings.credits)
    if orchestrator is not None:
        # The 402 check and the post-search debit must see the same balances.
        if orchestrator.ledger is None:
            orchestrator.ledger = app.state.ledger
        else:
            app.state.ledger = orchestrator.ledger
    app.state.orchestrator = orchestrator
    app.state.registry = (
        SearchJobRegistry(orchestrator, app.state.conn) if orchestrator is not None else None
    )

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": {"code": "INVALID_REQUEST", "message": str(exc.errors())}},
        )

    def _accept(payload: dict[str, Any], user: str, mode: str) -> SearchRequest:
        request = parse_search_request(payload, user, mode, settings.budget.request_timeout_s)
        ledger: CreditLedger = app.state.ledger
        if ledger.enforced:
            check = ledger.check(user, settings.credits.kind, 1)
            if not check.allowed:
                raise _api_error(
                    status.HTTP_402_PAYMENT_REQUIRED,
                    "INSUFFICIENT_CREDITS",
                    f"{settings.credits.kind} credits exhausted",
                )
        return request

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/search/stream")
    async def search_stream(
        payload: dict[str, Any] = Body(...),
        x_user_id: str | None = Header(default=None),
    ) -> StreamingResponse:
        """Stream search events as NDJSON, one event per line, then an end frame."""
        user = _require_user(x_user_id)
        request = _accept(payload, user, "stream")
        orch: SearchOrchestrator = app.state.orchestrator

        async def frames() -> AsyncIterator[str]:
            try:
                async for event in orch.run(request):
                    yield event_to_ndjson(event) + "\n"
            except Exception:
                logger.exception("Streaming search '%s' failed", request.keyword)
                yield Error(message="search failed unexpectedly").model_dump_json() + "\n"
            yield END_FRAME + "\n"

        return StreamingResponse(
            frames(),
            media_type=NDJSON_MEDIA_TYPE,
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.post("/api/search/start")
    async def search_start(
        payload: dict[str, Any] = Body(...),
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, str]:
        user = _require_user(x_user_id)
        request = _accept(payload, user, "job")
        registry: SearchJobRegistry = app.state.registry
        return {"jobId": registry.start(request)}

    @app.get("/api/search/status")
    async def search_status(
        job_id: str = Query(..., alias="jobId"),
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, Any]:
        user = _require_user(x_user_id)
        registry: SearchJobRegistry = app.state.registry
        job = registry.status(job_id, user)
        if job is None:
            raise _api_error(status.HTTP_404_NOT_FOUND, "JOB_NOT_FOUND", f"no search job {job_id}")
        return job

    @app.get("/api/search/results")
    async def search_results(
        job_id: str = Query(..., alias="jobId"),
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, Any]:
        user = _require_user(x_user_id)
        registry: SearchJobRegistry = app.state.registry
        rows = registry.results(job_id, user)
        if rows is None:
            raise _api_error(status.HTTP_404_NOT_FOUND, "JOB_NOT_FOUND", f"no search job {job_id}")
        return {"jobId": job_id, "results": rows}

    return app
