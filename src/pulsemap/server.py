"""PulseMap HTTP API.

Thin JSON routes around the incident sync service and store:

- POST /api/sync        → Run a sync cycle
- GET  /api/sync        → Sync statistics
- GET  /api/incidents   → List stored incidents (filterable)
- GET  /api/health      → Store and feed health

Run locally::

    uv run pulsemap-server

Or with uvicorn::

    uv run uvicorn pulsemap.server:app --host 0.0.0.0 --port 8000
"""

import asyncio
import contextlib
import json
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from pulsemap.context import AppContext, build_context
from pulsemap.core.config import PulseMapConfig, get_config
from pulsemap.incidents.models import IncidentFilters, parse_timestamp
from pulsemap.sync.loop import incident_sync_loop

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Logging, configured at import so uvicorn workers pick it up
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
# Silence Azure SDK HTTP-level noise (request/response headers)
logging.getLogger("azure.core.pipeline.policies.http_logging_policy").setLevel(logging.WARNING)
logging.getLogger("azure.cosmos._cosmos_http_logging_policy").setLevel(logging.WARNING)
logging.getLogger("azure.identity").setLevel(logging.WARNING)


def _ctx(request: Request) -> AppContext:
    return request.app.state.ctx


def _error(message: str, status_code: int = 500, error: str = "Internal error") -> JSONResponse:
    return JSONResponse(
        {"success": False, "error": error, "message": message}, status_code=status_code
    )


def _split(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


async def run_sync(request: Request) -> JSONResponse:
    """Run one sync cycle for the requested district and window."""
    ctx = _ctx(request)

    body: dict = {}
    raw = await request.body()
    if raw:
        try:
            body = json.loads(raw)
        except json.JSONDecodeError:
            return _error("Request body must be JSON", 400, "Bad request")
        if not isinstance(body, dict):
            return _error("Request body must be a JSON object", 400, "Bad request")

    district = body.get("district") or ctx.config.default_district
    try:
        days_back = int(body.get("daysBack", ctx.config.days_back))
    except (TypeError, ValueError):
        return _error("daysBack must be an integer", 400, "Bad request")

    try:
        result = await ctx.sync.sync_incidents(district, days_back)
    except Exception as exc:
        logger.exception("Sync request failed")
        return _error(str(exc))

    return JSONResponse({"success": not result.skipped, "result": result.to_dict()})


async def sync_stats(request: Request) -> JSONResponse:
    """Return store counts, geocode cache stats and the last sync summary."""
    try:
        stats = await _ctx(request).sync.get_sync_stats()
    except Exception as exc:
        logger.exception("Failed to load sync stats")
        return _error(str(exc))
    return JSONResponse({"success": True, "stats": stats})


async def list_incidents(request: Request) -> JSONResponse:
    """List stored incidents, newest first."""
    params = request.query_params
    date_from = parse_timestamp(params.get("dateFrom"))
    date_to = parse_timestamp(params.get("dateTo"))
    if (params.get("dateFrom") and date_from is None) or (params.get("dateTo") and date_to is None):
        return _error("dateFrom/dateTo must be ISO-8601 timestamps", 400, "Bad request")

    filters = IncidentFilters(
        categories=_split(params.get("categories")),
        statuses=_split(params.get("statuses")),
        severities=_split(params.get("severities")),
        precisions=_split(params.get("precisions")),
        districts=_split(params.get("districts")),
        date_from=date_from,
        date_to=date_to,
    )

    try:
        incidents = await _ctx(request).store.list_incidents(filters)
    except Exception as exc:
        logger.exception("Failed to list incidents")
        return _error(str(exc))

    return JSONResponse(
        {
            "success": True,
            "count": len(incidents),
            "incidents": [doc.to_dict() for doc in incidents],
        }
    )


async def health(request: Request) -> JSONResponse:
    """Report ``healthy`` (200), ``degraded`` (207, feed down) or ``down`` (503)."""
    ctx = _ctx(request)
    errors: list[str] = []

    store_ok = await ctx.store.ping()
    if not store_ok:
        errors.append("Incident store unreachable")
    feed_ok = await ctx.feed.health_check()
    if not feed_ok:
        errors.append("Politiloggen feed unreachable")

    stats = None
    if store_ok:
        try:
            stats = (await ctx.store.get_stats()).to_dict()
        except Exception as exc:
            logger.warning("Health stats unavailable: %s", exc)
            errors.append(f"Stats unavailable: {exc}")

    if not store_ok:
        status, status_code = "down", 503
    elif not feed_ok:
        status, status_code = "degraded", 207
    else:
        status, status_code = "healthy", 200

    return JSONResponse(
        {
            "status": status,
            "service": "pulsemap",
            "version": os.getenv("BUILD_VERSION", "dev"),
            "checks": {"store": store_ok, "feed": feed_ok},
            "stats": stats,
            "syncRunning": ctx.sync.running,
            "errors": errors,
        },
        status_code=status_code,
    )


# ---------------------------------------------------------------------------
# ASGI App assembly
# ---------------------------------------------------------------------------


def create_app(config: PulseMapConfig | None = None) -> Starlette:
    """Build the ASGI app. Config is loaded at startup when not given."""

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        cfg = config or get_config()
        async with build_context(cfg) as ctx:
            app.state.ctx = ctx
            task = None
            if cfg.sync_interval_seconds > 0:
                task = asyncio.create_task(
                    incident_sync_loop(
                        ctx.sync, cfg.default_district, cfg.days_back, cfg.sync_interval_seconds
                    )
                )
            try:
                yield
            finally:
                if task:
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await task

    return Starlette(
        routes=[
            Route("/api/sync", run_sync, methods=["POST"]),
            Route("/api/sync", sync_stats, methods=["GET"]),
            Route("/api/incidents", list_incidents, methods=["GET"]),
            Route("/api/health", health, methods=["GET"]),
        ],
        lifespan=lifespan,
    )


app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Run the API server with uvicorn."""
    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    host = os.getenv("HOST", "0.0.0.0")

    logger.info("Starting PulseMap server on %s:%d", host, port)
    uvicorn.run(
        "pulsemap.server:app",
        host=host,
        port=port,
        log_level="info",
    )
