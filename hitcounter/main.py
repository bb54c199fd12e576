"""FastAPI entrypoint for the hit counter."""

import logging
from pathlib import Path
from time import monotonic
from typing import Any

from fastapi import FastAPI, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.routing import APIRoute
from fastapi.staticfiles import StaticFiles

from hitcounter.aggregator import CounterService
from hitcounter.client_ip import resolve_client_address
from hitcounter.config import get_settings, load_counter_policy
from hitcounter.store import CounterStoreError, JsonCounterStore
from hitcounter.validation import CounterInputError, DomainNotAllowedError

STATIC_DIR = Path(__file__).resolve().parent / "static"
_TRUTHY_FLAGS = {"1", "true", "yes", "on"}

settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
app = FastAPI(title=settings.app_name, version=settings.app_version)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type"],
)
app.mount("/public", StaticFiles(directory=STATIC_DIR), name="public")
started_at_monotonic = monotonic()
request_logger = logging.getLogger("hitcounter.request")
counter_logger = logging.getLogger("hitcounter.counter")
counter_service = CounterService(JsonCounterStore(settings.data_file))


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUTHY_FLAGS


def _route_label(request: Request) -> str:
    route = request.scope.get("route")
    if isinstance(route, APIRoute):
        return route.path
    return "_unmatched"


def _client_address(request: Request) -> str:
    peer = request.client.host if request.client else None
    return resolve_client_address(request.headers, peer)


def _input_error_response(exc: CounterInputError) -> JSONResponse:
    status_code = (
        status.HTTP_403_FORBIDDEN
        if isinstance(exc, DomainNotAllowedError)
        else status.HTTP_400_BAD_REQUEST
    )
    return JSONResponse(
        status_code=status_code,
        content={"ok": False, "error": exc.code, "msg": exc.message},
    )


def _storage_error_response(status_code: int, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"ok": False, "error": code, "msg": "Counter storage is unavailable"},
    )


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next: Any) -> Response:
    started = monotonic()
    path = request.url.path
    method = request.method.upper()
    try:
        response = await call_next(request)
    except Exception:
        latency_ms = int((monotonic() - started) * 1000)
        request_logger.exception(
            "request method=%s path=%s route=%s status=%s latency_ms=%s",
            method,
            path,
            _route_label(request),
            500,
            latency_ms,
        )
        raise

    latency_ms = int((monotonic() - started) * 1000)
    request_logger.info(
        "request method=%s path=%s route=%s status=%s latency_ms=%s",
        method,
        path,
        _route_label(request),
        response.status_code,
        latency_ms,
    )
    return response


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await counter_service.close()


@app.get("/hit", tags=["counter"])
async def hit(
    request: Request,
    d: str | None = Query(default=None),
    p: str | None = Query(default=None),
    debug: str | None = Query(default=None),
) -> Response:
    policy = load_counter_policy()
    try:
        outcome = await counter_service.hit(d, p, _client_address(request), policy=policy)
    except CounterInputError as exc:
        return _input_error_response(exc)
    except CounterStoreError:
        counter_logger.warning("hit_dropped domain=%s project=%s reason=storage_failure", d, p)
        return _storage_error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "storage_failure")

    if _flag(debug):
        return JSONResponse(content=outcome.to_payload())
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/stats", tags=["counter"])
async def stats(
    d: str | None = Query(default=None),
    p: str | None = Query(default=None),
    include_ips: str | None = Query(default=None, alias="includeIps"),
    include_projects: str | None = Query(default=None, alias="includeProjects"),
) -> JSONResponse:
    policy = load_counter_policy()
    try:
        snapshot = await counter_service.stats(
            d,
            p,
            policy=policy,
            include_ips=_flag(include_ips),
            include_projects=_flag(include_projects),
        )
    except CounterInputError as exc:
        return _input_error_response(exc)
    except CounterStoreError as exc:
        counter_logger.error("stats_unavailable domain=%s error=%s", d, exc)
        return _storage_error_response(status.HTTP_503_SERVICE_UNAVAILABLE, "storage_unavailable")

    return JSONResponse(content=snapshot.to_payload(), headers={"Cache-Control": "no-store"})


@app.get("/counter.js", include_in_schema=False)
async def counter_script() -> FileResponse:
    return FileResponse(STATIC_DIR / "counter.js", media_type="application/javascript")


@app.get("/api/v1/health", tags=["health"])
async def basic_health() -> dict[str, int | str]:
    writer = counter_service.writer
    return {
        "status": "healthy",
        "version": settings.app_version,
        "uptime_seconds": int(monotonic() - started_at_monotonic),
        "writes_completed": writer.completed_count,
        "writes_failed": writer.failed_count,
        "writes_pending": writer.pending_count,
    }
