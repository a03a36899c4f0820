from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress
from datetime import datetime
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from .backend import BackendRegistry
from .commands import parse_command
from .config import reload_settings, settings
from .delegate import ListenerDelegate
from .dispatcher import NotificationDispatcher
from .errors import (
    BeanBridgeError,
    InternalError,
    MalformedResourceName,
    ResourceNotFound,
    UnknownBackend,
    UnknownClient,
    UnknownListener,
)
from .logging_setup import RequestLogMiddleware, init_logging
from .metrics import CLIENTS, EVICTIONS, LAT, LISTENERS, REQS, router as metrics_router
from .pull import PullBackend
from .resources import ResourceRegistry
from .scheduler import run_periodic, state as sweep_state, to_thread

logger = logging.getLogger(__name__)

SWEEP_RESOURCE = "beanbridge:type=Sweep"
EVICTED_TYPE = "beanbridge.client.evicted"


class Health(BaseModel):
    status: str
    time: str


resources = ResourceRegistry()


def build_dispatcher() -> NotificationDispatcher:
    backends = BackendRegistry(
        [
            PullBackend(
                settings.PULL_STORE,
                max_entries=settings.PULL_MAX_ENTRIES,
                freshness=settings.PULL_FRESHNESS_SECONDS,
            )
        ]
    )
    delegate = ListenerDelegate(default_freshness=settings.DEFAULT_FRESHNESS_SECONDS)
    return NotificationDispatcher(backends, delegate)


def _sweep_once_sync(delegate: ListenerDelegate) -> int:
    evicted = delegate.sweep()
    for client_id in evicted:
        EVICTIONS.inc()
        resources.emit(SWEEP_RESOURCE, EVICTED_TYPE, message=client_id)
    return len(evicted)


@asynccontextmanager
async def lifespan(app: FastAPI):
    reload_settings()
    resources.add_resource(SWEEP_RESOURCE)
    dispatcher = build_dispatcher()
    app.state.dispatcher = dispatcher
    app.state.resources = resources
    CLIENTS.set_function(dispatcher.delegate.client_count)
    LISTENERS.set_function(dispatcher.delegate.listener_count)

    tasks: list[asyncio.Task[None]] = []
    if settings.SWEEP_ENABLED:
        async def sweep() -> int:
            return await to_thread(_sweep_once_sync, dispatcher.delegate)

        tasks.append(
            asyncio.create_task(
                run_periodic(
                    sweep,
                    settings.SWEEP_INTERVAL_SECONDS,
                    settings.SWEEP_JITTER_SECONDS,
                    settings.SWEEP_BACKOFF_MAX_SECONDS,
                )
            )
        )
    try:
        yield
    finally:
        for task in tasks:
            task.cancel()
            with suppress(asyncio.CancelledError, Exception):
                await task
        await to_thread(dispatcher.delegate.close)


init_logging(settings.LOG_LEVEL)

app = FastAPI(title="BeanBridge", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestLogMiddleware)
app.include_router(metrics_router())

origins = [o.strip() for o in settings.CORS_ALLOW_ORIGINS.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_STATUS_BY_ERROR: list[tuple[type[BeanBridgeError], int]] = [
    (UnknownBackend, 400),
    (MalformedResourceName, 400),
    (UnknownClient, 404),
    (UnknownListener, 404),
    (ResourceNotFound, 404),
    (InternalError, 500),
]


@app.exception_handler(BeanBridgeError)
async def _beanbridge_error(request: Request, exc: BeanBridgeError):
    status_code = 500
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code = code
            break
    if status_code >= 500:
        logger.error("Internal error on %s: %s", request.url.path, exc)
    return JSONResponse(
        {"error_type": type(exc).__name__, "error": str(exc)},
        status_code=status_code,
    )


@app.middleware("http")
async def _metrics(request: Request, call_next):
    method = request.method
    path = request.url.path
    start = time.time()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        duration = time.time() - start
        REQS.labels(method, path, str(status_code)).inc()
        LAT.labels(method, path).observe(duration)


@app.get("/health", response_model=Health)
def health():
    return Health(status="ok", time=datetime.utcnow().isoformat())


@app.post("/notification")
def notification(request: Request, payload: dict = Body(...)):
    try:
        command = parse_command(payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=400,
            detail=exc.errors(include_url=False, include_context=False),
        ) from exc
    dispatcher: NotificationDispatcher = request.app.state.dispatcher
    value: Any = dispatcher.dispatch(command, request.app.state.resources)
    return {"value": value}


@app.get("/notification/{client}/{handle}")
def pull(request: Request, client: str, handle: str):
    dispatcher: NotificationDispatcher = request.app.state.dispatcher
    mode, state = dispatcher.delegate.subscription(client, handle)
    backend = dispatcher.backends.lookup(mode)
    if not isinstance(backend, PullBackend):
        raise HTTPException(status_code=400, detail=f"mode '{mode}' does not support pull")
    return backend.pull(state)


@app.get("/sweep/status")
def sweep_status():
    return {
        "running": sweep_state.running,
        "last_started": sweep_state.last_started,
        "last_finished": sweep_state.last_finished,
        "last_error": sweep_state.last_error,
        "total_runs": sweep_state.total_runs,
        "total_errors": sweep_state.total_errors,
        "total_evicted": sweep_state.total_evicted,
        "enabled": settings.SWEEP_ENABLED,
        "interval": settings.SWEEP_INTERVAL_SECONDS,
    }
