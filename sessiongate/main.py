#!/usr/bin/env python3
"""
SessionGate - Main Entry Point

This is the thin orchestration layer that:
1. Loads configuration
2. Initializes modules
3. Runs the control API and the realtime event stream

All session logic is in the modules, following black box principles.
"""

import asyncio
import json
import logging
import logging.config as log_config
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

import redis.asyncio as redis
import uvicorn
from fastapi import FastAPI, HTTPException, Query, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sse_starlette.sse import EventSourceResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sessiongate import __version__
from sessiongate.logging_config import get_logging_config
from sessiongate.modules.api import (
    HealthResponse,
    RequestCodeRequest,
    RequestCodeResponse,
    StatusResponse,
    SuccessResponse,
)
from sessiongate.modules.broadcast import EventBroadcaster, Observer
from sessiongate.modules.config import get_config
from sessiongate.modules.session import (
    AdapterFault,
    ConnectionOptions,
    InvalidInput,
    InvalidState,
    SessionConnectionManager,
    SessionError,
    load_adapter,
)
from sessiongate.modules.storage import build_credential_store

# Get configuration
config = get_config()

# Configure logging with polling suppression
log_config.dictConfig(get_logging_config(config.get("log_level")))
logger = logging.getLogger(__name__)

# Module instances (initialized at startup)
session_manager: Optional[SessionConnectionManager] = None
broadcaster: Optional[EventBroadcaster] = None
redis_client: Optional[redis.Redis] = None


async def get_redis_client() -> redis.Redis:
    """Create Redis client from configuration."""
    redis_url = f"redis://{config.get('redis_host')}:{config.get('redis_port')}/{config.get('redis_db')}"

    return await redis.from_url(
        redis_url,
        password=config.get("redis_password"),
        encoding="utf-8",
        decode_responses=True,
    )


def log_unhandled_loop_error(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    """Log failures nobody awaited instead of letting them vanish."""
    exc = context.get("exception")
    logger.error(f"Unhandled async error: {context.get('message')}", exc_info=exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle - initialize and cleanup resources.
    """
    global session_manager, broadcaster, redis_client

    # Startup
    logger.info(f"Starting SessionGate {__version__}...")
    asyncio.get_running_loop().set_exception_handler(log_unhandled_loop_error)

    if config.redis_required:
        redis_client = await get_redis_client()

    broadcaster = EventBroadcaster(
        queue_size=config.get("observer_queue_size"),
        redis_client=redis_client if config.get("event_mirror") else None,
    )
    session_manager = SessionConnectionManager(
        adapter=load_adapter(config.get("adapter_class")),
        credential_store=build_credential_store(config, redis_client),
        broadcaster=broadcaster,
        options=ConnectionOptions(browser=config.get("browser")),
        reconnect_delay=config.get("reconnect_delay_ms") / 1000,
    )

    logger.info("Starting messaging session connection...")
    try:
        await session_manager.start_connection()
    except AdapterFault as e:
        logger.error(f"Initial connection failed, retry scheduled: {e}")

    logger.info(f"SessionGate listening on http://{config.get('host')}:{config.get('port')}")

    yield

    # Shutdown
    logger.info("Shutting down SessionGate...")
    await session_manager.shutdown()
    if redis_client:
        await redis_client.close()
    logger.info("SessionGate shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="SessionGate API",
    description="SessionGate - messaging session connection manager",
    version=__version__,
    lifespan=lifespan,
)


# Control API


@app.get("/api/status", response_model=StatusResponse)
async def get_status():
    """
    Current session status.

    Returns:
        200: {status, qr, code, connected, user}
        503: Service not initialized
    """
    if not session_manager:
        raise HTTPException(503, "Service not initialized")

    snapshot = session_manager.snapshot()
    return StatusResponse(
        status=snapshot.status,
        qr=snapshot.qr,
        code=snapshot.code,
        connected=snapshot.connected,
        user=snapshot.user,
    )


@app.post("/api/request-code", response_model=RequestCodeResponse)
async def request_code(payload: Optional[RequestCodeRequest] = None):
    """
    Request a pairing code for the given phone number.

    Returns:
        200: Formatted pairing code
        400: Missing or invalid number, or session already registered
        500: Adapter failed to produce a code
    """
    if not session_manager:
        raise HTTPException(503, "Service not initialized")

    phone_number = payload.phone_number if payload else None
    code = await session_manager.request_pairing_code(phone_number)
    return RequestCodeResponse(code=code)


@app.post("/api/disconnect", response_model=SuccessResponse)
async def disconnect():
    """
    Log out and stay disconnected.

    Returns:
        200: Disconnected (also when nothing was connected)
        500: Adapter logout failed
    """
    if not session_manager:
        raise HTTPException(503, "Service not initialized")

    await session_manager.disconnect()
    return SuccessResponse()


@app.post("/api/restart", response_model=SuccessResponse)
async def restart():
    """
    Drop the transport and reconnect with the stored credentials.

    Returns:
        200: New connection attempt started
        500: Adapter failed to close or reconnect
    """
    if not session_manager:
        raise HTTPException(503, "Service not initialized")

    await session_manager.restart()
    return SuccessResponse()


# Realtime Endpoints


async def observer_stream(observer: Observer) -> AsyncGenerator:
    """Generate SSE events for one observer until the client goes away."""
    try:
        while True:
            event, payload = await observer.next_event()
            yield {"event": event, "data": json.dumps(payload)}
    except asyncio.CancelledError:
        logger.info(f"Observer {observer.observer_id} disconnecting")
        raise
    finally:
        if broadcaster:
            broadcaster.leave(observer)


@app.get("/api/events")
async def session_events():
    """
    SSE stream of session events.

    On connect the current state is replayed (status, then any pending QR or
    pairing code), followed by live status-update, qr-code, pairing-code and
    new-message events.
    """
    if not session_manager or not broadcaster:
        raise HTTPException(503, "Service not initialized")

    observer = broadcaster.join(session_manager.snapshot())
    return EventSourceResponse(observer_stream(observer), ping=15)


@app.get("/api/events/history")
async def event_history(limit: int = Query(50, ge=1, le=1000)):
    """
    Recently mirrored events, newest first.

    Empty unless EVENT_MIRROR is enabled.
    """
    if not broadcaster:
        raise HTTPException(503, "Service not initialized")

    return {"events": await broadcaster.recent_events(limit)}


# Health Endpoints


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Liveness probe with the current session status."""
    if not session_manager:
        raise HTTPException(503, "Service not initialized")

    return HealthResponse(session=session_manager.status)


@app.get("/metrics")
async def metrics():
    """
    Prometheus-compatible metrics endpoint (optional).
    """
    if not session_manager or not broadcaster:
        return Response(content="", status_code=503)

    snapshot = session_manager.snapshot()
    metrics_text = f"""# HELP sessiongate_connected Whether the session is authenticated and connected
# TYPE sessiongate_connected gauge
sessiongate_connected {int(snapshot.connected)}
# HELP sessiongate_observers Number of realtime observers
# TYPE sessiongate_observers gauge
sessiongate_observers {broadcaster.observer_count}
# HELP sessiongate_connection_generation Connection attempts since start
# TYPE sessiongate_connection_generation counter
sessiongate_connection_generation {session_manager.generation}
"""

    return Response(content=metrics_text, media_type="text/plain")


# Error handlers


@app.exception_handler(InvalidInput)
async def invalid_input_handler(request, exc):
    """Handle missing or malformed input."""
    logger.warning(f"Invalid input: {exc}")
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(InvalidState)
async def invalid_state_handler(request, exc):
    """Handle operations the current session state forbids."""
    logger.warning(f"Invalid state: {exc}")
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(SessionError)
async def session_error_handler(request, exc):
    """Handle adapter and storage faults."""
    logger.error(f"Session fault: {exc}")
    return JSONResponse(status_code=500, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request, exc):
    """Handle malformed request bodies."""
    logger.warning(f"Validation error: {exc.errors()}")
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request, exc):
    """Render HTTP errors in the API's error shape."""
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(redis.ConnectionError)
async def redis_error_handler(request, exc):
    """Handle Redis connection errors."""
    logger.error(f"Redis connection error: {exc}")
    return JSONResponse(status_code=503, content={"error": "Database connection failed"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request, exc):
    """Log anything unexpected and keep serving."""
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Static web client (mounted last so API routes take precedence)
_static_dir = config.get("static_dir")
if _static_dir and Path(_static_dir).is_dir():
    app.mount("/", StaticFiles(directory=_static_dir, html=True), name="static")
    logger.info(f"Serving web client from {_static_dir}")


def main():
    """Run the API server."""
    uvicorn.run(
        "sessiongate.main:app",
        host=config.get("host"),
        port=config.get("port"),
        log_level=config.get("log_level").lower(),
        log_config=get_logging_config(config.get("log_level")),
    )


if __name__ == "__main__":
    main()
