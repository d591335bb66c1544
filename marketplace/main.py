"""FastAPI application entrypoint."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import (
    FastAPI,
    HTTPException,
    Query,
    Request,
    Response,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from sqlalchemy import text

from marketplace.core.config import get_settings
from marketplace.core.database import SessionLocal, close_engine
from marketplace.core.metrics import build_metrics_response, instrument_http_request
from marketplace.modules.billing.router import router as billing_router
from marketplace.modules.booking.router import router as booking_router
from marketplace.modules.disputes.router import router as disputes_router
from marketplace.modules.identity.session import SessionContext, actor_from_token
from marketplace.modules.notifications.listener import BookingNotificationListener
from marketplace.modules.notifications.realtime import build_change_feed, build_change_publisher
from marketplace.modules.notifications.sinks import WebSocketNotificationSink
from marketplace.modules.providers.router import reviews_router
from marketplace.modules.providers.router import router as providers_router
from marketplace.shared.exceptions import AuthenticationException, SubscriptionError, register_exception_handlers
from marketplace.shared.utils import utc_now
from marketplace.workers.booking_start_worker import poll_due_bookings

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown hooks."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logger.info("Starting %s (realtime backend: %s)", settings.app_name, settings.realtime_backend)

    feed = build_change_feed(settings)
    try:
        await feed.start()
    except SubscriptionError as exc:
        # listeners retry through ensure_started
        logger.warning("Realtime feed not started: %s", exc.message)
    app.state.change_feed = feed
    app.state.change_publisher = build_change_publisher(feed, settings)

    start_sweep: asyncio.Task | None = None
    if settings.realtime_backend == "memory":
        # no table trigger in this mode, so starts are published from this process
        start_sweep = asyncio.create_task(
            poll_due_bookings(settings.booking_start_worker_poll_seconds, app.state.change_publisher),
        )

    yield

    logger.info("Shutting down %s", settings.app_name)
    if start_sweep is not None:
        start_sweep.cancel()
        with suppress(asyncio.CancelledError):
            await start_sweep
    await feed.stop()
    await close_engine()


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    lifespan=lifespan,
)
app.middleware("http")(instrument_http_request)

register_exception_handlers(app)

app.include_router(providers_router, prefix=settings.api_prefix)
app.include_router(reviews_router, prefix=settings.api_prefix)
app.include_router(booking_router, prefix=settings.api_prefix)
app.include_router(billing_router, prefix=settings.api_prefix)
app.include_router(disputes_router, prefix=settings.api_prefix)


@app.get("/health")
async def healthcheck() -> dict[str, str]:
    """Liveness probe endpoint."""
    return {"status": "ok"}


async def _is_database_ready() -> bool:
    """Return True if DB accepts basic queries."""
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception:
        logger.exception("Database readiness check failed")
        return False


@app.get("/ready")
async def readiness_check() -> dict[str, str]:
    """Readiness probe endpoint with DB dependency check."""
    if not await _is_database_ready():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database is not ready",
        )
    return {
        "status": "ready",
        "database": "ok",
        "timestamp": utc_now().isoformat(),
    }


@app.get("/metrics", include_in_schema=False)
async def metrics_endpoint(_: Request) -> Response:
    """Prometheus metrics endpoint."""
    return build_metrics_response()


@app.websocket("/ws/notifications")
async def booking_notifications(websocket: WebSocket, token: str = Query(default="")) -> None:
    """Stream booking notifications for the signed-in user."""
    try:
        actor = actor_from_token(token)
    except AuthenticationException as exc:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=exc.message)
        return

    await websocket.accept()
    listener = BookingNotificationListener(
        websocket.app.state.change_feed,
        WebSocketNotificationSink(websocket),
        settings=settings,
    )
    await listener.start(SessionContext(actor))
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Notification socket closed for user %s", actor.id)
    finally:
        listener.close()
