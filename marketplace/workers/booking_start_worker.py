"""Moves confirmed bookings to in_progress once they start.

With ``REALTIME_BACKEND=postgres`` this runs as its own process and the table
trigger announces each start. With the in-memory backend the API lifespan
runs :func:`poll_due_bookings` with its own publisher instead, and the
standalone entry point refuses to start.
"""

from __future__ import annotations

import asyncio
import logging
import os

from marketplace.core.config import get_settings
from marketplace.core.database import SessionLocal
from marketplace.modules.booking.service import build_booking_service
from marketplace.modules.notifications.realtime import ChangePublisher, NoopChangePublisher

logger = logging.getLogger(__name__)


async def run_cycle(publisher: ChangePublisher | None = None) -> dict[str, int]:
    """Start every due booking in one DB transaction."""
    async with SessionLocal() as session:
        service = build_booking_service(session, publisher or NoopChangePublisher())
        started = await service.start_due_bookings()
        await session.commit()
        return {"started": started}


async def poll_due_bookings(poll_seconds: float, publisher: ChangePublisher | None = None) -> None:
    """Run cycles forever; a failed cycle is logged and retried next poll."""
    while True:
        try:
            stats = await run_cycle(publisher)
            logger.info("Booking start worker stats: %s", stats)
        except Exception:
            logger.exception("Booking start worker cycle failed")
        await asyncio.sleep(poll_seconds)


async def main() -> None:
    """Run once or keep polling according to worker mode."""
    settings = get_settings()
    logging.basicConfig(level=os.getenv("BOOKING_WORKER_LOG_LEVEL", settings.log_level.upper()))
    if settings.realtime_backend == "memory":
        raise RuntimeError(
            "REALTIME_BACKEND=memory starts due bookings inside the API process; "
            "run this worker only with REALTIME_BACKEND=postgres",
        )

    mode = os.getenv("BOOKING_WORKER_MODE", "once").strip().lower()
    poll_seconds = int(
        os.getenv("BOOKING_WORKER_POLL_SECONDS", str(settings.booking_start_worker_poll_seconds)),
    )

    if mode == "once":
        stats = await run_cycle()
        logger.info("Booking start worker stats: %s", stats)
        return

    await poll_due_bookings(poll_seconds)


if __name__ == "__main__":
    asyncio.run(main())
