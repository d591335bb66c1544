"""Session-scoped listener turning booking changes into user notifications."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from marketplace.core.config import Settings, get_settings
from marketplace.core.enums import BookingStatusEnum, ChangeEventTypeEnum
from marketplace.core.metrics import NOTIFICATIONS_DELIVERED_TOTAL, REALTIME_RECONNECTS_TOTAL
from marketplace.modules.identity.session import ANONYMOUS_SESSION, Actor, SessionContext
from marketplace.modules.notifications.messages import coerce_status, status_message
from marketplace.modules.notifications.realtime import BOOKINGS_TABLE, ChangeEvent, ChangeFeed, Subscription
from marketplace.modules.notifications.sinks import Notification, NotificationSink
from marketplace.shared.exceptions import SubscriptionError

logger = logging.getLogger(__name__)

LISTENED_EVENTS = (ChangeEventTypeEnum.INSERT, ChangeEventTypeEnum.UPDATE)


def _same_id(raw: Any, expected: Any) -> bool:
    return raw is not None and expected is not None and str(raw) == str(expected)


class BookingNotificationListener:
    """Keep one booking subscription open per signed-in session.

    Events are handled one at a time in delivery order. ``close`` is
    synchronous and idempotent; anything still arriving afterwards is dropped.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        sink: NotificationSink,
        *,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.feed = feed
        self.sink = sink
        self.settings = settings or get_settings()
        self._sleep = sleep
        self._session: SessionContext = ANONYMOUS_SESSION
        self._subscription: Subscription | None = None
        self._task: asyncio.Task | None = None
        self._notified: set[tuple[str, str]] = set()

    @property
    def session(self) -> SessionContext:
        return self._session

    @property
    def is_active(self) -> bool:
        return self._subscription is not None and not self._subscription.closed

    async def start(self, session: SessionContext) -> None:
        await self.update_session(session)

    async def update_session(self, session: SessionContext) -> None:
        """Follow a sign-in, sign-out or role change.

        The previous subscription is always torn down before a new one opens.
        """
        if self.is_active and session.identity_key() == self._session.identity_key():
            self._session = session
            return

        self.close()
        self._session = session
        if not session.is_authenticated:
            return
        await self._open()

    def close(self) -> None:
        subscription, task = self._subscription, self._task
        self._subscription = None
        self._task = None
        if subscription is not None:
            subscription.close()
            logger.info("Booking notifications unsubscribed for user %s", self._session.user_id)
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _open(self) -> None:
        try:
            subscription = await self._subscribe()
        except SubscriptionError as exc:
            # retried on the next session change
            logger.warning("Booking notifications unavailable: %s", exc.message)
            return
        self._subscription = subscription
        self._task = asyncio.create_task(self._consume(subscription))
        logger.info("Booking notifications subscribed for user %s", self._session.user_id)

    async def _subscribe(self) -> Subscription:
        await self.feed.ensure_started()
        subscription = self.feed.subscribe(BOOKINGS_TABLE, LISTENED_EVENTS)
        self._notified = set()
        return subscription

    async def _consume(self, subscription: Subscription | None) -> None:
        failures = 0
        while subscription is not None:
            try:
                async for event in subscription:
                    failures = 0
                    await self.handle_event(event)
                return
            except SubscriptionError as exc:
                failures += 1
                logger.warning("Booking notification channel dropped: %s", exc.message)
                subscription = await self._resubscribe(subscription, failures)

    async def _resubscribe(self, dropped: Subscription, failures: int) -> Subscription | None:
        while failures <= self.settings.realtime_max_reconnect_attempts:
            REALTIME_RECONNECTS_TOTAL.inc()
            await self._sleep(self._backoff_seconds(failures))
            if self._subscription is not dropped:
                return None
            try:
                replacement = await self._subscribe()
            except SubscriptionError as exc:
                logger.warning("Re-subscribe attempt %s failed: %s", failures, exc.message)
                failures += 1
                continue
            self._subscription = replacement
            return replacement

        logger.error(
            "Giving up on booking notifications for user %s after %s attempts",
            self._session.user_id,
            failures - 1,
        )
        if self._subscription is dropped:
            self._subscription = None
        return None

    def _backoff_seconds(self, failures: int) -> float:
        return min(
            self.settings.realtime_reconnect_max_seconds,
            self.settings.realtime_reconnect_base_seconds * (2 ** (failures - 1)),
        )

    def _recipient_is_customer(self, actor: Actor, record: dict[str, Any]) -> bool:
        return _same_id(record.get("customer_id"), actor.id)

    def is_relevant(self, actor: Actor, record: dict[str, Any], status: BookingStatusEnum | None) -> bool:
        """Whether ``actor`` should hear about this booking row."""
        if self._recipient_is_customer(actor, record):
            return True
        if actor.is_provider:
            if self.settings.realtime_notify_providers_broadly:
                return True
            if _same_id(record.get("provider_id"), actor.provider_id):
                return True
        return actor.is_admin and status == BookingStatusEnum.DISPUTED

    async def handle_event(self, event: ChangeEvent) -> Notification | None:
        """Deliver at most one notification for ``event``."""
        actor = self._session.actor
        if actor is None:
            return None

        record = event.new
        raw_status = record.get("status")
        if event.event_type == ChangeEventTypeEnum.UPDATE:
            old_record = event.old or {}
            if old_record.get("status") == raw_status:
                return None

        status = coerce_status(raw_status)
        if status is None and raw_status is not None:
            logger.warning("Unknown booking status %r in change event", raw_status)

        if not self.is_relevant(actor, record, status):
            return None

        booking_id = record.get("id")
        dedupe_key = (str(booking_id), str(raw_status))
        if self.settings.realtime_deduplicate and booking_id is not None:
            if dedupe_key in self._notified:
                return None
            self._notified.add(dedupe_key)

        as_provider = actor.is_provider and not self._recipient_is_customer(actor, record)
        message = status_message(status, is_provider=as_provider)
        notification = Notification(
            title=message.title,
            description=message.description,
            variant=message.variant,
            booking_id=str(booking_id) if booking_id is not None else None,
            status=str(status or BookingStatusEnum.PENDING),
        )
        try:
            await self.sink.send(notification)
        except Exception:
            NOTIFICATIONS_DELIVERED_TOTAL.labels(status="failed").inc()
            logger.exception("Failed to deliver booking notification %s", notification.title)
            return None
        NOTIFICATIONS_DELIVERED_TOTAL.labels(status="sent").inc()
        return notification
