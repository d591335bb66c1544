from __future__ import annotations

import asyncio
from uuid import UUID, uuid4

import pytest

from marketplace.core.config import Settings
from marketplace.core.enums import BookingStatusEnum, ChangeEventTypeEnum, RoleEnum
from marketplace.modules.identity.session import ANONYMOUS_SESSION, Actor, SessionContext
from marketplace.modules.notifications.listener import BookingNotificationListener
from marketplace.modules.notifications.realtime import ChangeEvent, ChangeFeed
from marketplace.modules.notifications.sinks import Notification
from marketplace.shared.exceptions import SubscriptionError


class RecordingSink:
    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)


class FailingSink:
    def __init__(self) -> None:
        self.attempts = 0

    async def send(self, notification: Notification) -> None:
        self.attempts += 1
        raise RuntimeError("toast renderer is gone")


class SwitchableFeed(ChangeFeed):
    """In-memory feed whose connection can be dropped on demand."""

    def __init__(self) -> None:
        super().__init__()
        self.available = True

    @property
    def is_available(self) -> bool:
        return self.available


class FakeSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_settings(**overrides) -> Settings:
    values = {
        "realtime_reconnect_base_seconds": 1.0,
        "realtime_reconnect_max_seconds": 30.0,
        "realtime_max_reconnect_attempts": 2,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_listener(
    feed: ChangeFeed | None = None,
    sink=None,
    **settings_overrides,
) -> tuple[BookingNotificationListener, ChangeFeed, RecordingSink, FakeSleep]:
    feed = feed or ChangeFeed()
    sink = sink or RecordingSink()
    sleep = FakeSleep()
    listener = BookingNotificationListener(
        feed,
        sink,
        settings=make_settings(**settings_overrides),
        sleep=sleep,
    )
    return listener, feed, sink, sleep


def customer(user_id: UUID | None = None) -> Actor:
    return Actor(id=user_id or uuid4(), roles=frozenset({RoleEnum.CUSTOMER}))


def provider(provider_id: UUID | None = None) -> Actor:
    return Actor(id=uuid4(), roles=frozenset({RoleEnum.PROVIDER}), provider_id=provider_id or uuid4())


def admin() -> Actor:
    return Actor(id=uuid4(), roles=frozenset({RoleEnum.ADMIN}))


def record(
    *,
    booking_id: UUID | None = None,
    customer_id: UUID | None = None,
    provider_id: UUID | None = None,
    status: str | None = "pending",
) -> dict:
    row = {
        "id": str(booking_id or uuid4()),
        "customer_id": str(customer_id or uuid4()),
        "provider_id": str(provider_id or uuid4()),
    }
    if status is not None:
        row["status"] = status
    return row


def insert(row: dict) -> ChangeEvent:
    return ChangeEvent(table="bookings", event_type=ChangeEventTypeEnum.INSERT, new=row)


def update(row: dict, old_status: str | None) -> ChangeEvent:
    old = dict(row)
    old["status"] = old_status
    return ChangeEvent(table="bookings", event_type=ChangeEventTypeEnum.UPDATE, new=row, old=old)


async def settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_status_change_notifies_customer_through_feed() -> None:
    listener, feed, sink, _ = make_listener()
    actor = customer()
    await listener.start(SessionContext(actor))

    row = record(customer_id=actor.id, status="confirmed")
    await feed.publish(update(row, "pending"))
    await settle()

    assert [(n.title, n.description) for n in sink.sent] == [
        ("Booking Confirmed", "Great news! Your booking has been confirmed."),
    ]
    assert sink.sent[0].booking_id == row["id"]
    assert sink.sent[0].status == "confirmed"
    assert sink.sent[0].variant == "default"
    listener.close()


@pytest.mark.asyncio
async def test_update_without_status_change_is_silent() -> None:
    listener, _, sink, _ = make_listener()
    actor = customer()
    await listener.start(SessionContext(actor))

    row = record(customer_id=actor.id, status="confirmed")
    result = await listener.handle_event(update(row, "confirmed"))

    assert result is None
    assert sink.sent == []
    listener.close()


@pytest.mark.asyncio
async def test_unrelated_insert_is_ignored() -> None:
    listener, feed, sink, _ = make_listener()
    await listener.start(SessionContext(customer()))

    await feed.publish(insert(record()))
    await settle()

    assert sink.sent == []
    listener.close()


@pytest.mark.asyncio
async def test_provider_hears_about_own_new_booking() -> None:
    listener, _, sink, _ = make_listener()
    actor = provider()
    await listener.start(SessionContext(actor))

    await listener.handle_event(insert(record(provider_id=actor.provider_id)))

    assert [(n.title, n.description) for n in sink.sent] == [
        ("New Booking Request", "You have a new booking request to review."),
    ]
    listener.close()


@pytest.mark.asyncio
async def test_provider_does_not_hear_about_other_providers_bookings() -> None:
    listener, _, sink, _ = make_listener()
    await listener.start(SessionContext(provider()))

    await listener.handle_event(insert(record()))

    assert sink.sent == []
    listener.close()


@pytest.mark.asyncio
async def test_broad_provider_mode_hears_every_booking() -> None:
    listener, _, sink, _ = make_listener(realtime_notify_providers_broadly=True)
    await listener.start(SessionContext(provider()))

    await listener.handle_event(insert(record()))

    assert len(sink.sent) == 1
    assert sink.sent[0].title == "New Booking Request"
    listener.close()


@pytest.mark.asyncio
async def test_provider_booking_as_customer_gets_customer_wording() -> None:
    listener, _, sink, _ = make_listener()
    actor = Actor(
        id=uuid4(),
        roles=frozenset({RoleEnum.PROVIDER, RoleEnum.CUSTOMER}),
        provider_id=uuid4(),
    )
    await listener.start(SessionContext(actor))

    await listener.handle_event(insert(record(customer_id=actor.id)))

    assert sink.sent[0].title == "Booking Submitted"
    listener.close()


@pytest.mark.asyncio
async def test_admin_only_hears_about_disputes() -> None:
    listener, _, sink, _ = make_listener()
    await listener.start(SessionContext(admin()))

    await listener.handle_event(update(record(status="confirmed"), "pending"))
    await listener.handle_event(update(record(status="disputed"), "completed"))

    assert [(n.title, n.description) for n in sink.sent] == [
        ("Dispute Raised", "A dispute has been raised for this booking."),
    ]
    listener.close()


@pytest.mark.asyncio
async def test_repeated_status_for_same_booking_is_delivered_once() -> None:
    listener, _, sink, _ = make_listener()
    actor = customer()
    await listener.start(SessionContext(actor))

    row = record(customer_id=actor.id)
    await listener.handle_event(insert(row))
    await listener.handle_event(insert(row))

    assert len(sink.sent) == 1
    listener.close()


@pytest.mark.asyncio
async def test_deduplication_can_be_disabled() -> None:
    listener, _, sink, _ = make_listener(realtime_deduplicate=False)
    actor = customer()
    await listener.start(SessionContext(actor))

    row = record(customer_id=actor.id)
    await listener.handle_event(insert(row))
    await listener.handle_event(insert(row))

    assert len(sink.sent) == 2
    listener.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("raw_status", [None, "on_hold"])
async def test_missing_or_unknown_status_uses_pending_wording(raw_status: str | None) -> None:
    listener, _, sink, _ = make_listener()
    actor = customer()
    await listener.start(SessionContext(actor))

    await listener.handle_event(insert(record(customer_id=actor.id, status=raw_status)))

    assert (sink.sent[0].title, sink.sent[0].description) == (
        "Booking Submitted",
        "Your booking has been submitted successfully.",
    )
    assert sink.sent[0].status == BookingStatusEnum.PENDING


@pytest.mark.asyncio
async def test_sink_failure_is_contained() -> None:
    sink = FailingSink()
    listener, _, _, _ = make_listener(sink=sink)
    actor = customer()
    await listener.start(SessionContext(actor))

    first = await listener.handle_event(insert(record(customer_id=actor.id)))
    second = await listener.handle_event(insert(record(customer_id=actor.id)))

    assert first is None
    assert second is None
    assert sink.attempts == 2
    assert listener.is_active
    listener.close()


@pytest.mark.asyncio
async def test_anonymous_session_does_not_subscribe() -> None:
    listener, feed, _, _ = make_listener()

    await listener.start(ANONYMOUS_SESSION)

    assert not listener.is_active
    assert feed.subscriber_count == 0


@pytest.mark.asyncio
async def test_close_twice_and_late_events_are_dropped() -> None:
    listener, feed, sink, _ = make_listener()
    actor = customer()
    await listener.start(SessionContext(actor))
    assert feed.subscriber_count == 1

    listener.close()
    listener.close()
    await feed.publish(insert(record(customer_id=actor.id)))
    await settle()

    assert not listener.is_active
    assert feed.subscriber_count == 0
    assert sink.sent == []


@pytest.mark.asyncio
async def test_switching_user_replaces_subscription() -> None:
    listener, feed, sink, _ = make_listener()
    first, second = customer(), customer()
    await listener.start(SessionContext(first))
    old_subscription = listener._subscription

    await listener.update_session(SessionContext(second))
    await feed.publish(insert(record(customer_id=first.id)))
    await feed.publish(insert(record(customer_id=second.id)))
    await settle()

    assert old_subscription.closed
    assert feed.subscriber_count == 1
    assert len(sink.sent) == 1
    listener.close()


@pytest.mark.asyncio
async def test_same_identity_keeps_subscription() -> None:
    listener, feed, _, _ = make_listener()
    actor = customer()
    await listener.start(SessionContext(actor))
    subscription = listener._subscription

    await listener.update_session(SessionContext(actor))

    assert listener._subscription is subscription
    assert feed.subscriber_count == 1
    listener.close()


@pytest.mark.asyncio
async def test_sign_out_tears_down_subscription() -> None:
    listener, feed, _, _ = make_listener()
    await listener.start(SessionContext(customer()))

    await listener.update_session(ANONYMOUS_SESSION)

    assert not listener.is_active
    assert feed.subscriber_count == 0


@pytest.mark.asyncio
async def test_dropped_channel_is_resubscribed_with_backoff() -> None:
    listener, feed, sink, sleep = make_listener()
    actor = customer()
    await listener.start(SessionContext(actor))

    feed.fail(SubscriptionError("connection reset"))
    await settle()
    await feed.publish(insert(record(customer_id=actor.id)))
    await settle()

    assert sleep.calls == [1.0]
    assert listener.is_active
    assert len(sink.sent) == 1
    listener.close()


@pytest.mark.asyncio
async def test_listener_gives_up_after_max_reconnect_attempts() -> None:
    feed = SwitchableFeed()
    listener, _, _, sleep = make_listener(feed=feed)
    await listener.start(SessionContext(customer()))

    feed.available = False
    feed.fail(SubscriptionError("connection reset"))
    await settle()

    assert sleep.calls == [1.0, 2.0]
    assert not listener.is_active


@pytest.mark.asyncio
async def test_unavailable_feed_leaves_listener_inactive() -> None:
    feed = SwitchableFeed()
    feed.available = False
    listener, _, _, _ = make_listener(feed=feed)

    await listener.start(SessionContext(customer()))

    assert not listener.is_active


@pytest.mark.asyncio
async def test_cancellation_notification_carries_destructive_variant() -> None:
    listener, _, sink, _ = make_listener()
    actor = customer()
    await listener.start(SessionContext(actor))

    await listener.handle_event(update(record(customer_id=actor.id, status="cancelled"), "confirmed"))

    assert [(n.title, n.variant) for n in sink.sent] == [("Booking Cancelled", "destructive")]
    listener.close()
