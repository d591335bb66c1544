from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

import marketplace.modules.billing.service as billing_service_module
import marketplace.modules.booking.service as booking_service_module
from marketplace.core.config import Settings
from marketplace.core.enums import (
    BookingStatusEnum,
    ChangeEventTypeEnum,
    PaymentStatusEnum,
    RoleEnum,
    VerificationStatusEnum,
)
from marketplace.modules.billing.service import BillingService
from marketplace.modules.booking.schemas import BookingCancelRequest, BookingCreate, BookingNotesUpdate
from marketplace.modules.booking.service import BookingService
from marketplace.modules.identity.session import Actor, SessionContext
from marketplace.modules.notifications.listener import BookingNotificationListener
from marketplace.modules.notifications.realtime import ChangeEvent, ChangeFeed
from marketplace.modules.notifications.sinks import Notification
from marketplace.shared.exceptions import (
    BusinessRuleException,
    InvalidTransitionException,
    NotFoundException,
    UnauthorizedException,
)

NOW = datetime(2026, 10, 19, 9, 0, tzinfo=UTC)
BOOKING_DAY = date(2026, 10, 21)


@dataclass
class FakeProvider:
    id: UUID
    user_id: UUID
    verification_status: VerificationStatusEnum = VerificationStatusEnum.VERIFIED
    commission_rate: Decimal | None = None
    total_bookings: int = 0


@dataclass
class FakeListing:
    id: UUID
    provider: FakeProvider
    price: Decimal
    duration_minutes: int
    is_active: bool = True


@dataclass
class FakeBooking:
    id: UUID
    customer_id: UUID | None
    provider_id: UUID | None
    service_id: UUID | None
    booking_date: date
    start_time: time
    end_time: time
    total_amount: Decimal
    commission_amount: Decimal
    provider_payout: Decimal
    status: BookingStatusEnum
    customer_address: str | None = None
    customer_notes: str | None = None
    provider_notes: str | None = None
    confirmed_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    created_at: datetime = NOW
    updated_at: datetime = NOW
    dispute: object | None = None


@dataclass
class FakePayment:
    id: UUID
    booking_id: UUID
    booking: FakeBooking
    amount: Decimal
    commission_amount: Decimal
    payout_amount: Decimal
    currency: str
    status: PaymentStatusEnum = PaymentStatusEnum.PENDING
    payment_method: str | None = None
    payment_reference: str | None = None
    paid_at: datetime | None = None
    released_at: datetime | None = None


class FakeBookingRepository:
    def __init__(self) -> None:
        self.bookings: dict[UUID, FakeBooking] = {}
        self.saves = 0

    async def create_booking(self, **fields) -> FakeBooking:
        booking = FakeBooking(id=uuid4(), status=BookingStatusEnum.PENDING, **fields)
        self.bookings[booking.id] = booking
        return booking

    async def get_booking_by_id(self, booking_id: UUID) -> FakeBooking | None:
        return self.bookings.get(booking_id)

    async def find_due_confirmed(self, today: date, now_time: time) -> list[FakeBooking]:
        return [
            booking
            for booking in self.bookings.values()
            if booking.status == BookingStatusEnum.CONFIRMED
            and (booking.booking_date, booking.start_time) <= (today, now_time)
        ]

    async def save(self, booking: FakeBooking) -> FakeBooking:
        self.saves += 1
        return booking


class FakeProvidersRepository:
    def __init__(self, listings: list[FakeListing]) -> None:
        self.listings = {listing.id: listing for listing in listings}

    async def get_service_listing_by_id(self, service_id: UUID) -> FakeListing | None:
        return self.listings.get(service_id)

    async def get_provider_by_id(self, provider_id: UUID) -> FakeProvider | None:
        for listing in self.listings.values():
            if listing.provider.id == provider_id:
                return listing.provider
        return None

    async def save(self, provider: FakeProvider) -> FakeProvider:
        return provider


class FakeBillingRepository:
    def __init__(self, booking_repository: FakeBookingRepository) -> None:
        self.booking_repository = booking_repository
        self.payments: dict[UUID, FakePayment] = {}

    async def create_payment(self, booking_id: UUID, **fields) -> FakePayment:
        payment = FakePayment(
            id=uuid4(),
            booking_id=booking_id,
            booking=self.booking_repository.bookings[booking_id],
            **fields,
        )
        self.payments[payment.id] = payment
        return payment

    async def get_payment_by_id(self, payment_id: UUID) -> FakePayment | None:
        return self.payments.get(payment_id)

    async def get_payment_by_booking_id(self, booking_id: UUID) -> FakePayment | None:
        return next((p for p in self.payments.values() if p.booking_id == booking_id), None)

    async def set_payment_status(self, payment: FakePayment, status: PaymentStatusEnum, **timestamps) -> FakePayment:
        payment.status = status
        for name, value in timestamps.items():
            if value is not None:
                setattr(payment, name, value)
        return payment


@dataclass
class RecordingPublisher:
    events: list[ChangeEvent] = field(default_factory=list)

    async def publish(self, event: ChangeEvent) -> None:
        self.events.append(event)


@dataclass
class World:
    service: BookingService
    bookings: FakeBookingRepository
    billing: FakeBillingRepository
    publisher: RecordingPublisher
    provider: FakeProvider
    listing: FakeListing
    provider_actor: Actor
    customer_actor: Actor


def make_world(monkeypatch: pytest.MonkeyPatch, publisher=None, **provider_fields) -> World:
    monkeypatch.setattr(booking_service_module, "utc_now", lambda: NOW)
    monkeypatch.setattr(billing_service_module, "utc_now", lambda: NOW)

    provider = FakeProvider(id=uuid4(), user_id=uuid4(), **provider_fields)
    listing = FakeListing(id=uuid4(), provider=provider, price=Decimal("450.00"), duration_minutes=90)
    bookings = FakeBookingRepository()
    providers = FakeProvidersRepository([listing])
    billing = FakeBillingRepository(bookings)
    publisher = publisher if publisher is not None else RecordingPublisher()
    service = BookingService(
        booking_repository=bookings,
        providers_repository=providers,
        billing_service=BillingService(billing, providers),
        publisher=publisher,
    )
    return World(
        service=service,
        bookings=bookings,
        billing=billing,
        publisher=publisher,
        provider=provider,
        listing=listing,
        provider_actor=Actor(id=provider.user_id, roles=frozenset({RoleEnum.PROVIDER}), provider_id=provider.id),
        customer_actor=Actor(id=uuid4(), roles=frozenset({RoleEnum.CUSTOMER})),
    )


def booking_request(world: World, **overrides) -> BookingCreate:
    values = {
        "service_id": world.listing.id,
        "booking_date": BOOKING_DAY,
        "start_time": time(10, 0),
        "customer_address": "12 Rivonia Road, Sandton",
    }
    values.update(overrides)
    return BookingCreate(**values)


@pytest.mark.asyncio
async def test_create_booking_freezes_commission_and_opens_payment(monkeypatch: pytest.MonkeyPatch) -> None:
    world = make_world(monkeypatch)

    booking = await world.service.create_booking(booking_request(world), world.customer_actor)

    assert booking.status == BookingStatusEnum.PENDING
    assert booking.total_amount == Decimal("450.00")
    assert booking.commission_amount == Decimal("54.00")
    assert booking.provider_payout == Decimal("396.00")
    assert booking.end_time == time(11, 30)
    assert world.provider.total_bookings == 1

    payment = await world.billing.get_payment_by_booking_id(booking.id)
    assert payment.status == PaymentStatusEnum.PENDING
    assert payment.amount == booking.total_amount
    assert payment.payout_amount + payment.commission_amount == payment.amount

    [event] = world.publisher.events
    assert event.event_type == ChangeEventTypeEnum.INSERT
    assert event.new["status"] == "pending"
    assert event.new["id"] == str(booking.id)


@pytest.mark.asyncio
async def test_create_booking_uses_provider_commission_override(monkeypatch: pytest.MonkeyPatch) -> None:
    world = make_world(monkeypatch, commission_rate=Decimal("0.08"))

    booking = await world.service.create_booking(booking_request(world), world.customer_actor)

    assert booking.commission_amount == Decimal("36.00")
    assert booking.provider_payout == Decimal("414.00")


@pytest.mark.asyncio
async def test_create_booking_requires_customer_role(monkeypatch: pytest.MonkeyPatch) -> None:
    world = make_world(monkeypatch)

    with pytest.raises(UnauthorizedException):
        await world.service.create_booking(booking_request(world), world.provider_actor)


@pytest.mark.asyncio
async def test_create_booking_rejects_unverified_provider(monkeypatch: pytest.MonkeyPatch) -> None:
    world = make_world(monkeypatch, verification_status=VerificationStatusEnum.PENDING)

    with pytest.raises(BusinessRuleException):
        await world.service.create_booking(booking_request(world), world.customer_actor)
    assert world.bookings.bookings == {}


@pytest.mark.asyncio
async def test_create_booking_rejects_own_service(monkeypatch: pytest.MonkeyPatch) -> None:
    world = make_world(monkeypatch)
    actor = Actor(id=world.provider.user_id, roles=frozenset({RoleEnum.CUSTOMER, RoleEnum.PROVIDER}))

    with pytest.raises(BusinessRuleException):
        await world.service.create_booking(booking_request(world), actor)


@pytest.mark.asyncio
async def test_create_booking_rejects_inactive_listing(monkeypatch: pytest.MonkeyPatch) -> None:
    world = make_world(monkeypatch)
    world.listing.is_active = False

    with pytest.raises(NotFoundException):
        await world.service.create_booking(booking_request(world), world.customer_actor)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("booking_date", "start_time"),
    [
        (date(2026, 10, 19), time(8, 0)),
        (date(2026, 12, 1), time(10, 0)),
        (BOOKING_DAY, time(23, 0)),
    ],
)
async def test_create_booking_rejects_bad_schedule(
    monkeypatch: pytest.MonkeyPatch,
    booking_date: date,
    start_time: time,
) -> None:
    world = make_world(monkeypatch)

    with pytest.raises(BusinessRuleException):
        await world.service.create_booking(
            booking_request(world, booking_date=booking_date, start_time=start_time),
            world.customer_actor,
        )


@pytest.mark.asyncio
async def test_provider_accepts_and_change_is_published(monkeypatch: pytest.MonkeyPatch) -> None:
    world = make_world(monkeypatch)
    booking = await world.service.create_booking(booking_request(world), world.customer_actor)

    await world.service.accept_booking(booking.id, world.provider_actor)

    assert booking.status == BookingStatusEnum.CONFIRMED
    assert booking.confirmed_at == NOW
    event = world.publisher.events[-1]
    assert event.event_type == ChangeEventTypeEnum.UPDATE
    assert event.old["status"] == "pending"
    assert event.new["status"] == "confirmed"


@pytest.mark.asyncio
async def test_other_provider_cannot_accept(monkeypatch: pytest.MonkeyPatch) -> None:
    world = make_world(monkeypatch)
    booking = await world.service.create_booking(booking_request(world), world.customer_actor)
    stranger = Actor(id=uuid4(), roles=frozenset({RoleEnum.PROVIDER}), provider_id=uuid4())

    with pytest.raises(UnauthorizedException):
        await world.service.accept_booking(booking.id, stranger)

    assert booking.status == BookingStatusEnum.PENDING
    assert len(world.publisher.events) == 1


@pytest.mark.asyncio
async def test_invalid_transition_leaves_booking_untouched(monkeypatch: pytest.MonkeyPatch) -> None:
    world = make_world(monkeypatch)
    booking = await world.service.create_booking(booking_request(world), world.customer_actor)
    saves_before = world.bookings.saves

    with pytest.raises(InvalidTransitionException):
        await world.service.complete_booking(booking.id, world.provider_actor)

    assert booking.status == BookingStatusEnum.PENDING
    assert booking.completed_at is None
    assert world.bookings.saves == saves_before
    assert len(world.publisher.events) == 1


@pytest.mark.asyncio
async def test_full_lifecycle_sets_timestamps(monkeypatch: pytest.MonkeyPatch) -> None:
    world = make_world(monkeypatch)
    booking = await world.service.create_booking(booking_request(world), world.customer_actor)

    await world.service.accept_booking(booking.id, world.provider_actor)
    await world.service.start_booking(booking.id, world.provider_actor)
    await world.service.complete_booking(booking.id, world.provider_actor)

    assert booking.status == BookingStatusEnum.COMPLETED
    assert booking.started_at == NOW
    assert booking.completed_at == NOW
    assert [event.new["status"] for event in world.publisher.events] == [
        "pending",
        "confirmed",
        "in_progress",
        "completed",
    ]


@pytest.mark.asyncio
async def test_cancel_refunds_held_payment(monkeypatch: pytest.MonkeyPatch) -> None:
    world = make_world(monkeypatch)
    booking = await world.service.create_booking(booking_request(world), world.customer_actor)
    payment = await world.billing.get_payment_by_booking_id(booking.id)
    payment.status = PaymentStatusEnum.HELD

    await world.service.cancel_booking(
        booking.id,
        BookingCancelRequest(reason="Car is at the panel beater"),
        world.customer_actor,
    )

    assert booking.status == BookingStatusEnum.CANCELLED
    assert booking.cancelled_at == NOW
    assert booking.cancellation_reason == "Car is at the panel beater"
    assert payment.status == PaymentStatusEnum.REFUNDED


@pytest.mark.asyncio
async def test_cancel_after_start_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    world = make_world(monkeypatch)
    booking = await world.service.create_booking(booking_request(world), world.customer_actor)
    await world.service.accept_booking(booking.id, world.provider_actor)
    await world.service.start_booking(booking.id, world.provider_actor)

    with pytest.raises(InvalidTransitionException):
        await world.service.cancel_booking(booking.id, BookingCancelRequest(), world.customer_actor)
    assert booking.cancellation_reason is None


@pytest.mark.asyncio
async def test_customer_notes_locked_once_confirmed(monkeypatch: pytest.MonkeyPatch) -> None:
    world = make_world(monkeypatch)
    booking = await world.service.create_booking(booking_request(world), world.customer_actor)

    await world.service.update_notes(
        booking.id,
        BookingNotesUpdate(customer_notes="Gate code 4411"),
        world.customer_actor,
    )
    assert booking.customer_notes == "Gate code 4411"

    await world.service.accept_booking(booking.id, world.provider_actor)
    with pytest.raises(BusinessRuleException):
        await world.service.update_notes(
            booking.id,
            BookingNotesUpdate(customer_notes="Gate code 9999"),
            world.customer_actor,
        )

    await world.service.update_notes(
        booking.id,
        BookingNotesUpdate(provider_notes="Bring the long hose"),
        world.provider_actor,
    )
    assert booking.provider_notes == "Bring the long hose"


@pytest.mark.asyncio
async def test_start_due_bookings_moves_only_started_confirmed_bookings(monkeypatch: pytest.MonkeyPatch) -> None:
    world = make_world(monkeypatch)
    due = await world.service.create_booking(booking_request(world), world.customer_actor)
    later = await world.service.create_booking(
        booking_request(world, start_time=time(15, 0)),
        world.customer_actor,
    )
    await world.service.accept_booking(due.id, world.provider_actor)
    await world.service.accept_booking(later.id, world.provider_actor)

    started = await world.service.start_due_bookings(datetime(2026, 10, 21, 12, 0, tzinfo=UTC))

    assert started == 1
    assert due.status == BookingStatusEnum.IN_PROGRESS
    assert later.status == BookingStatusEnum.CONFIRMED


class RecordingSink:
    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)


@pytest.mark.asyncio
async def test_booking_changes_reach_both_parties_listeners(monkeypatch: pytest.MonkeyPatch) -> None:
    feed = ChangeFeed()
    world = make_world(monkeypatch, publisher=feed)
    settings = Settings(_env_file=None)
    customer_sink, provider_sink = RecordingSink(), RecordingSink()
    customer_listener = BookingNotificationListener(feed, customer_sink, settings=settings)
    provider_listener = BookingNotificationListener(feed, provider_sink, settings=settings)
    await customer_listener.start(SessionContext(world.customer_actor))
    await provider_listener.start(SessionContext(world.provider_actor))

    booking = await world.service.create_booking(booking_request(world), world.customer_actor)
    await world.service.accept_booking(booking.id, world.provider_actor)
    for _ in range(10):
        await asyncio.sleep(0)

    assert [n.title for n in customer_sink.sent] == ["Booking Submitted", "Booking Confirmed"]
    assert [n.title for n in provider_sink.sent] == ["New Booking Request", "Booking Confirmed"]
    assert provider_sink.sent[1].description == "You have confirmed a booking."

    customer_listener.close()
    provider_listener.close()
