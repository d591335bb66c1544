"""Realtime change feed for the bookings table.

A :class:`ChangeFeed` fans change events out to in-process subscriptions.
:class:`PostgresChangeFeed` fills it from ``LISTEN``/``NOTIFY`` on the channel
written by the ``bookings`` trigger; with the in-memory backend the booking
service publishes events itself after each write.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

import asyncpg
from fastapi.requests import HTTPConnection

from marketplace.core.config import Settings, get_settings
from marketplace.core.enums import ChangeEventTypeEnum
from marketplace.shared.exceptions import MalformedEventError, SubscriptionError
from marketplace.shared.utils import utc_now

logger = logging.getLogger(__name__)

BOOKINGS_TABLE = "bookings"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """One insert or update on a table, with before/after row snapshots."""

    table: str
    event_type: ChangeEventTypeEnum
    new: dict[str, Any]
    old: dict[str, Any] | None = None
    received_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ChangeEvent:
        """Parse trigger / hosted-backend payload.

        Accepts ``{"table", "type", "record", "old_record"}`` as well as the
        ``{"eventType", "new", "old"}`` spelling.
        """
        if not isinstance(payload, dict):
            raise MalformedEventError("Change payload must be an object")

        raw_type = payload.get("type", payload.get("eventType"))
        try:
            event_type = ChangeEventTypeEnum(str(raw_type).strip().lower())
        except ValueError as exc:
            raise MalformedEventError(f"Unsupported change type: {raw_type!r}") from exc

        record = payload.get("record", payload.get("new"))
        if not isinstance(record, dict):
            raise MalformedEventError("Change payload has no record")

        old_record = payload.get("old_record", payload.get("old"))
        return cls(
            table=str(payload.get("table") or BOOKINGS_TABLE),
            event_type=event_type,
            new=record,
            old=old_record if isinstance(old_record, dict) else None,
        )


_CLOSED = object()


class Subscription:
    """Cancellable stream of change events owned by exactly one consumer."""

    def __init__(
        self,
        feed: ChangeFeed,
        table: str,
        event_types: Iterable[ChangeEventTypeEnum],
    ) -> None:
        self._feed = feed
        self.table = table
        self.event_types = frozenset(event_types)
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, event: ChangeEvent) -> bool:
        return event.table == self.table and event.event_type in self.event_types

    def push(self, item: ChangeEvent | SubscriptionError) -> None:
        if self._closed:
            return
        self._queue.put_nowait(item)

    def close(self) -> None:
        """Stop receiving events. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._feed.discard(self)
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED or self._closed:
            raise StopAsyncIteration
        if isinstance(item, SubscriptionError):
            self.close()
            raise item
        return item  # type: ignore[return-value]


class ChangePublisher(Protocol):
    """Anything booking writes can be announced to."""

    async def publish(self, event: ChangeEvent) -> None:
        """Announce a stored change."""


class NoopChangePublisher:
    """Used when the database trigger announces changes."""

    async def publish(self, event: ChangeEvent) -> None:
        return None


class ChangeFeed:
    """In-process fan-out of change events to live subscriptions."""

    def __init__(self) -> None:
        self._subscriptions: set[Subscription] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    @property
    def is_available(self) -> bool:
        return True

    async def start(self) -> None:
        return None

    async def ensure_started(self) -> None:
        if not self.is_available:
            await self.start()

    async def stop(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.close()

    def subscribe(
        self,
        table: str,
        event_types: Iterable[ChangeEventTypeEnum] = (
            ChangeEventTypeEnum.INSERT,
            ChangeEventTypeEnum.UPDATE,
        ),
    ) -> Subscription:
        if not self.is_available:
            raise SubscriptionError("Realtime channel is not connected")
        subscription = Subscription(self, table, event_types)
        self._subscriptions.add(subscription)
        return subscription

    def discard(self, subscription: Subscription) -> None:
        self._subscriptions.discard(subscription)

    def dispatch(self, event: ChangeEvent) -> int:
        """Push ``event`` to every matching subscription, in arrival order."""
        delivered = 0
        for subscription in list(self._subscriptions):
            if subscription.matches(event):
                subscription.push(event)
                delivered += 1
        return delivered

    async def publish(self, event: ChangeEvent) -> None:
        self.dispatch(event)

    def fail(self, error: SubscriptionError) -> None:
        """Drop every subscription, handing ``error`` to its consumer."""
        subscriptions = list(self._subscriptions)
        self._subscriptions.clear()
        for subscription in subscriptions:
            subscription.push(error)


def _asyncpg_dsn(database_url: str) -> str:
    scheme, _, rest = database_url.partition("://")
    return f"{scheme.split('+', 1)[0]}://{rest}"


class PostgresChangeFeed(ChangeFeed):
    """Change feed backed by ``LISTEN`` on the booking trigger's channel.

    At most one connection is held; concurrent ``start`` calls share it.
    """

    def __init__(self, database_url: str, channel: str) -> None:
        super().__init__()
        self.dsn = _asyncpg_dsn(database_url)
        self.channel = channel
        self._connection: asyncpg.Connection | None = None
        self._start_lock = asyncio.Lock()

    @property
    def is_available(self) -> bool:
        return self._connection is not None and not self._connection.is_closed()

    async def start(self) -> None:
        async with self._start_lock:
            if self.is_available:
                return
            await self._connect()

    async def _connect(self) -> None:
        try:
            connection = await asyncpg.connect(self.dsn)
        except (OSError, asyncpg.PostgresError) as exc:
            raise SubscriptionError(f"Cannot listen on {self.channel}: {exc}") from exc
        try:
            connection.add_termination_listener(self._on_termination)
            await connection.add_listener(self.channel, self._on_notification)
        except (OSError, asyncpg.PostgresError) as exc:
            await connection.close()
            raise SubscriptionError(f"Cannot listen on {self.channel}: {exc}") from exc

        superseded, self._connection = self._connection, connection
        if superseded is not None and not superseded.is_closed():
            await superseded.close()
        logger.info("Listening for booking changes on channel %s", self.channel)

    async def stop(self) -> None:
        await super().stop()
        async with self._start_lock:
            connection, self._connection = self._connection, None
        if connection is None or connection.is_closed():
            return
        connection.remove_termination_listener(self._on_termination)
        await connection.remove_listener(self.channel, self._on_notification)
        await connection.close()

    def _on_notification(self, _connection, _pid: int, _channel: str, payload: str) -> None:
        try:
            event = ChangeEvent.from_payload(json.loads(payload))
        except (ValueError, MalformedEventError) as exc:
            logger.warning("Skipping malformed change notification: %s", exc)
            return
        self.dispatch(event)

    def _on_termination(self, connection) -> None:
        if connection is not self._connection:
            return
        logger.warning("Realtime connection on channel %s terminated", self.channel)
        self._connection = None
        self.fail(SubscriptionError("Realtime connection lost"))


def build_change_feed(settings: Settings | None = None) -> ChangeFeed:
    """Create the feed selected by ``REALTIME_BACKEND``."""
    settings = settings or get_settings()
    if settings.realtime_backend == "postgres":
        return PostgresChangeFeed(settings.database_url, settings.realtime_channel)
    return ChangeFeed()


def build_change_publisher(feed: ChangeFeed, settings: Settings | None = None) -> ChangePublisher:
    """Publisher the booking service writes through."""
    settings = settings or get_settings()
    if settings.realtime_backend == "postgres":
        return NoopChangePublisher()
    return feed


def get_change_feed(connection: HTTPConnection) -> ChangeFeed:
    """FastAPI dependency returning the process-wide feed."""
    return connection.app.state.change_feed


def get_change_publisher(connection: HTTPConnection) -> ChangePublisher:
    """FastAPI dependency returning the publisher booking writes go through."""
    return connection.app.state.change_publisher
