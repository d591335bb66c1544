"""Destinations for realtime booking notifications."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Protocol

from fastapi import WebSocket

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Notification:
    """Toast-style message shown to the signed-in user."""

    title: str
    description: str
    variant: str | None = None
    booking_id: str | None = None
    status: str | None = None


class NotificationSink(Protocol):
    """Fire-and-forget display channel."""

    async def send(self, notification: Notification) -> None:
        """Deliver notification to the user."""


class LoggingNotificationSink:
    """Writes notifications to the application log."""

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    async def send(self, notification: Notification) -> None:
        logger.log(
            self.level,
            "Notification %s: %s (booking=%s)",
            notification.title,
            notification.description,
            notification.booking_id,
        )


class WebSocketNotificationSink:
    """Pushes notifications as JSON frames to a connected client."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    async def send(self, notification: Notification) -> None:
        payload = {key: value for key, value in asdict(notification).items() if value is not None}
        await self.websocket.send_json({"type": "notification", "data": payload})
