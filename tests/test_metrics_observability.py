from __future__ import annotations

from datetime import UTC, datetime
from types import SimpleNamespace

import pytest
from fastapi import Request, Response

import marketplace.main as main_module
from marketplace.core.enums import BookingStatusEnum
from marketplace.core.metrics import build_metrics_response, instrument_http_request
from marketplace.modules.booking.state_machine import BookingEvent, apply_transition


def _make_request(path: str) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": path,
        "headers": [],
        "client": ("127.0.0.1", 12345),
        "scheme": "http",
        "server": ("testserver", 80),
        "query_string": b"",
    }
    return Request(scope)


@pytest.mark.asyncio
async def test_http_metrics_instrumentation_tracks_status_and_path() -> None:
    async def _no_content(_: Request) -> Response:
        return Response(status_code=204)

    request = _make_request("/health")
    await instrument_http_request(request, _no_content)

    payload = build_metrics_response().body.decode("utf-8")
    assert "marketplace_http_requests_total" in payload
    assert 'path="/health"' in payload
    assert 'status_code="204"' in payload


def test_booking_transitions_are_counted() -> None:
    booking = SimpleNamespace(status=BookingStatusEnum.PENDING, updated_at=None)
    apply_transition(booking, BookingEvent.ACCEPT, now=datetime(2026, 10, 19, tzinfo=UTC))

    payload = build_metrics_response().body.decode("utf-8")
    assert "marketplace_booking_transitions_total" in payload
    assert 'from_status="pending"' in payload
    assert 'to_status="confirmed"' in payload


@pytest.mark.asyncio
async def test_metrics_endpoint_exposes_prometheus_payload() -> None:
    response = await main_module.metrics_endpoint(_make_request("/metrics"))
    payload = response.body.decode("utf-8")

    assert response.status_code == 200
    assert "marketplace_http_requests_total" in payload
    assert "marketplace_notifications_delivered_total" in payload
