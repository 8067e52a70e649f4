"""Unit tests for notification payloads and dispatch."""

import json
import logging

import httpx
import pytest

from tripdesk.services.notification_service import (
    LoggingNotificationSink,
    NotificationDispatcher,
    TemplateKind,
    WebhookNotificationSink,
    build_payload,
    normalise_phone,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("98765 43210", "919876543210"),
        ("+91 98765-43210", "919876543210"),
        ("919876543210", "919876543210"),
        ("(987) 654 3210", "919876543210"),
    ],
)
def test_normalise_phone(raw, expected):
    assert normalise_phone(raw) == expected


def test_build_payload_stringifies_values():
    payload = build_payload(
        "98765 43210",
        TemplateKind.PAYMENT_REMINDER,
        traveller_name="Asha Verma",
        amount_outstanding=8000,
        note=None,
    )

    assert payload.recipient_phone == "919876543210"
    assert payload.template_kind == "payment_reminder"
    assert payload.substitution_values == {
        "traveller_name": "Asha Verma",
        "amount_outstanding": "8000",
        "note": "",
    }
    assert payload.as_dict()["template_kind"] == "payment_reminder"


@pytest.mark.asyncio
async def test_dispatcher_delivers_in_background():
    sink = LoggingNotificationSink()
    dispatcher = NotificationDispatcher(sink)

    dispatcher.dispatch(
        build_payload("9876543210", TemplateKind.BOOKING_CREATED, booking_id="b-1"),
        build_payload("9876543210", TemplateKind.FULLY_PAID, booking_id="b-1"),
    )
    await dispatcher.drain()

    assert [p.template_kind for p in sink.sent] == ["booking_created", "fully_paid"]


@pytest.mark.asyncio
async def test_webhook_sink_posts_payload():
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append((request.url.path, json.loads(request.content)))
        return httpx.Response(202)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    sink = WebhookNotificationSink("http://messaging.test/v1/send", client=client)

    await sink.send(build_payload("9876543210", TemplateKind.ADVANCE_VERIFIED, remaining_balance="₹8,000"))
    await sink.close()

    assert received == [(
        "/v1/send",
        {
            "recipient_phone": "919876543210",
            "template_kind": "advance_verified",
            "substitution_values": {"remaining_balance": "₹8,000"},
        },
    )]


@pytest.mark.asyncio
async def test_failed_delivery_is_logged_not_raised(caplog):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    dispatcher = NotificationDispatcher(WebhookNotificationSink("http://messaging.test/v1/send", client=client))

    with caplog.at_level(logging.ERROR, logger="tripdesk.services.notification_service"):
        dispatcher.dispatch(build_payload("9876543210", TemplateKind.PAYMENT_REJECTED, reason="blurry"))
        await dispatcher.drain()

    assert any(r.getMessage() == "Notification delivery failed" for r in caplog.records)
    await dispatcher.close()
