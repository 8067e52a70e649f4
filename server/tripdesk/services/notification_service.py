"""Traveller notifications: payload building and best-effort dispatch.

The engine decides that a message fires and what it says. Delivery belongs to
an external messaging collaborator reached through a ``NotificationSink``.
Dispatch happens after the owning transaction commits; a failed send is
logged and never rolls anything back.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import httpx

from ..core.config import settings
from ..core.observability import metrics_collector

logger = logging.getLogger(__name__)


class TemplateKind(str, Enum):
    """Message templates known to the messaging collaborator."""
    BOOKING_CREATED = "booking_created"
    PAYMENT_UPLOADED = "payment_uploaded"
    ADVANCE_VERIFIED = "advance_verified"
    PAYMENT_REJECTED = "payment_rejected"
    FULLY_PAID = "fully_paid"
    PAYMENT_REMINDER = "payment_reminder"
    BOOKING_CANCELLED = "booking_cancelled"
    REFUND_PROCESSED = "refund_processed"


def normalise_phone(phone: str) -> str:
    """Strip formatting and prefix the Indian country code when missing."""
    digits = re.sub(r"\D", "", phone or "")
    return digits if digits.startswith("91") else f"91{digits}"


@dataclass(frozen=True)
class NotificationPayload:
    recipient_phone: str
    template_kind: str
    substitution_values: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "recipient_phone": self.recipient_phone,
            "template_kind": self.template_kind,
            "substitution_values": dict(self.substitution_values),
        }


def build_payload(phone: str, kind: TemplateKind, **values: Any) -> NotificationPayload:
    """Build an outbound payload; substitution values are stringified."""
    return NotificationPayload(
        recipient_phone=normalise_phone(phone),
        template_kind=kind.value,
        substitution_values={key: "" if value is None else str(value) for key, value in values.items()},
    )


class NotificationSink:
    """Destination for outbound notifications."""

    async def send(self, payload: NotificationPayload) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class LoggingNotificationSink(NotificationSink):
    """Sink that only logs; used when no messaging endpoint is configured."""

    def __init__(self):
        self.sent: list[NotificationPayload] = []

    async def send(self, payload: NotificationPayload) -> None:
        self.sent.append(payload)
        logger.info(
            "Notification recorded",
            extra={
                "template_kind": payload.template_kind,
                "recipient_phone": payload.recipient_phone
            }
        )


class WebhookNotificationSink(NotificationSink):
    """Sink that POSTs each payload as JSON to the messaging collaborator."""

    def __init__(self, url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        """Return the HTTP client, creating one if needed."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def send(self, payload: NotificationPayload) -> None:
        resp = await self._get_client().post(self.url, json=payload.as_dict())
        resp.raise_for_status()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class NotificationDispatcher:
    """Sends notifications in background tasks so callers never wait on delivery."""

    def __init__(self, sink: NotificationSink):
        self.sink = sink
        self._tasks: set[asyncio.Task] = set()

    def dispatch(self, *payloads: NotificationPayload) -> None:
        """Schedule delivery of each payload. Call only after the data is committed."""
        for payload in payloads:
            task = asyncio.create_task(self._deliver(payload))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _deliver(self, payload: NotificationPayload) -> None:
        try:
            await self.sink.send(payload)
        except Exception as e:
            metrics_collector.record_notification(payload.template_kind, "failed")
            logger.error(
                "Notification delivery failed",
                extra={
                    "template_kind": payload.template_kind,
                    "recipient_phone": payload.recipient_phone,
                    "error": str(e)
                }
            )
            return
        metrics_collector.record_notification(payload.template_kind, "sent")

    async def drain(self) -> None:
        """Wait for every in-flight delivery to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        await self.sink.close()


_dispatcher: Optional[NotificationDispatcher] = None


def get_dispatcher() -> NotificationDispatcher:
    """Process-wide dispatcher built from settings on first use."""
    global _dispatcher
    if _dispatcher is None:
        if settings.notification_webhook_url:
            sink: NotificationSink = WebhookNotificationSink(
                settings.notification_webhook_url,
                timeout=settings.notification_timeout_seconds,
            )
        else:
            sink = LoggingNotificationSink()
        _dispatcher = NotificationDispatcher(sink)
    return _dispatcher


def set_dispatcher(dispatcher: Optional[NotificationDispatcher]) -> None:
    """Replace the process-wide dispatcher (tests, shutdown)."""
    global _dispatcher
    _dispatcher = dispatcher
