"""Notification transports — where rendered notifications are delivered.

  LogTransport      — writes the notification to the structured log
  WebhookTransport  — POSTs the notification as JSON (httpx.AsyncClient)

Transports may raise; NotificationService catches and logs delivery
failures so key issuance never depends on them.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable

import httpx

from sentinel_key.utils.logger import get_logger

logger = get_logger(__name__)

# Webhook delivery must not hold a lifecycle operation hostage.
WEBHOOK_TIMEOUT_S: float = 5.0


@dataclass(frozen=True)
class Notification:
    """A rendered owner notification."""

    type: str
    owner_id: str
    email: str
    subject: str
    message: str
    timestamp: float
    data: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class Transport(Protocol):
    async def send(self, notification: Notification) -> None:
        ...

    async def close(self) -> None:
        ...


class LogTransport:
    """Delivers notifications to the log (development / no mail relay). Keeps no copy."""

    async def send(self, notification: Notification) -> None:
        logger.info(
            "Notification delivered",
            notification_type=notification.type,
            owner_id=notification.owner_id,
            subject=notification.subject,
        )

    async def close(self) -> None:
        return None


class WebhookTransport:
    """POSTs each notification as JSON to ``url``.

    Args:
        url:    Webhook endpoint.
        client: Optional shared httpx.AsyncClient (tests inject a MockTransport
                client); when omitted one is created and owned by this object.
    """

    def __init__(self, url: str, client: Optional[httpx.AsyncClient] = None) -> None:
        self._url = url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=WEBHOOK_TIMEOUT_S)

    async def send(self, notification: Notification) -> None:
        response = await self._client.post(self._url, json=asdict(notification))
        response.raise_for_status()
        logger.debug(
            "Notification posted to webhook",
            notification_type=notification.type,
            owner_id=notification.owner_id,
            status_code=response.status_code,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
