"""Owner notifications on key state changes.

Notifier is the narrow interface the lifecycle service and pipeline call:

    await notifier.notify("new_key", owner_id, {"link": ...})

NotificationService renders the subject/message for each type, resolves the
owner's email through the PrincipalDirectory and hands the result to a
Transport. Principals without an email address are skipped.

Notification types:
  new_key     — a key was generated or rotated (optional "link" in data)
  block       — the key was blocked (failure limit or admin action)
  unblock     — the key was unblocked
  revoke      — the key was revoked
  rate_limit  — the key hit its rate limit
"""

from __future__ import annotations

import time
from typing import Any, Optional, Protocol, runtime_checkable

from sentinel_key.notify.transport import Notification, Transport
from sentinel_key.principals import PrincipalDirectory
from sentinel_key.utils.logger import get_logger

logger = get_logger(__name__)

NEW_KEY = "new_key"
BLOCK = "block"
UNBLOCK = "unblock"
REVOKE = "revoke"
RATE_LIMIT = "rate_limit"

# type -> (subject, message)
_TEMPLATES: dict[str, tuple[str, str]] = {
    NEW_KEY: (
        "Your new API key",
        "A new API key has been generated for your account.",
    ),
    BLOCK: (
        "Your API key has been blocked",
        "Your API key has been blocked due to security concerns. "
        "Please contact support for further information.",
    ),
    UNBLOCK: (
        "Your API key has been unblocked",
        "Your API key has been unblocked and is active again.",
    ),
    REVOKE: (
        "Your API key has been revoked",
        "Your API key has been revoked. If this is unexpected, please contact support.",
    ),
    RATE_LIMIT: (
        "API key rate limit reached",
        "Your API key has reached its rate limit. Please reduce your request frequency.",
    ),
}

NOTIFICATION_TYPES: frozenset[str] = frozenset(_TEMPLATES)


@runtime_checkable
class Notifier(Protocol):
    """Fire-and-forget owner notification."""

    async def notify(self, type: str, owner_id: str, data: Optional[dict[str, Any]] = None) -> None:
        ...


class NullNotifier:
    """Notifier that drops everything (notifications disabled)."""

    async def notify(self, type: str, owner_id: str, data: Optional[dict[str, Any]] = None) -> None:
        logger.debug("Notification suppressed (disabled)", notification_type=type, owner_id=owner_id)


def render(type: str, data: dict[str, Any]) -> tuple[str, str]:
    """Subject and message body for a notification type.

    Raises:
        ValueError: Unknown notification type.
    """
    try:
        subject, message = _TEMPLATES[type]
    except KeyError:
        raise ValueError(f"Unknown notification type: {type!r}") from None
    if type == NEW_KEY and data.get("link"):
        message += f"\nClick this secure link to view your API key: {data['link']}"
    return subject, message


class NotificationService:
    """Renders and delivers owner notifications.

    Args:
        directory: Resolves owner_id → Principal (for the email address).
        transport: Delivery mechanism.
    """

    def __init__(self, directory: PrincipalDirectory, transport: Transport) -> None:
        self._directory = directory
        self._transport = transport

    async def notify(self, type: str, owner_id: str, data: Optional[dict[str, Any]] = None) -> None:
        """Render and deliver one notification.

        Raises:
            ValueError: Unknown notification type.
            Exception:  Whatever the transport raises — callers treat
                        notification as best-effort and log it.
        """
        data = dict(data or {})
        subject, message = render(type, data)

        principal = await self._directory.load(owner_id)
        if principal is None or not principal.email:
            logger.debug("Notification skipped: no email address", notification_type=type, owner_id=owner_id)
            return

        notification = Notification(
            type=type,
            owner_id=owner_id,
            email=principal.email,
            subject=subject,
            message=message,
            timestamp=time.time(),
            data=data,
        )
        await self._transport.send(notification)
        logger.info("Notification sent", notification_type=type, owner_id=owner_id)

    async def close(self) -> None:
        await self._transport.close()
