"""Sentinel Key notification package.

    service.py   — Notifier protocol, NotificationService, NullNotifier, templates
    transport.py — Notification, LogTransport, WebhookTransport
"""

from sentinel_key.notify.service import (
    BLOCK,
    NEW_KEY,
    NOTIFICATION_TYPES,
    RATE_LIMIT,
    REVOKE,
    UNBLOCK,
    NotificationService,
    Notifier,
    NullNotifier,
    render,
)
from sentinel_key.notify.transport import LogTransport, Notification, WebhookTransport

__all__ = [
    "BLOCK",
    "NEW_KEY",
    "NOTIFICATION_TYPES",
    "RATE_LIMIT",
    "REVOKE",
    "UNBLOCK",
    "LogTransport",
    "Notification",
    "NotificationService",
    "Notifier",
    "NullNotifier",
    "WebhookTransport",
    "render",
]
