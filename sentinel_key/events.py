"""In-process event bus.

Host applications publish account events; Sentinel Key components subscribe:

  USER_REGISTERED  payload: Principal   → AutoGenerator
  USER_LOGIN       payload: Principal   → AutoGenerator
  CACHE_FLUSH      payload: None        → MasterKeyRotationWatcher

Handlers run sequentially, highest priority first, then in subscription
order. An exception raised by a handler propagates to the publisher and
stops the remaining handlers.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Awaitable, Callable

from sentinel_key.utils.logger import get_logger

logger = get_logger(__name__)

USER_REGISTERED = "sentinel_key.user_registered"
USER_LOGIN = "sentinel_key.user_login"
CACHE_FLUSH = "sentinel_key.cache_flush"

Handler = Callable[[Any], Awaitable[Any]]


class EventBus:
    """Ordered async fan-out of named events."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[tuple[int, int, Handler]]] = defaultdict(list)
        self._seq = 0

    def subscribe(self, event: str, handler: Handler, priority: int = 0) -> None:
        """Register ``handler`` for ``event``. Higher priority runs first."""
        self._seq += 1
        handlers = self._handlers[event]
        handlers.append((-priority, self._seq, handler))
        handlers.sort(key=lambda entry: (entry[0], entry[1]))

    def handlers(self, event: str) -> list[Handler]:
        return [handler for _, _, handler in self._handlers.get(event, [])]

    async def publish(self, event: str, payload: Any = None) -> int:
        """Deliver ``payload`` to every handler of ``event``.

        Returns:
            Number of handlers invoked.
        """
        handlers = self.handlers(event)
        logger.debug("Publishing event", event_name=event, handler_count=len(handlers))
        for handler in handlers:
            await handler(payload)
        return len(handlers)
