"""Automatic key issuance on user registration and login.

A key is issued when auto-generation is enabled and the user holds at least
one of the configured roles. On login the user must not own a key yet.
Expiry is ``now + duration unit``; a duration of 0 issues a non-expiring key.

Failures are logged and never raised: registration and login must not break
because a key could not be issued.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

from sentinel_key.auth.lifecycle import KeyLifecycleService
from sentinel_key.config import AutoGenerateConfig
from sentinel_key.events import USER_LOGIN, USER_REGISTERED, EventBus
from sentinel_key.models.key import GeneratedKey, expires_in
from sentinel_key.principals import Principal
from sentinel_key.utils.logger import get_logger

logger = get_logger(__name__)


class AutoGenerator:
    def __init__(
        self,
        config: AutoGenerateConfig,
        lifecycle: KeyLifecycleService,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._lifecycle = lifecycle
        self._clock = clock

    def register(self, bus: EventBus) -> None:
        bus.subscribe(USER_REGISTERED, self.on_user_registered)
        bus.subscribe(USER_LOGIN, self.on_user_login)

    def eligible(self, principal: Principal) -> bool:
        """Enabled, and the principal holds at least one configured role."""
        if not self._config.enabled or not self._config.roles:
            return False
        return bool(set(principal.roles) & set(self._config.roles))

    async def on_user_registered(self, principal: Principal) -> Optional[GeneratedKey]:
        if not self.eligible(principal):
            return None
        return await self._generate(principal)

    async def on_user_login(self, principal: Principal) -> Optional[GeneratedKey]:
        if not self.eligible(principal):
            return None
        if await self._lifecycle.has_key(principal.owner_id):
            return None
        return await self._generate(principal)

    async def _generate(self, principal: Principal) -> Optional[GeneratedKey]:
        try:
            expires_at = expires_in(self._config.duration, self._config.unit, now=self._clock())
            generated = await self._lifecycle.generate(principal.owner_id, expires_at=expires_at)
        except Exception as exc:
            logger.error(
                "Failed to auto-generate API key",
                owner_id=principal.owner_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None

        logger.info(
            "Auto-generated API key",
            owner_id=principal.owner_id,
            key_id=generated.record.id,
        )
        return generated
