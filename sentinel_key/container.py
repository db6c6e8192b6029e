"""Object graph for one Sentinel Key deployment.

build_container() wires every component once, explicitly, from the loaded
config and an initialized store. The FastAPI lifespan stores the result on
``app.state.container``; tests build it directly with fakes.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from sentinel_key.auth.autogen import AutoGenerator
from sentinel_key.auth.lifecycle import KeyLifecycleService
from sentinel_key.auth.pipeline import AuthenticationPipeline
from sentinel_key.auth.ratelimit import RateLimitCounter
from sentinel_key.auth.watcher import MasterKeyRotationWatcher
from sentinel_key.cache.memory import Cache, MemoryCache
from sentinel_key.config import SentinelConfig
from sentinel_key.crypto.vault import CryptoVault
from sentinel_key.events import CACHE_FLUSH, EventBus
from sentinel_key.notify.service import NotificationService, Notifier, NullNotifier
from sentinel_key.notify.transport import LogTransport, Transport, WebhookTransport
from sentinel_key.principals import InMemoryPrincipalDirectory, PrincipalDirectory
from sentinel_key.store.sqlite_store import SQLiteKeyStore
from sentinel_key.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Container:
    config: SentinelConfig
    store: SQLiteKeyStore
    cache: Cache
    vault: CryptoVault
    directory: PrincipalDirectory
    notifier: Notifier
    bus: EventBus
    counter: RateLimitCounter
    lifecycle: KeyLifecycleService
    pipeline: AuthenticationPipeline
    watcher: MasterKeyRotationWatcher
    autogen: AutoGenerator

    async def close(self) -> None:
        """Release the notifier transport and the store connection."""
        if isinstance(self.notifier, NotificationService):
            await self.notifier.close()
        await self.store.close()


def build_notifier(
    config: SentinelConfig,
    directory: PrincipalDirectory,
    transport: Optional[Transport] = None,
) -> Notifier:
    """NullNotifier when disabled; otherwise webhook delivery if configured, else log."""
    if not config.notifications.enabled:
        return NullNotifier()
    if transport is None:
        if config.notifications.webhook_url:
            transport = WebhookTransport(config.notifications.webhook_url)
        else:
            transport = LogTransport()
    return NotificationService(directory, transport)


def build_container(
    config: SentinelConfig,
    store: SQLiteKeyStore,
    directory: Optional[PrincipalDirectory] = None,
    cache: Optional[Cache] = None,
    transport: Optional[Transport] = None,
    clock: Callable[[], float] = time.time,
) -> Container:
    """Wire all components.

    Args:
        config:    Loaded configuration.
        store:     An initialized SQLiteKeyStore (also used as StateStore).
        directory: Principal lookup; defaults to an empty in-memory directory.
        cache:     Counter cache; defaults to a MemoryCache on ``clock``.
        transport: Notification transport override.
        clock:     Time source shared by every component.
    """
    directory = directory if directory is not None else InMemoryPrincipalDirectory()
    cache = cache if cache is not None else MemoryCache(clock=clock)
    vault = CryptoVault(config_secret=config.master_secret)
    notifier = build_notifier(config, directory, transport)

    counter = RateLimitCounter(cache, store, clock=clock)
    lifecycle = KeyLifecycleService(
        store,
        vault,
        notifier,
        clock=clock,
        key_link_base=config.notifications.key_link_base,
        counter=counter,
    )
    pipeline = AuthenticationPipeline(
        config,
        vault,
        store,
        counter,
        directory,
        notifier,
        clock=clock,
    )
    watcher = MasterKeyRotationWatcher(vault, store, lifecycle)
    autogen = AutoGenerator(config.auto_generate, lifecycle, clock=clock)

    bus = EventBus()
    bus.subscribe(CACHE_FLUSH, watcher.on_cache_flush)
    autogen.register(bus)

    logger.debug(
        "Container built",
        notifier=type(notifier).__name__,
        auto_generate=config.auto_generate.enabled,
    )
    return Container(
        config=config,
        store=store,
        cache=cache,
        vault=vault,
        directory=directory,
        notifier=notifier,
        bus=bus,
        counter=counter,
        lifecycle=lifecycle,
        pipeline=pipeline,
        watcher=watcher,
        autogen=autogen,
    )
