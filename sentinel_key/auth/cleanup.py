"""Periodic purge of long-expired API keys.

Registered as an asyncio task during the FastAPI lifespan startup and
cancelled on shutdown.
"""

from __future__ import annotations

import asyncio

from sentinel_key.auth.lifecycle import KeyLifecycleService
from sentinel_key.constants import DEFAULT_CLEANUP_INTERVAL_SECONDS, DEFAULT_PURGE_AFTER_SECONDS
from sentinel_key.utils.logger import get_logger

logger = get_logger(__name__)

# Delay before retrying after a failed purge.
CLEANUP_RETRY_SECONDS = 300


async def run_cleanup_task(
    lifecycle: KeyLifecycleService,
    interval_seconds: int = DEFAULT_CLEANUP_INTERVAL_SECONDS,
    purge_after_seconds: int = DEFAULT_PURGE_AFTER_SECONDS,
) -> None:
    """Background task: purge_expired() every ``interval_seconds``.

    Retry policy:
      - asyncio.CancelledError → re-raised (expected on shutdown)
      - Any other exception    → log ERROR, retry after CLEANUP_RETRY_SECONDS
    """
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            deleted = await lifecycle.purge_expired(purge_after_seconds)
            logger.info(
                "expired_key_cleanup_complete",
                deleted_count=deleted,
                purge_after_seconds=purge_after_seconds,
            )

        except asyncio.CancelledError:
            logger.info("expired_key_cleanup_cancelled")
            raise

        except Exception as exc:
            logger.error(
                "expired_key_cleanup_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                retry_in_seconds=CLEANUP_RETRY_SECONDS,
            )
            await asyncio.sleep(CLEANUP_RETRY_SECONDS)
