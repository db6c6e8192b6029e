"""Programmatic uvicorn entry point for Sentinel Key.

Binds to ``server.host``/``server.port`` from the loaded config
(127.0.0.1:8080 by default; SENTINEL_KEY_PORT overrides the port).

Usage:
    python -m sentinel_key.run
    sentinel-key                # console script
"""

from __future__ import annotations

import uvicorn

from sentinel_key.config import load_config
from sentinel_key.constants import (
    SERVER_BACKLOG,
    SERVER_LIMIT_CONCURRENCY,
    SERVER_TIMEOUT_KEEP_ALIVE,
)
from sentinel_key.utils.logger import get_logger

logger = get_logger(__name__)


def main() -> None:
    """Load config and serve ``sentinel_key.main:app``.

    Raises:
        SystemExit: Propagated from load_config() on config errors.
    """
    config = load_config()
    if config.server.host == "0.0.0.0":
        logger.warning(
            "Sentinel Key is listening on all interfaces; make sure the host "
            "is reachable only through a trusted network or proxy."
        )

    uvicorn.run(
        "sentinel_key.main:app",
        host=config.server.host,
        port=config.server.port,
        limit_concurrency=SERVER_LIMIT_CONCURRENCY,
        backlog=SERVER_BACKLOG,
        timeout_keep_alive=SERVER_TIMEOUT_KEEP_ALIVE,
    )


if __name__ == "__main__":
    main()
