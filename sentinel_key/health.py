"""Health endpoint for Sentinel Key.

  GET /health — 503 before ``app.state.ready`` is set, 200 afterwards.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Primary health check endpoint.

    Response body (200):
        {
          "status": "ok" | "degraded",
          "store": "/path/to/keys.db",
          "encryption": "configured" | "missing"
        }

    ``degraded`` means no master secret is configured: authentication of
    existing keys still works, but keys cannot be issued or revealed.
    """
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={
                "status": "starting",
                "message": "Sentinel Key is starting up...",
            },
        )

    container = request.app.state.container
    encryption_ok = container.vault.has_secret()
    return {
        "status": "ok" if encryption_ok else "degraded",
        "store": container.store.db_path,
        "encryption": "configured" if encryption_ok else "missing",
    }
