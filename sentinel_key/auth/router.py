"""API key protected endpoints.

Provides (mounted under ``/api``):
  GET  /api/sentinel           — protected resource: greets the key owner
  GET  /api/keys/me            — status and recent usage of the caller's key
  GET  /api/keys/me/reveal     — decrypt and return the caller's raw key
  POST /api/keys/me/rotate     — replace the caller's key (new key shown once)

Every endpoint authenticates with Depends(authenticate_request); the key
owner is always taken from the authenticated key, never from the request.
Any denial is rendered as HTTP 403 {"message": "Unauthorized"}.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from sentinel_key.auth.limiter import KEY_MANAGEMENT_RATE_LIMIT, limiter
from sentinel_key.auth.middleware import authenticate_request
from sentinel_key.container import Container
from sentinel_key.errors import (
    CryptoUnavailableError,
    DecryptionError,
    KeyNotFoundError,
    NoSecretConfiguredError,
)
from sentinel_key.principals import Principal
from sentinel_key.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["api-keys"])


def _container(request: Request) -> Container:
    return request.app.state.container


# ─── Response Models ──────────────────────────────────────────────────────────


class UsageResponse(BaseModel):
    timeframe: str
    successes: int
    failures: int


class KeyStatusResponse(BaseModel):
    """Response body for GET /api/keys/me. Never carries key material."""

    id: str
    label: str
    enabled: bool
    blocked: bool
    expires_at: Optional[float] = None
    created_at: float
    usage: UsageResponse


class RevealResponse(BaseModel):
    key: str


class RotatedKeyResponse(BaseModel):
    """Response body for POST /api/keys/me/rotate."""

    id: str
    label: str
    key: str
    """The new raw key. Returned once, never stored in cleartext."""
    expires_at: Optional[float] = None
    message: str


# ─── Protected resource ───────────────────────────────────────────────────────


@router.get("/sentinel")
async def sentinel_resource(principal: Principal = Depends(authenticate_request)) -> dict:
    """Protected resource.

    Returns:
        JSON: {"message": "Access granted!", "user": "<display name>"}
    """
    return {"message": "Access granted!", "user": principal.display_name}


# ─── Self-service key management ──────────────────────────────────────────────


@router.get("/keys/me")
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def get_my_key(
    request: Request,
    principal: Principal = Depends(authenticate_request),
) -> KeyStatusResponse:
    """Status of the caller's key and its usage inside the rate-limit timeframe.

    Returns:
        JSON: {id, label, enabled, blocked, expires_at, created_at,
               usage: {timeframe, successes, failures}}
    """
    container = _container(request)
    record = await container.store.find_by_owner(principal.owner_id)
    if record is None:
        # Revoked between authentication and this lookup
        raise HTTPException(status_code=404, detail="API key not found")

    summary = await container.lifecycle.usage_summary(
        record.id, container.config.max_rate_limit_time
    )
    return KeyStatusResponse(
        id=record.id,
        label=record.label,
        enabled=record.enabled,
        blocked=record.blocked,
        expires_at=record.expires_at,
        created_at=record.created_at,
        usage=UsageResponse(
            timeframe=summary.timeframe,
            successes=summary.successes,
            failures=summary.failures,
        ),
    )


@router.get("/keys/me/reveal")
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def reveal_my_key(
    request: Request,
    principal: Principal = Depends(authenticate_request),
) -> RevealResponse:
    """Decrypt and return the caller's raw key.

    Raises:
        HTTPException(404): The key was revoked in the meantime.
        HTTPException(409): The payload no longer decrypts under the active secret.
        HTTPException(503): No master secret configured.
    """
    try:
        raw_key = await _container(request).lifecycle.reveal(principal.owner_id)
    except KeyNotFoundError:
        raise HTTPException(status_code=404, detail="API key not found")
    except DecryptionError:
        logger.warning("Stored API key could not be decrypted", owner_id=principal.owner_id)
        raise HTTPException(
            status_code=409,
            detail="API key cannot be decrypted. Rotate the key to obtain a new one.",
        )
    except NoSecretConfiguredError:
        raise HTTPException(status_code=503, detail="Encryption is not configured")

    return RevealResponse(key=raw_key)


@router.post("/keys/me/rotate")
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def rotate_my_key(
    request: Request,
    principal: Principal = Depends(authenticate_request),
) -> RotatedKeyResponse:
    """Replace the caller's key, keeping its expiry.

    Returns:
        JSON: {id, label, key, expires_at, message}. ``key`` is shown once.

    Raises:
        HTTPException(503): No master secret configured.
    """
    try:
        generated = await _container(request).lifecycle.rotate(principal.owner_id)
    except CryptoUnavailableError:
        raise HTTPException(status_code=503, detail="Encryption is not configured")

    logger.info("API key rotated via API", owner_id=principal.owner_id, key_id=generated.record.id)
    return RotatedKeyResponse(
        id=generated.record.id,
        label=generated.record.label,
        key=generated.raw_key,
        expires_at=generated.record.expires_at,
        message="Store this key securely. It will not be shown again.",
    )
