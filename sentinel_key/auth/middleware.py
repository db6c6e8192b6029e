"""HTTP integration of the authentication pipeline.

``authenticate_request()`` is a FastAPI Depends()-compatible dependency: it
runs the AuthenticationPipeline held on ``app.state.container`` and returns
the authenticated Principal. Every denial, whatever its reason, raises
AccessDenied, rendered by ``access_denied_handler`` as::

    HTTP 403  {"message": "Unauthorized"}

The denial reason is written to the audit log only.

``RequestAuditMiddleware`` logs one "API request received" line for every
request that carries a credential, before authentication runs.
"""

from __future__ import annotations

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from sentinel_key.auth.pipeline import AuthenticationPipeline, client_ip_of
from sentinel_key.principals import Principal
from sentinel_key.utils.logger import clear_request_id, get_logger, set_request_id
from sentinel_key.utils.ulid import generate_ulid

logger = get_logger(__name__)

UNAUTHORIZED_BODY: dict = {"message": "Unauthorized"}


class AccessDenied(Exception):
    """Raised by authenticate_request() on any denial."""


async def access_denied_handler(request: Request, exc: AccessDenied) -> JSONResponse:
    return JSONResponse(status_code=403, content=UNAUTHORIZED_BODY)


def _pipeline(request: Request) -> AuthenticationPipeline:
    return request.app.state.container.pipeline


async def authenticate_request(request: Request) -> Principal:
    """FastAPI dependency: authenticate the API key carried by the request.

    Returns:
        The key owner's Principal. The key id is stored on
        ``request.state.key_id``.

    Raises:
        AccessDenied: No credential, or the pipeline denied the request.
    """
    pipeline = _pipeline(request)

    if not pipeline.applies(request):
        logger.warning(
            "Authentication failed: no API key",
            path=request.url.path,
            method=request.method,
        )
        raise AccessDenied()

    outcome = await pipeline.authenticate(request)
    if not outcome.authenticated:
        raise AccessDenied()

    request.state.key_id = outcome.key_id
    return outcome.principal  # type: ignore[return-value]


class RequestAuditMiddleware(BaseHTTPMiddleware):
    """Log credential-bearing requests and bind a request id to the log context.

    Registration (in create_app() in sentinel_key/main.py):
        application.add_middleware(RequestAuditMiddleware)
    """

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        set_request_id(request.headers.get("x-request-id") or generate_ulid())
        try:
            container = getattr(request.app.state, "container", None)
            if container is not None and container.pipeline.applies(request):
                logger.info(
                    f"API request received: {request.url.path} from {client_ip_of(request)}",
                    path=request.url.path,
                    method=request.method,
                )
            return await call_next(request)
        finally:
            clear_request_id()
