"""Shared slowapi rate limiter for the self-service key endpoints.

This is an HTTP-level cap per client address, independent of the per-key
usage window enforced by the authentication pipeline.

Shared between:
  - sentinel_key/auth/router.py  (route decorators)
  - sentinel_key/main.py         (app.state.limiter + SlowAPIMiddleware)
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

# Reveal and rotate expose or replace key material
KEY_MANAGEMENT_RATE_LIMIT = "20/minute"
