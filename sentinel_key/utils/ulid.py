"""ULID generation utility for Sentinel Key.

Provides ``generate_ulid()``, used for:
  - ApiKeyRecord.id (opaque, immutable, sortable by creation time)
  - X-Request-ID values bound to the logging context per request

Uses the ``python-ulid`` library — do NOT hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Returns:
        str: Crockford Base32 ULID (charset ``[0-9A-HJKMNP-TV-Z]``, 26 chars).

    Example::

        key_id = generate_ulid()
        # "01KJ0JRVHYA7KX32VPN5ZSCTMV"
    """
    return str(ULID())
