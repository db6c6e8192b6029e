"""ApiKeyRecord and related data contracts.

One ApiKeyRecord per principal. The raw key never appears here: only its
SHA-256 digest (``hashed_key``, the lookup index) and its AES ciphertext
(``encrypted_payload``, shown to the owner on demand).

Timestamps are UNIX seconds (float) throughout.
"""

from __future__ import annotations

import base64
import re
import secrets
import time
from dataclasses import dataclass, field, replace
from typing import Optional

from sentinel_key.constants import LABEL_RANDOM_BYTES

_HEX_SHA256_RE = re.compile(r"^[0-9a-f]{64}$")

# Units accepted by expires_in(); the auto-generate config uses the same set.
_UNIT_SECONDS: dict[str, int] = {
    "minutes": 60,
    "hours": 3600,
    "days": 86400,
    "weeks": 7 * 86400,
    "months": 30 * 86400,
    "years": 365 * 86400,
}

VALID_DURATION_UNITS: frozenset[str] = frozenset(_UNIT_SECONDS)


def generate_label() -> str:
    """Default record label: ``Key-`` + 6 uppercase base64 characters."""
    return "Key-" + base64.b64encode(secrets.token_bytes(LABEL_RANDOM_BYTES)).decode()[:6].upper()


def expires_in(duration: int, unit: str, now: Optional[float] = None) -> Optional[float]:
    """Absolute expiry ``now + duration * unit``; None when duration is 0.

    Raises:
        ValueError: Unknown unit or negative duration.
    """
    if duration < 0:
        raise ValueError(f"duration must be >= 0, got {duration}")
    if unit not in _UNIT_SECONDS:
        raise ValueError(f"Unknown duration unit: {unit!r}")
    if duration == 0:
        return None
    if now is None:
        now = time.time()
    return now + duration * _UNIT_SECONDS[unit]


# ─── ApiKeyRecord ─────────────────────────────────────────────────────────────


@dataclass
class ApiKeyRecord:
    """Persistent API key record (one per owner)."""

    id: str
    owner_id: str
    hashed_key: str
    encrypted_payload: str
    enabled: bool = True
    blocked: bool = False
    expires_at: Optional[float] = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    label: str = field(default_factory=generate_label)

    def is_expired(self, now: Optional[float] = None) -> bool:
        """True when an expiry is set and lies in the past."""
        if self.expires_at is None:
            return False
        if now is None:
            now = time.time()
        return now > self.expires_at

    def with_material(self, hashed_key: str, encrypted_payload: str, now: float) -> "ApiKeyRecord":
        """Copy with both key columns replaced together."""
        return replace(
            self,
            hashed_key=hashed_key,
            encrypted_payload=encrypted_payload,
            updated_at=now,
        )


def validate_record(record: ApiKeyRecord) -> list[str]:
    """Return a list of violations (empty when the record is valid)."""
    violations: list[str] = []
    if not record.id:
        violations.append("id must not be empty")
    if not record.owner_id:
        violations.append("owner_id must not be empty")
    if not _HEX_SHA256_RE.match(record.hashed_key or ""):
        violations.append("hashed_key must be a 64-char lowercase SHA-256 hex digest")
    if not record.encrypted_payload:
        violations.append("encrypted_payload must not be empty")
    if record.expires_at is not None and record.expires_at <= 0:
        violations.append("expires_at must be a positive timestamp or None")
    return violations


# ─── Generation Result ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class GeneratedKey:
    """Result of generate()/rotate(): the stored record plus the raw key.

    The raw key is handed to the caller once; it is recoverable later only by
    decrypting ``record.encrypted_payload``.
    """

    record: ApiKeyRecord
    raw_key: str

    def __repr__(self) -> str:
        return f"GeneratedKey(record_id={self.record.id!r}, owner_id={self.record.owner_id!r})"


# ─── Usage Log ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class KeyUsageEvent:
    """One authentication attempt attributed to a known key."""

    key_id: str
    success: bool
    timestamp: float = field(default_factory=time.time)
    client_ip: Optional[str] = None
    path: Optional[str] = None


@dataclass(frozen=True)
class UsageSummary:
    """Success/failure counts for a key over a Timeframe."""

    key_id: str
    timeframe: str
    successes: int
    failures: int

    @property
    def total(self) -> int:
        return self.successes + self.failures
