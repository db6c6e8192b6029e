"""KeyStore / StateStore protocols.

The lifecycle service and authentication pipeline depend only on these
interfaces; SQLiteKeyStore (store/sqlite_store.py) is the bundled
implementation. All methods are async.

Implementations must raise StorageError (or a subclass) on persistence
failure so lifecycle callers can surface it.
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from sentinel_key.models.key import ApiKeyRecord, KeyUsageEvent


@runtime_checkable
class KeyStore(Protocol):
    """Persistence of ApiKeyRecords, indexed by hashed key and by owner."""

    async def find_by_hash(self, hashed_key: str) -> Optional[ApiKeyRecord]:
        """Record whose hashed_key equals ``hashed_key``, or None."""
        ...

    async def find_by_owner(self, owner_id: str) -> Optional[ApiKeyRecord]:
        """The owner's record, or None."""
        ...

    async def get(self, key_id: str) -> Optional[ApiKeyRecord]:
        """Record by id, or None."""
        ...

    async def save(self, record: ApiKeyRecord) -> None:
        """Insert or update ``record`` (by id).

        Raises:
            DuplicateOwnerError: Another record already belongs to the owner.
        """
        ...

    async def delete(self, record: ApiKeyRecord) -> None:
        """Delete ``record``; absent records are not an error."""
        ...

    async def set_blocked(self, key_id: str, blocked: bool, now: float) -> bool:
        """Write only the blocked flag (and updated_at). False if ``key_id`` is unknown."""
        ...

    async def set_enabled(self, key_id: str, enabled: bool, now: float) -> bool:
        """Write only the enabled flag (and updated_at). False if ``key_id`` is unknown."""
        ...

    async def replace_material(self, key_id: str, hashed_key: str, encrypted_payload: str, now: float) -> bool:
        """Write only the key material (and updated_at). False if ``key_id`` is unknown."""
        ...

    async def all(self) -> list[ApiKeyRecord]:
        """Every record, oldest first."""
        ...

    async def log_usage(self, event: KeyUsageEvent) -> None:
        """Append one usage-log row."""
        ...

    async def count_usage(self, key_id: str, since: float, success: Optional[bool] = None) -> int:
        """Number of usage rows for ``key_id`` at or after ``since``.

        ``success`` filters to successes (True) or failures (False).
        """
        ...

    async def delete_expired_before(self, cutoff: float) -> int:
        """Delete records with an expiry earlier than ``cutoff``; returns count."""
        ...


@runtime_checkable
class StateStore(Protocol):
    """Small persistent name → value map (e.g. the master secret fingerprint)."""

    async def get_state(self, name: str) -> Optional[str]:
        ...

    async def set_state(self, name: str, value: str) -> None:
        ...
