"""KeyLifecycleService — issue, rotate, revoke and regenerate API keys.

Every key is stored twice, never in cleartext:
  hashed_key         sha256(raw) — the lookup index used at request time
  encrypted_payload  AES-256-CBC(raw) under the master secret — shown to the
                     owner on demand via reveal()

Both columns are always replaced in the same store write. Status changes
(block, enable) and material swaps use column-targeted store writes, so a
concurrent block is never overwritten by a stale record.

Failure semantics:
  - No master secret         → CryptoUnavailableError (generate / regenerate)
  - Store failure            → StorageError propagates to the caller
  - Notification failure     → logged and swallowed (issuance never depends on it)
"""

from __future__ import annotations

import base64
import secrets
import time
from dataclasses import replace
from typing import Any, Callable, Optional, Union

from sentinel_key.auth.ratelimit import RateLimitCounter
from sentinel_key.constants import DEFAULT_PURGE_AFTER_SECONDS, RAW_KEY_BYTES
from sentinel_key.crypto.vault import CryptoVault
from sentinel_key.errors import (
    CryptoUnavailableError,
    KeyNotFoundError,
    NoSecretConfiguredError,
)
from sentinel_key.models.key import (
    ApiKeyRecord,
    GeneratedKey,
    UsageSummary,
    generate_label,
    validate_record,
)
from sentinel_key.models.timeframe import Timeframe
from sentinel_key.notify.service import BLOCK, NEW_KEY, REVOKE, UNBLOCK, Notifier
from sentinel_key.store.protocol import KeyStore
from sentinel_key.utils.logger import PerformanceLogger, get_logger
from sentinel_key.utils.ulid import generate_ulid

logger = get_logger(__name__)


def generate_raw_key() -> str:
    """32 random bytes, base64-encoded (44 characters)."""
    return base64.b64encode(secrets.token_bytes(RAW_KEY_BYTES)).decode("ascii")


class KeyLifecycleService:
    """Key lifecycle operations.

    Args:
        store:          KeyStore collaborator.
        vault:          CryptoVault for hashing/encryption.
        notifier:       Owner notification sink (best-effort).
        clock:          Time source (UNIX seconds).
        key_link_base:  When set, new_key notifications carry
                        ``{key_link_base}/{owner_id}`` as their link.
        counter:        When set, usage and failure windows are reset
                        whenever a key gets new material.
    """

    def __init__(
        self,
        store: KeyStore,
        vault: CryptoVault,
        notifier: Notifier,
        clock: Callable[[], float] = time.time,
        key_link_base: Optional[str] = None,
        counter: Optional[RateLimitCounter] = None,
    ) -> None:
        self._store = store
        self._vault = vault
        self._notifier = notifier
        self._clock = clock
        self._key_link_base = key_link_base.rstrip("/") if key_link_base else None
        self._counter = counter

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _new_material(self) -> tuple[str, str, str]:
        """Fresh (raw_key, hashed_key, encrypted_payload).

        Raises:
            CryptoUnavailableError: No master secret resolvable.
        """
        raw = generate_raw_key()
        try:
            payload = self._vault.encrypt(raw)
        except NoSecretConfiguredError as exc:
            raise CryptoUnavailableError() from exc
        return raw, self._vault.hash(raw), payload

    async def _notify(self, kind: str, owner_id: str, data: Optional[dict[str, Any]] = None) -> None:
        try:
            await self._notifier.notify(kind, owner_id, data)
        except Exception as exc:
            logger.warning(
                "Notification failed (ignored)",
                notification_type=kind,
                owner_id=owner_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    def _new_key_data(self, owner_id: str) -> dict[str, Any]:
        if self._key_link_base is None:
            return {}
        return {"link": f"{self._key_link_base}/{owner_id}"}

    async def _reset_windows(self, key_id: str) -> None:
        if self._counter is not None:
            await self._counter.reset_key(key_id)

    async def _require(self, owner_id: str) -> ApiKeyRecord:
        record = await self._store.find_by_owner(owner_id)
        if record is None:
            raise KeyNotFoundError(f"No API key for owner {owner_id!r}")
        return record

    # ── Generation ────────────────────────────────────────────────────────────

    async def generate(
        self,
        owner_id: str,
        expires_at: Optional[float] = None,
        label: Optional[str] = None,
    ) -> GeneratedKey:
        """Issue a new key for ``owner_id``, replacing any existing one.

        An existing record keeps its id and label (unless ``label`` is given);
        its blocked flag is cleared and it is re-enabled.

        Returns:
            GeneratedKey — the raw key must be shown to the owner now.

        Raises:
            CryptoUnavailableError: No master secret configured.
            StorageError: Persistence failed.
        """
        raw, hashed, payload = self._new_material()
        now = self._clock()

        existing = await self._store.find_by_owner(owner_id)
        if existing is not None:
            record = replace(
                existing.with_material(hashed, payload, now),
                enabled=True,
                blocked=False,
                expires_at=expires_at,
                label=label or existing.label,
            )
        else:
            record = ApiKeyRecord(
                id=generate_ulid(),
                owner_id=owner_id,
                hashed_key=hashed,
                encrypted_payload=payload,
                expires_at=expires_at,
                created_at=now,
                updated_at=now,
                label=label or generate_label(),
            )

        violations = validate_record(record)
        if violations:
            raise ValueError(f"Invalid API key record: {'; '.join(violations)}")

        await self._store.save(record)
        if existing is not None:
            await self._reset_windows(record.id)
        logger.info(
            "API key generated",
            owner_id=owner_id,
            key_id=record.id,
            replaced=existing is not None,
            expires_at=expires_at,
        )

        await self._notify(NEW_KEY, owner_id, self._new_key_data(owner_id))
        return GeneratedKey(record=record, raw_key=raw)

    async def _delete(self, owner_id: str) -> Optional[ApiKeyRecord]:
        record = await self._store.find_by_owner(owner_id)
        if record is None:
            return None
        await self._store.delete(record)
        return record

    async def revoke(self, owner_id: str) -> bool:
        """Delete the owner's key.

        Returns:
            True if a key was deleted, False if the owner had none.
        """
        record = await self._delete(owner_id)
        if record is None:
            logger.debug("revoke: owner has no API key", owner_id=owner_id)
            return False

        logger.info("API key revoked", owner_id=owner_id, key_id=record.id)
        await self._notify(REVOKE, owner_id)
        return True

    async def rotate(self, owner_id: str) -> GeneratedKey:
        """Revoke and re-issue the owner's key, keeping its expiry and label.

        An owner without a key simply gets a new, non-expiring one. A crash
        between the delete and the insert leaves the owner keyless; calling
        rotate() or generate() again recovers from that state.

        Raises:
            CryptoUnavailableError: No master secret configured.
        """
        # Fail before deleting anything when encryption is unavailable
        if not self._vault.has_secret():
            raise CryptoUnavailableError()

        current = await self._delete(owner_id)
        generated = await self.generate(
            owner_id,
            expires_at=current.expires_at if current else None,
            label=current.label if current else None,
        )
        logger.info(
            "API key rotated",
            owner_id=owner_id,
            old_key_id=current.id if current else None,
            new_key_id=generated.record.id,
        )
        return generated

    async def force_regenerate_all(self) -> int:
        """Replace the key material of every record.

        owner_id, expires_at, enabled and blocked are preserved; hashed_key and
        encrypted_payload are both replaced. Not transactional across records:
        a crash part-way leaves a partially regenerated set, and re-running
        is safe.

        Returns:
            Number of records regenerated.

        Raises:
            CryptoUnavailableError: No master secret configured.
        """
        records = await self._store.all()
        if records and not self._vault.has_secret():
            raise CryptoUnavailableError()

        count = 0
        with PerformanceLogger("force_regenerate_all", logger, warn_after_ms=5000):
            for record in records:
                _raw, hashed, payload = self._new_material()
                if not await self._store.replace_material(record.id, hashed, payload, self._clock()):
                    continue
                await self._reset_windows(record.id)
                count += 1
                await self._notify(NEW_KEY, record.owner_id, self._new_key_data(record.owner_id))

        if count:
            logger.warning(
                f"Total {count} API keys have been regenerated due to encryption key change.",
                count=count,
            )
        return count

    # ── Status ────────────────────────────────────────────────────────────────

    async def toggle_block(self, key: Union[str, ApiKeyRecord]) -> bool:
        """Flip the blocked flag of a key (by id or record).

        Returns:
            False if no such key exists, True otherwise.
        """
        key_id = key.id if isinstance(key, ApiKeyRecord) else key
        record = await self._store.get(key_id)
        if record is None:
            return False

        blocked = not record.blocked
        if not await self._store.set_blocked(key_id, blocked, self._clock()):
            return False
        logger.info(
            "API key block toggled",
            key_id=key_id,
            owner_id=record.owner_id,
            blocked=blocked,
        )
        await self._notify(BLOCK if blocked else UNBLOCK, record.owner_id)
        return True

    async def status_of(self, key_id: str) -> bool:
        """Blocked flag of ``key_id``.

        Raises:
            KeyNotFoundError: No such key.
        """
        record = await self._store.get(key_id)
        if record is None:
            raise KeyNotFoundError(f"No API key with id {key_id!r}")
        return record.blocked

    async def has_key(self, owner_id: str) -> bool:
        return await self._store.find_by_owner(owner_id) is not None

    async def set_enabled(self, owner_id: str, enabled: bool) -> bool:
        """Enable or disable the owner's key. False if the owner has none."""
        record = await self._store.find_by_owner(owner_id)
        if record is None:
            return False
        if record.enabled != enabled:
            await self._store.set_enabled(record.id, enabled, self._clock())
            logger.info("API key enabled flag changed", key_id=record.id, enabled=enabled)
        return True

    async def reveal(self, owner_id: str) -> str:
        """Decrypt and return the owner's raw key.

        Raises:
            KeyNotFoundError: The owner has no key.
            NoSecretConfiguredError: No master secret configured.
            DecryptionError: The payload was encrypted under another secret.
        """
        record = await self._require(owner_id)
        return self._vault.decrypt(record.encrypted_payload)

    async def usage_summary(self, key_id: str, timeframe: Timeframe) -> UsageSummary:
        """Successful and failed authentications of ``key_id`` inside ``timeframe``."""
        since = timeframe.window_start(self._clock())
        successes = await self._store.count_usage(key_id, since, success=True)
        failures = await self._store.count_usage(key_id, since, success=False)
        return UsageSummary(
            key_id=key_id,
            timeframe=timeframe.value,
            successes=successes,
            failures=failures,
        )

    async def purge_expired(self, older_than_seconds: int = DEFAULT_PURGE_AFTER_SECONDS) -> int:
        """Delete keys that expired more than ``older_than_seconds`` ago."""
        cutoff = self._clock() - older_than_seconds
        deleted = await self._store.delete_expired_before(cutoff)
        if deleted:
            logger.info("Expired API keys purged", deleted=deleted, older_than_seconds=older_than_seconds)
        return deleted
