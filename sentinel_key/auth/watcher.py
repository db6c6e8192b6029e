"""MasterKeyRotationWatcher — regenerate all keys when the master secret changes.

Ciphertexts produced under an old master secret can no longer be revealed,
so a secret change triggers force_regenerate_all(). The fingerprint of the
active secret is stored in the StateStore under ``encryption_key_hash`` and
is written only after regeneration succeeded: a crash mid-regeneration
leaves the old fingerprint in place and the next check() runs again.

The first check() against an empty state records the fingerprint as the
baseline without regenerating.
"""

from __future__ import annotations

from sentinel_key.auth.lifecycle import KeyLifecycleService
from sentinel_key.constants import ENCRYPTION_KEY_HASH_STATE
from sentinel_key.crypto.vault import CryptoVault
from sentinel_key.errors import NoSecretConfiguredError
from sentinel_key.store.protocol import StateStore
from sentinel_key.utils.logger import get_logger

logger = get_logger(__name__)


class MasterKeyRotationWatcher:
    def __init__(
        self,
        vault: CryptoVault,
        state: StateStore,
        lifecycle: KeyLifecycleService,
    ) -> None:
        self._vault = vault
        self._state = state
        self._lifecycle = lifecycle

    async def check(self) -> bool:
        """Compare the active secret with the stored fingerprint.

        Returns:
            True if a mass regeneration ran.
        """
        try:
            current = self._vault.master_secret_fingerprint()
        except NoSecretConfiguredError:
            logger.warning("No master secret configured — skipping rotation check")
            return False

        stored = await self._state.get_state(ENCRYPTION_KEY_HASH_STATE)
        if stored == current:
            return False

        if stored is None:
            await self._state.set_state(ENCRYPTION_KEY_HASH_STATE, current)
            logger.info("Master secret fingerprint recorded")
            return False

        logger.warning("API encryption key has changed. Regenerating all API keys.")
        await self._lifecycle.force_regenerate_all()
        await self._state.set_state(ENCRYPTION_KEY_HASH_STATE, current)
        return True

    async def on_cache_flush(self, _payload: object = None) -> None:
        """CACHE_FLUSH event handler."""
        await self.check()
