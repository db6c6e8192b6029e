"""CryptoVault — master-secret resolution, payload encryption, lookup hashing.

Storage format of an encrypted payload::

    base64( IV[16] || AES-256-CBC(PKCS7(plaintext)) )

The AES key is derived from the master secret with HKDF-SHA256, so any
secret length is accepted. A fresh random IV is drawn for every encrypt()
call — IVs are never reused.

Master secret resolution order:
  1. SENTINEL_ENCRYPTION_KEY environment variable (preferred)
  2. ``master_secret`` from the config file (fallback)
Neither present → NoSecretConfiguredError.

Non-negotiables:
  - decrypt() raises DecryptionError on any failure; it never returns
    plaintext-shaped garbage or an error string.
  - Neither plaintext keys nor the master secret are logged.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import os
from typing import Callable, Optional

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from sentinel_key.constants import (
    AES_IV_LENGTH,
    AES_KEY_LENGTH,
    KDF_INFO,
    KDF_SALT,
    MASTER_SECRET_ENV_VAR,
)
from sentinel_key.errors import DecryptionError, NoSecretConfiguredError
from sentinel_key.utils.logger import get_logger

logger = get_logger(__name__)


def hash_key(raw: str) -> str:
    """SHA-256 hex digest of a raw key. Deterministic; used as lookup index."""
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _derive_aes_key(secret: str) -> bytes:
    """Derive the 256-bit AES key from the master secret using HKDF."""
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=AES_KEY_LENGTH,
        salt=KDF_SALT,
        info=KDF_INFO,
    )
    return hkdf.derive(secret.encode("utf-8"))


class CryptoVault:
    """Symmetric protection of raw key material.

    Args:
        config_secret:  Secret from the config file (fallback source).
        env_lookup:     Callable returning the environment-sourced secret or
                        None. Defaults to reading SENTINEL_ENCRYPTION_KEY.
    """

    def __init__(
        self,
        config_secret: Optional[str] = None,
        env_lookup: Optional[Callable[[], Optional[str]]] = None,
    ) -> None:
        self._config_secret = config_secret or None
        self._env_lookup = env_lookup or (lambda: os.environ.get(MASTER_SECRET_ENV_VAR))

    # ── Secret resolution ────────────────────────────────────────────────────

    def resolve_master_secret(self) -> str:
        """Return the active master secret.

        Raises:
            NoSecretConfiguredError: Neither source supplies a secret.
        """
        env_secret = self._env_lookup()
        if env_secret:
            return env_secret
        if self._config_secret:
            return self._config_secret
        raise NoSecretConfiguredError()

    def has_secret(self) -> bool:
        try:
            self.resolve_master_secret()
        except NoSecretConfiguredError:
            return False
        return True

    def master_secret_fingerprint(self) -> str:
        """SHA-256 hex of the current master secret (for change detection).

        Raises:
            NoSecretConfiguredError: No secret configured.
        """
        return hash_key(self.resolve_master_secret())

    # ── Encrypt / decrypt ────────────────────────────────────────────────────

    def encrypt(self, plaintext: str) -> str:
        """Encrypt ``plaintext`` under the master secret.

        Returns:
            base64(IV || ciphertext) as ASCII text.

        Raises:
            NoSecretConfiguredError: No master secret available.
        """
        key = _derive_aes_key(self.resolve_master_secret())
        iv = os.urandom(AES_IV_LENGTH)

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        return base64.b64encode(iv + ciphertext).decode("ascii")

    def decrypt(self, blob: str) -> str:
        """Decrypt a payload produced by encrypt().

        Raises:
            NoSecretConfiguredError: No master secret available.
            DecryptionError: Malformed blob, wrong secret, or corrupt data.
        """
        key = _derive_aes_key(self.resolve_master_secret())

        try:
            data = base64.b64decode(blob.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError, ValueError) as exc:
            raise DecryptionError("Encrypted payload is not valid base64") from exc

        iv, ciphertext = data[:AES_IV_LENGTH], data[AES_IV_LENGTH:]
        if len(iv) != AES_IV_LENGTH or not ciphertext or len(ciphertext) % AES_IV_LENGTH:
            raise DecryptionError("Encrypted payload has an invalid length")

        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        try:
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as exc:
            # Wrong secret almost always surfaces as bad padding
            logger.debug("Payload decryption failed", error_type=type(exc).__name__)
            raise DecryptionError() from exc

    def hash(self, raw: str) -> str:
        """SHA-256 hex digest of ``raw`` (see hash_key)."""
        return hash_key(raw)
