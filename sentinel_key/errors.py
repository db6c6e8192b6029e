"""Sentinel Key exception hierarchy.

Lifecycle operations (generate / revoke / rotate / reveal) raise these to
their caller for administrative handling. The authentication pipeline never
lets them escape: every failure becomes a uniform denial at the boundary.

    SentinelKeyError
    ├── ConfigError
    │   └── NoSecretConfiguredError
    ├── CryptoError
    │   ├── DecryptionError
    │   └── CryptoUnavailableError
    ├── KeyNotFoundError
    └── StorageError
        └── DuplicateOwnerError
"""

from __future__ import annotations


class SentinelKeyError(Exception):
    """Base class for all Sentinel Key errors."""

    code: str = "sentinel_key_error"

    def __init__(self, message: str = "Sentinel Key error") -> None:
        super().__init__(message)
        self.message = message


class ConfigError(SentinelKeyError):
    """Configuration is missing or unusable."""

    code = "config_error"


class NoSecretConfiguredError(ConfigError):
    """Neither the environment nor the configuration supplies a master secret."""

    code = "no_secret_configured"

    def __init__(
        self,
        message: str = (
            "No master secret configured. Set SENTINEL_ENCRYPTION_KEY or "
            "master_secret in the config file."
        ),
    ) -> None:
        super().__init__(message)


class CryptoError(SentinelKeyError):
    """Encryption or decryption could not be performed."""

    code = "crypto_error"


class DecryptionError(CryptoError):
    """The payload could not be decrypted with the current master secret."""

    code = "decryption_failed"

    def __init__(self, message: str = "Encrypted payload could not be decrypted") -> None:
        super().__init__(message)


class CryptoUnavailableError(CryptoError):
    """Key generation failed because no master secret could be resolved."""

    code = "crypto_unavailable"

    def __init__(
        self,
        message: str = "Cannot generate API keys: encryption is not configured",
    ) -> None:
        super().__init__(message)


class KeyNotFoundError(SentinelKeyError):
    """No ApiKeyRecord matches the requested id or owner.

    HTTP mapping: 404 Not Found
    """

    code = "key_not_found"

    def __init__(self, message: str = "API key not found") -> None:
        super().__init__(message)


class StorageError(SentinelKeyError):
    """The key store failed to read or write."""

    code = "storage_error"


class DuplicateOwnerError(StorageError):
    """A second record was written for an owner that already has one."""

    code = "duplicate_owner"

    def __init__(self, message: str = "This user already owns an API key.") -> None:
        super().__init__(message)
