"""Sentinel Key cryptography package.

Public API:
  - CryptoVault  — master secret resolution, AES-256-CBC encrypt/decrypt
  - hash_key()   — SHA-256 lookup digest of a raw key
"""

from sentinel_key.crypto.vault import CryptoVault, hash_key

__all__ = ["CryptoVault", "hash_key"]
