"""Sentinel Key storage package.

    protocol.py     — KeyStore + StateStore protocols
    sqlite_store.py — SQLiteKeyStore (aiosqlite, WAL mode, version guard)
"""

from sentinel_key.store.protocol import KeyStore, StateStore
from sentinel_key.store.sqlite_store import SQLiteKeyStore

__all__ = ["KeyStore", "SQLiteKeyStore", "StateStore"]
