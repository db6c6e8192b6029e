"""SQLiteKeyStore — aiosqlite-based KeyStore + StateStore.

Uses aiosqlite EXCLUSIVELY — no synchronous sqlite3 calls on the event loop.

Features:
  - WAL mode: PRAGMA journal_mode=WAL (concurrent reads while writing)
  - Schema version guard: PRAGMA user_version=1 — RuntimeError on mismatch
  - Long-lived connection: opened in initialize(), closed in close()
  - UNIQUE(owner_id) enforces one key per owner at write time
  - UNIQUE(hashed_key) keeps the lookup index unambiguous
  - os.chmod(path, 0o600) on every initialize() for file-backed stores
  - Every aiosqlite.Error is re-raised as StorageError

Tables:
  api_keys        — ApiKeyRecord rows (raw key NEVER stored, only hash + ciphertext)
  key_usage       — usage log (one row per attributed authentication attempt)
  sentinel_state  — name/value pairs (master secret fingerprint)
"""

from __future__ import annotations

import os
from typing import Any, Optional

import aiosqlite

from sentinel_key.errors import DuplicateOwnerError, StorageError
from sentinel_key.models.key import ApiKeyRecord, KeyUsageEvent
from sentinel_key.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Schema DDL ───────────────────────────────────────────────────────────────

_CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS api_keys (
    id                  TEXT PRIMARY KEY,
    owner_id            TEXT NOT NULL UNIQUE,
    hashed_key          TEXT NOT NULL UNIQUE,
    encrypted_payload   TEXT NOT NULL,
    label               TEXT NOT NULL,
    enabled             INTEGER NOT NULL DEFAULT 1,
    blocked             INTEGER NOT NULL DEFAULT 0,
    expires_at          REAL,
    created_at          REAL NOT NULL,
    updated_at          REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS key_usage (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    key_id      TEXT NOT NULL,
    timestamp   REAL NOT NULL,
    success     INTEGER NOT NULL,
    client_ip   TEXT,
    path        TEXT
);

CREATE INDEX IF NOT EXISTS idx_usage_key_timestamp
    ON key_usage(key_id, timestamp);

CREATE TABLE IF NOT EXISTS sentinel_state (
    name    TEXT PRIMARY KEY,
    value   TEXT NOT NULL
);
"""

_SCHEMA_VERSION = 1

_RECORD_COLUMNS = (
    "id, owner_id, hashed_key, encrypted_payload, label, "
    "enabled, blocked, expires_at, created_at, updated_at"
)


def _row_to_record(row: aiosqlite.Row) -> ApiKeyRecord:
    """Convert an aiosqlite Row to an ApiKeyRecord (ints → bools)."""
    return ApiKeyRecord(
        id=row["id"],
        owner_id=row["owner_id"],
        hashed_key=row["hashed_key"],
        encrypted_payload=row["encrypted_payload"],
        label=row["label"],
        enabled=bool(row["enabled"]),
        blocked=bool(row["blocked"]),
        expires_at=row["expires_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class SQLiteKeyStore:
    """Async SQLite key store.

    Usage:
        store = SQLiteKeyStore("~/.sentinel_key/keys.db")
        await store.initialize()
        record = await store.find_by_hash(hashed)
        await store.close()

    Pass ``":memory:"`` for a throwaway store.
    """

    def __init__(self, db_path: str = "~/.sentinel_key/keys.db") -> None:
        self._db_path: str = db_path if db_path == ":memory:" else os.path.expanduser(db_path)
        self._db: Optional[aiosqlite.Connection] = None

    @property
    def db_path(self) -> str:
        return self._db_path

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Open the connection, enable WAL, create or verify the schema.

        Raises:
            RuntimeError: PRAGMA user_version is neither 0 nor 1.
            StorageError: The database cannot be opened.
        """
        file_backed = self._db_path != ":memory:"
        if file_backed:
            parent_dir = os.path.dirname(self._db_path)
            if parent_dir:
                os.makedirs(parent_dir, exist_ok=True)

        try:
            self._db = await aiosqlite.connect(self._db_path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL;")

            cursor = await self._db.execute("PRAGMA user_version;")
            row = await cursor.fetchone()
            current_version: int = row[0] if row else 0

            if current_version == 0:
                await self._db.executescript(_CREATE_SCHEMA_SQL)
                await self._db.execute(f"PRAGMA user_version = {_SCHEMA_VERSION};")
                await self._db.commit()
                logger.info("key_store_schema_created", db_path=self._db_path)
            elif current_version == _SCHEMA_VERSION:
                logger.info("key_store_schema_ok", db_path=self._db_path)
            else:
                await self._db.close()
                self._db = None
                raise RuntimeError(
                    f"Unsupported key store schema version: {current_version}. "
                    f"Delete {self._db_path} to reset (all keys will be lost)."
                )
        except aiosqlite.Error as exc:
            raise StorageError(f"Cannot open key store: {exc}") from exc

        # Owner read/write only, regardless of umask at creation time
        if file_backed:
            os.chmod(self._db_path, 0o600)

    async def close(self) -> None:
        """Close the connection gracefully."""
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.debug("key_store_closed", db_path=self._db_path)

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StorageError("Key store not initialized — call initialize() first")
        return self._db

    async def _fetch_one(self, sql: str, params: tuple[Any, ...]) -> Optional[aiosqlite.Row]:
        try:
            async with self._conn().execute(sql, params) as cursor:
                return await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StorageError(f"Key store read failed: {exc}") from exc

    # ── KeyStore ──────────────────────────────────────────────────────────────

    async def find_by_hash(self, hashed_key: str) -> Optional[ApiKeyRecord]:
        row = await self._fetch_one(
            f"SELECT {_RECORD_COLUMNS} FROM api_keys WHERE hashed_key = ?",
            (hashed_key,),
        )
        return _row_to_record(row) if row is not None else None

    async def find_by_owner(self, owner_id: str) -> Optional[ApiKeyRecord]:
        row = await self._fetch_one(
            f"SELECT {_RECORD_COLUMNS} FROM api_keys WHERE owner_id = ?",
            (owner_id,),
        )
        return _row_to_record(row) if row is not None else None

    async def get(self, key_id: str) -> Optional[ApiKeyRecord]:
        row = await self._fetch_one(
            f"SELECT {_RECORD_COLUMNS} FROM api_keys WHERE id = ?",
            (key_id,),
        )
        return _row_to_record(row) if row is not None else None

    async def save(self, record: ApiKeyRecord) -> None:
        """Upsert by id. hashed_key and encrypted_payload are written together."""
        db = self._conn()
        try:
            await db.execute(
                f"""INSERT INTO api_keys ({_RECORD_COLUMNS})
                    VALUES (?,?,?,?,?,?,?,?,?,?)
                    ON CONFLICT(id) DO UPDATE SET
                        owner_id = excluded.owner_id,
                        hashed_key = excluded.hashed_key,
                        encrypted_payload = excluded.encrypted_payload,
                        label = excluded.label,
                        enabled = excluded.enabled,
                        blocked = excluded.blocked,
                        expires_at = excluded.expires_at,
                        updated_at = excluded.updated_at""",
                (
                    record.id,
                    record.owner_id,
                    record.hashed_key,
                    record.encrypted_payload,
                    record.label,
                    int(record.enabled),
                    int(record.blocked),
                    record.expires_at,
                    record.created_at,
                    record.updated_at,
                ),
            )
            await db.commit()
        except aiosqlite.IntegrityError as exc:
            await db.rollback()
            if "owner_id" in str(exc):
                raise DuplicateOwnerError() from exc
            raise StorageError(f"Key store constraint violated: {exc}") from exc
        except aiosqlite.Error as exc:
            raise StorageError(f"Key store write failed: {exc}") from exc

    async def delete(self, record: ApiKeyRecord) -> None:
        db = self._conn()
        try:
            await db.execute("DELETE FROM api_keys WHERE id = ?", (record.id,))
            await db.execute("DELETE FROM key_usage WHERE key_id = ?", (record.id,))
            await db.commit()
        except aiosqlite.Error as exc:
            raise StorageError(f"Key store delete failed: {exc}") from exc

    async def _update(self, sql: str, params: tuple[Any, ...]) -> bool:
        db = self._conn()
        try:
            cursor = await db.execute(sql, params)
            updated = cursor.rowcount > 0
            await db.commit()
        except aiosqlite.Error as exc:
            raise StorageError(f"Key store write failed: {exc}") from exc
        return updated

    async def set_blocked(self, key_id: str, blocked: bool, now: float) -> bool:
        return await self._update(
            "UPDATE api_keys SET blocked = ?, updated_at = ? WHERE id = ?",
            (int(blocked), now, key_id),
        )

    async def set_enabled(self, key_id: str, enabled: bool, now: float) -> bool:
        return await self._update(
            "UPDATE api_keys SET enabled = ?, updated_at = ? WHERE id = ?",
            (int(enabled), now, key_id),
        )

    async def replace_material(self, key_id: str, hashed_key: str, encrypted_payload: str, now: float) -> bool:
        """Swap hashed_key and encrypted_payload together; other columns untouched."""
        return await self._update(
            "UPDATE api_keys SET hashed_key = ?, encrypted_payload = ?, updated_at = ? WHERE id = ?",
            (hashed_key, encrypted_payload, now, key_id),
        )

    async def all(self) -> list[ApiKeyRecord]:
        try:
            async with self._conn().execute(
                f"SELECT {_RECORD_COLUMNS} FROM api_keys ORDER BY created_at, id"
            ) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise StorageError(f"Key store read failed: {exc}") from exc
        return [_row_to_record(row) for row in rows]

    async def log_usage(self, event: KeyUsageEvent) -> None:
        db = self._conn()
        try:
            await db.execute(
                "INSERT INTO key_usage (key_id, timestamp, success, client_ip, path) "
                "VALUES (?,?,?,?,?)",
                (event.key_id, event.timestamp, int(event.success), event.client_ip, event.path),
            )
            await db.commit()
        except aiosqlite.Error as exc:
            raise StorageError(f"Usage log write failed: {exc}") from exc

    async def count_usage(self, key_id: str, since: float, success: Optional[bool] = None) -> int:
        sql = "SELECT COUNT(*) FROM key_usage WHERE key_id = ? AND timestamp >= ?"
        params: list[Any] = [key_id, since]
        if success is not None:
            sql += " AND success = ?"
            params.append(int(success))
        row = await self._fetch_one(sql, tuple(params))
        return row[0] if row else 0

    async def delete_expired_before(self, cutoff: float) -> int:
        db = self._conn()
        try:
            await db.execute(
                "DELETE FROM key_usage WHERE key_id IN "
                "(SELECT id FROM api_keys WHERE expires_at IS NOT NULL AND expires_at < ?)",
                (cutoff,),
            )
            cursor = await db.execute(
                "DELETE FROM api_keys WHERE expires_at IS NOT NULL AND expires_at < ?",
                (cutoff,),
            )
            deleted = cursor.rowcount
            await db.commit()
        except aiosqlite.Error as exc:
            raise StorageError(f"Expired key purge failed: {exc}") from exc
        return deleted if deleted and deleted > 0 else 0

    # ── StateStore ────────────────────────────────────────────────────────────

    async def get_state(self, name: str) -> Optional[str]:
        row = await self._fetch_one("SELECT value FROM sentinel_state WHERE name = ?", (name,))
        return row["value"] if row is not None else None

    async def set_state(self, name: str, value: str) -> None:
        db = self._conn()
        try:
            await db.execute(
                "INSERT INTO sentinel_state (name, value) VALUES (?, ?) "
                "ON CONFLICT(name) DO UPDATE SET value = excluded.value",
                (name, value),
            )
            await db.commit()
        except aiosqlite.Error as exc:
            raise StorageError(f"State write failed: {exc}") from exc
