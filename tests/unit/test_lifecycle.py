"""Unit tests for sentinel_key/auth/lifecycle.py — KeyLifecycleService."""

from __future__ import annotations

import base64
from unittest.mock import AsyncMock, patch

import pytest

from sentinel_key.auth.lifecycle import KeyLifecycleService, generate_raw_key
from sentinel_key.config import NotificationConfig
from sentinel_key.crypto.vault import CryptoVault, hash_key
from sentinel_key.errors import (
    CryptoUnavailableError,
    DecryptionError,
    KeyNotFoundError,
    StorageError,
)
from sentinel_key.models.key import KeyUsageEvent
from sentinel_key.models.timeframe import Timeframe
from sentinel_key.notify.service import NullNotifier

pytestmark = pytest.mark.asyncio

DAY = 86400


@pytest.fixture
def lifecycle(make_container) -> KeyLifecycleService:
    return make_container().lifecycle


def _types(transport) -> list[str]:
    return [n.type for n in transport.sent]


class TestGenerate:
    async def test_raw_key_is_44_char_base64_of_32_bytes(self) -> None:
        raw = generate_raw_key()
        assert len(raw) == 44
        assert len(base64.b64decode(raw)) == 32

    async def test_generate_persists_hash_and_ciphertext_only(self, lifecycle, store) -> None:
        generated = await lifecycle.generate("alice")
        record = await store.find_by_owner("alice")

        assert record is not None
        assert record.hashed_key == hash_key(generated.raw_key)
        assert record.encrypted_payload != generated.raw_key
        assert generated.raw_key not in repr(generated)
        assert record.label.startswith("Key-")
        assert record.enabled is True and record.blocked is False

    async def test_reveal_round_trips(self, lifecycle) -> None:
        generated = await lifecycle.generate("alice")
        assert await lifecycle.reveal("alice") == generated.raw_key

    async def test_regenerate_replaces_record_and_keeps_id(self, lifecycle, store) -> None:
        first = await lifecycle.generate("alice")
        second = await lifecycle.generate("alice", expires_at=1_800_000_000.0)

        assert second.record.id == first.record.id
        assert second.raw_key != first.raw_key
        assert await store.find_by_hash(hash_key(first.raw_key)) is None
        assert len(await store.all()) == 1
        assert (await store.get(first.record.id)).expires_at == 1_800_000_000.0

    async def test_regenerate_starts_with_fresh_windows(self, make_container, make_request) -> None:
        container = make_container(max_rate_limit=2, failure_limit=5)
        first = await container.lifecycle.generate("alice")
        for _ in range(3):
            await container.pipeline.authenticate(make_request(headers={"X-API-KEY": first.raw_key}))
        assert await container.counter.failure_count(first.record.id) == 1

        second = await container.lifecycle.generate("alice")
        assert second.record.id == first.record.id
        assert await container.counter.usage_count(second.record.id, 3600) == 0
        assert await container.counter.failure_count(second.record.id) == 0

        outcome = await container.pipeline.authenticate(make_request(headers={"X-API-KEY": second.raw_key}))
        assert outcome.authenticated is True

    async def test_generate_sends_new_key_notification_with_link(self, make_container, transport) -> None:
        container = make_container(
            notifications=NotificationConfig(key_link_base="https://example.com/keys/")
        )
        await container.lifecycle.generate("alice")

        assert _types(transport) == ["new_key"]
        assert "https://example.com/keys/alice" in transport.sent[0].message

    async def test_without_secret_raises_crypto_unavailable(self, lifecycle, store, monkeypatch) -> None:
        monkeypatch.delenv("SENTINEL_ENCRYPTION_KEY")
        with pytest.raises(CryptoUnavailableError):
            await lifecycle.generate("alice")
        assert await store.find_by_owner("alice") is None

    async def test_notifier_failure_is_swallowed(self, store, clock) -> None:
        notifier = NullNotifier()
        notifier.notify = AsyncMock(side_effect=RuntimeError("smtp down"))  # type: ignore[method-assign]
        service = KeyLifecycleService(store, CryptoVault(), notifier, clock=clock)

        generated = await service.generate("alice")
        assert await store.get(generated.record.id) is not None

    async def test_store_failure_propagates(self, clock) -> None:
        store = AsyncMock()
        store.find_by_owner.return_value = None
        store.save.side_effect = StorageError("disk full")
        service = KeyLifecycleService(store, CryptoVault(), NullNotifier(), clock=clock)

        with pytest.raises(StorageError):
            await service.generate("alice")


class TestRevokeRotate:
    async def test_revoke(self, lifecycle, store, transport) -> None:
        await lifecycle.generate("alice")
        assert await lifecycle.revoke("alice") is True
        assert await store.find_by_owner("alice") is None
        assert _types(transport) == ["new_key", "revoke"]

    async def test_revoke_without_key_returns_false(self, lifecycle) -> None:
        assert await lifecycle.revoke("alice") is False

    async def test_rotate_keeps_expiry_and_label(self, lifecycle, store) -> None:
        original = await lifecycle.generate("alice", expires_at=1_900_000_000.0, label="Key-MINE")
        rotated = await lifecycle.rotate("alice")

        assert rotated.raw_key != original.raw_key
        assert rotated.record.expires_at == 1_900_000_000.0
        assert rotated.record.label == "Key-MINE"
        assert await store.find_by_hash(hash_key(original.raw_key)) is None
        assert (await store.find_by_owner("alice")).hashed_key == hash_key(rotated.raw_key)

    async def test_rotate_without_key_issues_non_expiring_key(self, lifecycle) -> None:
        rotated = await lifecycle.rotate("alice")
        assert rotated.record.expires_at is None

    async def test_rotate_without_secret_keeps_existing_key(self, lifecycle, store, monkeypatch) -> None:
        original = await lifecycle.generate("alice")
        monkeypatch.delenv("SENTINEL_ENCRYPTION_KEY")

        with pytest.raises(CryptoUnavailableError):
            await lifecycle.rotate("alice")
        assert (await store.find_by_owner("alice")).hashed_key == hash_key(original.raw_key)


class TestForceRegenerateAll:
    async def test_regenerates_every_record(self, lifecycle, store) -> None:
        old = {
            owner: await lifecycle.generate(owner, expires_at=1_900_000_000.0 if owner == "bob" else None)
            for owner in ("alice", "bob", "carol")
        }
        await lifecycle.toggle_block(old["carol"].record.id)

        assert await lifecycle.force_regenerate_all() == 3

        for owner, generated in old.items():
            record = await store.find_by_owner(owner)
            assert record.id == generated.record.id
            assert record.hashed_key != generated.record.hashed_key
            assert record.encrypted_payload != generated.record.encrypted_payload
            assert record.expires_at == generated.record.expires_at
            assert await store.find_by_hash(hash_key(generated.raw_key)) is None
        assert (await store.find_by_owner("carol")).blocked is True

    async def test_new_ciphertext_decrypts_to_new_hash(self, lifecycle, store) -> None:
        await lifecycle.generate("alice")
        await lifecycle.force_regenerate_all()

        record = await store.find_by_owner("alice")
        assert hash_key(await lifecycle.reveal("alice")) == record.hashed_key

    async def test_record_revoked_mid_run_is_skipped(self, lifecycle, store, transport) -> None:
        await lifecycle.generate("alice")
        snapshot = await store.all()
        await lifecycle.revoke("alice")

        with patch.object(store, "all", new=AsyncMock(return_value=snapshot)):
            assert await lifecycle.force_regenerate_all() == 0
        assert await store.all() == []
        assert _types(transport) == ["new_key", "revoke"]

    async def test_empty_store_returns_zero(self, lifecycle) -> None:
        assert await lifecycle.force_regenerate_all() == 0

    async def test_without_secret_raises(self, lifecycle, monkeypatch) -> None:
        await lifecycle.generate("alice")
        monkeypatch.delenv("SENTINEL_ENCRYPTION_KEY")
        with pytest.raises(CryptoUnavailableError):
            await lifecycle.force_regenerate_all()


class TestStatus:
    async def test_toggle_block_flips_and_notifies(self, lifecycle, transport) -> None:
        generated = await lifecycle.generate("alice")
        key_id = generated.record.id

        assert await lifecycle.toggle_block(key_id) is True
        assert await lifecycle.status_of(key_id) is True
        assert await lifecycle.toggle_block(generated.record) is True
        assert await lifecycle.status_of(key_id) is False
        assert _types(transport) == ["new_key", "block", "unblock"]

    async def test_toggle_block_unknown_key(self, lifecycle) -> None:
        assert await lifecycle.toggle_block("missing") is False

    async def test_status_of_unknown_key_raises(self, lifecycle) -> None:
        with pytest.raises(KeyNotFoundError):
            await lifecycle.status_of("missing")

    async def test_has_key_and_set_enabled(self, lifecycle, store) -> None:
        assert await lifecycle.has_key("alice") is False
        assert await lifecycle.set_enabled("alice", False) is False

        await lifecycle.generate("alice")
        assert await lifecycle.has_key("alice") is True
        assert await lifecycle.set_enabled("alice", False) is True
        assert (await store.find_by_owner("alice")).enabled is False

    async def test_reveal_errors(self, lifecycle, store, clock) -> None:
        with pytest.raises(KeyNotFoundError):
            await lifecycle.reveal("alice")

        generated = await lifecycle.generate("alice")
        await store.save(generated.record.with_material(generated.record.hashed_key, "bm9wZQ==", clock()))
        with pytest.raises(DecryptionError):
            await lifecycle.reveal("alice")


class TestUsageAndPurge:
    async def test_usage_summary_counts_inside_timeframe(self, lifecycle, store, clock) -> None:
        generated = await lifecycle.generate("alice")
        key_id = generated.record.id
        now = clock()
        await store.log_usage(KeyUsageEvent(key_id, True, timestamp=now - 10))
        await store.log_usage(KeyUsageEvent(key_id, False, timestamp=now - 20))
        await store.log_usage(KeyUsageEvent(key_id, True, timestamp=now - 2 * 3600))

        summary = await lifecycle.usage_summary(key_id, Timeframe.ONE_HOUR)
        assert (summary.successes, summary.failures, summary.total) == (1, 1, 2)
        assert summary.timeframe == "1h"

        summary = await lifecycle.usage_summary(key_id, Timeframe.ONE_DAY)
        assert summary.successes == 2

    async def test_purge_expired(self, lifecycle, store, clock) -> None:
        now = clock()
        await lifecycle.generate("alice", expires_at=now - 40 * DAY)
        await lifecycle.generate("bob", expires_at=now - 1 * DAY)
        await lifecycle.generate("carol")

        assert await lifecycle.purge_expired() == 1
        assert await store.find_by_owner("alice") is None
        assert await store.find_by_owner("bob") is not None
        assert await store.find_by_owner("carol") is not None

        assert await lifecycle.purge_expired(older_than_seconds=0) == 1
        assert await store.find_by_owner("bob") is None
