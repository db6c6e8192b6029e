"""Unit tests for sentinel_key/auth/autogen.py and the event bus."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from sentinel_key.config import AutoGenerateConfig
from sentinel_key.events import USER_LOGIN, USER_REGISTERED, EventBus
from sentinel_key.principals import User

pytestmark = pytest.mark.asyncio

DAY = 86400

DEVELOPER = User("alice", "Alice Example", email="alice@example.com", roles=frozenset({"developer"}))
EDITOR = User("carol", "Carol Example", roles=frozenset({"editor"}))


def _auto(**kwargs) -> AutoGenerateConfig:
    defaults = {"enabled": True, "roles": ["developer"], "duration": 0, "unit": "days"}
    defaults.update(kwargs)
    return AutoGenerateConfig(**defaults)


class TestAutoGenerator:
    async def test_registration_issues_key_for_matching_role(self, make_container, store) -> None:
        container = make_container(auto_generate=_auto())
        await container.bus.publish(USER_REGISTERED, DEVELOPER)

        record = await store.find_by_owner("alice")
        assert record is not None
        assert record.expires_at is None

    async def test_expiry_from_duration_and_unit(self, make_container, store, clock) -> None:
        container = make_container(auto_generate=_auto(duration=2, unit="weeks"))
        await container.bus.publish(USER_REGISTERED, DEVELOPER)

        record = await store.find_by_owner("alice")
        assert record.expires_at == clock() + 14 * DAY

    async def test_role_mismatch_skips(self, make_container, store) -> None:
        container = make_container(auto_generate=_auto())
        await container.bus.publish(USER_REGISTERED, EDITOR)
        assert await store.find_by_owner("carol") is None

    async def test_disabled_skips(self, make_container, store) -> None:
        container = make_container(auto_generate=_auto(enabled=False))
        await container.bus.publish(USER_LOGIN, DEVELOPER)
        assert await store.find_by_owner("alice") is None

    async def test_empty_roles_skip(self, make_container, store) -> None:
        container = make_container(auto_generate=_auto(roles=[]))
        await container.bus.publish(USER_LOGIN, DEVELOPER)
        assert await store.find_by_owner("alice") is None

    async def test_login_issues_only_when_no_key(self, make_container, store) -> None:
        container = make_container(auto_generate=_auto())
        await container.bus.publish(USER_LOGIN, DEVELOPER)
        first = await store.find_by_owner("alice")
        assert first is not None

        await container.bus.publish(USER_LOGIN, DEVELOPER)
        assert (await store.find_by_owner("alice")).hashed_key == first.hashed_key

    async def test_failure_is_logged_not_raised(self, make_container, store, monkeypatch) -> None:
        monkeypatch.delenv("SENTINEL_ENCRYPTION_KEY")
        container = make_container(auto_generate=_auto())

        assert await container.autogen.on_user_registered(DEVELOPER) is None
        assert await store.find_by_owner("alice") is None

    async def test_store_error_is_logged_not_raised(self, make_container) -> None:
        container = make_container(auto_generate=_auto())
        with patch.object(container.lifecycle, "generate", new=AsyncMock(side_effect=RuntimeError("boom"))):
            assert await container.autogen.on_user_registered(DEVELOPER) is None


class TestEventBus:
    async def test_handlers_run_in_priority_then_subscription_order(self) -> None:
        bus = EventBus()
        calls: list[str] = []

        def make(name: str):
            async def handler(payload) -> None:
                calls.append(f"{name}:{payload}")
            return handler

        bus.subscribe("evt", make("low"), priority=-5)
        bus.subscribe("evt", make("first"))
        bus.subscribe("evt", make("second"))
        bus.subscribe("evt", make("high"), priority=50)

        assert await bus.publish("evt", 1) == 4
        assert calls == ["high:1", "first:1", "second:1", "low:1"]

    async def test_publish_without_handlers(self) -> None:
        assert await EventBus().publish("nothing") == 0

    async def test_handler_error_propagates(self) -> None:
        bus = EventBus()
        bus.subscribe("evt", AsyncMock(side_effect=ValueError("bad")))
        with pytest.raises(ValueError):
            await bus.publish("evt")
