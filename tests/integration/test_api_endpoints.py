"""Integration tests for the Sentinel Key HTTP surface.

The app is built with create_app() and fast-tracked past the lifespan by
placing a container on app.state directly; the lifespan itself is covered
in test_lifespan.py.

ASGITransport reports the client address as 127.0.0.1.
"""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from sentinel_key.config import SentinelConfig
from sentinel_key.main import create_app

pytestmark = pytest.mark.asyncio

UNAUTHORIZED = {"message": "Unauthorized"}


@pytest.fixture
def make_app(make_container):
    """create_app() with a ready container built from SentinelConfig overrides."""

    def _make(**overrides):
        container = make_container(**overrides)
        app = create_app(config=container.config)
        app.state.container = container
        app.state.ready = True
        return app, container

    return _make


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


class TestProtectedResource:
    async def test_valid_key_grants_access(self, make_app) -> None:
        app, container = make_app()
        raw = (await container.lifecycle.generate("alice")).raw_key

        async with _client(app) as client:
            response = await client.get("/api/sentinel", headers={"X-API-KEY": raw})

        assert response.status_code == 200
        assert response.json() == {"message": "Access granted!", "user": "Alice Example"}

    async def test_query_param_key(self, make_app) -> None:
        app, container = make_app()
        raw = (await container.lifecycle.generate("alice")).raw_key

        async with _client(app) as client:
            response = await client.get("/api/sentinel", params={"api_key": raw})
        assert response.status_code == 200

    async def test_custom_header(self, make_app) -> None:
        app, container = make_app(custom_auth_header="X-Custom-Key")
        raw = (await container.lifecycle.generate("alice")).raw_key

        async with _client(app) as client:
            ok = await client.get("/api/sentinel", headers={"X-Custom-Key": raw})
            default = await client.get("/api/sentinel", headers={"X-API-KEY": raw})
        assert ok.status_code == 200
        assert default.status_code == 403

    @pytest.mark.parametrize(
        "headers",
        [{}, {"X-API-KEY": ""}, {"X-API-KEY": "not-a-real-key"}],
        ids=["missing", "empty", "unknown"],
    )
    async def test_denials_are_uniform(self, make_app, headers) -> None:
        app, _ = make_app()
        async with _client(app) as client:
            response = await client.get("/api/sentinel", headers=headers)

        assert response.status_code == 403
        assert response.json() == UNAUTHORIZED

    async def test_blacklisted_ip_with_valid_key(self, make_app) -> None:
        app, container = make_app(blacklist_ips=["127.0.0.1"])
        raw = (await container.lifecycle.generate("alice")).raw_key

        async with _client(app) as client:
            response = await client.get("/api/sentinel", headers={"X-API-KEY": raw})
        assert response.status_code == 403
        assert response.json() == UNAUTHORIZED

    async def test_blocked_and_inactive_look_the_same(self, make_app) -> None:
        app, container = make_app()
        alice = await container.lifecycle.generate("alice")
        bob = await container.lifecycle.generate("bob")
        await container.lifecycle.toggle_block(alice.record.id)

        async with _client(app) as client:
            blocked = await client.get("/api/sentinel", headers={"X-API-KEY": alice.raw_key})
            inactive = await client.get("/api/sentinel", headers={"X-API-KEY": bob.raw_key})

        assert blocked.status_code == inactive.status_code == 403
        assert blocked.json() == inactive.json() == UNAUTHORIZED

    async def test_rate_limit(self, make_app) -> None:
        app, container = make_app(max_rate_limit=2)
        raw = (await container.lifecycle.generate("alice")).raw_key

        async with _client(app) as client:
            codes = [
                (await client.get("/api/sentinel", headers={"X-API-KEY": raw})).status_code
                for _ in range(3)
            ]
        assert codes == [200, 200, 403]


class TestKeyManagement:
    async def test_status(self, make_app) -> None:
        app, container = make_app()
        generated = await container.lifecycle.generate("alice")

        async with _client(app) as client:
            response = await client.get("/api/keys/me", headers={"X-API-KEY": generated.raw_key})

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == generated.record.id
        assert body["blocked"] is False
        assert body["usage"]["timeframe"] == "1h"
        assert body["usage"]["successes"] == 1
        assert generated.raw_key not in response.text
        assert generated.record.encrypted_payload not in response.text

    async def test_reveal(self, make_app) -> None:
        app, container = make_app()
        raw = (await container.lifecycle.generate("alice")).raw_key

        async with _client(app) as client:
            response = await client.get("/api/keys/me/reveal", headers={"X-API-KEY": raw})

        assert response.status_code == 200
        assert response.json() == {"key": raw}

    async def test_reveal_after_secret_change_is_conflict(self, make_app, monkeypatch) -> None:
        app, container = make_app()
        raw = (await container.lifecycle.generate("alice")).raw_key
        monkeypatch.setenv("SENTINEL_ENCRYPTION_KEY", "a-different-secret")

        async with _client(app) as client:
            response = await client.get("/api/keys/me/reveal", headers={"X-API-KEY": raw})
        assert response.status_code == 409

    async def test_rotate_replaces_key(self, make_app) -> None:
        app, container = make_app()
        old = (await container.lifecycle.generate("alice")).raw_key

        async with _client(app) as client:
            rotated = await client.post("/api/keys/me/rotate", headers={"X-API-KEY": old})
            new = rotated.json()["key"]
            with_old = await client.get("/api/sentinel", headers={"X-API-KEY": old})
            with_new = await client.get("/api/sentinel", headers={"X-API-KEY": new})

        assert rotated.status_code == 200
        assert new != old
        assert with_old.status_code == 403
        assert with_new.status_code == 200

    async def test_management_requires_key(self, make_app) -> None:
        app, _ = make_app()
        async with _client(app) as client:
            status = await client.get("/api/keys/me")
            rotate = await client.post("/api/keys/me/rotate")
        assert status.status_code == rotate.status_code == 403


class TestServiceEndpoints:
    async def test_health_not_ready(self) -> None:
        app = create_app(config=SentinelConfig())
        async with _client(app) as client:
            response = await client.get("/health")
        assert response.status_code == 503

    async def test_health_ready(self, make_app, store) -> None:
        app, _ = make_app()
        async with _client(app) as client:
            response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "store": store.db_path, "encryption": "configured"}

    async def test_health_degraded_without_secret(self, make_app, monkeypatch) -> None:
        monkeypatch.delenv("SENTINEL_ENCRYPTION_KEY")
        app, _ = make_app()
        async with _client(app) as client:
            response = await client.get("/health")
        assert response.json()["status"] == "degraded"
        assert response.json()["encryption"] == "missing"

    async def test_root(self, make_app) -> None:
        app, _ = make_app()
        async with _client(app) as client:
            response = await client.get("/")
        assert response.status_code == 200
        assert response.json()["resource"] == "/api/sentinel"
