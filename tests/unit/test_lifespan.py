"""Unit tests for sentinel_key/main.py — application factory and lifespan.

The lifespan is driven by starlette's TestClient context manager, which runs
startup on __enter__ and shutdown on __exit__.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi import FastAPI
from starlette.testclient import TestClient

from sentinel_key.config import CleanupConfig, SentinelConfig, StoreConfig
from sentinel_key.constants import ENCRYPTION_KEY_HASH_STATE
from sentinel_key.main import create_app, lifespan
from sentinel_key.principals import InMemoryPrincipalDirectory, User


def _config(tmp_path: Path, **kwargs) -> SentinelConfig:
    return SentinelConfig(store=StoreConfig(path=str(tmp_path / "keys.db")), **kwargs)


class TestCreateAppFactory:
    def test_returns_independent_instances(self) -> None:
        app1 = create_app()
        app2 = create_app()
        assert isinstance(app1, FastAPI)
        assert app1 is not app2

    def test_ready_false_before_lifespan(self) -> None:
        assert create_app().state.ready is False

    def test_docs_disabled_by_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("DEBUG", raising=False)
        assert create_app().docs_url is None


class TestLifespan:
    def test_startup_and_shutdown(self, tmp_path: Path) -> None:
        directory = InMemoryPrincipalDirectory([User("alice", "Alice Example")])
        app = create_app(config=_config(tmp_path), directory=directory)

        with TestClient(app) as client:
            assert app.state.ready is True
            assert client.get("/health").json()["status"] == "ok"

            container = app.state.container
            raw = client.portal.call(container.lifecycle.generate, "alice").raw_key
            fingerprint = client.portal.call(container.store.get_state, ENCRYPTION_KEY_HASH_STATE)
            response = client.get("/api/sentinel", headers={"X-API-KEY": raw})

        assert response.status_code == 200
        assert fingerprint == container.vault.master_secret_fingerprint()
        assert app.state.ready is False

    def test_cleanup_disabled(self, tmp_path: Path) -> None:
        app = create_app(config=_config(tmp_path, cleanup=CleanupConfig(enabled=False)))
        with TestClient(app) as client:
            assert client.get("/health").status_code == 200

    def test_startup_without_secret_is_degraded(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SENTINEL_ENCRYPTION_KEY")
        app = create_app(config=_config(tmp_path))
        with TestClient(app) as client:
            assert client.get("/health").json()["encryption"] == "missing"

    def test_config_loaded_from_env_path(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text(f"version: 1\nstore:\n  path: {tmp_path / 'env.db'}\n")
        monkeypatch.setenv("SENTINEL_KEY_CONFIG", str(config_file))

        app = create_app()
        with TestClient(app):
            assert app.state.config.path == str(config_file)
        assert (tmp_path / "env.db").exists()

    @pytest.mark.asyncio
    async def test_invalid_config_refuses_to_start(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("encryption_mode: env\n")
        monkeypatch.setenv("SENTINEL_KEY_CONFIG", str(config_file))

        app = create_app()
        with pytest.raises(SystemExit) as exc_info:
            async with lifespan(app):
                pass

        assert exc_info.value.code == 1
        assert app.state.ready is False
