"""Root test configuration for Sentinel Key.

Every test runs with SENTINEL_ENCRYPTION_KEY set, so key issuance works out
of the box. Tests that exercise the "no secret" paths delete it with their
own monkeypatch.

Shared fixtures:
  clock          — FakeClock (manually advanced UNIX time)
  store          — initialized SQLiteKeyStore on tmp_path
  directory      — InMemoryPrincipalDirectory with alice (active), bob (inactive)
  transport      — RecordingTransport keeping every delivered Notification
  make_container — build_container() factory taking SentinelConfig overrides
  make_request   — starlette Request factory (path, headers, query, client IP)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional

import pytest
from starlette.requests import Request

from sentinel_key.config import SentinelConfig
from sentinel_key.container import Container, build_container
from sentinel_key.notify.transport import Notification
from sentinel_key.principals import InMemoryPrincipalDirectory, User
from sentinel_key.store.sqlite_store import SQLiteKeyStore

MASTER_SECRET = "unit-test-master-secret"
START_TIME = 1_700_000_000.0


class FakeClock:
    """Callable time source for deterministic windows."""

    def __init__(self, start: float = START_TIME) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def master_secret_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SENTINEL_ENCRYPTION_KEY", MASTER_SECRET)
    monkeypatch.delenv("SENTINEL_KEY_CONFIG", raising=False)
    monkeypatch.delenv("SENTINEL_KEY_DB_PATH", raising=False)
    monkeypatch.delenv("SENTINEL_KEY_PORT", raising=False)


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Reset the in-memory slowapi storage between tests.

    Prevents test-to-test rate limit bleed on the /api/keys endpoints.
    """
    from sentinel_key.auth.limiter import limiter

    limiter._storage.reset()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def store(tmp_path: Path):
    key_store = SQLiteKeyStore(str(tmp_path / "keys.db"))
    await key_store.initialize()
    yield key_store
    await key_store.close()


@pytest.fixture
def directory() -> InMemoryPrincipalDirectory:
    return InMemoryPrincipalDirectory(
        [
            User("alice", "Alice Example", email="alice@example.com", roles=frozenset({"developer"})),
            User("bob", "Bob Example", email="bob@example.com", active=False),
            User("carol", "Carol Example", roles=frozenset({"editor"})),
        ]
    )


class RecordingTransport:
    """Transport double that keeps what it was asked to deliver."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)

    async def close(self) -> None:
        return None

@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def make_container(
    store: SQLiteKeyStore,
    directory: InMemoryPrincipalDirectory,
    transport: RecordingTransport,
    clock: FakeClock,
) -> Callable[..., Container]:
    def _make(**overrides: Any) -> Container:
        return build_container(
            SentinelConfig(**overrides),
            store,
            directory=directory,
            transport=transport,
            clock=clock,
        )

    return _make


def build_request(
    path: str = "/api/sentinel",
    headers: Optional[dict[str, str]] = None,
    query: str = "",
    client_ip: Optional[str] = "127.0.0.1",
    method: str = "GET",
) -> Request:
    """A bare starlette Request, no app or server involved."""
    scope = {
        "type": "http",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": query.encode(),
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": (client_ip, 50000) if client_ip is not None else None,
        "server": ("test", 80),
    }
    return Request(scope)


@pytest.fixture
def make_request() -> Callable[..., Request]:
    return build_request
