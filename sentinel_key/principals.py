"""Principal directory — who owns an API key.

The authentication pipeline resolves ``ApiKeyRecord.owner_id`` to a
Principal through a PrincipalDirectory and only grants access to active
principals. Host applications plug in their own user system by
implementing the protocol; InMemoryPrincipalDirectory backs tests and
single-process deployments.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class Principal(Protocol):
    """An authenticatable account."""

    owner_id: str
    display_name: str
    email: Optional[str]
    roles: frozenset[str]

    def is_active(self) -> bool:
        ...


@runtime_checkable
class PrincipalDirectory(Protocol):
    """Lookup of principals by owner id."""

    async def load(self, owner_id: str) -> Optional[Principal]:
        ...


@dataclass
class User:
    """Plain Principal implementation."""

    owner_id: str
    display_name: str
    email: Optional[str] = None
    roles: frozenset[str] = field(default_factory=frozenset)
    active: bool = True

    def is_active(self) -> bool:
        return self.active


class InMemoryPrincipalDirectory:
    """Dict-backed PrincipalDirectory."""

    def __init__(self, users: Optional[list[User]] = None) -> None:
        self._users: dict[str, User] = {}
        for user in users or []:
            self.add(user)

    def add(self, user: User) -> None:
        self._users[user.owner_id] = user

    def remove(self, owner_id: str) -> None:
        self._users.pop(owner_id, None)

    async def load(self, owner_id: str) -> Optional[User]:
        return self._users.get(owner_id)
