"""Key namespacing on top of another store."""

from __future__ import annotations

from pysyncstate._constants import SCOPE_SEPARATOR
from pysyncstate.storage.base import PersistentStore


class ScopedStore:
    """Prefix every key with ``"<scope>:"`` before delegating.

    Lets several coordinators share one backend without clobbering each
    other's records.
    """

    def __init__(self, store: PersistentStore, scope: str) -> None:
        scope = scope.strip()
        if not scope:
            raise ValueError("scope must be non-empty")
        self._store = store
        self._scope = scope

    @property
    def scope(self) -> str:
        return self._scope

    def scoped_key(self, key: str) -> str:
        return f"{self._scope}{SCOPE_SEPARATOR}{key}"

    async def get(self, key: str) -> str | None:
        return await self._store.get(self.scoped_key(key))

    async def set(self, key: str, value: str) -> None:
        await self._store.set(self.scoped_key(key), value)
