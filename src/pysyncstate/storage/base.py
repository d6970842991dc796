"""Storage protocol."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class PersistentStore(Protocol):
    """Async get/set contract for persisted blobs.

    Having a protocol here makes it easy to pass test doubles or third-party
    backends while keeping the shipped stores concrete.
    """

    async def get(self, key: str) -> str | None:
        """Return the blob stored under *key*, or ``None`` when absent.

        Raises :class:`~pysyncstate.exceptions.StorageReadError` on failure.
        """
        ...

    async def set(self, key: str, value: str) -> None:
        """Store *value* under *key*, replacing any previous blob.

        Raises :class:`~pysyncstate.exceptions.StorageWriteError` on failure.
        """
        ...
