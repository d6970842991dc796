"""Fetch-once, cache-after remote data source.

Concurrent reads of the same key share one in-flight fetch. After the first
success the value is served from memory until it goes stale
(``stale_after``) or is invalidated; a failed refetch keeps the last good
value and flags the entry as errored.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pysyncstate.exceptions import RemoteFetchError
from pysyncstate.models.remote import RemoteResult

_logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Awaitable[Any]]
CacheListener = Callable[[str, RemoteResult], None]


@dataclass(slots=True)
class _CacheEntry:
    value: Any = None
    has_value: bool = False
    updated_at: float | None = None
    invalidated: bool = False
    error: RemoteFetchError | None = None
    in_flight: asyncio.Task[Any] | None = None


def _consume_result(task: asyncio.Task[Any]) -> None:
    # Failures are recorded on the entry; retrieve them so an abandoned
    # shared task does not log "exception was never retrieved".
    if not task.cancelled():
        task.exception()


class RemoteCache:
    """De-duplicating cache in front of an async fetcher.

    Parameters
    ----------
    fetcher
        ``async fetcher(key) -> value``. Any exception it raises is recorded
        as a :class:`RemoteFetchError`.
    stale_after
        Seconds after a successful fetch before the value is refetched on
        the next read. ``None`` keeps it forever.
    timeout
        Seconds one fetch may take. ``None`` waits indefinitely.
    clock
        Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        *,
        stale_after: float | None = None,
        timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetcher = fetcher
        self._stale_after = stale_after
        self._timeout = timeout
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}
        self._listeners: list[CacheListener] = []

    def _entry(self, key: str) -> _CacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = _CacheEntry()
            self._entries[key] = entry
        return entry

    def _is_fresh(self, entry: _CacheEntry) -> bool:
        if not entry.has_value or entry.invalidated:
            return False
        if self._stale_after is None or entry.updated_at is None:
            return True
        return (self._clock() - entry.updated_at) < self._stale_after

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch(self, key: str, *, force: bool = False) -> Any:
        """Return the value for *key*, fetching it when missing or stale.

        Joins an in-flight fetch for the same key instead of starting a new
        one. ``force`` skips the freshness check.

        Raises
        ------
        RemoteFetchError
            When the fetch this call waited on failed.
        """
        entry = self._entry(key)
        if entry.in_flight is None:
            if not force and self._is_fresh(entry):
                _logger.debug("Cache hit for %r", key)
                return entry.value
            task = asyncio.create_task(self._run(key, entry), name=f"pysyncstate-fetch-{key}")
            task.add_done_callback(_consume_result)
            entry.in_flight = task
            self._notify(key)
        return await asyncio.shield(entry.in_flight)

    async def _call_fetcher(self, key: str) -> Any:
        if self._timeout is None:
            return await self._fetcher(key)
        return await asyncio.wait_for(self._fetcher(key), self._timeout)

    async def _run(self, key: str, entry: _CacheEntry) -> Any:
        _logger.debug("Fetching %r", key)
        try:
            value = await self._call_fetcher(key)
        except RemoteFetchError as exc:
            entry.error = exc
            raise
        except TimeoutError as exc:
            if self._timeout is None:
                error = RemoteFetchError(f"Fetch of {key!r} failed: {exc}")
            else:
                error = RemoteFetchError(f"Fetch of {key!r} timed out after {self._timeout}s")
            entry.error = error
            raise error from exc
        except Exception as exc:
            error = RemoteFetchError(f"Fetch of {key!r} failed: {exc}")
            entry.error = error
            raise error from exc
        else:
            entry.value = value
            entry.has_value = True
            entry.updated_at = self._clock()
            entry.invalidated = False
            entry.error = None
            return value
        finally:
            entry.in_flight = None
            self._notify(key)

    def result(self, key: str) -> RemoteResult:
        """Current derived signals for *key*."""
        entry = self._entries.get(key) or _CacheEntry()
        fetching = entry.in_flight is not None
        return RemoteResult(
            value=entry.value,
            is_loading=fetching or (not entry.has_value and entry.error is None),
            is_fetching=fetching,
            is_error=entry.error is not None,
            error=str(entry.error) if entry.error is not None else None,
            updated_at=entry.updated_at,
        )

    def invalidate(self, key: str) -> None:
        """Mark *key* stale; the next :meth:`fetch` goes to the network."""
        entry = self._entries.get(key)
        if entry is not None:
            entry.invalidated = True

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: CacheListener) -> Callable[[], None]:
        """Call *listener* with ``(key, result)`` whenever an entry changes.

        Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, key: str) -> None:
        if not self._listeners:
            return
        result = self.result(key)
        for listener in list(self._listeners):
            try:
                listener(key, result)
            except Exception:
                _logger.debug("Cache listener failed", exc_info=True)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Cancel every in-flight fetch."""
        tasks = [entry.in_flight for entry in self._entries.values() if entry.in_flight is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        # A task cancelled before its first step never reaches its cleanup.
        for entry in self._entries.values():
            entry.in_flight = None
