"""High-level async client wiring transport, cache, storage and coordinator."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import aiohttp

from pysyncstate._transport import HttpFetcher, HttpTransport
from pysyncstate.cache import Fetcher, RemoteCache
from pysyncstate.config import SyncConfig
from pysyncstate.coordinator import ErrorCallback, SyncCoordinator, ViewListener
from pysyncstate.exceptions import SyncError
from pysyncstate.models.actions import Action
from pysyncstate.models.state import CounterState
from pysyncstate.models.view import SyncView
from pysyncstate.reducer import counter_reducer
from pysyncstate.storage.base import PersistentStore
from pysyncstate.storage.file import JsonFileStore
from pysyncstate.storage.memory import MemoryStore
from pysyncstate.storage.scoped import ScopedStore

_logger = logging.getLogger(__name__)


class SyncClient:
    """Async client for a remotely fetched, locally persisted counter.

    Usage::

        async with SyncClient(config) as client:
            await client.dispatch(Increment())
            view = client.observe()

    Parameters
    ----------
    config : SyncConfig
        Client configuration.
    session : aiohttp.ClientSession or None
        Shared HTTP session. When omitted the client creates one on entry
        and closes it on exit.
    store : PersistentStore or None
        Backend for the persisted record. Defaults to a
        :class:`JsonFileStore` at ``config.storage_path``, or a
        :class:`MemoryStore` when no path is configured. Always wrapped in
        a :class:`ScopedStore` using ``config.storage_scope``.
    fetcher : callable or None
        Replaces the HTTP fetcher, e.g. for tests.
    on_change : callable or None
        Subscribed to view changes before startup, so the rehydrated state
        is observed.
    on_error : callable or None
        Receives every recovered error.
    """

    def __init__(
        self,
        config: SyncConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        store: PersistentStore | None = None,
        fetcher: Fetcher | None = None,
        on_change: ViewListener | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._store = store
        self._fetcher = fetcher
        self._on_change = on_change
        self._on_error = on_error
        self._cache: RemoteCache | None = None
        self._coordinator: SyncCoordinator[CounterState] | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SyncClient:
        fetcher = self._fetcher
        if fetcher is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            fetcher = HttpFetcher(
                HttpTransport(self._http_session),
                self._config.remote_url,
                field=self._config.remote_field,
            )

        self._cache = RemoteCache(
            fetcher,
            stale_after=self._config.stale_after,
            timeout=self._config.fetch_timeout,
        )
        reducer = counter_reducer(
            ScopedStore(self._build_store(), self._config.storage_scope),
            key=self._config.storage_key,
            timeout=self._config.storage_timeout,
        )
        self._coordinator = SyncCoordinator(
            reducer,
            self._cache,
            initial_state=CounterState(),
            remote_key=self._config.remote_key,
            on_error=self._on_error,
            storage_timeout=self._config.storage_timeout,
        )
        if self._on_change is not None:
            self._coordinator.subscribe(self._on_change)

        try:
            await self._coordinator.initialize()
        except BaseException:
            await self._shutdown()
            raise
        return self

    async def __aexit__(self, exc_type: Any, *exc: Any) -> None:
        if exc_type is None and self._coordinator is not None:
            await self._coordinator.drain()
        await self._shutdown()

    async def _shutdown(self) -> None:
        if self._coordinator is not None:
            await self._coordinator.close()
            self._coordinator = None
        if self._cache is not None:
            await self._cache.close()
            self._cache = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    def _build_store(self) -> PersistentStore:
        if self._store is not None:
            return self._store
        if self._config.storage_path:
            return JsonFileStore(Path(self._config.storage_path))
        _logger.debug("No storage_path configured, state will not survive a restart")
        return MemoryStore()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_coordinator(self) -> SyncCoordinator[CounterState]:
        if self._coordinator is None:
            raise SyncError("Client not initialized. Use 'async with SyncClient(...) as client:'")
        return self._coordinator

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def coordinator(self) -> SyncCoordinator[CounterState]:
        return self._require_coordinator()

    @property
    def state(self) -> CounterState:
        return self._require_coordinator().state

    async def dispatch(self, action: Action) -> CounterState:
        return await self._require_coordinator().dispatch(action)

    def observe(self) -> SyncView[CounterState]:
        return self._require_coordinator().observe()

    def subscribe(self, listener: ViewListener) -> Callable[[], None]:
        return self._require_coordinator().subscribe(listener)

    async def wait_remote(self) -> None:
        await self._require_coordinator().wait_remote()

    async def refresh(self) -> None:
        """Refetch the remote value, bypassing the cache.

        Failures are logged and flagged on the view, never raised.
        """
        await self._require_coordinator().refresh()
