"""Authoritative owner of local state.

The coordinator admits every dispatched action into a FIFO queue drained by
a single worker task. The worker applies one action at a time through the
:class:`~pysyncstate.reducer.StateReducer` and waits for its persistence
write to settle before taking the next one, so transitions are totally
ordered by enqueue position and no update is lost to a concurrent write.

Startup rehydration goes through the same queue: a ``SetInitial`` read from
storage is ordered against early user dispatches by when it was enqueued,
not by when any write completes.

The remote value is fetched alongside but never merged into local state.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pysyncstate._constants import DEFAULT_REMOTE_KEY
from pysyncstate.cache import RemoteCache
from pysyncstate.exceptions import (
    MalformedPersistedValue,
    RemoteFetchError,
    StorageReadError,
    SyncError,
)
from pysyncstate.models.actions import Action
from pysyncstate.models.remote import RemoteResult
from pysyncstate.models.view import SyncView
from pysyncstate.reducer import StateReducer

_logger = logging.getLogger(__name__)

S = TypeVar("S")

ViewListener = Callable[[SyncView[Any]], None]
ErrorCallback = Callable[[SyncError], None]


@dataclass(slots=True)
class _QueuedAction:
    action: Action
    future: asyncio.Future[Any]


class SyncCoordinator(Generic[S]):
    """Serialise actions, rehydrate at startup and expose a composite view.

    Usage::

        async with SyncCoordinator(counter_reducer(store), cache, initial_state=CounterState()) as sync:
            await sync.dispatch(Increment())
            view = sync.observe()

    Parameters
    ----------
    reducer
        Transition function bound to the persisted record. The coordinator
        installs itself as the reducer's error sink.
    cache
        Remote cache; the coordinator reads ``remote_key`` from it.
    initial_state
        State used until (and unless) rehydration succeeds.
    remote_key
        Cache key fetched at startup.
    on_error
        Optional callback receiving every recovered error, after it has
        been logged.
    storage_timeout
        Seconds the startup read may take. ``None`` waits indefinitely.
    """

    def __init__(
        self,
        reducer: StateReducer[S],
        cache: RemoteCache,
        *,
        initial_state: S,
        remote_key: str = DEFAULT_REMOTE_KEY,
        on_error: ErrorCallback | None = None,
        storage_timeout: float | None = None,
    ) -> None:
        self._reducer = reducer
        self._cache = cache
        self._state = initial_state
        self._remote_key = remote_key
        self._on_error = on_error
        self._storage_timeout = storage_timeout
        self._queue: asyncio.Queue[_QueuedAction] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._remote_task: asyncio.Task[None] | None = None
        self._listeners: list[ViewListener] = []
        self._initialized = False
        self._closed = False
        self._unsubscribe_cache: Callable[[], None] | None = None

        reducer.bind_error_sink(self._report)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SyncCoordinator[S]:
        await self.initialize()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Start the remote fetch and rehydrate from storage.

        The remote fetch keeps running in the background; this returns once
        the persisted value has been read and, when present, applied. A
        missing, unreadable or malformed record leaves the initial state.
        Calling it again is a no-op.
        """
        if self._initialized:
            return
        self._require_open()
        self._initialized = True
        self._unsubscribe_cache = self._cache.subscribe(self._on_remote_change)
        self._ensure_worker()
        self._remote_task = asyncio.create_task(
            self._fetch_remote(),
            name=f"pysyncstate-remote-{self._remote_key}",
        )
        await self._rehydrate()

    async def _fetch_remote(self, *, force: bool = False) -> None:
        try:
            await self._cache.fetch(self._remote_key, force=force)
        except RemoteFetchError as exc:
            self._report(exc)

    async def _read_persisted(self) -> str | None:
        store = self._reducer.store
        key = self._reducer.key
        try:
            if self._storage_timeout is None:
                return await store.get(key)
            return await asyncio.wait_for(store.get(key), self._storage_timeout)
        except StorageReadError:
            raise
        except TimeoutError as exc:
            if self._storage_timeout is None:
                raise StorageReadError(f"Read of {key!r} failed: {exc}", key=key) from exc
            raise StorageReadError(
                f"Read of {key!r} timed out after {self._storage_timeout}s",
                key=key,
            ) from exc
        except Exception as exc:
            raise StorageReadError(f"Read of {key!r} failed: {exc}", key=key) from exc

    async def _rehydrate(self) -> None:
        try:
            blob = await self._read_persisted()
        except StorageReadError as exc:
            self._report(exc)
            return
        if blob is None:
            _logger.debug("No persisted value for %r, keeping initial state", self._reducer.key)
            return
        try:
            action = self._reducer.decode(blob)
        except MalformedPersistedValue as exc:
            self._report(exc)
            return
        _logger.debug("Rehydrating %r from storage", self._reducer.key)
        future = self._enqueue(action)
        # A failing transition is already logged by the worker.
        with contextlib.suppress(Exception):
            await asyncio.shield(future)

    async def refresh(self) -> None:
        """Refetch the remote value, bypassing the cache. Never raises for fetch errors."""
        self._require_open()
        await self._fetch_remote(force=True)

    async def wait_remote(self) -> None:
        """Wait for the startup remote fetch to settle. Never raises for fetch errors."""
        task = self._remote_task
        if task is None or task.cancelled():
            return
        await asyncio.shield(task)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, action: Action) -> S:
        """Apply *action* after every previously dispatched one.

        Returns the new state once its persistence write has settled.
        Storage failures are reported, not raised, and the in-memory state
        change stands. Cancelling the caller does not withdraw the action.
        """
        result: S = await asyncio.shield(self.dispatch_nowait(action))
        return result

    def dispatch_nowait(self, action: Action) -> asyncio.Future[S]:
        """Enqueue *action* and return a future for the resulting state."""
        self._require_open()
        self._ensure_worker()
        return self._enqueue(action)

    def _enqueue(self, action: Action) -> asyncio.Future[Any]:
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(_QueuedAction(action=action, future=future))
        _logger.debug("Enqueued %s (queue depth %d)", action.type, self._queue.qsize())
        return future

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run_worker(), name="pysyncstate-worker")

    async def _run_worker(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item.future.done():
                    continue
                try:
                    new_state = await self._reducer.apply(self._state, item.action)
                except asyncio.CancelledError:
                    item.future.cancel()
                    raise
                except Exception as exc:
                    _logger.error("Transition for %s failed", item.action.type, exc_info=True)
                    item.future.set_exception(exc)
                    continue
                self._state = new_state
                item.future.set_result(new_state)
                self._notify()
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued action has been applied."""
        await self._queue.join()

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def state(self) -> S:
        return self._state

    @property
    def remote(self) -> RemoteResult:
        return self._cache.result(self._remote_key)

    def observe(self) -> SyncView[S]:
        """Snapshot of remote signals, local state and the dispatch function."""
        remote = self.remote
        return SyncView(
            remote_value=remote.value,
            remote_is_loading=remote.is_loading,
            remote_is_error=remote.is_error,
            state=self._state,
            dispatch=self.dispatch,
        )

    def subscribe(self, listener: ViewListener) -> Callable[[], None]:
        """Call *listener* with a fresh view after every change.

        Changes are completed transitions and remote result updates.
        Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    def _on_remote_change(self, key: str, _result: RemoteResult) -> None:
        if key == self._remote_key:
            self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        view = self.observe()
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:
                _logger.debug("View listener failed", exc_info=True)

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    def _report(self, error: SyncError) -> None:
        _logger.warning("%s: %s", type(error).__name__, error)
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception:
            _logger.debug("on_error callback failed", exc_info=True)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def _require_open(self) -> None:
        if self._closed:
            raise SyncError("Coordinator is closed")

    async def close(self) -> None:
        """Stop the worker and the startup fetch.

        Actions still waiting in the queue are dropped and their futures
        cancelled; call :meth:`drain` first to apply them.
        """
        if self._closed:
            return
        self._closed = True
        if self._unsubscribe_cache is not None:
            self._unsubscribe_cache()
            self._unsubscribe_cache = None

        tasks = [task for task in (self._remote_task, self._worker) if task is not None and not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        while not self._queue.empty():
            item = self._queue.get_nowait()
            self._queue.task_done()
            if not item.future.done():
                item.future.cancel()
        _logger.debug("Coordinator closed")
