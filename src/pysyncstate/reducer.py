"""State transition function with a persistence side effect.

The transition itself is synchronous and pure. :meth:`StateReducer.apply`
runs it and then awaits a write of the new state to the persistent store;
an apply is not finished until that write has settled. Callers must never
run two applies concurrently for the same store key. The coordinator
serialises them through its action queue.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from pysyncstate._constants import DEFAULT_STORAGE_KEY
from pysyncstate.exceptions import MalformedPersistedValue, StorageWriteError, SyncError
from pysyncstate.models.actions import Action, Decrement, Increment, SetInitial
from pysyncstate.models.state import CounterState
from pysyncstate.storage.base import PersistentStore

_logger = logging.getLogger(__name__)

S = TypeVar("S")

Transition = Callable[[S, Action], S]
ErrorSink = Callable[[SyncError], None]


def count_transition(state: CounterState, action: Action) -> CounterState:
    """Counter transition. Unknown actions leave *state* unchanged."""
    if isinstance(action, Increment):
        return state.model_copy(update={"count": state.count + 1})
    if isinstance(action, Decrement):
        return state.model_copy(update={"count": state.count - 1})
    if isinstance(action, SetInitial):
        return state.model_copy(update={"count": action.payload})
    return state


def _select_count(state: CounterState) -> int:
    return state.count


def _restore_count(value: Any) -> Action:
    return SetInitial(payload=value)


class StateReducer(Generic[S]):
    """Bind a transition function to a persisted record.

    Parameters
    ----------
    transition
        ``transition(state, action) -> state``; must be synchronous.
    store
        Where the selected state field is persisted.
    key
        Storage key of the persisted record.
    select
        Maps a state to the JSON-serialisable value that is persisted.
    restore
        Maps a decoded persisted value back to the action that reinstates
        it. Raising ``ValueError`` (or a pydantic ``ValidationError``)
        marks the value as malformed.
    on_error
        Receives write failures. The new state is kept regardless.
    timeout
        Seconds a write may take. ``None`` waits indefinitely.
    """

    def __init__(
        self,
        transition: Transition[S],
        *,
        store: PersistentStore,
        key: str,
        select: Callable[[S], Any],
        restore: Callable[[Any], Action],
        on_error: ErrorSink | None = None,
        timeout: float | None = None,
    ) -> None:
        self._transition = transition
        self._store = store
        self._key = key
        self._select = select
        self._restore = restore
        self._on_error = on_error
        self._timeout = timeout

    @property
    def key(self) -> str:
        return self._key

    @property
    def store(self) -> PersistentStore:
        return self._store

    def bind_error_sink(self, on_error: ErrorSink | None) -> None:
        self._on_error = on_error

    def reduce(self, state: S, action: Action) -> S:
        return self._transition(state, action)

    def encode(self, state: S) -> str:
        return json.dumps(self._select(state))

    def decode(self, blob: str) -> Action:
        """Parse a persisted blob into its rehydration action.

        Raises
        ------
        MalformedPersistedValue
            When *blob* is not JSON or not a value ``restore`` accepts.
        """
        try:
            value = json.loads(blob)
        except ValueError as exc:
            # Also covers integers beyond the interpreter's int-to-str digit limit.
            raise MalformedPersistedValue(
                f"Persisted value for {self._key!r} could not be parsed: {blob[:64]!r}",
                key=self._key,
                blob=blob,
            ) from exc
        try:
            return self._restore(value)
        except (ValueError, TypeError) as exc:
            # ValidationError is a ValueError subclass.
            raise MalformedPersistedValue(
                f"Persisted value for {self._key!r} is invalid: {blob[:64]!r}",
                key=self._key,
                blob=blob,
            ) from exc

    async def apply(self, state: S, action: Action) -> S:
        """Reduce, then persist the result before returning it."""
        next_state = self.reduce(state, action)
        await self._persist(next_state)
        return next_state

    async def _persist(self, state: S) -> None:
        try:
            blob = self.encode(state)
        except (TypeError, ValueError) as exc:
            error = StorageWriteError(f"State for {self._key!r} cannot be serialised: {exc}", key=self._key)
            error.__cause__ = exc
            self._report(error)
            return
        try:
            if self._timeout is None:
                await self._store.set(self._key, blob)
            else:
                await asyncio.wait_for(self._store.set(self._key, blob), self._timeout)
        except StorageWriteError as exc:
            self._report(exc)
        except TimeoutError as exc:
            if self._timeout is None:
                error = StorageWriteError(f"Write of {self._key!r} failed: {exc}", key=self._key)
            else:
                error = StorageWriteError(f"Write of {self._key!r} timed out after {self._timeout}s", key=self._key)
            error.__cause__ = exc
            self._report(error)
        except Exception as exc:
            error = StorageWriteError(f"Write of {self._key!r} failed: {exc}", key=self._key)
            error.__cause__ = exc
            self._report(error)
        else:
            _logger.debug("Persisted %r = %s", self._key, blob)

    def _report(self, error: SyncError) -> None:
        if self._on_error is None:
            _logger.warning("%s", error)
            return
        self._on_error(error)


def counter_reducer(
    store: PersistentStore,
    *,
    key: str = DEFAULT_STORAGE_KEY,
    on_error: ErrorSink | None = None,
    timeout: float | None = None,
) -> StateReducer[CounterState]:
    """Reducer for :class:`CounterState`, persisting ``count`` as bare JSON."""
    return StateReducer(
        count_transition,
        store=store,
        key=key,
        select=_select_count,
        restore=_restore_count,
        on_error=on_error,
        timeout=timeout,
    )
