from __future__ import annotations

import logging
from typing import Literal

import pytest
from pydantic import BaseModel, ConfigDict, ValidationError

from pysyncstate.exceptions import MalformedPersistedValue, StorageWriteError, SyncError
from pysyncstate.models.actions import Action, Decrement, Increment, SetInitial
from pysyncstate.models.state import CounterState
from pysyncstate.reducer import StateReducer, count_transition, counter_reducer
from pysyncstate.storage.memory import MemoryStore


class Reset(Action):
    type: Literal["reset"] = "reset"


class FailingStore:
    async def get(self, key: str) -> str | None:
        return None

    async def set(self, key: str, value: str) -> None:
        raise StorageWriteError("disk full", key=key)


class BrokenStore:
    async def get(self, key: str) -> str | None:
        return None

    async def set(self, key: str, value: str) -> None:
        raise OSError("quota exceeded")


def test_increment_and_decrement() -> None:
    state = CounterState(count=2)
    assert count_transition(state, Increment()).count == 3
    assert count_transition(state, Decrement()).count == 1


def test_decrement_has_no_floor() -> None:
    state = count_transition(CounterState(), Decrement())
    assert state.count == -1


def test_set_initial_overwrites_count() -> None:
    state = count_transition(CounterState(count=9), SetInitial(payload=4))
    assert state.count == 4


def test_unknown_action_is_identity() -> None:
    state = CounterState(count=7)
    assert count_transition(state, Reset()) is state


def test_set_initial_payload_is_strict_int() -> None:
    with pytest.raises(ValidationError):
        SetInitial(payload="3")  # type: ignore[arg-type]
    with pytest.raises(ValidationError):
        SetInitial(payload=True)


@pytest.mark.asyncio
async def test_apply_persists_json_encoded_count() -> None:
    store = MemoryStore()
    reducer = counter_reducer(store)

    state = await reducer.apply(CounterState(count=2), Increment())

    assert state.count == 3
    assert await store.get("count") == "3"


@pytest.mark.asyncio
async def test_apply_uses_configured_key() -> None:
    store = MemoryStore()
    reducer = counter_reducer(store, key="clicks")

    await reducer.apply(CounterState(), Decrement())

    assert store.snapshot() == {"clicks": "-1"}


@pytest.mark.asyncio
async def test_write_failure_reported_and_state_kept() -> None:
    errors: list[SyncError] = []
    reducer = counter_reducer(FailingStore(), on_error=errors.append)

    state = await reducer.apply(CounterState(), Increment())

    assert state.count == 1
    assert len(errors) == 1
    assert isinstance(errors[0], StorageWriteError)


@pytest.mark.asyncio
async def test_foreign_store_exception_wrapped_as_write_error() -> None:
    errors: list[SyncError] = []
    reducer = counter_reducer(BrokenStore(), on_error=errors.append)

    state = await reducer.apply(CounterState(count=1), Increment())

    assert state.count == 2
    assert isinstance(errors[0], StorageWriteError)
    assert isinstance(errors[0].__cause__, OSError)
    assert errors[0].key == "count"


@pytest.mark.asyncio
async def test_write_failure_logged_without_error_sink(caplog: pytest.LogCaptureFixture) -> None:
    reducer = counter_reducer(FailingStore())

    with caplog.at_level(logging.WARNING, logger="pysyncstate.reducer"):
        state = await reducer.apply(CounterState(), Increment())

    assert state.count == 1
    assert "disk full" in caplog.text


def test_decode_returns_set_initial() -> None:
    reducer = counter_reducer(MemoryStore())
    assert reducer.decode("12") == SetInitial(payload=12)
    assert reducer.decode("-3") == SetInitial(payload=-3)


@pytest.mark.parametrize("blob", ["not json", '"12"', "true", "1.5", "null", "[1]"])
def test_decode_rejects_malformed_values(blob: str) -> None:
    reducer = counter_reducer(MemoryStore())

    with pytest.raises(MalformedPersistedValue) as excinfo:
        reducer.decode(blob)

    assert excinfo.value.blob == blob
    assert excinfo.value.key == "count"


def test_decode_rejects_integer_beyond_digit_limit() -> None:
    reducer = counter_reducer(MemoryStore())

    with pytest.raises(MalformedPersistedValue, match="could not be parsed"):
        reducer.decode("1" * 5000)


@pytest.mark.asyncio
async def test_unserialisable_state_reported_and_kept() -> None:
    errors: list[SyncError] = []
    store = MemoryStore()
    reducer = counter_reducer(store, on_error=errors.append)

    state = await reducer.apply(CounterState(count=10**5000), Increment())

    assert state.count == 10**5000 + 1
    assert isinstance(errors[0], StorageWriteError)
    assert "cannot be serialised" in str(errors[0])
    assert await store.get("count") is None


class Profile(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""


class Rename(Action):
    type: Literal["rename"] = "rename"
    name: str


def _profile_transition(state: Profile, action: Action) -> Profile:
    if isinstance(action, Rename):
        return state.model_copy(update={"name": action.name})
    return state


@pytest.mark.asyncio
async def test_reducer_is_generic_over_state() -> None:
    store = MemoryStore()
    reducer: StateReducer[Profile] = StateReducer(
        _profile_transition,
        store=store,
        key="name",
        select=lambda state: state.name,
        restore=lambda value: Rename(name=value),
    )

    state = await reducer.apply(Profile(), Rename(name="ada"))

    assert state.name == "ada"
    assert await store.get("name") == '"ada"'
    assert reducer.decode('"ada"') == Rename(name="ada")
