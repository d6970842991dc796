"""pysyncstate - Async remote cache, persisted local state and an ordered action queue."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pysyncstate")
except PackageNotFoundError:
    __version__ = "0+local"
from pysyncstate.cache import RemoteCache
from pysyncstate.client import SyncClient
from pysyncstate.config import SyncConfig
from pysyncstate.coordinator import SyncCoordinator
from pysyncstate.exceptions import (
    MalformedPersistedValue,
    RemoteFetchError,
    StorageError,
    StorageReadError,
    StorageWriteError,
    SyncConfigError,
    SyncError,
)
from pysyncstate.models import (
    Action,
    CounterState,
    Decrement,
    Increment,
    RemoteResult,
    SetInitial,
    SyncView,
)
from pysyncstate.reducer import StateReducer, count_transition, counter_reducer
from pysyncstate.storage import JsonFileStore, MemoryStore, PersistentStore, ScopedStore

__all__ = [
    "__version__",
    "Action",
    "CounterState",
    "Decrement",
    "Increment",
    "JsonFileStore",
    "MalformedPersistedValue",
    "MemoryStore",
    "PersistentStore",
    "RemoteCache",
    "RemoteFetchError",
    "RemoteResult",
    "ScopedStore",
    "SetInitial",
    "StateReducer",
    "StorageError",
    "StorageReadError",
    "StorageWriteError",
    "SyncClient",
    "SyncConfig",
    "SyncConfigError",
    "SyncCoordinator",
    "SyncError",
    "SyncView",
    "count_transition",
    "counter_reducer",
]
