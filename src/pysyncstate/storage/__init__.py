"""Persistent key-value storage.

Stores hold opaque text blobs under string keys. They know nothing about
state, actions or the remote cache; the coordinator is the only writer.
"""

from pysyncstate.storage.base import PersistentStore
from pysyncstate.storage.file import JsonFileStore
from pysyncstate.storage.memory import MemoryStore
from pysyncstate.storage.scoped import ScopedStore

__all__ = [
    "JsonFileStore",
    "MemoryStore",
    "PersistentStore",
    "ScopedStore",
]
