"""Composite view handed to collaborators."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pysyncstate.models.actions import Action

S = TypeVar("S")


@dataclass(frozen=True, slots=True)
class SyncView(Generic[S]):
    """Read-only snapshot of the coordinator's observable output.

    ``remote_value`` and ``state`` are independent signals: a successful
    remote fetch never changes ``state``.
    """

    remote_value: Any
    remote_is_loading: bool
    remote_is_error: bool
    state: S
    dispatch: Callable[[Action], Awaitable[S]]
