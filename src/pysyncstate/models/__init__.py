"""Pydantic models for pysyncstate."""

from pysyncstate.models.actions import Action, Decrement, Increment, SetInitial
from pysyncstate.models.remote import RemoteResult
from pysyncstate.models.state import CounterState
from pysyncstate.models.view import SyncView

__all__ = [
    "Action",
    "CounterState",
    "Decrement",
    "Increment",
    "RemoteResult",
    "SetInitial",
    "SyncView",
]
