"""Actions accepted by the state reducer.

Actions are a tagged family: every action carries a ``type`` string so it
can be logged or replayed. The family is open for extension; a transition
function leaves state unchanged for any action type it does not handle.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Action(BaseModel):
    """Base for all dispatched actions."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: str


class Increment(Action):
    type: Literal["increment"] = "increment"


class Decrement(Action):
    type: Literal["decrement"] = "decrement"


class SetInitial(Action):
    """Overwrite the count unconditionally. Emitted by startup rehydration."""

    type: Literal["set_initial"] = "set_initial"
    payload: int = Field(..., strict=True)
