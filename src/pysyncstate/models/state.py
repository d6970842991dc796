"""Local application state."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class CounterState(BaseModel):
    """Counter state owned by the coordinator.

    ``count`` has no floor; negative values are valid.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    count: int = 0
