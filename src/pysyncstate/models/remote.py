"""Snapshot of a remote cache entry."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class RemoteResult(BaseModel):
    """Derived signals for one remote cache key.

    Parameters
    ----------
    value : Any
        Last successfully fetched value, ``None`` before the first success.
    is_loading : bool
        A fetch is in flight, or the entry has neither a value nor an error
        yet.
    is_fetching : bool
        A fetch is in flight (including background refetches of a cached
        value).
    is_error : bool
        The latest settled fetch attempt failed.
    error : str or None
        Message of the latest failure.
    updated_at : float or None
        Clock reading of the last successful fetch.
    """

    model_config = ConfigDict(frozen=True)

    value: Any = None
    is_loading: bool = True
    is_fetching: bool = False
    is_error: bool = False
    error: str | None = None
    updated_at: float | None = None
