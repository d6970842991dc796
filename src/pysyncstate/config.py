"""Client configuration for pysyncstate."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pysyncstate._constants import DEFAULT_REMOTE_KEY, DEFAULT_STORAGE_KEY, DEFAULT_STORAGE_SCOPE
from pysyncstate.exceptions import SyncConfigError


def _env_seconds(env_key: str, value: str | None) -> float | None:
    """Parse an optional seconds value; empty or ``none`` means unset."""
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in {"", "none", "off"}:
        return None
    try:
        seconds = float(normalized)
    except ValueError as exc:
        raise SyncConfigError(f"{env_key} must be a number of seconds, got {value!r}") from exc
    if seconds < 0:
        raise SyncConfigError(f"{env_key} must not be negative, got {value!r}")
    return seconds


@dataclasses.dataclass(frozen=True)
class SyncConfig:
    """Client configuration.

    Parameters
    ----------
    remote_url : str
        URL of the JSON document holding the remote value.
    remote_key : str
        Logical cache key for the remote value.
    remote_field : str or None
        Field read from the remote JSON object. Defaults to ``remote_key``.
    storage_key : str
        Key of the persisted record.
    storage_scope : str
        Namespace prefixed to every storage key.
    storage_path : str or None
        JSON file backing the persistent store. ``None`` keeps state in
        memory only (nothing survives a restart).
    stale_after : float or None
        Seconds after which a cached remote value is refetched on the next
        read. ``None`` caches forever.
    fetch_timeout : float or None
        Upper bound in seconds for one remote fetch. ``None`` waits
        indefinitely.
    storage_timeout : float or None
        Upper bound in seconds for one storage read or write. ``None`` waits
        indefinitely.
    """

    remote_url: str
    remote_key: str = DEFAULT_REMOTE_KEY
    remote_field: str | None = None
    storage_key: str = DEFAULT_STORAGE_KEY
    storage_scope: str = DEFAULT_STORAGE_SCOPE
    storage_path: str | None = None
    stale_after: float | None = None
    fetch_timeout: float | None = None
    storage_timeout: float | None = None

    @classmethod
    def from_env(cls, **overrides: Any) -> SyncConfig:
        """Create configuration from environment variables.

        Reads ``PYSYNCSTATE_REMOTE_URL`` and the optional ``PYSYNCSTATE_*``
        variables below. Explicit keyword arguments override environment
        values.

        Raises
        ------
        SyncConfigError
            When no remote URL is available or a numeric value is invalid.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "PYSYNCSTATE_REMOTE_URL": "remote_url",
            "PYSYNCSTATE_REMOTE_KEY": "remote_key",
            "PYSYNCSTATE_REMOTE_FIELD": "remote_field",
            "PYSYNCSTATE_STORAGE_KEY": "storage_key",
            "PYSYNCSTATE_STORAGE_SCOPE": "storage_scope",
            "PYSYNCSTATE_STORAGE_PATH": "storage_path",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_SECONDS_MAP = {
            "PYSYNCSTATE_STALE_AFTER": "stale_after",
            "PYSYNCSTATE_FETCH_TIMEOUT": "fetch_timeout",
            "PYSYNCSTATE_STORAGE_TIMEOUT": "storage_timeout",
        }
        for env_key, field_name in _ENV_SECONDS_MAP.items():
            if field_name in overrides:
                continue
            seconds = _env_seconds(env_key, env.get(env_key))
            if seconds is not None:
                config_kwargs[field_name] = seconds

        config_kwargs.update(overrides)

        if not config_kwargs.get("remote_url"):
            raise SyncConfigError("PYSYNCSTATE_REMOTE_URL is not set")

        return cls(**config_kwargs)
