"""JSON file store.

The whole store is a single JSON object ``{key: blob}``. Blocking file I/O
runs in the default executor; writes go to a temporary sibling file which is
then renamed over the original, so a crash never leaves a half-written file.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import time
from pathlib import Path

from pysyncstate.exceptions import StorageReadError, StorageWriteError

_logger = logging.getLogger(__name__)


def _read_file(path: Path) -> dict[str, str]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    if not text.strip():
        return {}
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return {str(k): str(v) for k, v in data.items()}


def _write_file(path: Path, data: dict[str, str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, sort_keys=True)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def _quarantine(path: Path) -> Path:
    """Move a corrupt store aside so its records can be recovered by hand."""
    backup = path.with_name(f"{path.name}.corrupt-{int(time.time())}")
    os.replace(path, backup)
    return backup


class JsonFileStore:
    """Durable store backed by one JSON file."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def _load(self) -> dict[str, str]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, _read_file, self._path)

    async def get(self, key: str) -> str | None:
        async with self._lock:
            try:
                data = await self._load()
            except (OSError, ValueError) as exc:
                raise StorageReadError(f"Could not read {self._path}: {exc}", key=key) from exc
        _logger.debug("Read key %r from %s (present=%s)", key, self._path, key in data)
        return data.get(key)

    async def set(self, key: str, value: str) -> None:
        """Store *value* under *key*.

        The read-modify-write runs in its own task holding the lock. A
        caller that stops waiting (timeout, cancellation) does not release
        the lock early, so a later write can never be overtaken by this one.
        """
        task = asyncio.ensure_future(self._set_locked(key, value))
        task.add_done_callback(self._log_abandoned_failure)
        await asyncio.shield(task)

    async def _set_locked(self, key: str, value: str) -> None:
        loop = asyncio.get_running_loop()
        async with self._lock:
            try:
                data = await self._load()
            except ValueError as exc:
                try:
                    backup = await loop.run_in_executor(None, _quarantine, self._path)
                except OSError as move_exc:
                    raise StorageWriteError(
                        f"Could not move unreadable {self._path} aside: {move_exc}",
                        key=key,
                    ) from move_exc
                _logger.warning("Moved unreadable store %s to %s: %s", self._path, backup, exc)
                data = {}
            except OSError as exc:
                raise StorageWriteError(f"Could not read {self._path} before writing: {exc}", key=key) from exc
            data[key] = value
            try:
                await loop.run_in_executor(None, _write_file, self._path, data)
            except OSError as exc:
                raise StorageWriteError(f"Could not write {self._path}: {exc}", key=key) from exc
        _logger.debug("Wrote key %r to %s", key, self._path)

    def _log_abandoned_failure(self, task: asyncio.Future[None]) -> None:
        # A caller that stopped waiting never retrieves the error; record it here.
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.debug("Write to %s failed: %s", self._path, exc)
