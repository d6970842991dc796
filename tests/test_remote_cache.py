from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import pytest

from pysyncstate.cache import RemoteCache
from pysyncstate.exceptions import RemoteFetchError
from pysyncstate.models.remote import RemoteResult


@dataclass
class FakeFetcher:
    values: dict[str, Any] = field(default_factory=lambda: {"count": 42})
    calls: int = 0
    gate: asyncio.Event | None = None
    error: Exception | None = None

    async def __call__(self, key: str) -> Any:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.values[key]


def test_unknown_key_reports_loading_without_value() -> None:
    cache = RemoteCache(FakeFetcher())

    result = cache.result("count")

    assert result == RemoteResult(value=None, is_loading=True, is_fetching=False, is_error=False)


@pytest.mark.asyncio
async def test_concurrent_fetches_share_one_request() -> None:
    fetcher = FakeFetcher(gate=asyncio.Event())
    cache = RemoteCache(fetcher)

    first = asyncio.create_task(cache.fetch("count"))
    second = asyncio.create_task(cache.fetch("count"))
    await asyncio.sleep(0)

    pending = cache.result("count")
    assert pending.is_loading is True
    assert pending.is_fetching is True

    fetcher.gate.set()  # type: ignore[union-attr]
    assert await asyncio.gather(first, second) == [42, 42]
    assert fetcher.calls == 1

    done = cache.result("count")
    assert done.value == 42
    assert done.is_loading is False
    assert done.is_fetching is False
    assert done.updated_at is not None


@pytest.mark.asyncio
async def test_cached_value_served_without_refetch() -> None:
    fetcher = FakeFetcher()
    cache = RemoteCache(fetcher)

    assert await cache.fetch("count") == 42
    fetcher.values["count"] = 43
    assert await cache.fetch("count") == 42
    assert fetcher.calls == 1


@pytest.mark.asyncio
async def test_force_and_invalidate_hit_the_fetcher() -> None:
    fetcher = FakeFetcher()
    cache = RemoteCache(fetcher)
    await cache.fetch("count")

    fetcher.values["count"] = 43
    assert await cache.fetch("count", force=True) == 43

    fetcher.values["count"] = 44
    cache.invalidate("count")
    assert await cache.fetch("count") == 44
    assert await cache.fetch("count") == 44
    assert fetcher.calls == 3


@pytest.mark.asyncio
async def test_stale_after_triggers_refetch() -> None:
    now = [100.0]
    fetcher = FakeFetcher()
    cache = RemoteCache(fetcher, stale_after=10.0, clock=lambda: now[0])

    await cache.fetch("count")
    now[0] = 105.0
    await cache.fetch("count")
    assert fetcher.calls == 1

    now[0] = 111.0
    await cache.fetch("count")
    assert fetcher.calls == 2


@pytest.mark.asyncio
async def test_failed_refetch_keeps_last_good_value() -> None:
    fetcher = FakeFetcher()
    cache = RemoteCache(fetcher)
    await cache.fetch("count")

    fetcher.error = RemoteFetchError("HTTP 503", status_code=503)
    with pytest.raises(RemoteFetchError):
        await cache.fetch("count", force=True)

    result = cache.result("count")
    assert result.value == 42
    assert result.is_error is True
    assert result.is_loading is False
    assert result.error == "HTTP 503"


@pytest.mark.asyncio
async def test_first_fetch_failure_is_error_not_loading() -> None:
    cache = RemoteCache(FakeFetcher(error=RemoteFetchError("offline")))

    with pytest.raises(RemoteFetchError):
        await cache.fetch("count")

    result = cache.result("count")
    assert result.value is None
    assert result.is_error is True
    assert result.is_loading is False


@pytest.mark.asyncio
async def test_success_clears_error() -> None:
    fetcher = FakeFetcher(error=RemoteFetchError("offline"))
    cache = RemoteCache(fetcher)
    with pytest.raises(RemoteFetchError):
        await cache.fetch("count")

    fetcher.error = None
    assert await cache.fetch("count") == 42
    assert cache.result("count").is_error is False


@pytest.mark.asyncio
async def test_foreign_exception_wrapped() -> None:
    cache = RemoteCache(FakeFetcher(error=KeyError("count")))

    with pytest.raises(RemoteFetchError) as excinfo:
        await cache.fetch("count")

    assert isinstance(excinfo.value.__cause__, KeyError)


@pytest.mark.asyncio
async def test_timeout_becomes_fetch_error() -> None:
    fetcher = FakeFetcher(gate=asyncio.Event())
    cache = RemoteCache(fetcher, timeout=0.01)

    with pytest.raises(RemoteFetchError, match="timed out"):
        await cache.fetch("count")

    assert cache.result("count").is_error is True


@pytest.mark.asyncio
async def test_fetcher_timeout_without_configured_limit_is_plain_failure() -> None:
    cache = RemoteCache(FakeFetcher(error=TimeoutError("upstream deadline")))

    with pytest.raises(RemoteFetchError) as excinfo:
        await cache.fetch("count")

    assert "timed out after" not in str(excinfo.value)
    assert "upstream deadline" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, TimeoutError)


@pytest.mark.asyncio
async def test_listeners_see_fetch_lifecycle() -> None:
    cache = RemoteCache(FakeFetcher())
    seen: list[tuple[str, bool, Any]] = []
    unsubscribe = cache.subscribe(lambda key, result: seen.append((key, result.is_fetching, result.value)))

    await cache.fetch("count")
    assert seen == [("count", True, None), ("count", False, 42)]

    unsubscribe()
    await cache.fetch("count", force=True)
    assert len(seen) == 2


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_fetch() -> None:
    cache = RemoteCache(FakeFetcher())

    def _boom(_key: str, _result: RemoteResult) -> None:
        raise RuntimeError("listener bug")

    cache.subscribe(_boom)
    assert await cache.fetch("count") == 42


@pytest.mark.asyncio
async def test_close_cancels_in_flight_fetch() -> None:
    fetcher = FakeFetcher(gate=asyncio.Event())
    cache = RemoteCache(fetcher)
    waiter = asyncio.create_task(cache.fetch("count"))
    await asyncio.sleep(0)

    await cache.close()

    with pytest.raises(asyncio.CancelledError):
        await waiter
    assert cache.result("count").is_fetching is False
