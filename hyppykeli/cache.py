from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Hashable, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

Producer = Callable[[], Awaitable[V]]
StalenessCheck = Callable[[Any], Awaitable[bool]]


logger = logging.getLogger(__name__)


async def never_stale(_value: Any) -> bool:
    return False


@dataclass(frozen=True)
class CacheEntry(Generic[K, V]):
    key: K
    task: "asyncio.Future[V]"
    produced_at: float


class ResultCache(Generic[K, V]):
    """Share one producer invocation per key and keep its result until it goes stale.

    Entries are stored before the producer settles, so concurrent callers with the
    same key await the same task, also from event loops running in other
    threads. Once settled, a failed entry is always recomputed and a successful
    one is recomputed when ``is_stale`` says so or raises.
    """

    def __init__(self, is_stale: StalenessCheck = never_stale, time_func=time.monotonic) -> None:
        self._is_stale = is_stale
        self._time_func = time_func
        self._entries: Dict[K, CacheEntry[K, V]] = {}

    async def get_or_compute(self, key: K, producer: Producer) -> V:
        while True:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._store(key, producer)
                break
            if not entry.task.done():
                break
            if await self._is_reusable(entry):
                break
            if self._entries.get(key) is entry:
                entry = self._store(key, producer)
                break
            # another caller replaced the entry while the staleness check ran
        return await _wait(entry.task)

    def prune(self, max_age: float) -> int:
        """Drop settled entries produced more than ``max_age`` seconds ago."""
        cutoff = self._time_func() - max_age
        expired = [
            key
            for key, entry in self._entries.items()
            if entry.task.done() and entry.produced_at < cutoff
        ]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # helpers ------------------------------------------------------------
    def _store(self, key: K, producer: Producer) -> CacheEntry[K, V]:
        task = asyncio.ensure_future(producer())
        task.add_done_callback(_consume_exception)
        entry = CacheEntry(key=key, task=task, produced_at=self._time_func())
        self._entries[key] = entry
        return entry

    async def _is_reusable(self, entry: CacheEntry[K, V]) -> bool:
        if entry.task.cancelled() or entry.task.exception() is not None:
            logger.debug("Cache entry %r failed, recomputing", entry.key)
            return False
        try:
            stale = await self._is_stale(entry.task.result())
        except Exception as exc:
            logger.warning("Staleness check for %r failed, recomputing: %s", entry.key, exc)
            return False
        return not stale


def _wait(task: "asyncio.Future[V]") -> Awaitable[V]:
    """Await ``task`` from the running loop, even when another thread's loop owns it."""
    if task.done() or task.get_loop() is asyncio.get_running_loop():
        return asyncio.shield(task)
    waiter: "concurrent.futures.Future[V]" = concurrent.futures.Future()

    def relay(done: "asyncio.Future[V]") -> None:
        if waiter.done():
            return
        if done.cancelled():
            waiter.cancel()
        elif done.exception() is not None:
            waiter.set_exception(done.exception())
        else:
            waiter.set_result(done.result())

    task.get_loop().call_soon_threadsafe(task.add_done_callback, relay)
    return asyncio.wrap_future(waiter)


def _consume_exception(task: "asyncio.Future[Any]") -> None:
    if not task.cancelled():
        task.exception()


__all__ = ["CacheEntry", "ResultCache", "never_stale"]
