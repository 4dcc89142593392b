"""읽기 관통(read-through) 캐시.

키마다 완료된 값이 아니라 진행 중인 Future 를 저장한다. 같은 키로 동시에 들어온 요청은
하나의 Future 를 공유하므로, 요청이 몰려도 업스트림 호출은 키당 최대 한 번이다.

- 조회 실패 시 해당 키를 제거하고 모든 대기자에게 예외를 그대로 전달한다. (실패는 캐시하지 않는다)
- 용량을 넘으면 가장 오래 사용되지 않은 항목을 내보낸다. get/put 모두 최근 사용으로 갱신한다.
- TTL 은 접근 시점에 지연 평가한다. 백그라운드 정리는 하지 않는다.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from ..metrics import MetricsContext


logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")


def cache_key_string(key: Any) -> str:
    """캐시 키를 문자열로 정규화한다. 문자열은 그대로, 그 외는 정렬된 compact JSON."""

    if isinstance(key, str):
        return key
    return json.dumps(key, sort_keys=True, separators=(",", ":"), default=str)


def _retrieve_exception(future: asyncio.Future[Any]) -> None:
    # 모든 대기자가 타임아웃으로 떠난 뒤 실패한 조회가 "never retrieved" 경고를 남기지 않게 한다.
    if not future.cancelled():
        future.exception()


@dataclass(slots=True)
class _Entry(Generic[V]):
    future: asyncio.Future[V]
    stored_at: float


class ReadThroughCache(Generic[K, V]):
    def __init__(
        self,
        *,
        name: str,
        fetch: Callable[[K], Awaitable[V]],
        capacity: int,
        ttl_seconds: float,
        timeout_seconds: float | None = None,
        metrics: MetricsContext | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._name = name
        self._fetch = fetch
        self._capacity = capacity
        self._ttl_seconds = ttl_seconds
        self._timeout_seconds = timeout_seconds
        self._metrics = metrics
        self._clock = clock
        self._entries: OrderedDict[str, _Entry[V]] = OrderedDict()

    @property
    def name(self) -> str:
        return self._name

    def size(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def remove(self, key: K) -> None:
        self._entries.pop(cache_key_string(key), None)

    def put(self, key: K, value: V) -> None:
        """이미 알고 있는 값을 완료된 Future 로 저장한다."""

        future: asyncio.Future[V] = asyncio.get_running_loop().create_future()
        future.set_result(value)
        self._store(cache_key_string(key), future)

    async def get(self, key: K) -> V:
        cache_key = cache_key_string(key)
        entry = self._lookup(cache_key)

        if entry is not None:
            self._record(hit=True)
            future = entry.future
        else:
            self._record(hit=False)
            future = asyncio.ensure_future(self._fetch_and_settle(cache_key, key))
            future.add_done_callback(_retrieve_exception)
            self._store(cache_key, future)

        # shield: 호출자가 타임아웃/취소되어도 공유된 조회는 계속 진행되어 다음 호출자가 결과를 쓴다.
        if self._timeout_seconds is None:
            return await asyncio.shield(future)
        return await asyncio.wait_for(asyncio.shield(future), self._timeout_seconds)

    def _lookup(self, cache_key: str) -> _Entry[V] | None:
        entry = self._entries.get(cache_key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self._ttl_seconds:
            del self._entries[cache_key]
            logger.debug(
                "cache entry expired",
                extra={"cache_key": f"{self._name}:{cache_key}"},
            )
            return None
        self._entries.move_to_end(cache_key)
        return entry

    def _store(self, cache_key: str, future: asyncio.Future[V]) -> None:
        self._entries[cache_key] = _Entry(future=future, stored_at=self._clock())
        self._entries.move_to_end(cache_key)
        while len(self._entries) > self._capacity:
            evicted_key, _ = self._entries.popitem(last=False)
            logger.debug(
                "cache entry evicted",
                extra={"cache_key": f"{self._name}:{evicted_key}"},
            )

    async def _fetch_and_settle(self, cache_key: str, key: K) -> V:
        try:
            return await self._fetch(key)
        except BaseException:
            # 아직 같은 Future 가 저장되어 있을 때만 제거한다. (그사이 put 으로 교체됐을 수 있다)
            entry = self._entries.get(cache_key)
            current = asyncio.current_task()
            if entry is not None and entry.future is current:
                del self._entries[cache_key]
            if self._metrics is not None:
                self._metrics.cache_fetch_errors.inc(self._name)
            logger.warning(
                "cache fetch failed",
                extra={"cache_key": f"{self._name}:{cache_key}"},
            )
            raise

    def _record(self, *, hit: bool) -> None:
        if self._metrics is None:
            return
        if hit:
            self._metrics.cache_hits.inc(self._name)
        else:
            self._metrics.cache_misses.inc(self._name)
