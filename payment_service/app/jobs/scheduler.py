from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable


logger = logging.getLogger(__name__)


class PeriodicJobScheduler:
    """비동기 잡을 서비스 프로세스 안에서 주기 실행한다.

    start() 는 FastAPI lifespan 시작 시, stop() 은 종료 시 호출된다.
    한 번의 실행이 실패해도 로그만 남기고 다음 주기에 다시 시도한다.
    """

    def __init__(
        self,
        name: str,
        job: Callable[[], Awaitable[Any]],
        *,
        interval_seconds: float,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._name = name
        self._job = job
        self._interval = interval_seconds
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run_job(self, trigger: str) -> None:
        logger.info("%s starting (%s run)", self._name, trigger)
        try:
            await self._job()
            logger.info("%s completed (%s run)", self._name, trigger)
        except Exception:  # noqa: BLE001
            logger.exception("%s failed (%s run)", self._name, trigger)

    async def _wait_for_stop(self) -> bool:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
        except TimeoutError:
            return False
        return True

    async def _loop(self) -> None:
        logger.info(
            "%s scheduler started (interval=%.0f seconds)", self._name, self._interval
        )
        # 최초 실행
        await self._run_job("initial")
        # 주기적 실행
        while not await self._wait_for_stop():
            await self._run_job("scheduled")
        logger.info("%s scheduler stopped", self._name)

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop(), name=self._name)

    async def stop(self, timeout: float = 10.0) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except TimeoutError:
            logger.warning("%s did not stop in time, cancelling", self._name)
            self._task.cancel()
        self._task = None
