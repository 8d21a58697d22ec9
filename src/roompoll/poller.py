from __future__ import annotations

import asyncio
import logging
from enum import StrEnum
from typing import Any, Awaitable, Callable, Generic, TypeVar

from .constants import POLLING_INTERVAL_MS, POLLING_MAX_RETRIES
from .result import Err, ErrorCode, Ok, Result


logger = logging.getLogger(__name__)

T = TypeVar("T")

Fetcher = Callable[[], Awaitable[Result[T, Any]]]
Sleep = Callable[[float], Awaitable[None]]


class PollState(StrEnum):
    IDLE = "idle"
    FETCHING = "fetching"
    POLLING = "polling"
    ERRORED = "errored"


class PollingEngine(Generic[T]):
    """
    定时轮询引擎：固定周期调用 fetcher，并维护 data / error / is_loading。

    行为约定：
    - enable() 立即发起一次拉取，并启动周期定时器
    - 定时器按固定周期触发，不等待上一次拉取完成，因此拉取可能重叠
    - 每次拉取带递增序号；完成时若序号小于已应用的最新序号，则丢弃该响应（不计成功也不计失败）
    - 连续失败达到 max_retries 才设置 error 并回调 on_error；任意一次成功清零计数并清除 error
    - 出错后继续轮询，不停止定时器
    - refresh() 清零失败计数并立即拉取一次，不影响定时器；已暴露的 error 保留到下一次成功，期间始终为最近一次失败
    - disable() 取消定时器、清空状态；尚在进行中的拉取完成后其结果被丢弃
    """

    def __init__(
        self,
        fetcher: Fetcher[T],
        *,
        interval: int = POLLING_INTERVAL_MS,
        max_retries: int = POLLING_MAX_RETRIES,
        on_success: Callable[[T], None] | None = None,
        on_error: Callable[[Any], None] | None = None,
        sleep: Sleep = asyncio.sleep,
        name: str = "poller",
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")

        self.interval = interval
        self.max_retries = max_retries
        self.name = name
        self._fetcher = fetcher
        self._on_success = on_success
        self._on_error = on_error
        self._sleep = sleep

        self.data: T | None = None
        self.error: Any | None = None
        self.consecutive_failures = 0

        self._enabled = False
        self._has_succeeded = False
        self._in_flight = 0
        self._generation = 0
        self._request_seq = 0
        self._last_applied_seq = 0
        self._timer: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def is_loading(self) -> bool:
        return self._in_flight > 0

    @property
    def state(self) -> PollState:
        if not self._enabled:
            return PollState.IDLE
        if self.error is not None:
            return PollState.ERRORED
        if not self._has_succeeded:
            return PollState.FETCHING
        return PollState.POLLING

    def enable(self) -> None:
        if self._enabled:
            return
        self._enabled = True
        logger.debug("polling enabled: name=%s interval_ms=%d", self.name, self.interval)
        self._spawn_fetch()
        self._timer = asyncio.get_running_loop().create_task(self._run_timer())

    def disable(self) -> None:
        if not self._enabled:
            return
        self._enabled = False
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.data = None
        self.error = None
        self.consecutive_failures = 0
        self._has_succeeded = False
        self._in_flight = 0
        self._last_applied_seq = 0
        logger.debug("polling disabled: name=%s in_flight_dropped=%d", self.name, len(self._tasks))

    def set_enabled(self, enabled: bool) -> None:
        if enabled:
            self.enable()
        else:
            self.disable()

    async def refresh(self) -> None:
        self.consecutive_failures = 0
        await self._fetch()

    async def aclose(self) -> None:
        """disable() 之后等待所有在途拉取结束（结果已被丢弃）。"""
        self.disable()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _run_timer(self) -> None:
        seconds = self.interval / 1000
        while True:
            await self._sleep(seconds)
            self._spawn_fetch()

    def _spawn_fetch(self) -> None:
        task = asyncio.get_running_loop().create_task(self._fetch())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _fetch(self) -> None:
        generation = self._generation
        self._request_seq += 1
        seq = self._request_seq
        self._in_flight += 1
        try:
            result = await self._fetcher()
        except Exception as e:  # noqa: BLE001
            logger.warning("fetcher raised: name=%s error=%s: %s", self.name, type(e).__name__, e)
            result = Err(ErrorCode.NETWORK_ERROR)
        finally:
            if generation == self._generation:
                self._in_flight -= 1

        if generation != self._generation:
            logger.debug("response dropped after disable: name=%s seq=%d", self.name, seq)
            return
        if seq < self._last_applied_seq:
            logger.debug(
                "stale response dropped: name=%s seq=%d last_applied=%d",
                self.name,
                seq,
                self._last_applied_seq,
            )
            return
        self._last_applied_seq = seq

        if isinstance(result, Ok):
            self._handle_success(result.data)
        else:
            self._handle_failure(result.error)

    def _handle_success(self, data: T) -> None:
        recovered = self.error is not None
        self.data = data
        self.error = None
        self.consecutive_failures = 0
        self._has_succeeded = True
        if recovered:
            logger.info("polling recovered: name=%s", self.name)
        if self._on_success is not None:
            try:
                self._on_success(data)
            except Exception:  # noqa: BLE001
                logger.exception("on_success callback failed: name=%s", self.name)

    def _handle_failure(self, error: Any) -> None:
        self.consecutive_failures += 1
        if self.consecutive_failures < self.max_retries:
            # refresh() 清零计数后 error 仍在：继续跟随最近一次失败
            if self.error is not None:
                self.error = error
            logger.debug(
                "poll failed: name=%s error=%s consecutive_failures=%d",
                self.name,
                error,
                self.consecutive_failures,
            )
            return

        self.error = error
        if self.consecutive_failures != self.max_retries:
            return
        logger.warning(
            "poll failure threshold reached: name=%s error=%s consecutive_failures=%d",
            self.name,
            error,
            self.consecutive_failures,
        )
        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception:  # noqa: BLE001
                logger.exception("on_error callback failed: name=%s", self.name)


def configure(
    fetcher: Fetcher[T],
    *,
    interval: int = POLLING_INTERVAL_MS,
    enabled: bool = True,
    max_retries: int = POLLING_MAX_RETRIES,
    on_success: Callable[[T], None] | None = None,
    on_error: Callable[[Any], None] | None = None,
    sleep: Sleep = asyncio.sleep,
    name: str = "poller",
) -> PollingEngine[T]:
    """
    构建轮询引擎；enabled=True 时立即启用（需在运行中的事件循环内调用）。
    """
    engine: PollingEngine[T] = PollingEngine(
        fetcher,
        interval=interval,
        max_retries=max_retries,
        on_success=on_success,
        on_error=on_error,
        sleep=sleep,
        name=name,
    )
    if enabled:
        engine.enable()
    return engine
