import asyncio
import logging

import pytest

from roompoll.poller import PollingEngine, PollState, configure
from roompoll.result import Err, ErrorCode, Ok


class ScriptedFetcher:
    """
    按顺序返回预设结果；最后一个结果会一直重复。
    """

    def __init__(self, *results) -> None:  # noqa: ANN002
        self.results = list(results)
        self.calls = 0

    async def __call__(self):  # noqa: ANN204
        self.calls += 1
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


class GatedFetcher:
    """
    每次调用都挂起，直到测试手动 set_result 对应的 future。
    """

    def __init__(self) -> None:
        self.gates: list[asyncio.Future] = []

    async def __call__(self):  # noqa: ANN204
        fut = asyncio.get_running_loop().create_future()
        self.gates.append(fut)
        return await fut


def test_fetches_immediately_on_enable(clock) -> None:  # noqa: ANN001
    async def scenario() -> None:
        fetcher = ScriptedFetcher(Ok({"id": "1"}))
        engine = configure(fetcher, interval=3000, sleep=clock.sleep)
        await clock.settle()

        assert engine.data == {"id": "1"}
        assert fetcher.calls == 1
        assert engine.error is None
        assert engine.state is PollState.POLLING

        await clock.advance(3.0)
        assert fetcher.calls == 2
        await engine.aclose()

    asyncio.run(scenario())


def test_timer_fires_at_fixed_period(clock) -> None:  # noqa: ANN001
    async def scenario() -> None:
        fetcher = ScriptedFetcher(Ok([]))
        engine = configure(fetcher, interval=1000, sleep=clock.sleep)
        await clock.advance(5.0)
        assert fetcher.calls == 6
        await engine.aclose()

    asyncio.run(scenario())


def test_disabled_engine_does_not_fetch_until_enabled(clock) -> None:  # noqa: ANN001
    async def scenario() -> None:
        fetcher = ScriptedFetcher(Ok(1))
        engine = configure(fetcher, interval=1000, enabled=False, sleep=clock.sleep)
        await clock.advance(10.0)
        assert fetcher.calls == 0
        assert engine.state is PollState.IDLE

        engine.set_enabled(True)
        await clock.settle()
        assert fetcher.calls == 1
        assert engine.data == 1
        await engine.aclose()

    asyncio.run(scenario())


def test_on_success_called_even_for_empty_payload(clock) -> None:  # noqa: ANN001
    async def scenario() -> None:
        seen: list = []
        engine = configure(ScriptedFetcher(Ok([])), interval=1000, on_success=seen.append, sleep=clock.sleep)
        await clock.advance(2.0)
        assert seen == [[], [], []]
        await engine.aclose()

    asyncio.run(scenario())


def test_error_surfaces_only_after_max_consecutive_failures(clock) -> None:  # noqa: ANN001
    async def scenario() -> None:
        errors: list = []
        engine = configure(
            ScriptedFetcher(Err(ErrorCode.NETWORK_ERROR)),
            interval=1000,
            max_retries=3,
            on_error=errors.append,
            sleep=clock.sleep,
        )
        await clock.settle()
        assert engine.consecutive_failures == 1
        assert engine.error is None

        await clock.advance(1.0)
        assert engine.consecutive_failures == 2
        assert engine.error is None
        assert errors == []

        await clock.advance(1.0)
        assert engine.consecutive_failures == 3
        assert engine.error == ErrorCode.NETWORK_ERROR
        assert errors == [ErrorCode.NETWORK_ERROR]
        assert engine.state is PollState.ERRORED

        # 出错后继续轮询，但回调只在越过阈值时触发一次
        await clock.advance(2.0)
        assert engine.consecutive_failures == 5
        assert errors == [ErrorCode.NETWORK_ERROR]
        await engine.aclose()

    asyncio.run(scenario())


def test_single_success_resets_failure_streak(clock) -> None:  # noqa: ANN001
    async def scenario() -> None:
        errors: list = []
        fetcher = ScriptedFetcher(
            Err(ErrorCode.NETWORK_ERROR),
            Err(ErrorCode.NETWORK_ERROR),
            Ok("fine"),
            Err(ErrorCode.NETWORK_ERROR),
            Err(ErrorCode.NETWORK_ERROR),
        )
        engine = configure(fetcher, interval=1000, max_retries=3, on_error=errors.append, sleep=clock.sleep)
        await clock.advance(4.0)

        assert fetcher.calls == 5
        assert engine.consecutive_failures == 2
        assert engine.error is None
        assert engine.data == "fine"
        assert errors == []
        await engine.aclose()

    asyncio.run(scenario())


def test_error_is_last_failure_payload_and_clears_on_success(clock) -> None:  # noqa: ANN001
    async def scenario() -> None:
        fetcher = ScriptedFetcher(
            Err(ErrorCode.NOT_A_MEMBER),
            Err(ErrorCode.INTERNAL_ERROR),
            Ok("back"),
        )
        engine = configure(fetcher, interval=1000, max_retries=1, sleep=clock.sleep)
        await clock.settle()
        assert engine.error == ErrorCode.NOT_A_MEMBER

        await clock.advance(1.0)
        assert engine.error == ErrorCode.INTERNAL_ERROR

        await clock.advance(1.0)
        assert engine.error is None
        assert engine.data == "back"
        assert engine.state is PollState.POLLING
        await engine.aclose()

    asyncio.run(scenario())


def test_retry_then_recover_with_manual_refresh(clock) -> None:  # noqa: ANN001
    async def scenario() -> None:
        fetcher = ScriptedFetcher(Err("NETWORK_ERROR"), Ok({"id": "1"}))
        engine = configure(fetcher, interval=100000, max_retries=1, sleep=clock.sleep)
        await clock.settle()
        assert engine.error == "NETWORK_ERROR"
        assert engine.data is None

        await engine.refresh()
        assert engine.error is None
        assert engine.data == {"id": "1"}
        assert fetcher.calls == 2
        await engine.aclose()

    asyncio.run(scenario())


def test_refresh_resets_counter_without_restarting_timer(clock) -> None:  # noqa: ANN001
    async def scenario() -> None:
        fetcher = ScriptedFetcher(Err(ErrorCode.NETWORK_ERROR))
        engine = configure(fetcher, interval=1000, max_retries=2, sleep=clock.sleep)
        await clock.advance(0.5)
        assert engine.consecutive_failures == 1

        await engine.refresh()
        assert engine.consecutive_failures == 1
        assert engine.error is None

        # 定时器仍按原节奏在 t=1.0 触发
        await clock.advance(0.5)
        assert fetcher.calls == 3
        assert engine.consecutive_failures == 2
        assert engine.error == ErrorCode.NETWORK_ERROR
        await engine.aclose()

    asyncio.run(scenario())


def test_failure_after_refresh_updates_surfaced_error(clock) -> None:  # noqa: ANN001
    async def scenario() -> None:
        fetcher = ScriptedFetcher(
            Err(ErrorCode.NETWORK_ERROR), Err(ErrorCode.NETWORK_ERROR), Err(ErrorCode.INTERNAL_ERROR)
        )
        engine = configure(fetcher, interval=1000, max_retries=2, sleep=clock.sleep)
        await clock.settle()
        await clock.advance(1.0)
        assert engine.consecutive_failures == 2
        assert engine.error == ErrorCode.NETWORK_ERROR

        # 计数低于阈值，但已暴露的 error 跟随最近一次失败
        await engine.refresh()
        assert engine.consecutive_failures == 1
        assert engine.error == ErrorCode.INTERNAL_ERROR
        assert engine.state is PollState.ERRORED
        await engine.aclose()

    asyncio.run(scenario())


def test_teardown_stops_polling(clock) -> None:  # noqa: ANN001
    async def scenario() -> None:
        fetcher = ScriptedFetcher(Ok({"id": "1"}))
        engine = configure(fetcher, interval=100000, sleep=clock.sleep)
        await clock.settle()
        calls_before = fetcher.calls
        assert calls_before == 1

        engine.disable()
        await clock.advance(100.0 * 5)
        assert fetcher.calls == calls_before
        assert engine.data is None
        assert engine.state is PollState.IDLE

    asyncio.run(scenario())


def test_fetcher_exception_counts_as_network_error(clock, caplog) -> None:  # noqa: ANN001
    async def boom():  # noqa: ANN202
        raise OSError("connection reset")

    async def scenario() -> None:
        engine = configure(boom, interval=1000, max_retries=1, sleep=clock.sleep)
        await clock.settle()
        assert engine.error == ErrorCode.NETWORK_ERROR
        await engine.aclose()

    caplog.set_level(logging.WARNING)
    asyncio.run(scenario())
    assert "fetcher raised" in caplog.text


def test_loading_state_tracks_in_flight_fetch(clock) -> None:  # noqa: ANN001
    async def scenario() -> None:
        fetcher = GatedFetcher()
        engine = configure(fetcher, interval=100000, sleep=clock.sleep)
        await clock.settle()
        assert engine.is_loading
        assert engine.state is PollState.FETCHING

        fetcher.gates[0].set_result(Ok("done"))
        await clock.settle()
        assert not engine.is_loading
        assert engine.data == "done"
        await engine.aclose()

    asyncio.run(scenario())


def test_response_after_disable_is_dropped(clock) -> None:  # noqa: ANN001
    async def scenario() -> None:
        seen: list = []
        fetcher = GatedFetcher()
        engine = configure(fetcher, interval=100000, on_success=seen.append, sleep=clock.sleep)
        await clock.settle()

        engine.disable()
        fetcher.gates[0].set_result(Ok("late"))
        await clock.settle()

        assert engine.data is None
        assert seen == []
        assert not engine.is_loading

    asyncio.run(scenario())


def test_overlapping_fetches_discard_stale_response(clock) -> None:  # noqa: ANN001
    """
    定时器不等待上一次拉取完成，拉取可能重叠。
    后发起的请求先返回时，先发起请求的迟到响应被丢弃（不覆盖更新的数据）。
    """

    async def scenario() -> None:
        seen: list = []
        fetcher = GatedFetcher()
        engine = configure(fetcher, interval=1000, on_success=seen.append, sleep=clock.sleep)
        await clock.advance(1.0)
        assert len(fetcher.gates) == 2

        fetcher.gates[1].set_result(Ok("newer"))
        await clock.settle()
        fetcher.gates[0].set_result(Ok("older"))
        await clock.settle()

        assert engine.data == "newer"
        assert seen == ["newer"]
        await engine.aclose()

    asyncio.run(scenario())


def test_in_order_overlapping_responses_are_both_applied(clock) -> None:  # noqa: ANN001
    async def scenario() -> None:
        seen: list = []
        fetcher = GatedFetcher()
        engine = configure(fetcher, interval=1000, on_success=seen.append, sleep=clock.sleep)
        await clock.advance(1.0)

        fetcher.gates[0].set_result(Ok("first"))
        await clock.settle()
        fetcher.gates[1].set_result(Ok("second"))
        await clock.settle()

        assert seen == ["first", "second"]
        await engine.aclose()

    asyncio.run(scenario())


def test_callback_failure_does_not_stop_polling(clock, caplog) -> None:  # noqa: ANN001
    def on_success(data) -> None:  # noqa: ANN001, ARG001
        raise RuntimeError("render failed")

    async def scenario() -> None:
        fetcher = ScriptedFetcher(Ok(1))
        engine = configure(fetcher, interval=1000, on_success=on_success, sleep=clock.sleep)
        await clock.advance(1.0)
        assert fetcher.calls == 2
        assert engine.data == 1
        await engine.aclose()

    caplog.set_level(logging.ERROR)
    asyncio.run(scenario())
    assert "on_success callback failed" in caplog.text


def test_rejects_invalid_settings() -> None:
    async def fetcher():  # noqa: ANN202
        return Ok(None)

    with pytest.raises(ValueError):
        PollingEngine(fetcher, interval=0)
    with pytest.raises(ValueError):
        PollingEngine(fetcher, max_retries=0)
