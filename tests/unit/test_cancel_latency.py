"""Tests for fetch handles, the request canceller and the latency floor."""

import asyncio
import time

import pytest

from itam.core.cancel import AbortSignal, RequestCanceller
from itam.core.latency import min_latency


class TestRequestCanceller:
    def test_new_request_aborts_previous(self):
        canceller = RequestCanceller()
        first = canceller.start_request()
        second = canceller.start_request()
        assert first.cancelled
        assert not second.cancelled
        assert canceller.current is second
        assert canceller.is_cancelled(first)
        assert not canceller.is_cancelled(second)

    def test_request_ids_increase(self):
        canceller = RequestCanceller()
        a = canceller.start_request()
        b = canceller.start_request()
        assert b.request_id > a.request_id

    def test_finish_releases_current(self):
        canceller = RequestCanceller()
        handle = canceller.start_request()
        canceller.finish(handle)
        assert canceller.current is None
        # a finished handle is no longer current, so late results are stale
        assert canceller.is_cancelled(handle)

    def test_cancel_all(self):
        canceller = RequestCanceller()
        handle = canceller.start_request()
        canceller.cancel_all()
        assert handle.cancelled
        assert canceller.current is None


class TestAbortSignal:
    def test_callbacks_run_once(self):
        signal = AbortSignal()
        calls = []
        signal.add_callback(lambda: calls.append(1))
        signal.abort()
        signal.abort()
        assert calls == [1]

    def test_late_callback_runs_immediately(self):
        signal = AbortSignal()
        signal.abort()
        calls = []
        signal.add_callback(lambda: calls.append("late"))
        assert calls == ["late"]

    def test_failing_callback_does_not_block_others(self):
        signal = AbortSignal()
        calls = []

        def boom():
            raise RuntimeError("socket already gone")

        signal.add_callback(boom)
        signal.add_callback(lambda: calls.append("closed"))
        signal.abort()
        assert calls == ["closed"]


class TestMinLatency:
    def test_fast_success_is_stretched(self):
        async def fast():
            return "ok"

        async def scenario():
            started = time.monotonic()
            value = await min_latency(fast(), 60)
            return value, time.monotonic() - started

        value, elapsed = asyncio.run(scenario())
        assert value == "ok"
        assert elapsed >= 0.055

    def test_slow_success_not_delayed_further(self):
        async def slow():
            await asyncio.sleep(0.05)
            return 1

        async def scenario():
            started = time.monotonic()
            await min_latency(slow(), 10)
            return time.monotonic() - started

        assert asyncio.run(scenario()) < 0.5

    def test_failure_propagates_immediately(self):
        async def broken():
            raise ValueError("nope")

        async def scenario():
            started = time.monotonic()
            with pytest.raises(ValueError):
                await min_latency(broken(), 500)
            return time.monotonic() - started

        assert asyncio.run(scenario()) < 0.3
