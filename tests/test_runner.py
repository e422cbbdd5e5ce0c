"""Tests for the periodic state runner."""

import asyncio

import pytest

from resymo.uplink.runner import PeriodicRunner


class Ticker:
    def __init__(self, durations=(), fail_first=False):
        self.durations = list(durations)
        self.fail_first = fail_first
        self.times = []

    async def __call__(self):
        self.times.append(asyncio.get_running_loop().time())
        if self.fail_first and len(self.times) == 1:
            raise RuntimeError('nothing to collect')
        if self.durations:
            await asyncio.sleep(self.durations.pop(0))


class TestPeriodicRunner:
    """Ticks, skipping and shutdown."""

    @pytest.mark.asyncio
    async def test_first_tick_is_immediate(self, logger):
        ticker = Ticker()
        runner = PeriodicRunner(ticker, 3600, logger)

        started = asyncio.get_running_loop().time()
        runner.start()
        await asyncio.sleep(0.05)
        await runner.stop()

        assert len(ticker.times) == 1
        assert ticker.times[0] - started < 0.05

    @pytest.mark.asyncio
    async def test_missed_ticks_are_skipped(self, logger):
        ticker = Ticker(durations=[0.2])
        runner = PeriodicRunner(ticker, 0.05, logger)

        runner.start()
        await asyncio.sleep(0.32)
        await runner.stop()

        # a burst of catch-up ticks would land right after the slow one
        assert len(ticker.times) >= 2
        assert ticker.times[1] - ticker.times[0] >= 0.2
        for earlier, later in zip(ticker.times[1:], ticker.times[2:]):
            assert later - earlier >= 0.04

    @pytest.mark.asyncio
    async def test_errors_do_not_stop_the_loop(self, logger, caplog):
        ticker = Ticker(fail_first=True)
        runner = PeriodicRunner(ticker, 0.02, logger)

        runner.start()
        await asyncio.sleep(0.1)
        await runner.stop()

        assert len(ticker.times) >= 2
        assert 'Failed to collect state: nothing to collect' in caplog.text

    @pytest.mark.asyncio
    async def test_shutdown_is_final(self, logger):
        ticker = Ticker()
        runner = PeriodicRunner(ticker, 0.02, logger)

        runner.start()
        await asyncio.sleep(0.05)
        await runner.stop()
        ticks = len(ticker.times)

        await asyncio.sleep(0.1)
        assert len(ticker.times) == ticks

    @pytest.mark.asyncio
    async def test_stop_cancels_hung_tick(self, logger):
        cancelled = asyncio.Event()

        async def hung_tick():
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        runner = PeriodicRunner(hung_tick, 10, logger)
        runner.start()
        await asyncio.sleep(0.05)

        await asyncio.wait_for(runner.stop(), timeout=1)
        assert cancelled.is_set()
