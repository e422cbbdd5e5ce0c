import asyncio
from typing import Awaitable, Callable, Optional


class PeriodicRunner:
    """
    Calls `tick` every `interval` seconds, starting immediately. Ticks missed because a
    previous one ran long are skipped, not replayed. Errors are logged and the loop goes on.
    Once `shutdown()` is called the runner stops for good.
    """

    def __init__(self, tick: Callable[[], Awaitable[None]], interval: float, logger):
        self.tick = tick
        self.interval = interval
        self.logger = logger
        self._shutdown = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name='state-runner')

    def shutdown(self) -> None:
        self._shutdown.set()

    async def stop(self) -> None:
        self.shutdown()
        if self._task is not None:
            await self._task

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()

        while not self._shutdown.is_set():
            delay = next_tick - loop.time()
            if delay > 0:
                try:
                    await asyncio.wait_for(self._shutdown.wait(), timeout=delay)
                    break
                except asyncio.TimeoutError:
                    pass

            self.logger.debug('Update state')
            if not await self._run_tick():
                break

            next_tick += self.interval
            now = loop.time()
            if next_tick <= now:
                skipped = int((now - next_tick) // self.interval) + 1
                next_tick += skipped * self.interval

        self.logger.info('Received shutdown signal')

    async def _run_tick(self) -> bool:
        """
        Run one tick, racing it against shutdown. An in-flight tick is cancelled when
        shutdown wins. Returns False in that case.
        """
        tick = asyncio.ensure_future(self.tick())
        shutdown = asyncio.create_task(self._shutdown.wait())
        try:
            await asyncio.wait({tick, shutdown}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            shutdown.cancel()
            if not tick.done():
                tick.cancel()
                await asyncio.gather(tick, return_exceptions=True)

        if tick.cancelled():
            return False
        e = tick.exception()
        if e is not None:
            self.logger.warning(f'Failed to collect state: {e}')
        return True
