from __future__ import annotations

import asyncio


class ProgressSimulator:
    """Cosmetic 0-100 progress estimate for calls whose real progress is unknown.

    The ticker adds one point per ``interval`` seconds until ``ceiling`` and then
    holds there; only :meth:`finish` reaches 100. Nothing should wait on this
    value, it only feeds a progress indicator.
    """

    def __init__(self, interval: float = 0.05, ceiling: int = 95):
        self.interval = interval
        self.ceiling = ceiling
        self.value = 0
        self._ticker: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    def start(self) -> None:
        self.stop()
        self.value = 0
        self._ticker = asyncio.create_task(self._tick())

    def stop(self) -> None:
        ticker, self._ticker = self._ticker, None
        if ticker is not None and not ticker.done():
            ticker.cancel()

    def finish(self) -> None:
        self.stop()
        self.value = 100

    def reset(self) -> None:
        self.stop()
        self.value = 0

    async def _tick(self) -> None:
        while self.value < self.ceiling:
            await asyncio.sleep(self.interval)
            self.value = min(self.value + 1, self.ceiling)
