"""
Trailing debounce as a restartable, cancellable asyncio task.

Every schedule() cancels whatever is pending (waiting or already running)
and starts a fresh delay, so only the last scheduled callback ever
completes. cancel() is used on teardown.
"""
import asyncio
from typing import Any, Awaitable, Callable, Hashable


class RestartableTimer:
    def __init__(self, delay_seconds: float):
        self.delay_seconds = delay_seconds
        self._task: asyncio.Task | None = None
        self._key: Hashable | None = None

    @property
    def key(self) -> Hashable | None:
        """Dependency key of the most recently scheduled callback."""
        return self._key

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, key: Hashable, callback: Callable[[], Awaitable[Any]]) -> asyncio.Task:
        self.cancel()
        self._key = key
        self._task = asyncio.get_running_loop().create_task(self._run(callback))
        return self._task

    async def _run(self, callback: Callable[[], Awaitable[Any]]) -> None:
        await asyncio.sleep(self.delay_seconds)
        await callback()

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def wait(self) -> None:
        """Wait for the pending callback, if any. A cancelled callback counts as finished."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
