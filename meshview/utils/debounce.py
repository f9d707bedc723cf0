"""Last-write-wins debouncer for viewport-driven relayouts."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from meshview.utils.logging import get_logger

logger = get_logger(__name__)


class LastWriteWinsDebouncer:
    """Coalesce bursts of triggers into a single call with the latest arguments.

    Every ``trigger`` cancels the pending call and schedules a new one, so the
    arguments of the last trigger in a burst are the only ones that run. This is
    not a queue: intermediate arguments are dropped.
    """

    def __init__(
        self,
        callback: Callable[..., Awaitable[Any] | Any],
        delay: float = 0.1,
    ) -> None:
        self._callback = callback
        self._delay = delay
        self._pending: asyncio.Task | None = None
        self._fired = 0

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    @property
    def fired(self) -> int:
        return self._fired

    def trigger(self, *args: Any, **kwargs: Any) -> asyncio.Task:
        if self.pending:
            self._pending.cancel()
        self._pending = asyncio.create_task(self._run(args, kwargs))
        return self._pending

    def cancel(self) -> None:
        if self.pending:
            self._pending.cancel()
        self._pending = None

    async def flush(self) -> None:
        """Wait until the most recently scheduled call has completed."""
        while self.pending:
            task = self._pending
            try:
                await task
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise

    async def _run(self, args: tuple, kwargs: dict) -> None:
        await asyncio.sleep(self._delay)
        self._fired += 1
        result = self._callback(*args, **kwargs)
        if asyncio.iscoroutine(result):
            await result
        logger.debug("debounced_call_fired", fired=self._fired)
