"""Unit tests for the last-write-wins debouncer."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from meshview.utils.debounce import LastWriteWinsDebouncer


@pytest.mark.asyncio
async def test_burst_collapses_to_last_call():
    callback = MagicMock()
    debouncer = LastWriteWinsDebouncer(callback, delay=0.01)

    for width in (100, 200, 300):
        debouncer.trigger(width=width)
    await debouncer.flush()

    callback.assert_called_once_with(width=300)
    assert debouncer.fired == 1
    assert not debouncer.pending


@pytest.mark.asyncio
async def test_async_callback_is_awaited():
    callback = AsyncMock()
    debouncer = LastWriteWinsDebouncer(callback, delay=0)
    debouncer.trigger("a")
    await debouncer.flush()
    callback.assert_awaited_once_with("a")


@pytest.mark.asyncio
async def test_cancel_drops_pending_call():
    callback = MagicMock()
    debouncer = LastWriteWinsDebouncer(callback, delay=0.01)
    debouncer.trigger()
    debouncer.cancel()
    await debouncer.flush()
    callback.assert_not_called()
    assert debouncer.fired == 0


@pytest.mark.asyncio
async def test_separate_bursts_fire_separately():
    callback = MagicMock()
    debouncer = LastWriteWinsDebouncer(callback, delay=0)
    debouncer.trigger(1)
    await debouncer.flush()
    debouncer.trigger(2)
    await debouncer.flush()
    assert [c.args for c in callback.call_args_list] == [(1,), (2,)]
