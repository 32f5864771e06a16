import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from tests.helpers import settle
from utils.wake_signal import WakeSignalSource


class ManualClocks:
    def __init__(self):
        self.wall = 1_000_000.0
        self.mono = 500.0

    def run(self, seconds: float) -> None:
        self.wall += seconds
        self.mono += seconds

    def suspend(self, seconds: float) -> None:
        self.wall += seconds


def make_source(clocks: ManualClocks, **kwargs) -> WakeSignalSource:
    return WakeSignalSource(wall_time=lambda: clocks.wall, monotonic=lambda: clocks.mono, **kwargs)


def test_poll_detects_suspend():
    """Тест: настенное время ушло вперёд, монотонное стояло - это сон."""
    clocks = ManualClocks()
    source = make_source(clocks)
    callback = MagicMock()
    source.subscribe(callback)

    assert source.poll() is False
    clocks.run(30)
    assert source.poll() is False

    clocks.run(10)
    clocks.suspend(3600)
    assert source.poll() is True
    callback.assert_called_once_with()

    clocks.run(30)
    assert source.poll() is False
    callback.assert_called_once()


def test_small_drift_is_ignored():
    clocks = ManualClocks()
    source = make_source(clocks, jump_threshold=60)
    callback = MagicMock()
    source.subscribe(callback)

    source.poll()
    clocks.run(30)
    clocks.suspend(45)

    assert source.poll() is False
    callback.assert_not_called()


@pytest.mark.asyncio
async def test_async_subscribers_are_scheduled():
    source = WakeSignalSource()
    handler = AsyncMock()
    source.subscribe(handler)

    source.notify_resumed("test")
    await settle()

    handler.assert_awaited_once()


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_block_others(caplog):
    source = WakeSignalSource()
    good = MagicMock()
    source.subscribe(MagicMock(side_effect=RuntimeError("boom")))
    source.subscribe(good)

    source.notify_resumed()

    good.assert_called_once()
    assert "Wake subscriber failed" in caplog.text


def test_threadsafe_notify_requires_loop():
    with pytest.raises(RuntimeError):
        WakeSignalSource().notify_resumed_threadsafe()


@pytest.mark.asyncio
async def test_threadsafe_notify_from_other_thread():
    source = WakeSignalSource()
    source.bind_loop(asyncio.get_running_loop())
    callback = MagicMock()
    source.subscribe(callback)

    await asyncio.to_thread(source.notify_resumed_threadsafe, "dbus")
    await settle()

    callback.assert_called_once()


@pytest.mark.asyncio
async def test_run_stops_on_shutdown():
    source = WakeSignalSource(poll_interval=0.01)
    shutdown = asyncio.Event()

    task = asyncio.create_task(source.run(shutdown))
    await asyncio.sleep(0.05)
    shutdown.set()

    await asyncio.wait_for(task, timeout=1)
    assert task.done()


def test_day_start_signals_always_on_host_once():
    """Тест: машина не спит, часы идут ровно - начало рабочего дня всё равно даёт один сигнал."""
    clocks = ManualClocks()
    clocks.wall = datetime(2024, 3, 5, 16, 0).timestamp()
    source = make_source(clocks, day_start_hour=lambda: 9)
    callback = MagicMock()
    source.subscribe(callback)

    fired = []
    for _ in range(24):
        fired.append(source.poll())
        clocks.run(3600)

    callback.assert_called_once_with()
    # 16:00 + 17 ч = 09:00 следующего дня
    assert fired.index(True) == 17
    assert fired.count(True) == 1


def test_sleep_across_day_start_gives_single_signal():
    clocks = ManualClocks()
    clocks.wall = datetime(2024, 3, 5, 22, 0).timestamp()
    source = make_source(clocks, day_start_hour=lambda: 9)
    callback = MagicMock()
    source.subscribe(callback)

    source.poll()
    clocks.suspend(11 * 3600)
    assert source.poll() is True
    clocks.run(30)
    assert source.poll() is False

    callback.assert_called_once()


def test_first_poll_after_day_start_is_silent():
    clocks = ManualClocks()
    clocks.wall = datetime(2024, 3, 5, 10, 0).timestamp()
    source = make_source(clocks, day_start_hour=lambda: 9)
    callback = MagicMock()
    source.subscribe(callback)

    assert source.poll() is False
    callback.assert_not_called()
