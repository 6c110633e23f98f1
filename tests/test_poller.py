"""
Unit tests for BatchPoller.

Tests:
- Each finalized batch is surfaced exactly once across cycles
- Coroutine callbacks are scheduled, not awaited by the cycle
- A failing callback or unavailable ledger does not stop polling
"""
from __future__ import annotations

import asyncio

from coordinator.layouts import BatchStatus
from coordinator.poller import BatchPoller, PollerState, ProcessedSet, ReadWriteLock

from conftest import install_batch, install_config, make_batch


def _seed(ledger, reader):
    install_config(ledger, reader, batch_counter=3)
    install_batch(ledger, reader, make_batch(0, BatchStatus.FINALIZED))
    install_batch(ledger, reader, make_batch(1, BatchStatus.PENDING))
    install_batch(ledger, reader, make_batch(2, BatchStatus.FINALIZED))


def test_unchanged_ledger_surfaces_each_batch_once(ledger, reader):
    _seed(ledger, reader)
    seen = []
    poller = BatchPoller(reader, on_batch=lambda b: seen.append(b.id), poll_interval_ms=100)

    async def scenario():
        first = await poller.poll_once()
        second = await poller.poll_once()
        return first, second

    first, second = asyncio.run(scenario())

    assert sorted(b.id for b in first) == [0, 2]
    assert second == []
    assert sorted(seen) == [0, 2]
    assert poller.processed_count == 2
    assert poller.cycles == 2
    assert poller.state == PollerState.IDLE


def test_newly_finalized_batch_is_picked_up(ledger, reader):
    _seed(ledger, reader)
    seen = []
    poller = BatchPoller(reader, on_batch=lambda b: seen.append(b.id))

    async def scenario():
        await poller.poll_once()
        pending = make_batch(1, BatchStatus.FINALIZED)
        install_batch(ledger, reader, pending)
        await poller.poll_once()
        return await poller.is_batch_processed(1)

    assert asyncio.run(scenario()) is True
    assert seen.count(1) == 1


def test_coroutine_callback_is_scheduled(ledger, reader):
    _seed(ledger, reader)
    started = []
    release = None

    async def on_batch(batch):
        started.append(batch.id)
        await release.wait()

    poller = BatchPoller(reader, on_batch=on_batch)

    async def scenario():
        nonlocal release
        release = asyncio.Event()
        surfaced = await poller.poll_once()  # must not block on the callbacks
        await asyncio.sleep(0)
        release.set()
        await asyncio.sleep(0)
        return surfaced

    surfaced = asyncio.run(scenario())

    assert len(surfaced) == 2
    assert sorted(started) == [0, 2]


def test_failing_callback_still_marks_processed(ledger, reader):
    _seed(ledger, reader)

    def on_batch(batch):
        raise RuntimeError("downstream exploded")

    poller = BatchPoller(reader, on_batch=on_batch)

    async def scenario():
        await poller.poll_once()
        return await poller.poll_once()

    assert asyncio.run(scenario()) == []
    assert poller.processed_count == 2


def test_unavailable_ledger_is_a_no_op_cycle(ledger, reader):
    _seed(ledger, reader)
    ledger.failing.add(str(reader.coordinator_address()))
    poller = BatchPoller(reader)

    assert asyncio.run(poller.poll_once()) == []
    assert poller.processed_count == 0


def test_run_loop_keeps_polling(ledger, reader):
    _seed(ledger, reader)
    seen = []
    poller = BatchPoller(reader, on_batch=lambda b: seen.append(b.id), poll_interval_ms=100)

    async def scenario():
        task = poller.start()
        await asyncio.sleep(0.35)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    asyncio.run(scenario())

    assert poller.cycles >= 2
    assert sorted(seen) == [0, 2]


def test_processed_set_membership():
    async def scenario():
        processed = ProcessedSet()
        await processed.add(5)
        await processed.add(5)
        return await processed.contains(5), await processed.contains(6), len(processed)

    assert asyncio.run(scenario()) == (True, False, 1)


def test_read_write_lock_allows_concurrent_readers():
    async def scenario():
        lock = ReadWriteLock()
        active = 0
        peak = 0

        async def reader_task():
            nonlocal active, peak
            async with lock.read():
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1

        await asyncio.gather(*(reader_task() for _ in range(5)))
        return peak

    assert asyncio.run(scenario()) == 5


def test_read_write_lock_writer_is_exclusive():
    async def scenario():
        lock = ReadWriteLock()
        events = []

        async def writer():
            async with lock.write():
                events.append("w-start")
                await asyncio.sleep(0.01)
                events.append("w-end")

        async def reader_task():
            await asyncio.sleep(0.001)
            async with lock.read():
                events.append("r")

        await asyncio.gather(writer(), reader_task())
        return events

    assert asyncio.run(scenario()) == ["w-start", "w-end", "r"]


def test_lock_built_outside_the_running_loop():
    lock = ReadWriteLock()
    processed = ProcessedSet()

    async def scenario():
        events = []

        async def writer():
            async with lock.write():
                events.append("w")
                await asyncio.sleep(0.01)

        async def reader_task():
            await asyncio.sleep(0.001)
            async with lock.read():
                events.append("r")

        await asyncio.gather(writer(), reader_task(), processed.add(1))
        return events, await processed.contains(1)

    assert asyncio.run(scenario()) == (["w", "r"], True)
