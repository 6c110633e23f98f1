"""
coordinator/poller.py

BatchPoller: watches the coordinator program for newly finalized batches.

Each cycle scans the ledger, surfaces every finalized batch id not yet
seen to a discovery callback, and records it so it is never surfaced
again for the life of the process.
"""
import asyncio
import contextlib
import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Set, Union

from .layouts import OnChainBatch
from .reader import CoordinatorReader

logger = logging.getLogger(__name__)


DEFAULT_POLL_INTERVAL_MS = 5000

DiscoveryCallback = Callable[[OnChainBatch], Union[None, Awaitable[None]]]


class PollerState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    DISPATCHING = "dispatching"


class ReadWriteLock:
    """
    Reader-preferring asyncio lock: any number of concurrent readers,
    one exclusive writer. A writer waits until no reader holds the lock.
    """

    def __init__(self):
        self._condition: Optional[asyncio.Condition] = None
        self._readers = 0
        self._writer = False

    @property
    def _cond(self) -> asyncio.Condition:
        # Bound to the running loop on first use.
        if self._condition is None:
            self._condition = asyncio.Condition()
        return self._condition

    @contextlib.asynccontextmanager
    async def read(self):
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextlib.asynccontextmanager
    async def write(self):
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class ProcessedSet:
    """
    Batch ids already surfaced for execution.

    Grows monotonically; ids are never evicted.
    """

    def __init__(self):
        self._ids: Set[int] = set()
        self._lock = ReadWriteLock()

    async def contains(self, batch_id: int) -> bool:
        async with self._lock.read():
            return batch_id in self._ids

    async def add(self, batch_id: int) -> None:
        async with self._lock.write():
            self._ids.add(batch_id)

    def __len__(self) -> int:
        return len(self._ids)


class BatchPoller:
    """
    Periodic scanner over CoordinatorReader.

    Cycle: IDLE -> SCANNING -> DISPATCHING -> IDLE. The poller never
    waits for downstream execution: coroutine callbacks are scheduled as
    tasks, plain callbacks must return promptly.
    """

    def __init__(
        self,
        reader: CoordinatorReader,
        on_batch: Optional[DiscoveryCallback] = None,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    ):
        """
        Args:
            reader: Ledger reader
            on_batch: Discovery callback, called once per newly finalized batch
            poll_interval_ms: Delay between cycles (milliseconds)
        """
        self.reader = reader
        self.on_batch = on_batch or _log_discovered_batch
        self.poll_interval_ms = poll_interval_ms

        self._processed = ProcessedSet()
        self._state = PollerState.IDLE
        self._task: Optional[asyncio.Task] = None
        self._callback_tasks: Set[asyncio.Task] = set()
        self._cycles = 0

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def processed_count(self) -> int:
        return len(self._processed)

    @property
    def cycles(self) -> int:
        return self._cycles

    async def is_batch_processed(self, batch_id: int) -> bool:
        return await self._processed.contains(batch_id)

    async def poll_once(self) -> List[OnChainBatch]:
        """
        Run one scan cycle.

        Returns:
            Batches surfaced to the callback during this cycle
        """
        self._state = PollerState.SCANNING
        try:
            loop = asyncio.get_running_loop()
            finalized = await loop.run_in_executor(None, self.reader.find_finalized_batches)

            if not finalized:
                logger.debug("[poller] No finalized batches found")
                return []

            new_batches = [b for b in finalized if not await self._processed.contains(b.id)]

            self._state = PollerState.DISPATCHING
            for batch in new_batches:
                self._dispatch(batch)
                await self._processed.add(batch.id)
            return new_batches
        finally:
            self._cycles += 1
            self._state = PollerState.IDLE

    def _dispatch(self, batch: OnChainBatch) -> None:
        logger.info(
            f"[poller] Found finalized batch {batch.id} "
            f"(queries={batch.query_count}, submitters={len(batch.submitters)})"
        )
        for i, h in enumerate(batch.query_hashes):
            logger.debug(f"[poller] Batch {batch.id} query[{i}] hash={h.hex()}")

        try:
            outcome = self.on_batch(batch)
            if inspect.isawaitable(outcome):
                task = asyncio.ensure_future(outcome)
                self._callback_tasks.add(task)
                task.add_done_callback(self._on_callback_done)
        except Exception as e:
            logger.error(f"[poller] Discovery callback failed for batch {batch.id}: {e}")

    def _on_callback_done(self, task: asyncio.Task) -> None:
        self._callback_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"[poller] Discovery callback task failed: {task.exception()}")

    async def run(self) -> None:
        """Poll forever. Runs until the process exits."""
        logger.info(f"[poller] Starting batch poller (interval={self.poll_interval_ms}ms)")
        while True:
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"[poller] Poll cycle failed, retrying next interval: {e}")
            await asyncio.sleep(self.poll_interval_ms / 1000.0)

    def start(self) -> asyncio.Task:
        """Schedule run() as a background task on the running loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.ensure_future(self.run())
        return self._task


def _log_discovered_batch(batch: OnChainBatch) -> Any:
    # Query parameters arrive later through /execute-batch.
    logger.info(f"[poller] Batch {batch.id} marked as seen, awaiting query submission")
