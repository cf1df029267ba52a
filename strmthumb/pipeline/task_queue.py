"""Bounded-concurrency queue for asynchronous jobs.

``submit`` registers a zero-argument coroutine function and immediately
returns a future that mirrors the job's own outcome. Every job draws from a
``SlotPool``: the queue's default pool (``concurrency_limit``) or a pool
opened for one batch with ``open_pool``. A pool never runs more jobs than its
own limit, and one pool's limit never changes another's. Waiting jobs sit in
a heap ordered by priority (higher first) and then arrival order; a job whose
pool is full is passed over until a slot in that pool frees up.

Slot accounting is event driven. A finishing job releases its slot and, in
the same synchronous step, hands slots to as many waiters as the pools
allow. Counters are only ever changed on the event loop thread between
awaits, so two submitters can never both claim the last free slot.
"""
import asyncio
import heapq
import itertools
import logging
from typing import Any, Awaitable, Callable, List, Optional, Set, Tuple

from strmthumb.domain.models import QueueStats, QueueStatus

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[Any]]


def _validate_limit(limit: int) -> None:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValueError(f"Concurrency limit must be a positive integer, got {limit!r}")


class SlotPool:
    """Concurrency budget shared by one group of jobs."""

    def __init__(self, limit: int):
        _validate_limit(limit)
        self.limit = limit
        self.running = 0

    @property
    def has_slot(self) -> bool:
        return self.running < self.limit


class BoundedTaskQueue:
    """Runs submitted jobs with a hard ceiling on concurrency per slot pool.

    Job failures are counted and re-signalled through the job's future; they
    never stop the queue and are never retried here.

    Args:
        concurrency: Limit of the default pool (>= 1).
    """

    def __init__(self, concurrency: int = 4):
        self._default = SlotPool(concurrency)
        self._pools: Set[SlotPool] = set()
        self._running = 0
        self._waiting: List[Tuple[int, int, Job, asyncio.Future, SlotPool]] = []
        self._sequence = itertools.count()
        self._tasks: set = set()
        self._stats = QueueStats()
        self._idle_waiters: List[asyncio.Future] = []

    @property
    def concurrency_limit(self) -> int:
        return self._default.limit

    @property
    def running(self) -> int:
        return self._running

    @property
    def queued(self) -> int:
        return len(self._waiting)

    def configure(self, concurrency: int) -> None:
        """Changes the default pool's limit. Running jobs are never cancelled; only new starts are affected."""
        _validate_limit(concurrency)
        if concurrency != self._default.limit:
            logger.info(f"Queue concurrency: {self._default.limit} → {concurrency}")
        self._default.limit = concurrency
        self._dispatch()

    def open_pool(self, concurrency: int) -> SlotPool:
        """Opens a private slot pool, e.g. for one batch. Close it with ``close_pool``."""
        pool = SlotPool(concurrency)
        self._pools.add(pool)
        return pool

    def close_pool(self, pool: SlotPool) -> None:
        """Forgets ``pool``. A pool that still has waiting jobs stays open for them."""
        if any(entry[4] is pool for entry in self._waiting):
            return
        self._pools.discard(pool)

    def submit(self, job: Job, priority: int = 0, pool: Optional[SlotPool] = None) -> asyncio.Future:
        """Enqueues ``job`` and returns a future resolving to its result or exception."""
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._stats.submitted += 1
        heapq.heappush(self._waiting, (-priority, next(self._sequence), job, future, pool or self._default))
        self._dispatch()
        return future

    def _saturated(self) -> bool:
        return not self._default.has_slot and not any(p.has_slot for p in self._pools)

    def _dispatch(self) -> None:
        passed_over = []
        while self._waiting and not self._saturated():
            entry = heapq.heappop(self._waiting)
            _, _, job, future, pool = entry
            if future.done():
                # Caller cancelled the handle before the job started
                self._stats.discarded += 1
                continue
            if not pool.has_slot:
                passed_over.append(entry)
                continue
            pool.running += 1
            self._running += 1
            task = asyncio.get_running_loop().create_task(self._run(job, future, pool))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        for entry in passed_over:
            heapq.heappush(self._waiting, entry)
        self._notify_idle()

    async def _run(self, job: Job, future: asyncio.Future, pool: SlotPool) -> None:
        try:
            result = await job()
        except asyncio.CancelledError:
            self._stats.failed += 1
            if not future.done():
                future.cancel()
            raise
        except Exception as e:
            self._stats.failed += 1
            logger.debug(f"Queued job failed: {e.__class__.__name__}: {e}")
            if not future.done():
                future.set_exception(e)
        else:
            self._stats.completed += 1
            if not future.done():
                future.set_result(result)
        finally:
            pool.running -= 1
            self._running -= 1
            self._dispatch()
    def status(self) -> QueueStatus:
        return QueueStatus(
            running=self._running,
            queued=len(self._waiting),
            concurrency_limit=self._default.limit,
            stats=self._stats.model_copy(),
        )

    def reset_stats(self) -> None:
        self._stats = QueueStats()
        logger.debug("Queue statistics reset")

    def clear(self) -> int:
        """Discards jobs that have not started; their futures are cancelled.

        Returns the number of discarded jobs. Running jobs are unaffected.
        """
        waiting, self._waiting = self._waiting, []
        cleared = 0
        for _, _, _, future, _ in waiting:
            if not future.done():
                future.cancel()
                cleared += 1
        self._stats.discarded += len(waiting)
        if cleared:
            logger.info(f"Queue cleared, {cleared} pending jobs discarded")
        self._notify_idle()
        return cleared

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Waits until nothing is running or queued. Never cancels anything."""
        if self._running == 0 and not self._waiting:
            return
        waiter = asyncio.get_running_loop().create_future()
        self._idle_waiters.append(waiter)
        try:
            await asyncio.wait_for(asyncio.shield(waiter), timeout=timeout)
        finally:
            if waiter in self._idle_waiters:
                self._idle_waiters.remove(waiter)
        logger.info("All queued jobs finished")

    def _notify_idle(self) -> None:
        if self._running or self._waiting:
            return
        waiters, self._idle_waiters = self._idle_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)
