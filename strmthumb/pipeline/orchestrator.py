"""Batch orchestrator: turns a list of .strm identifiers into queue jobs and an event stream.

Key responsibilities:
- Derive a concurrency level from the batch size and the configured bounds
- Submit one job per identifier to the shared BoundedTaskQueue
- Settle each job exactly once, in completion order, updating BatchProgress
- Emit log / progress / failed events while jobs settle, then one complete event

Batch lifecycle: STARTED → RUNNING → DRAINING → COMPLETED. An empty batch goes
straight from STARTED to COMPLETED.
"""

import asyncio
import logging
import time
from typing import AsyncIterator, Dict, List, Optional, Sequence

from strmthumb.config.models import AppConfig, BatchOptions, ConcurrencyConfig
from strmthumb.domain.events import CompleteEvent, Event, FailedEvent, LogEvent, ProgressEvent
from strmthumb.domain.models import BatchProgress, BatchState, JobResult, JobStatus, QueueStatus, ThumbnailJob
from strmthumb.infrastructure.event_sink import EventSink, QueueEventSink
from strmthumb.pipeline.processor import ThumbnailProcessor
from strmthumb.pipeline.task_queue import BoundedTaskQueue


def resolve_concurrency(batch_size: int, requested: Optional[int], config: ConcurrencyConfig) -> int:
    """Heuristic concurrency for a batch, never above ``config.max``.

    Small batches are clamped down to ``config.min``; large batches may scale
    the requested value by ``config.large_batch_multiplier``.
    """
    concurrency = requested or config.default
    if batch_size < config.small_batch_threshold:
        concurrency = min(concurrency, config.min)
    elif batch_size > config.large_batch_threshold:
        concurrency = int(concurrency * config.large_batch_multiplier)
    return max(1, min(int(concurrency), config.max))


class BatchRun:
    """Mutable state of one batch, owned by the orchestrator."""

    def __init__(self, identifiers: Sequence[str], options: BatchOptions, sink: EventSink):
        self.jobs: Dict[int, ThumbnailJob] = {
            idx: ThumbnailJob(identifier=identifier) for idx, identifier in enumerate(identifiers)
        }
        self.options = options
        self.sink = sink
        self.progress = BatchProgress(total=len(identifiers))
        self.failed_identifiers: List[str] = []
        self.state = BatchState.STARTED
        self.done = asyncio.Event()


class BatchOrchestrator:
    """Runs batches of thumbnail jobs through a shared bounded queue.

    Args:
        config: AppConfig with concurrency bounds and pipeline settings.
        task_queue: Process-wide BoundedTaskQueue; each batch runs in its own slot pool.
        processor: ThumbnailProcessor executing one job.
    """

    def __init__(self, config: AppConfig, task_queue: BoundedTaskQueue, processor: ThumbnailProcessor):
        self.config = config
        self.task_queue = task_queue
        self.processor = processor
        self.logger = logging.getLogger(__name__)

    def resolve_concurrency(self, batch_size: int, requested: Optional[int] = None) -> int:
        return resolve_concurrency(batch_size, requested, self.config.concurrency)

    def queue_status(self) -> QueueStatus:
        return self.task_queue.status()

    def _set_state(self, run: BatchRun, state: BatchState) -> None:
        if self.config.logging.debug:
            self.logger.debug(f"BATCH_STATE: {run.state.value} → {state.value}")
        run.state = state

    def prepare(self, identifiers: Sequence[str], options: Optional[BatchOptions] = None) -> int:
        """Resolves the batch concurrency; raises before any event is emitted."""
        options = options or BatchOptions()
        return self.resolve_concurrency(len(identifiers), options.concurrency)

    async def run_batch(
        self,
        identifiers: Sequence[str],
        options: Optional[BatchOptions],
        sink: EventSink,
        concurrency: Optional[int] = None,
    ) -> CompleteEvent:
        """Processes every identifier and returns the emitted CompleteEvent."""
        options = options or BatchOptions()
        identifiers = list(identifiers)
        if concurrency is None:
            concurrency = self.prepare(identifiers, options)
        run = BatchRun(identifiers, options, sink)
        start_time = time.monotonic()

        if not identifiers:
            return self._complete(run)

        self.logger.info(f"Batch started: files={len(identifiers)}, concurrency={concurrency}")
        sink.emit(LogEvent(
            message=f"Processing {len(identifiers)} files with {concurrency} concurrent jobs",
            level="info",
        ))

        pool = self.task_queue.open_pool(concurrency)
        try:
            self._set_state(run, BatchState.RUNNING)
            for idx in run.jobs:
                future = self.task_queue.submit(self._make_job(run, idx), pool=pool)
                future.add_done_callback(lambda fut, idx=idx: self._settle(run, idx, fut))

            self._set_state(run, BatchState.DRAINING)
            await run.done.wait()
        finally:
            self.task_queue.close_pool(pool)

        elapsed = time.monotonic() - start_time
        self.logger.info(
            f"Batch finished: total={run.progress.total}, succeeded={run.progress.succeeded}, "
            f"skipped={run.progress.skipped}, failed={run.progress.failed}, elapsed={elapsed:.1f}s"
        )
        return self._complete(run)

    def _make_job(self, run: BatchRun, idx: int):
        job = run.jobs[idx]

        async def _job() -> JobResult:
            job.status = JobStatus.RUNNING
            return await self.processor.process(job.identifier, run.options, run.sink)

        return _job

    def _settle(self, run: BatchRun, idx: int, future: asyncio.Future) -> None:
        """Accounts for one finished job. Runs once per job, in completion order."""
        job = run.jobs[idx]
        if future.cancelled():
            result = JobResult(identifier=job.identifier, status=JobStatus.FAILED, reason="Discarded before start")
            run.sink.emit(LogEvent(message=f"Failed: {job.identifier} - {result.reason}", level="error"))
        elif future.exception() is not None:
            error = future.exception()
            self.logger.error(f"Job raised for {job.identifier}: {error}")
            result = JobResult(identifier=job.identifier, status=JobStatus.FAILED, reason=str(error))
            run.sink.emit(LogEvent(message=f"Failed: {job.identifier} - {result.reason}", level="error"))
        else:
            result = future.result()

        job.status = result.status
        job.result = result

        progress = run.progress
        progress.processed += 1
        if result.status == JobStatus.FAILED:
            progress.failed += 1
            run.failed_identifiers.append(job.identifier)
            run.sink.emit(FailedEvent(identifier=job.identifier))
        else:
            progress.succeeded += 1
            if result.status == JobStatus.SKIPPED:
                progress.skipped += 1

        run.sink.emit(ProgressEvent(progress=progress.model_copy()))

        if progress.processed >= progress.total:
            run.done.set()

    def _complete(self, run: BatchRun) -> CompleteEvent:
        self._set_state(run, BatchState.COMPLETED)
        event = CompleteEvent(
            progress=run.progress.model_copy(),
            failed_identifiers=list(run.failed_identifiers),
        )
        run.sink.emit(event)
        return event

    def stream_batch(
        self,
        identifiers: Sequence[str],
        options: Optional[BatchOptions] = None,
        max_buffer: int = 0,
    ) -> AsyncIterator[Event]:
        """Starts a batch and returns an async iterator over its events.

        Configuration errors raise here, before the stream exists. The batch
        runs as its own task, so it finishes even if the consumer stops reading.
        """
        options = options or BatchOptions()
        identifiers = list(identifiers)
        concurrency = self.prepare(identifiers, options)
        sink = QueueEventSink(max_buffer=max_buffer)
        return self._stream(identifiers, options, sink, concurrency)

    async def _stream(
        self,
        identifiers: List[str],
        options: BatchOptions,
        sink: QueueEventSink,
        concurrency: int,
    ) -> AsyncIterator[Event]:
        task = asyncio.get_running_loop().create_task(
            self.run_batch(identifiers, options, sink, concurrency=concurrency)
        )
        task.add_done_callback(lambda _: sink.close())
        _background_batches.add(task)
        task.add_done_callback(_background_batches.discard)
        async for event in sink:
            yield event
        # Surface a crash of the batch task itself
        if task.done() and not task.cancelled() and task.exception() is not None:
            raise task.exception()


# Strong references for batches whose consumer went away
_background_batches: set = set()
