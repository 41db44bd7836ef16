"""Task scheduling primitives: a debounce timer and a sequential priority queue.

Both are small state machines over asyncio tasks. Only work that has not
started yet can be cancelled; once a job is running it completes.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum

from actionlens.extraction.models import AnalysisRequest

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[None]]
Sleep = Callable[[float], Awaitable[None]]


class SchedulerState(StrEnum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"


class Debouncer:
    """Runs only the most recently scheduled job once its delay elapses.

    Scheduling again while a timer is pending discards the pending job.
    A job whose timer has fired is detached from the timer and is no longer
    affected by :meth:`cancel`.
    """

    def __init__(self, sleep: Sleep = asyncio.sleep) -> None:
        self._sleep = sleep
        self._timer: asyncio.Task[None] | None = None
        self._running: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> SchedulerState:
        if self._timer is not None and not self._timer.done():
            return SchedulerState.SCHEDULED
        if self._running:
            return SchedulerState.RUNNING
        return SchedulerState.IDLE

    def schedule(self, delay_seconds: float, job: Job) -> None:
        """Replace any pending job with *job*, due in *delay_seconds*.

        Must be called from inside a running event loop.
        """
        self.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.create_task(self._fire(delay_seconds, job))

    def cancel(self) -> bool:
        """Cancel the pending timer, if any. Returns True if one was cancelled."""
        timer, self._timer = self._timer, None
        if timer is None or timer.done():
            return False
        timer.cancel()
        return True

    async def join(self) -> None:
        """Wait until no timer is pending and no fired job is running."""
        while True:
            pending = [t for t in (self._timer, *self._running) if t is not None and not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def _fire(self, delay_seconds: float, job: Job) -> None:
        await self._sleep(delay_seconds)
        current = asyncio.current_task()
        if current is None:
            raise RuntimeError("Debounced jobs must run inside an asyncio task")
        if self._timer is current:
            self._timer = None
        self._running.add(current)
        try:
            await job()
        except Exception:
            logger.exception("Debounced job failed")
        finally:
            self._running.discard(current)


class AnalysisQueue:
    """Priority queue of requests: higher priority first, FIFO within a priority."""

    def __init__(self) -> None:
        self._heap: list[tuple[int, int, AnalysisRequest]] = []
        self._counter = itertools.count()

    def push(self, request: AnalysisRequest) -> None:
        heapq.heappush(self._heap, (-request.priority, next(self._counter), request))

    def pop(self) -> AnalysisRequest:
        return heapq.heappop(self._heap)[2]

    def clear(self) -> list[AnalysisRequest]:
        """Empty the queue and return the dropped requests in dispatch order."""
        dropped = [entry[2] for entry in sorted(self._heap)]
        self._heap.clear()
        return dropped

    def __len__(self) -> int:
        return len(self._heap)


class QueueWorker:
    """Drains an :class:`AnalysisQueue` one request at a time.

    *process* receives each dequeued request and the number of requests
    still waiting. A drain task is started on submit when none is running.
    """

    def __init__(self, process: Callable[[AnalysisRequest, int], Awaitable[None]]) -> None:
        self._queue = AnalysisQueue()
        self._process = process
        self._task: asyncio.Task[None] | None = None

    @property
    def state(self) -> SchedulerState:
        if self._task is not None and not self._task.done():
            return SchedulerState.RUNNING
        return SchedulerState.SCHEDULED if self._queue else SchedulerState.IDLE

    @property
    def is_processing(self) -> bool:
        return self.state is SchedulerState.RUNNING

    def submit(self, request: AnalysisRequest) -> None:
        """Enqueue *request*; must be called from inside a running event loop."""
        self._queue.push(request)
        if not self.is_processing:
            self._task = asyncio.get_running_loop().create_task(self._drain())

    def cancel_pending(self) -> list[AnalysisRequest]:
        """Drop every request that has not been dispatched yet."""
        return self._queue.clear()

    async def join(self) -> None:
        while self._task is not None and not self._task.done():
            await asyncio.gather(self._task, return_exceptions=True)

    def __len__(self) -> int:
        return len(self._queue)

    async def _drain(self) -> None:
        while self._queue:
            request = self._queue.pop()
            try:
                await self._process(request, len(self._queue))
            except Exception:
                logger.exception("Queued analysis %s failed", request.id)
            # Yield between requests so other work can interleave.
            await asyncio.sleep(0)
