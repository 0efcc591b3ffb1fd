"""Bounded fan-out scheduler: N requests, at most C in flight."""

from __future__ import annotations

import asyncio
import random
from enum import Enum, auto
from typing import TYPE_CHECKING

from loadburst._internal.errors import EngineError
from loadburst._internal.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Iterator

    from loadburst.metrics.models import RequestOutcome

    Job = Callable[[int, random.Random], Awaitable[RequestOutcome]]

logger = get_logger("engine.scheduler")


class SchedulerState(Enum):
    """Lifecycle of a scheduler run."""

    IDLE = auto()
    DISPATCHING = auto()
    DRAINING = auto()
    DONE = auto()


class ConcurrencyScheduler:
    """Runs ``total`` jobs with at most ``concurrency`` of them in flight.

    ``concurrency`` worker tasks pull the next index from one shared
    iterator, so a new request starts as soon as any request finishes (no
    batching). Outcomes go onto a single queue and are yielded in
    completion order; each carries its submission index.

    The queue holds at most ``concurrency`` outcomes. When the consumer is
    slower than the workers, workers wait on the queue and dispatching
    slows down with it.

    Cancellation: when ``stop_event`` is set, workers stop taking new
    indices. Requests already in flight finish and are still yielded.

    State machine: IDLE -> DISPATCHING -> DRAINING -> DONE
    """

    def __init__(
        self,
        total: int,
        concurrency: int,
        job: Job,
        *,
        stop_event: asyncio.Event | None = None,
        seed: int | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            total: Number of jobs to run (indices ``0..total-1``).
            concurrency: Maximum jobs in flight.
            job: Coroutine function called as ``job(index, rng)``.
            stop_event: Optional event that stops further dispatching.
            seed: Base seed for the per-worker random sources. Worker ``w``
                uses ``seed + w``. None seeds from system entropy.

        Raises:
            ValueError: If ``total`` or ``concurrency`` is not positive.
        """
        if total <= 0:
            msg = f"total must be positive, got {total}"
            raise ValueError(msg)
        if concurrency <= 0:
            msg = f"concurrency must be positive, got {concurrency}"
            raise ValueError(msg)

        self._total = total
        self._concurrency = min(concurrency, total)
        self._job = job
        self._stop_event = stop_event or asyncio.Event()
        self._seed = seed
        self._state = SchedulerState.IDLE
        self._dispatched = 0
        self._in_flight = 0
        self._max_in_flight = 0

    @property
    def state(self) -> SchedulerState:
        """Return the current scheduler state."""
        return self._state

    @property
    def dispatched(self) -> int:
        """Return how many jobs have been started."""
        return self._dispatched

    @property
    def max_in_flight(self) -> int:
        """Return the highest number of jobs observed in flight at once."""
        return self._max_in_flight

    def _make_rng(self, worker_id: int) -> random.Random:
        if self._seed is None:
            return random.Random()  # noqa: S311
        return random.Random(self._seed + worker_id)  # noqa: S311

    async def _worker(
        self,
        worker_id: int,
        indices: Iterator[int],
        results: asyncio.Queue[RequestOutcome],
    ) -> None:
        rng = self._make_rng(worker_id)
        while not self._stop_event.is_set():
            index = next(indices, None)
            if index is None:
                break

            self._dispatched += 1
            if self._dispatched == self._total:
                self._state = SchedulerState.DRAINING

            self._in_flight += 1
            self._max_in_flight = max(self._max_in_flight, self._in_flight)
            try:
                outcome = await self._job(index, rng)
            finally:
                self._in_flight -= 1
            await results.put(outcome)

    async def iter_completions(self) -> AsyncIterator[RequestOutcome]:
        """Run the jobs and yield their outcomes in completion order.

        Use with ``contextlib.aclosing`` so that leaving the loop early
        cancels the remaining workers.

        Yields:
            One RequestOutcome per started job.

        Raises:
            EngineError: If a job raises instead of returning an outcome.
            RuntimeError: If the scheduler has already been run.
        """
        if self._state is not SchedulerState.IDLE:
            msg = "ConcurrencyScheduler can only be run once"
            raise RuntimeError(msg)

        self._state = SchedulerState.DISPATCHING
        logger.debug(
            "Dispatching %d requests with concurrency %d", self._total, self._concurrency
        )

        indices = iter(range(self._total))
        results: asyncio.Queue[RequestOutcome] = asyncio.Queue(maxsize=self._concurrency)
        workers = [
            asyncio.create_task(
                self._worker(worker_id, indices, results),
                name=f"scheduler-worker-{worker_id}",
            )
            for worker_id in range(self._concurrency)
        ]
        all_done = asyncio.gather(*workers)
        getter: asyncio.Future[RequestOutcome] | None = None

        try:
            while True:
                if all_done.done() and results.empty():
                    _raise_worker_failure(all_done)
                    break
                getter = asyncio.ensure_future(results.get())
                done, _pending = await asyncio.wait(
                    {getter, all_done},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if getter in done:
                    yield getter.result()
                    continue

                getter.cancel()
                _raise_worker_failure(all_done)

            if self._stop_event.is_set() and self._dispatched < self._total:
                logger.info(
                    "Dispatch stopped after %d of %d requests", self._dispatched, self._total
                )
        finally:
            if getter is not None and not getter.done():
                getter.cancel()
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            if all_done.done() and not all_done.cancelled():
                all_done.exception()
            self._state = SchedulerState.DONE


def _raise_worker_failure(all_done: asyncio.Future[list[None]]) -> None:
    exc = all_done.exception()
    if exc is not None:
        msg = f"A request worker failed: {exc}"
        raise EngineError(msg) from exc
