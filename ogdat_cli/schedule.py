"""Parallel fan-out of batch work.

The Scheduler splits a list of items into one contiguous slice per worker
and runs a work function on every slice concurrently. A supervisor reports
the outcome through a queue:

- the first worker exception is posted once as WorkResult(ERROR, exc);
  the remaining workers are not cancelled and run to completion, but no
  FINISH follows. The result's ``settled`` event is set once every
  worker has stopped;
- if every worker returns normally, exactly one WorkResult(FINISH) is
  posted after all of them are done.

Items inside one slice are processed in order; there is no ordering
between slices.

Usage:
    from ogdat_cli.schedule import Scheduler, wait

    results = Scheduler(workers=4).schedule(process_slice, ids)
    outcome = wait(results, heartbeat=60.0, on_tick=store_heartbeat)
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import TypeVar

from ogdat_cli.errors import SchedulerConfigError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_WORKERS = 4


class WorkState(Enum):
    TICK = "tick"
    FINISH = "finish"
    ERROR = "error"


@dataclass(frozen=True)
class WorkResult:
    """Outcome posted by the supervisor (or TICK, posted by wait())."""

    state: WorkState
    error: BaseException | None = None
    # Set on ERROR results when the last worker has stopped
    settled: threading.Event | None = field(default=None, compare=False, repr=False)


def partition(items: Sequence[T], workers: int) -> list[list[T]]:
    """Split items into exactly ``workers`` contiguous slices.

    Slice k holds ``items[k*n//w:(k+1)*n//w]``, so every item lands in
    exactly one slice and slice sizes differ by at most one. Slices are
    empty when there are fewer items than workers.

    Raises:
        SchedulerConfigError: If workers < 1.
    """
    if workers < 1:
        raise SchedulerConfigError(workers)
    n = len(items)
    return [list(items[k * n // workers : (k + 1) * n // workers]) for k in range(workers)]


class Scheduler:
    """Runs a work function over worker slices of an item list."""

    def __init__(self, workers: int = DEFAULT_WORKERS) -> None:
        self.workers = workers

    @property
    def workers(self) -> int:
        return self._workers

    @workers.setter
    def workers(self, value: int) -> None:
        if value < 1:
            raise SchedulerConfigError(value)
        self._workers = value

    def partition(self, items: Sequence[T]) -> list[list[T]]:
        return partition(items, self._workers)

    def schedule(
        self, work_fn: Callable[[list[T]], object], items: Sequence[T]
    ) -> queue.Queue[WorkResult]:
        """Start one worker per slice and return the result queue.

        Returns immediately. The queue receives exactly one terminal
        result (ERROR or FINISH).
        """
        slices = self.partition(items)
        results: queue.Queue[WorkResult] = queue.Queue()

        executor = ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="ogdat-worker")
        futures: list[Future[object]] = [executor.submit(work_fn, s) for s in slices]
        # Workers finish on their own; nothing is cancelled
        executor.shutdown(wait=False)

        logger.debug(
            "Scheduled %d items on %d workers (slice sizes %s)",
            len(items),
            self._workers,
            [len(s) for s in slices],
        )

        supervisor = threading.Thread(
            target=_supervise,
            args=(futures, results),
            name="ogdat-supervisor",
            daemon=True,
        )
        supervisor.start()
        return results


def _supervise(futures: list[Future[object]], results: queue.Queue[WorkResult]) -> None:
    failed = False
    settled = threading.Event()
    for future in as_completed(futures):
        error = future.exception()
        if error is None:
            continue
        if failed:
            logger.debug("Further worker error after the first: %s", error)
            continue
        failed = True
        logger.error("Worker failed: %s", error)
        results.put(WorkResult(WorkState.ERROR, error, settled))
    settled.set()
    if not failed:
        results.put(WorkResult(WorkState.FINISH))


def wait(
    results: queue.Queue[WorkResult],
    heartbeat: float,
    on_tick: Callable[[], object] | None = None,
) -> WorkResult:
    """Block until a terminal result arrives.

    Args:
        results: Queue returned by Scheduler.schedule().
        heartbeat: Seconds between ticks.
        on_tick: Called once per elapsed heartbeat interval.

    Returns:
        The ERROR or FINISH result.
    """
    while True:
        try:
            result = results.get(timeout=heartbeat)
        except queue.Empty:
            result = WorkResult(WorkState.TICK)
        if result.state is not WorkState.TICK:
            return result
        if on_tick is not None:
            on_tick()
