from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from ..client import SearchResult
from .aggregator import LatencyAggregator, LatencySnapshot
from .controller import ConcurrencyController
from .executor import QueryExecutor
from .report import print_sample_result
from .workload import WorkloadSource

LOGGER = logging.getLogger("searchbench.benchmark.runner")

PROGRESS_INTERVAL_S_DEFAULT = 60.0


@dataclass(frozen=True)
class RunWindow:
    started_at: float
    deadline: float
    wall_started_at: float

    @classmethod
    def open(
        cls,
        duration_s: float,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ) -> RunWindow:
        started_at = clock()
        return cls(started_at=started_at, deadline=started_at + duration_s, wall_started_at=wall_clock())

    @property
    def duration_s(self) -> float:
        return self.deadline - self.started_at

    def expired(self, now: float) -> bool:
        return now >= self.deadline


@dataclass(frozen=True)
class FinalReport:
    window: RunWindow
    batches: int
    trials: int
    succeeded: int
    failed: int
    elapsed_s: float
    snapshot: LatencySnapshot
    failures: dict[str, int] = field(default_factory=dict)
    sample: SearchResult | None = None

    @property
    def throughput_per_second(self) -> float:
        if self.elapsed_s <= 0:
            return 0.0
        return self.succeeded / self.elapsed_s


class RunController:
    """Drives sequential batches until the run window closes.

    The deadline is checked before every batch and never interrupts one in
    flight, so a run can overshoot its duration by one batch. A zero duration
    runs no batches at all.
    """

    def __init__(
        self,
        executor: QueryExecutor,
        workload: WorkloadSource,
        aggregator: LatencyAggregator,
        on_sample: Callable[[SearchResult], None] = print_sample_result,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        progress_interval_s: float = PROGRESS_INTERVAL_S_DEFAULT,
    ) -> None:
        self._executor = executor
        self._workload = workload
        self._aggregator = aggregator
        self._on_sample = on_sample
        self._clock = clock
        self._wall_clock = wall_clock
        self._progress_interval_s = progress_interval_s

    def run(self, duration_s: float, batch_size: int, max_concurrent: int) -> FinalReport:
        if duration_s < 0:
            raise ValueError("duration must be >= 0")
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")

        window = RunWindow.open(duration_s, self._clock, self._wall_clock)
        LOGGER.info(
            "Starting run: duration=%.1fs batch_size=%d max_concurrent=%d",
            duration_s,
            batch_size,
            max_concurrent,
        )

        batches = trials = succeeded = failed = 0
        sample: SearchResult | None = None
        last_progress = window.started_at

        with ConcurrencyController(
            self._executor, self._workload, self._aggregator, max_concurrent
        ) as controller:
            while not window.expired(self._clock()):
                batch = controller.run_batch(batch_size)
                batches += 1
                trials += batch.dispatched
                succeeded += batch.succeeded
                failed += batch.failed

                if sample is None and batch.sample is not None:
                    sample = batch.sample
                    self._on_sample(sample)

                now = self._clock()
                if now - last_progress >= self._progress_interval_s:
                    last_progress = now
                    LOGGER.info(
                        "Progress: %.0fs elapsed, %d batches, %d trials (%d failed)",
                        now - window.started_at,
                        batches,
                        trials,
                        failed,
                    )
            failures = dict(controller.failure_counts)

        elapsed_s = max(self._clock() - window.started_at, 0.0)
        snapshot = self._aggregator.snapshot()
        LOGGER.info(
            "Run finished: %d batches, %d trials (%d failed) in %.2fs",
            batches,
            trials,
            failed,
            elapsed_s,
        )
        return FinalReport(
            window=window,
            batches=batches,
            trials=trials,
            succeeded=succeeded,
            failed=failed,
            elapsed_s=elapsed_s,
            snapshot=snapshot,
            failures=failures,
            sample=sample,
        )
