from __future__ import annotations

import collections
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass

from ..client import SearchResult
from .aggregator import LatencyAggregator
from .executor import Failure, QueryExecutor, Success, Trial
from .workload import WorkloadSource

LOGGER = logging.getLogger("searchbench.benchmark.controller")


@dataclass(frozen=True)
class BatchResult:
    dispatched: int
    succeeded: int
    failed: int
    latencies: tuple[float, ...]
    sample: SearchResult | None = None


class ConcurrencyController:
    """Runs batches of trials on a fixed pool of ``max_concurrent`` workers.

    ``run_batch`` returns only once every trial it dispatched has finished, so
    no trial leaks into a later batch. Use it as a context manager; leaving the
    context shuts the pool down.
    """

    def __init__(
        self,
        executor: QueryExecutor,
        workload: WorkloadSource,
        aggregator: LatencyAggregator,
        max_concurrent: int,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._executor = executor
        self._workload = workload
        self._aggregator = aggregator
        self._max_concurrent = max_concurrent
        self._pool: ThreadPoolExecutor | None = None
        self.failure_counts: collections.Counter[str] = collections.Counter()

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    def start(self) -> None:
        if self._pool is None:
            self._pool = ThreadPoolExecutor(
                max_workers=self._max_concurrent,
                thread_name_prefix="searchbench-trial",
            )

    def close(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None

    def __enter__(self) -> ConcurrencyController:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def run_batch(self, batch_size: int) -> BatchResult:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self._pool is None:
            raise RuntimeError("controller is not started")

        futures = [self._pool.submit(self._run_trial) for _ in range(batch_size)]
        wait(futures)
        trials = [future.result() for future in futures]

        latencies: list[float] = []
        failed = 0
        for trial in trials:
            if trial.succeeded:
                latencies.append(trial.elapsed_ms)
            else:
                failed += 1
                self._note_failure(trial)

        # The diagnostic sample comes from the first trial dispatched.
        first = trials[0].outcome
        sample = first.result if isinstance(first, Success) else None
        return BatchResult(
            dispatched=len(trials),
            succeeded=len(latencies),
            failed=failed,
            latencies=tuple(latencies),
            sample=sample,
        )

    def _run_trial(self) -> Trial:
        term = self._workload.next()
        trial = self._executor.execute(term)
        if trial.succeeded:
            self._aggregator.record(trial.elapsed_ms)
        return trial

    def _note_failure(self, trial: Trial) -> None:
        outcome = trial.outcome
        if not isinstance(outcome, Failure):
            return
        cause = outcome.cause
        kind = type(cause.__cause__ or cause).__name__
        self.failure_counts[kind] += 1
        if self.failure_counts[kind] == 1:
            LOGGER.warning("Query for %r failed after %.3fms: %s", trial.term, trial.elapsed_ms, cause)
        else:
            LOGGER.debug("Query for %r failed after %.3fms: %s", trial.term, trial.elapsed_ms, cause)
