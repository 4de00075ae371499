"""Tests for the timed run loop."""

from __future__ import annotations

import pytest

from searchbench.benchmarks.aggregator import LatencyAggregator
from searchbench.benchmarks.executor import QueryExecutor
from searchbench.benchmarks.runner import FinalReport, RunController, RunWindow
from searchbench.benchmarks.workload import WorkloadSource


def _runner(service, samples: list, aggregator: LatencyAggregator | None = None) -> RunController:
    return RunController(
        QueryExecutor(service),
        WorkloadSource(["cat", "dog"], seed=1),
        aggregator if aggregator is not None else LatencyAggregator(),
        on_sample=samples.append,
    )


class TestRunWindow:
    def test_open_computes_deadline(self) -> None:
        window = RunWindow.open(30.0, clock=lambda: 100.0, wall_clock=lambda: 5.0)
        assert window.started_at == 100.0
        assert window.deadline == 130.0
        assert window.wall_started_at == 5.0
        assert window.duration_s == 30.0
        assert not window.expired(129.9)
        assert window.expired(130.0)


class TestRunController:
    def test_zero_duration_runs_no_batches(self, fake_service) -> None:
        samples: list = []

        report = _runner(fake_service, samples).run(0, batch_size=4, max_concurrent=2)

        assert report.batches == 0
        assert report.trials == 0
        assert report.snapshot.count == 0
        assert report.snapshot.p99 is None
        assert report.throughput_per_second == 0.0
        assert fake_service.calls == 0
        assert samples == []

    def test_runs_batches_until_deadline(self, make_service) -> None:
        service = make_service(delay_s=0.005)
        samples: list = []
        aggregator = LatencyAggregator()

        report = _runner(service, samples, aggregator).run(0.2, batch_size=3, max_concurrent=3)

        assert report.batches >= 1
        assert report.trials == report.batches * 3 == service.calls
        assert report.succeeded == report.trials
        assert report.snapshot.count == report.trials
        assert report.elapsed_s >= 0.2
        assert report.throughput_per_second > 0

    def test_sample_is_emitted_exactly_once(self, make_service) -> None:
        service = make_service(delay_s=0.002)
        samples: list = []

        report = _runner(service, samples).run(0.1, batch_size=2, max_concurrent=2)

        assert report.batches > 1
        assert len(samples) == 1
        assert report.sample is samples[0]

    def test_sample_taken_from_later_batch_when_first_fails(self, make_service) -> None:
        service = make_service(delay_s=0.002, fail=lambda call: call == 1)
        samples: list = []

        report = _runner(service, samples).run(0.1, batch_size=1, max_concurrent=1)

        assert len(samples) == 1
        assert samples[0].total == 2
        assert report.failed == 1

    def test_total_failure_still_completes(self, make_service) -> None:
        service = make_service(delay_s=0.002, fail=lambda call: True)
        samples: list = []

        report = _runner(service, samples).run(0.1, batch_size=2, max_concurrent=2)

        assert report.batches >= 1
        assert report.failed == report.trials
        assert report.snapshot.count == 0
        assert report.failures == {"ConnectionError": report.trials}
        assert samples == []

    @pytest.mark.parametrize("duration, batch_size", [(-1, 1), (1, 0)])
    def test_rejects_invalid_arguments(self, fake_service, duration: float, batch_size: int) -> None:
        with pytest.raises(ValueError):
            _runner(fake_service, []).run(duration, batch_size=batch_size, max_concurrent=1)


def test_throughput_uses_successful_trials() -> None:
    report = FinalReport(
        window=RunWindow(started_at=0.0, deadline=10.0, wall_started_at=0.0),
        batches=5,
        trials=10,
        succeeded=8,
        failed=2,
        elapsed_s=4.0,
        snapshot=LatencyAggregator().snapshot(),
    )
    assert report.throughput_per_second == 2.0
