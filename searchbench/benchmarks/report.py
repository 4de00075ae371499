from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Sequence

from ..client import SearchResult

if TYPE_CHECKING:
    from .aggregator import LatencyAggregator
    from .runner import FinalReport

LOGGER = logging.getLogger("searchbench.benchmark.report")

REPORT_HEADER = "------------------ Latency ------------------"
SAMPLE_HEADER = "Sample Search Results for Verification (First Batch, First Search):"
HISTOGRAM_WIDTH = 40


def format_duration(ms: float | None) -> str:
    if ms is None:
        return "n/a"
    if ms < 1.0:
        return f"{ms * 1000.0:.3f}µs"
    if ms < 1000.0:
        return f"{ms:.3f}ms"
    return f"{ms / 1000.0:.3f}s"


def format_sample_result(result: SearchResult) -> str:
    lines = [SAMPLE_HEADER, f"Total Results: {result.total}"]
    for hit in result.hits:
        fields = ", ".join(f"{name}={value}" for name, value in hit.fields)
        lines.append(f"Key: {hit.key}, Fields: [{fields}]")
    return "\n".join(lines)


def print_sample_result(result: SearchResult) -> None:
    print(format_sample_result(result))


def format_histogram(buckets: Sequence[tuple[float, float, int]]) -> str:
    if not buckets:
        return ""
    peak = max(count for _, _, count in buckets) or 1
    lines = ["Histogram:"]
    for lower, upper, count in buckets:
        bar = "#" * round(count / peak * HISTOGRAM_WIDTH)
        lines.append(f"  {format_duration(lower):>12} - {format_duration(upper):<12} |{bar} {count}")
    return "\n".join(lines)


def format_report(
    report: FinalReport,
    histogram: Sequence[tuple[float, float, int]] = (),
) -> str:
    stats = report.snapshot
    lines = [
        REPORT_HEADER,
        f"Count:\t\t{stats.count}",
        f"Max:\t\t{format_duration(stats.max)}",
        f"Min:\t\t{format_duration(stats.min)}",
        f"P95:\t\t{format_duration(stats.p95)}",
        f"P99:\t\t{format_duration(stats.p99)}",
        f"P99.9:\t\t{format_duration(stats.p999)}",
        "",
        f"Observed:\t{stats.observed}",
        f"Failed:\t\t{report.failed}",
        f"Batches:\t{report.batches}",
        f"Elapsed:\t{report.elapsed_s:.2f}s",
        f"Rate:\t\t{report.throughput_per_second:.2f}/s",
        f"P50:\t\t{format_duration(stats.p50)}",
        f"P75:\t\t{format_duration(stats.p75)}",
        f"Mean:\t\t{format_duration(stats.mean)}",
        f"StdDev:\t\t{format_duration(stats.stddev)}",
    ]
    if report.failures:
        lines.append("Failures:")
        lines.extend(f"  {kind}: {report.failures[kind]}" for kind in sorted(report.failures))
    rendered = format_histogram(histogram)
    if rendered:
        lines.append(rendered)
    return "\n".join(lines)


def report_to_dict(report: FinalReport) -> dict[str, Any]:
    return {
        "started_at": report.window.wall_started_at,
        "duration_s": report.window.duration_s,
        "elapsed_s": report.elapsed_s,
        "batches": report.batches,
        "trials": report.trials,
        "succeeded": report.succeeded,
        "failed": report.failed,
        "failures": dict(report.failures),
        "throughput_per_second": report.throughput_per_second,
        "latency_ms": report.snapshot.to_dict(),
    }


def write_report_json(report: FinalReport, path: Path) -> Path:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(report_to_dict(report), f, indent=2)
    LOGGER.info("Latency report written to %s", path)
    return path


def write_samples_csv(aggregator: LatencyAggregator, path: Path) -> Path:
    df = aggregator.to_dataframe()
    df.to_csv(path, index=False)
    LOGGER.info("Saved %d latency samples to %s", len(df), path)
    return path
