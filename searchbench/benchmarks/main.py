from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Callable

from ..client import (
    DEFAULT_ENDPOINT,
    DEFAULT_INDEX,
    PoolConfig,
    QuerySpec,
    SearchClient,
    SearchResult,
    ServiceConnectionError,
    connect,
)
from .aggregator import LatencyAggregator, OverflowPolicy
from .charts import render_latency_histogram
from .config import DEFAULT_TERMS_PATH, RunConfig
from .executor import QueryExecutor
from .report import format_report, print_sample_result, write_report_json, write_samples_csv
from .runner import FinalReport, RunController
from .workload import EmptyVocabularyError, WorkloadSource, load_vocabulary

LOGGER = logging.getLogger("searchbench.benchmark")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Search service latency benchmark")
    parser.add_argument(
        "--endpoint",
        default=os.environ.get("SEARCHBENCH_ENDPOINT", DEFAULT_ENDPOINT),
        help="host:port of the search service (a cluster discovery endpoint by default)",
    )
    parser.add_argument(
        "--terms",
        default=os.environ.get("SEARCHBENCH_TERMS_PATH", DEFAULT_TERMS_PATH),
        help="Newline-delimited file of search terms",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=os.environ.get("SEARCHBENCH_DURATION_SECONDS", "300"),
        help="Run duration in seconds",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=os.environ.get("SEARCHBENCH_BATCH_SIZE", "1"),
        help="Trials dispatched per batch",
    )
    parser.add_argument(
        "--max-concurrent",
        type=int,
        default=os.environ.get("SEARCHBENCH_MAX_CONCURRENT", "1000"),
        help="Maximum number of trials in flight at once",
    )
    parser.add_argument(
        "--capacity",
        type=int,
        default=os.environ.get("SEARCHBENCH_CAPACITY", "10000"),
        help="Latency reservoir capacity",
    )
    parser.add_argument(
        "--overflow-policy",
        choices=[policy.value for policy in OverflowPolicy],
        default=os.environ.get("SEARCHBENCH_OVERFLOW_POLICY", OverflowPolicy.RING.value),
        help="What the reservoir does with samples once full",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=os.environ.get("SEARCHBENCH_SEED"),
        help="Seed for term selection and reservoir sampling",
    )
    parser.add_argument(
        "--skip-blank-terms",
        action="store_true",
        help="Ignore blank lines in the terms file",
    )
    parser.add_argument(
        "--standalone",
        action="store_true",
        help="Connect to a single node instead of a cluster",
    )
    parser.add_argument("--index", default=DEFAULT_INDEX, help="Search index name")
    parser.add_argument("--knn", type=int, default=100, help="Nearest neighbours per query")
    parser.add_argument(
        "--pool-size",
        type=int,
        default=os.environ.get("SEARCHBENCH_POOL_SIZE", "1000"),
        help="Maximum connections in the client pool",
    )
    parser.add_argument(
        "--socket-timeout",
        type=float,
        default=None,
        help="Per-command socket timeout in seconds (default: wait forever)",
    )
    parser.add_argument(
        "--connect-timeout",
        type=float,
        default=60.0,
        help="Seconds to keep retrying the initial connection",
    )
    parser.add_argument(
        "--output-dir",
        default=os.environ.get("SEARCHBENCH_OUTPUT_DIR"),
        help="Directory to store benchmark artefacts (CSV, JSON report and chart)",
    )
    parser.add_argument(
        "--histogram-bins",
        type=int,
        default=10,
        help="Buckets in the text histogram (0 disables it)",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("SEARCHBENCH_LOG_LEVEL", "INFO"),
        help="Logging level",
    )
    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_config(args: argparse.Namespace) -> RunConfig:
    return RunConfig(
        endpoint=args.endpoint,
        terms_path=Path(args.terms),
        duration_s=args.duration,
        batch_size=args.batch_size,
        max_concurrent=args.max_concurrent,
        capacity=args.capacity,
        overflow_policy=OverflowPolicy(args.overflow_policy),
        seed=args.seed,
        skip_blank_terms=args.skip_blank_terms,
        cluster=not args.standalone,
        connect_timeout_s=args.connect_timeout,
        pool=PoolConfig(max_connections=args.pool_size, socket_timeout=args.socket_timeout),
        query=QuerySpec(index=args.index, knn=args.knn),
        output_dir=Path(args.output_dir) if args.output_dir else None,
    )


def run_benchmark(
    config: RunConfig,
    connect_fn: Callable[..., SearchClient] | None = None,
    on_sample: Callable[[SearchResult], None] = print_sample_result,
) -> tuple[FinalReport, LatencyAggregator]:
    connect_fn = connect_fn or connect
    # The workload is loaded before connecting so a bad terms file fails fast.
    terms = load_vocabulary(config.terms_path, skip_blank=config.skip_blank_terms)
    workload = WorkloadSource(terms, seed=config.seed)
    aggregator = LatencyAggregator(config.capacity, config.overflow_policy, seed=config.seed)

    client = connect_fn(
        config.endpoint,
        pool=config.pool,
        query=config.query,
        cluster=config.cluster,
        timeout_s=config.connect_timeout_s,
    )
    with client:
        controller = RunController(QueryExecutor(client), workload, aggregator, on_sample=on_sample)
        report = controller.run(config.duration_s, config.batch_size, config.max_concurrent)
    return report, aggregator


def export_artefacts(report: FinalReport, aggregator: LatencyAggregator, output_dir: Path) -> list[Path]:
    output_dir.mkdir(parents=True, exist_ok=True)
    LOGGER.info("Benchmark output directory: %s", output_dir)
    paths = [
        write_samples_csv(aggregator, output_dir / "latency_samples.csv"),
        write_report_json(report, output_dir / "latency_report.json"),
    ]
    chart_path = render_latency_histogram(
        aggregator.to_dataframe(), report.snapshot, output_dir / "latency_histogram.png"
    )
    if chart_path is not None:
        paths.append(chart_path)
    return paths


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        config = build_config(args)
    except ValueError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2

    try:
        report, aggregator = run_benchmark(config)
    except ServiceConnectionError:
        LOGGER.exception("Failed to connect to the search service")
        return 1
    except EmptyVocabularyError as exc:
        LOGGER.error("%s", exc)
        return 1
    except OSError:
        LOGGER.exception("Failed to load search terms from %s", config.terms_path)
        return 1

    histogram = aggregator.histogram(args.histogram_bins) if args.histogram_bins > 0 else []
    print(format_report(report, histogram))

    if config.output_dir is not None:
        export_artefacts(report, aggregator, config.output_dir)
    return 0


if __name__ == "__main__":
    sys.exit(main())
