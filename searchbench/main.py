from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Callable

from redis.exceptions import RedisError

from .benchmarks.main import main as bench_main
from .benchmarks.main import setup_logging
from .client import (
    DEFAULT_ENDPOINT,
    DEFAULT_INDEX,
    QueryError,
    QuerySpec,
    SearchClient,
    ServiceConnectionError,
    connect,
)
from .search import format_ranked, rank_results
from .seed import DEFAULT_CHUNK_SIZE, DEFAULT_RECORDS, IndexSeeder, write_terms

LOGGER = logging.getLogger("searchbench")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Vector search service tools")
    parser.add_argument(
        "--endpoint",
        default=os.environ.get("SEARCHBENCH_ENDPOINT", DEFAULT_ENDPOINT),
        help="host:port of the search service",
    )
    parser.add_argument("--standalone", action="store_true", help="Connect to a single node")
    parser.add_argument("--index", default=DEFAULT_INDEX, help="Search index name")
    parser.add_argument(
        "--connect-timeout",
        type=float,
        default=60.0,
        help="Seconds to keep retrying the initial connection",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("SEARCHBENCH_LOG_LEVEL", "INFO"),
        help="Logging level",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    # Handled before parsing; registered so it shows up in --help.
    subparsers.add_parser("bench", help="Run the timed latency benchmark", add_help=False)

    seed = subparsers.add_parser("seed", help="Recreate the index and load random ad records")
    seed.add_argument("--records", type=int, default=DEFAULT_RECORDS, help="Records to write")
    seed.add_argument("--chunk-size", type=int, default=DEFAULT_CHUNK_SIZE, help="Writes per pipeline")
    seed.add_argument("--seed", type=int, default=None, help="Random seed for generated records")
    seed.add_argument("--terms-out", type=str, help="Write the generated search terms to this file")

    search = subparsers.add_parser("search", help="Run one query and rank the hits")
    search.add_argument("--term", default="", help="The search term to query (required)")
    search.add_argument("--knn", type=int, default=100, help="Nearest neighbours to fetch")

    return parser.parse_args(argv)


def run_seed(args: argparse.Namespace, client: SearchClient) -> int:
    seeder = IndexSeeder(client, records=args.records, chunk_size=args.chunk_size, seed=args.seed)
    stats = seeder.run()
    if args.terms_out:
        write_terms(stats.terms, Path(args.terms_out))
    print(f"Loaded {stats.records} sample ads.")
    return 0


def run_search(args: argparse.Namespace, client: SearchClient) -> int:
    try:
        result = client.submit_query(args.term)
    except QueryError:
        LOGGER.exception("Error executing FT.SEARCH")
        return 1
    if not result.raw:
        print("No results found")
        return 0
    print(format_ranked(args.term, result, rank_results(result)))
    return 0


def run(argv: list[str] | None = None, connect_fn: Callable[..., SearchClient] = connect) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    if argv and argv[0] == "bench":
        return bench_main(argv[1:])

    args = parse_args(argv)
    setup_logging(args.log_level)

    if args.command == "search" and not args.term:
        print(
            'Error: Search term is required. Usage: searchbench search --term "buy iphone"',
            file=sys.stderr,
        )
        return 1

    knn = getattr(args, "knn", 100)
    try:
        client = connect_fn(
            args.endpoint,
            query=QuerySpec(index=args.index, knn=knn),
            cluster=not args.standalone,
            timeout_s=args.connect_timeout,
        )
    except ServiceConnectionError:
        LOGGER.exception("Error pinging search service")
        return 1

    with client:
        if args.command == "seed":
            try:
                return run_seed(args, client)
            except RedisError:
                LOGGER.exception("Seeding failed")
                return 1
        return run_search(args, client)


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
