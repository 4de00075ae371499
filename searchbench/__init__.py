"""
Latency benchmarking tools for a vector search service.

The ``benchmarks`` subpackage drives randomized query load against the
service and reports percentile latencies; ``seed`` and ``search`` provide the
index seeding and single-query helpers used around a benchmark run.
"""
