"""
Latency harness for the vector search service.

This package provides facilities to drive randomized query load in
sequential batches of concurrent trials, aggregate the observed latencies in a
bounded reservoir, and report order statistics and charts for a timed run.
"""

from .main import main

__all__ = ["main"]
