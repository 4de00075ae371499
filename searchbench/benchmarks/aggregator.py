from __future__ import annotations

import enum
import math
import random
import threading
from dataclasses import asdict, dataclass
from fractions import Fraction

import numpy as np
import pandas as pd

DEFAULT_CAPACITY = 10_000
PERCENTILES: dict[str, float] = {
    "p50": 50,
    "p75": 75,
    "p95": 95,
    "p99": 99,
    "p999": 99.9,
}


class OverflowPolicy(str, enum.Enum):
    """What the reservoir does with a sample once it is full."""

    RING = "ring"
    RESERVOIR = "reservoir"
    DROP_NEWEST = "drop-newest"


@dataclass(frozen=True)
class LatencySnapshot:
    """Order statistics over the retained samples, in milliseconds.

    ``count`` is the number of retained samples and ``observed`` the number
    ever recorded. Every statistic is ``None`` when ``count`` is zero.
    """

    count: int
    observed: int
    min: float | None = None
    max: float | None = None
    mean: float | None = None
    stddev: float | None = None
    p50: float | None = None
    p75: float | None = None
    p95: float | None = None
    p99: float | None = None
    p999: float | None = None

    @property
    def empty(self) -> bool:
        return self.count == 0

    def to_dict(self) -> dict[str, float | int | None]:
        return asdict(self)


def order_statistic(sorted_samples: np.ndarray, percentile: float) -> float:
    """Return the sample at index ``ceil(P/100 * N) - 1`` clamped to ``[0, N-1]``."""
    n = len(sorted_samples)
    if n == 0:
        raise ValueError("order statistic of an empty sample set")
    rank = math.ceil(Fraction(str(percentile)) * n / 100)
    index = min(max(rank - 1, 0), n - 1)
    return float(sorted_samples[index])


class LatencyAggregator:
    """Fixed-capacity latency reservoir fed by many concurrent trials."""

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        policy: OverflowPolicy = OverflowPolicy.RING,
        seed: int | None = None,
    ) -> None:
        if capacity < 1:
            raise ValueError("reservoir capacity must be >= 1")
        self._capacity = capacity
        self._policy = OverflowPolicy(policy)
        self._rng = random.Random(seed)
        self._lock = threading.Lock()
        self._samples: list[float] = []
        self._observed = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def policy(self) -> OverflowPolicy:
        return self._policy

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)

    @property
    def observed(self) -> int:
        with self._lock:
            return self._observed

    def record(self, sample_ms: float) -> None:
        sample_ms = float(sample_ms)
        if not math.isfinite(sample_ms) or sample_ms < 0:
            raise ValueError(f"invalid latency sample {sample_ms!r}")

        with self._lock:
            seen = self._observed
            self._observed += 1
            if len(self._samples) < self._capacity:
                self._samples.append(sample_ms)
            elif self._policy is OverflowPolicy.RING:
                self._samples[seen % self._capacity] = sample_ms
            elif self._policy is OverflowPolicy.RESERVOIR:
                slot = self._rng.randrange(seen + 1)
                if slot < self._capacity:
                    self._samples[slot] = sample_ms
            # DROP_NEWEST keeps the first ``capacity`` samples.

    def samples(self) -> list[float]:
        with self._lock:
            return list(self._samples)

    def snapshot(self) -> LatencySnapshot:
        with self._lock:
            samples = list(self._samples)
            observed = self._observed

        if not samples:
            return LatencySnapshot(count=0, observed=observed)

        ordered = np.sort(np.asarray(samples, dtype=np.float64))
        percentiles = {name: order_statistic(ordered, p) for name, p in PERCENTILES.items()}
        return LatencySnapshot(
            count=len(ordered),
            observed=observed,
            min=float(ordered[0]),
            max=float(ordered[-1]),
            mean=float(ordered.mean()),
            stddev=float(ordered.std()),
            **percentiles,
        )

    def histogram(self, bins: int = 10) -> list[tuple[float, float, int]]:
        samples = self.samples()
        if not samples:
            return []
        counts, edges = np.histogram(np.asarray(samples, dtype=np.float64), bins=bins)
        return [
            (float(edges[i]), float(edges[i + 1]), int(counts[i]))
            for i in range(len(counts))
        ]

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame({"latency_ms": self.samples()}, dtype="float64")
