from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from ..client import CONNECT_TIMEOUT_S_DEFAULT, DEFAULT_ENDPOINT, PoolConfig, QuerySpec
from .aggregator import DEFAULT_CAPACITY, OverflowPolicy

DEFAULT_DURATION_S = 300.0
DEFAULT_BATCH_SIZE = 1
DEFAULT_MAX_CONCURRENT = 1000
DEFAULT_TERMS_PATH = "search_terms.txt"


@dataclass(frozen=True)
class RunConfig:
    """Everything a single timed latency run needs."""

    endpoint: str = DEFAULT_ENDPOINT
    terms_path: Path = Path(DEFAULT_TERMS_PATH)
    duration_s: float = DEFAULT_DURATION_S
    batch_size: int = DEFAULT_BATCH_SIZE
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    capacity: int = DEFAULT_CAPACITY
    overflow_policy: OverflowPolicy = OverflowPolicy.RING
    seed: int | None = None
    skip_blank_terms: bool = False
    cluster: bool = True
    connect_timeout_s: float = CONNECT_TIMEOUT_S_DEFAULT
    pool: PoolConfig = field(default_factory=PoolConfig)
    query: QuerySpec = field(default_factory=QuerySpec)
    output_dir: Path | None = None

    def __post_init__(self) -> None:
        if self.duration_s < 0:
            raise ValueError("duration must be >= 0 seconds")
        if self.batch_size < 1:
            raise ValueError("batch size must be >= 1")
        if self.max_concurrent < 1:
            raise ValueError("max concurrent trials must be >= 1")
        if self.capacity < 1:
            raise ValueError("reservoir capacity must be >= 1")
        if self.connect_timeout_s < 0:
            raise ValueError("connect timeout must be >= 0 seconds")
        object.__setattr__(self, "overflow_policy", OverflowPolicy(self.overflow_policy))
        object.__setattr__(self, "terms_path", Path(self.terms_path))
        if self.output_dir is not None:
            object.__setattr__(self, "output_dir", Path(self.output_dir))
