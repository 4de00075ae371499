from __future__ import annotations

import logging
import random
import threading
from pathlib import Path
from typing import Sequence

LOGGER = logging.getLogger("searchbench.benchmark.workload")


class EmptyVocabularyError(ValueError):
    """Raised when a workload has no usable search terms."""


def load_vocabulary(path: str | Path, skip_blank: bool = False) -> tuple[str, ...]:
    """Read one search term per line from ``path``.

    Line endings are stripped. Blank lines are valid (empty) terms unless
    ``skip_blank`` is set. ``FileNotFoundError`` and other ``OSError`` are left
    to the caller.
    """
    path = Path(path)
    lines = path.read_text(encoding="utf-8").splitlines()
    if skip_blank:
        lines = [line for line in lines if line.strip()]
    if not lines:
        raise EmptyVocabularyError(f"no search terms found in {path}")
    LOGGER.info("Loaded %d search terms from %s", len(lines), path)
    return tuple(lines)


class WorkloadSource:
    """Uniform random term picker shared by every concurrent trial.

    A single ``random.Random`` serves all trials behind a lock, so a fixed seed
    reproduces the sequence of drawn terms (not which trial receives which).
    """

    def __init__(self, terms: Sequence[str], seed: int | None = None) -> None:
        if not terms:
            raise EmptyVocabularyError("workload vocabulary is empty")
        self._terms = tuple(terms)
        self._rng = random.Random(seed)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._terms)

    @property
    def terms(self) -> tuple[str, ...]:
        return self._terms

    def next(self) -> str:
        with self._lock:
            index = self._rng.randrange(len(self._terms))
        return self._terms[index]
