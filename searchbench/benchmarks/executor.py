from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Protocol, Union

from ..client import QueryError, SearchResult


class QueryService(Protocol):
    def submit_query(self, term: str) -> SearchResult: ...


@dataclass(frozen=True)
class Success:
    count: int
    result: SearchResult


@dataclass(frozen=True)
class Failure:
    cause: QueryError


Outcome = Union[Success, Failure]


@dataclass(frozen=True)
class Trial:
    """One query execution attempt and its measured wall-clock duration."""

    term: str
    started_at: float
    elapsed_ms: float
    outcome: Outcome

    @property
    def succeeded(self) -> bool:
        return isinstance(self.outcome, Success)


class QueryExecutor:
    """Times single queries against the search service. Never retries."""

    def __init__(
        self,
        service: QueryService,
        clock: Callable[[], float] = time.perf_counter,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self._service = service
        self._clock = clock
        self._wall_clock = wall_clock

    def execute(self, term: str) -> Trial:
        started_at = self._wall_clock()
        t0 = self._clock()
        try:
            result = self._service.submit_query(term)
        except QueryError as exc:
            elapsed_ms = (self._clock() - t0) * 1000.0
            return Trial(term=term, started_at=started_at, elapsed_ms=elapsed_ms, outcome=Failure(exc))
        elapsed_ms = (self._clock() - t0) * 1000.0
        return Trial(
            term=term,
            started_at=started_at,
            elapsed_ms=elapsed_ms,
            outcome=Success(count=result.total, result=result),
        )
