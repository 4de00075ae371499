"""Shared fixtures: an in-process stand-in for the search service."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Callable

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from searchbench.client import QueryError, SearchHit, SearchResult


class FakeQueryService:
    """Thread-safe fake that counts calls and tracks how many run at once.

    ``fail`` receives the 1-based call number and returns True to make that
    call raise ``QueryError``.
    """

    def __init__(
        self,
        delay_s: float = 0.0,
        fail: Callable[[int], bool] | None = None,
    ) -> None:
        self.delay_s = delay_s
        self.fail = fail or (lambda call: False)
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.terms: list[str] = []
        self.closed = False
        self._lock = threading.Lock()

    def submit_query(self, term: str) -> SearchResult:
        with self._lock:
            self.calls += 1
            call = self.calls
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            self.terms.append(term)
        try:
            if self.delay_s:
                time.sleep(self.delay_s)
            if self.fail(call):
                raise QueryError(f"call {call} failed") from RedisConnectionError("connection refused")
            raw = [call, f"ad:{call}".encode(), [b"search_term", term.encode(), b"sim_score", b"0.25"]]
            return SearchResult(
                total=call,
                hits=(SearchHit(key=f"ad:{call}", fields=(("search_term", term), ("sim_score", "0.25"))),),
                raw=raw,
            )
        finally:
            with self._lock:
                self.in_flight -= 1

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> FakeQueryService:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


@pytest.fixture
def fake_service() -> FakeQueryService:
    return FakeQueryService()


@pytest.fixture
def make_service() -> type[FakeQueryService]:
    return FakeQueryService


@pytest.fixture
def terms_file(tmp_path: Path) -> Path:
    path = tmp_path / "search_terms.txt"
    path.write_text("buy iphone\ncheap flights\nmovie tickets\n", encoding="utf-8")
    return path
