from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import numpy as np
from redis.exceptions import RedisError

from .client import QuerySpec, SearchClient, encode_vector

LOGGER = logging.getLogger("searchbench.seed")

KEY_PREFIX = "ad:"
WORDS: tuple[str, ...] = (
    "cat",
    "dog",
    "car",
    "house",
    "computer",
    "phone",
    "book",
    "food",
    "travel",
    "music",
    "game",
    "movie",
    "sport",
    "tech",
    "health",
)
DEFAULT_RECORDS = 1000
DEFAULT_CHUNK_SIZE = 500


@dataclass(frozen=True)
class AdRecord:
    key: str
    search_term: str
    vector: bytes
    expected_ctr: float
    ad_relevance: float
    landing_experience: float

    def to_mapping(self) -> dict[str, object]:
        return {
            "search_term": self.search_term,
            "vector": self.vector,
            "expected_ctr": self.expected_ctr,
            "ad_relevance": self.ad_relevance,
            "landing_experience": self.landing_experience,
        }


@dataclass
class SeedStatistics:
    records: int
    terms: set[str]


def random_term(rng: np.random.Generator) -> str:
    count = int(rng.integers(1, 4))
    return " ".join(str(word) for word in rng.choice(WORDS, size=count))


def index_schema_args(query: QuerySpec) -> list[object]:
    return [
        "FT.CREATE",
        query.index,
        "ON",
        "HASH",
        "PREFIX",
        "1",
        KEY_PREFIX,
        "SCHEMA",
        "vector",
        "VECTOR",
        "HNSW",
        "6",
        "TYPE",
        "FLOAT32",
        "DIM",
        str(query.dim),
        "DISTANCE_METRIC",
        "COSINE",
        "expected_ctr",
        "NUMERIC",
        "ad_relevance",
        "NUMERIC",
        "landing_experience",
        "NUMERIC",
    ]


def iter_records(count: int, dim: int, rng: np.random.Generator) -> Iterator[AdRecord]:
    for i in range(count):
        yield AdRecord(
            key=f"{KEY_PREFIX}{i}",
            search_term=random_term(rng),
            vector=encode_vector(rng.random(dim, dtype=np.float32) * 2 - 1),
            expected_ctr=float(rng.random() * 0.1),
            ad_relevance=float(rng.random()),
            landing_experience=float(rng.random()),
        )


def recreate_index(client: SearchClient) -> None:
    index = client.query.index
    try:
        client.execute("FT.DROPINDEX", index)
    except RedisError as exc:
        LOGGER.warning("Could not drop index %s: %s", index, exc)
    client.execute(*index_schema_args(client.query))
    LOGGER.info("Created index %s (dim=%d)", index, client.query.dim)


class IndexSeeder:
    """Recreates the search index and fills it with random ad records."""

    def __init__(
        self,
        client: SearchClient,
        records: int = DEFAULT_RECORDS,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        seed: int | None = None,
    ) -> None:
        if records < 0:
            raise ValueError("records must be >= 0")
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        self._client = client
        self._records = records
        self._chunk_size = chunk_size
        self._rng = np.random.default_rng(seed)

    def run(self) -> SeedStatistics:
        recreate_index(self._client)

        written = 0
        terms: set[str] = set()
        pipe = self._client.pipeline()
        pending = 0
        for record in iter_records(self._records, self._client.query.dim, self._rng):
            pipe.hset(record.key, mapping=record.to_mapping())
            terms.add(record.search_term)
            pending += 1
            if pending >= self._chunk_size:
                pipe.execute()
                written += pending
                pending = 0
                LOGGER.debug("Seeded %d/%d records", written, self._records)
        if pending:
            pipe.execute()
            written += pending

        LOGGER.info("Loaded %d sample ads", written)
        return SeedStatistics(records=written, terms=terms)


def write_terms(terms: set[str], path: Path) -> Path:
    path.write_text("".join(f"{term}\n" for term in sorted(terms)), encoding="utf-8")
    LOGGER.info("Wrote %d search terms to %s", len(terms), path)
    return path


__all__ = [
    "AdRecord",
    "IndexSeeder",
    "SeedStatistics",
    "index_schema_args",
    "random_term",
    "write_terms",
]
