from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import redis
from redis.cluster import RedisCluster
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisClusterException, RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

LOGGER = logging.getLogger("searchbench.client")

DEFAULT_ENDPOINT = "localhost:6379"
DEFAULT_INDEX = "ad_index"
DEFAULT_PORT = 6379
VECTOR_DIM = 128
RETURN_FIELDS: tuple[str, ...] = (
    "expected_ctr",
    "ad_relevance",
    "landing_experience",
    "sim_score",
    "search_term",
)
CONNECT_TIMEOUT_S_DEFAULT = 60.0

_FNV64_OFFSET = 0xCBF29CE484222325
_FNV64_PRIME = 0x100000001B3
_UINT64_MASK = 0xFFFFFFFFFFFFFFFF


class ServiceConnectionError(ConnectionError):
    """Raised when the search service cannot be reached within the connect timeout."""


class QueryError(Exception):
    """Raised when a single search query fails or returns a malformed reply."""


@dataclass(frozen=True)
class PoolConfig:
    """Connection pool settings shared by every concurrent trial."""

    max_connections: int = 1000
    socket_timeout: float | None = None
    socket_connect_timeout: float | None = 5.0

    def __post_init__(self) -> None:
        if self.max_connections < 1:
            raise ValueError("max_connections must be >= 1")
        if self.socket_timeout is not None and self.socket_timeout <= 0:
            raise ValueError("socket_timeout must be > 0 when set")


@dataclass(frozen=True)
class QuerySpec:
    """Shape of the KNN query issued for every term."""

    index: str = DEFAULT_INDEX
    knn: int = 100
    dim: int = VECTOR_DIM
    return_fields: tuple[str, ...] = RETURN_FIELDS

    def build_args(self, vector: bytes) -> list[object]:
        return [
            "FT.SEARCH",
            self.index,
            f"*=>[KNN {self.knn} @vector $vec AS sim_score]",
            "PARAMS",
            "2",
            "vec",
            vector,
            "DIALECT",
            "2",
            "RETURN",
            str(len(self.return_fields)),
            *self.return_fields,
        ]


@dataclass(frozen=True)
class SearchHit:
    key: str
    fields: tuple[tuple[str, str], ...]

    def field_map(self) -> dict[str, str]:
        return dict(self.fields)


@dataclass(frozen=True)
class SearchResult:
    """Parsed FT.SEARCH reply: total match count plus the returned hits."""

    total: int
    hits: tuple[SearchHit, ...] = ()
    raw: Any = field(default=None, repr=False, compare=False)


def fnv1a_64(data: bytes) -> int:
    value = _FNV64_OFFSET
    for byte in data:
        value ^= byte
        value = (value * _FNV64_PRIME) & _UINT64_MASK
    return value


def encode_vector(values: np.ndarray) -> bytes:
    return np.asarray(values, dtype="<f4").tobytes()


def generate_vector(term: str, dim: int = VECTOR_DIM) -> bytes:
    """Return the query vector for ``term``.

    The generator is seeded from the FNV-1a hash of the term, so the same term
    always maps to the same vector.
    """
    rng = np.random.default_rng(fnv1a_64(term.encode("utf-8")))
    return encode_vector(rng.random(dim, dtype=np.float32) * 2 - 1)


def parse_endpoint(endpoint: str) -> tuple[str, int]:
    host, sep, port = endpoint.strip().rpartition(":")
    if not sep:
        return port, DEFAULT_PORT
    if not host:
        raise ValueError(f"invalid endpoint {endpoint!r}: missing host")
    try:
        return host, int(port)
    except ValueError as exc:
        raise ValueError(f"invalid endpoint {endpoint!r}: bad port {port!r}") from exc


def parse_search_reply(reply: Any) -> SearchResult:
    """Parse a RESP2 FT.SEARCH reply ``[total, key, [name, value, ...], ...]``."""
    if not isinstance(reply, (list, tuple)):
        raise QueryError(f"unexpected FT.SEARCH reply type {type(reply).__name__}")
    if not reply:
        return SearchResult(total=0, hits=(), raw=reply)

    try:
        total = int(reply[0])
    except (TypeError, ValueError) as exc:
        raise QueryError(f"FT.SEARCH reply has a non-numeric total {reply[0]!r}") from exc

    body = reply[1:]
    if len(body) % 2:
        raise QueryError("FT.SEARCH reply has a key without a field list")

    hits: list[SearchHit] = []
    for key, values in zip(body[0::2], body[1::2]):
        if not isinstance(values, (list, tuple)) or len(values) % 2:
            raise QueryError(f"FT.SEARCH reply has malformed fields for {_text(key)!r}")
        pairs = tuple(
            (_text(name), _text(value)) for name, value in zip(values[0::2], values[1::2])
        )
        hits.append(SearchHit(key=_text(key), fields=pairs))
    return SearchResult(total=total, hits=tuple(hits), raw=reply)


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


class SearchClient:
    """Thin wrapper over a redis-py client that speaks the search commands.

    redis-py clients pool their connections and are safe to share between
    threads, so one instance serves every concurrent trial.
    """

    def __init__(self, connection: Any, query: QuerySpec | None = None, cluster: bool = True) -> None:
        self._redis = connection
        self._query = query or QuerySpec()
        # Keyless commands have no hash slot; any cluster node fans them out.
        self._route: dict[str, Any] = {"target_nodes": RedisCluster.RANDOM} if cluster else {}

    @property
    def query(self) -> QuerySpec:
        return self._query

    def submit_query(self, term: str) -> SearchResult:
        args = self._query.build_args(generate_vector(term, self._query.dim))
        try:
            reply = self._redis.execute_command(*args, **self._route)
        except (RedisError, RedisClusterException) as exc:
            # RedisClusterException is raised when no cluster node is reachable.
            raise QueryError(f"FT.SEARCH failed for {term!r}: {exc}") from exc
        return parse_search_reply(reply)

    def execute(self, *args: Any) -> Any:
        return self._redis.execute_command(*args, **self._route)

    def pipeline(self) -> Any:
        return self._redis.pipeline(transaction=False)

    def close(self) -> None:
        self._redis.close()

    def __enter__(self) -> SearchClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _create_connection(endpoint: str, pool: PoolConfig, cluster: bool) -> Any:
    host, port = parse_endpoint(endpoint)
    options = {
        "max_connections": pool.max_connections,
        "socket_timeout": pool.socket_timeout,
        "socket_connect_timeout": pool.socket_connect_timeout,
    }
    if cluster:
        return RedisCluster(host=host, port=port, **options)
    return redis.Redis(host=host, port=port, **options)


def connect(
    endpoint: str,
    pool: PoolConfig | None = None,
    query: QuerySpec | None = None,
    cluster: bool = True,
    timeout_s: float = CONNECT_TIMEOUT_S_DEFAULT,
) -> SearchClient:
    pool = pool or PoolConfig()
    backoff = 1.0
    max_backoff = 10.0
    deadline = time.time() + timeout_s

    while True:
        connection = None
        try:
            connection = _create_connection(endpoint, pool, cluster)
            connection.ping()
        except (RedisConnectionError, RedisTimeoutError, RedisClusterException) as exc:
            if connection is not None:
                connection.close()
            if time.time() >= deadline:
                raise ServiceConnectionError(
                    f"failed to connect to search service at {endpoint} within {timeout_s:g} seconds"
                ) from exc

            LOGGER.warning("Search service at %s unavailable (%s); retrying in %.1fs", endpoint, exc, backoff)
            time.sleep(backoff)
            backoff = min(backoff * 1.5, max_backoff)
            continue

        LOGGER.info(
            "Connected to search service at %s (cluster=%s, pool=%d)",
            endpoint,
            cluster,
            pool.max_connections,
        )
        return SearchClient(connection, query=query, cluster=cluster)


__all__ = [
    "DEFAULT_ENDPOINT",
    "PoolConfig",
    "QueryError",
    "QuerySpec",
    "SearchClient",
    "SearchHit",
    "SearchResult",
    "ServiceConnectionError",
    "connect",
    "generate_vector",
    "parse_search_reply",
]
