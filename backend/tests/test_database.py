"""Tests for the pooled PostGIS spatial store.

The psycopg2 pool is replaced by in-memory fakes, so these tests check the
borrowing, error translation and lifecycle logic without a running database.
"""

from __future__ import annotations

import threading
import time
from concurrent import futures
from typing import Any

import psycopg2
import psycopg2.extras
import psycopg2.pool
import pytest

from geooverlap.core import config, errors
from geooverlap.db import database


class FakeCursor:
    def __init__(self, conn: FakeConnection) -> None:
        self.conn = conn

    def __enter__(self) -> FakeCursor:
        return self

    def __exit__(self, *exc: object) -> None:
        return None

    def execute(self, query: Any, params: Any = None) -> None:
        self.conn.executed.append((query, params))
        if self.conn.error is not None:
            raise self.conn.error

    def fetchall(self) -> list[dict[str, Any]]:
        return self.conn.rows


class FakeConnection:
    def __init__(
        self,
        rows: list[dict[str, Any]] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.rows = rows or []
        self.error = error
        self.executed: list[tuple[Any, Any]] = []
        self.closed = 0
        self.cursor_kwargs: dict[str, Any] = {}

    def __enter__(self) -> FakeConnection:
        return self

    def __exit__(self, *exc: object) -> None:
        return None

    def cursor(self, **kwargs: Any) -> FakeCursor:
        self.cursor_kwargs = kwargs
        return FakeCursor(self)


class FakePool:
    instances: list[FakePool] = []

    def __init__(self, minconn: int, maxconn: int, **kwargs: Any) -> None:
        self.minconn = minconn
        self.maxconn = maxconn
        self.kwargs = kwargs
        self.conn = FakeConnection(rows=[{"id1": 1, "id2": 2}])
        self.returned: list[tuple[FakeConnection, bool]] = []
        self.closed = False
        FakePool.instances.append(self)

    def getconn(self) -> FakeConnection:
        return self.conn

    def putconn(self, conn: FakeConnection, close: bool = False) -> None:
        self.returned.append((conn, close))

    def closeall(self) -> None:
        self.closed = True


@pytest.fixture
def fake_pool(monkeypatch: pytest.MonkeyPatch) -> type[FakePool]:
    FakePool.instances = []
    monkeypatch.setattr(psycopg2.pool, "ThreadedConnectionPool", FakePool)
    return FakePool


def _settings() -> config.Settings:
    return config.Settings(
        pghost="db",
        pgdatabase="gis",
        pool_min_size=2,
        pool_max_size=5,
    )


def test_pool_is_created_lazily(fake_pool: type[FakePool]) -> None:
    store = database.PostgresSpatialStore(_settings())
    assert fake_pool.instances == []

    store.fetch_all("SELECT 1")
    store.fetch_all("SELECT 1")

    assert len(fake_pool.instances) == 1
    pool = fake_pool.instances[0]
    assert (pool.minconn, pool.maxconn) == (2, 5)
    assert pool.kwargs["host"] == "db"
    assert pool.kwargs["dbname"] == "gis"


def test_fetch_all_returns_dict_rows(fake_pool: type[FakePool]) -> None:
    store = database.PostgresSpatialStore(_settings())

    rows = store.fetch_all("SELECT %(x)s", {"x": 1})

    pool = fake_pool.instances[0]
    assert rows == [{"id1": 1, "id2": 2}]
    assert pool.conn.executed == [("SELECT %(x)s", {"x": 1})]
    assert pool.conn.cursor_kwargs["cursor_factory"] is psycopg2.extras.RealDictCursor
    assert pool.returned == [(pool.conn, False)]


def test_fetch_all_translates_driver_errors(fake_pool: type[FakePool]) -> None:
    store = database.PostgresSpatialStore(_settings())
    store.fetch_all("SELECT 1")
    pool = fake_pool.instances[0]
    pool.conn.error = psycopg2.ProgrammingError('relation "nope" does not exist')

    with pytest.raises(errors.QueryFailed, match="does not exist"):
        store.fetch_all("SELECT * FROM nope")

    assert len(pool.returned) == 2


def test_fetch_all_translates_connection_errors(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def refusing_pool(*args: Any, **kwargs: Any) -> None:
        raise psycopg2.OperationalError("connection refused")

    monkeypatch.setattr(psycopg2.pool, "ThreadedConnectionPool", refusing_pool)
    store = database.PostgresSpatialStore(_settings())

    with pytest.raises(errors.QueryFailed, match="connection refused"):
        store.fetch_all("SELECT 1")


def test_broken_connection_is_discarded(fake_pool: type[FakePool]) -> None:
    store = database.PostgresSpatialStore(_settings())
    store.fetch_all("SELECT 1")
    pool = fake_pool.instances[0]
    pool.conn.closed = 1

    store.fetch_all("SELECT 1")

    assert pool.returned[-1] == (pool.conn, True)


def test_close_closes_pool(fake_pool: type[FakePool]) -> None:
    store = database.PostgresSpatialStore(_settings())
    store.close()
    store.fetch_all("SELECT 1")
    store.close()
    assert fake_pool.instances[0].closed


def test_close_spatial_store_without_pool_is_noop() -> None:
    database.get_spatial_store.cache_clear()
    database.close_spatial_store()
    assert database.get_spatial_store.cache_info().currsize == 0


class SlowCursor(FakeCursor):
    def execute(self, query: Any, params: Any = None) -> None:
        time.sleep(0.05)
        super().execute(query, params)


class SlowConnection(FakeConnection):
    def cursor(self, **kwargs: Any) -> FakeCursor:
        self.cursor_kwargs = kwargs
        return SlowCursor(self)


class ExhaustiblePool(FakePool):
    """Hands out at most ``maxconn`` connections, like psycopg2's pool."""

    def __init__(self, minconn: int, maxconn: int, **kwargs: Any) -> None:
        super().__init__(minconn, maxconn, **kwargs)
        self.lock = threading.Lock()
        self.in_use = 0
        self.peak = 0

    def getconn(self) -> FakeConnection:
        with self.lock:
            if self.in_use >= self.maxconn:
                raise psycopg2.pool.PoolError("connection pool exhausted")
            self.in_use += 1
            self.peak = max(self.peak, self.in_use)
        return SlowConnection(rows=[{"n": 1}])

    def putconn(self, conn: FakeConnection, close: bool = False) -> None:
        with self.lock:
            self.in_use -= 1
        super().putconn(conn, close)


def test_concurrent_queries_beyond_pool_size_wait_for_a_connection(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    ExhaustiblePool.instances = []
    monkeypatch.setattr(psycopg2.pool, "ThreadedConnectionPool", ExhaustiblePool)
    store = database.PostgresSpatialStore(
        config.Settings(pool_min_size=1, pool_max_size=2),
    )

    with futures.ThreadPoolExecutor(max_workers=6) as executor:
        results = list(executor.map(lambda _: store.fetch_all("SELECT 1"), range(6)))

    pool = ExhaustiblePool.instances[0]
    assert results == [[{"n": 1}]] * 6
    assert pool.peak <= 2
    assert pool.in_use == 0
    assert len(pool.returned) == 6


def test_failed_checkout_frees_its_slot(monkeypatch: pytest.MonkeyPatch) -> None:
    class FailingPool(FakePool):
        def getconn(self) -> FakeConnection:
            raise psycopg2.OperationalError("server closed the connection")

    monkeypatch.setattr(psycopg2.pool, "ThreadedConnectionPool", FailingPool)
    store = database.PostgresSpatialStore(
        config.Settings(pool_min_size=1, pool_max_size=1),
    )

    for _ in range(3):
        with pytest.raises(errors.QueryFailed, match="server closed"):
            store.fetch_all("SELECT 1")
