"""Spatial store access backed by a shared psycopg2 connection pool."""

from __future__ import annotations

import contextlib
import functools
import logging
import threading
from typing import TYPE_CHECKING, Any, Protocol

import psycopg2
import psycopg2.extras
import psycopg2.pool

from geooverlap.core import config, errors

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from psycopg2 import sql

logger = logging.getLogger(__name__)


class SpatialStoreProtocol(Protocol):
    """Protocol interface for running read queries against the spatial store.

    The overlap engine and the layer catalog compose their statements with
    ``psycopg2.sql`` and hand them here, so any backend that speaks the
    PostGIS dialect can stand in (a pooled server, a test double).
    Implementations raise ``QueryFailed`` for every store-side error.
    """

    def fetch_all(
        self,
        query: sql.Composable | str,
        params: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]: ...


class PostgresSpatialStore(SpatialStoreProtocol):
    """PostGIS-backed store sharing one thread-safe pool per process.

    The pool is opened lazily on the first query so the application can start
    (and tests can build it) without a reachable database. Every call borrows
    one connection for one statement; there is no transaction spanning calls.
    Callers beyond ``pool_max_size`` wait for a connection to be returned
    instead of failing with ``PoolError``.
    """

    def __init__(self, settings: config.Settings) -> None:
        """Initialize the store with database settings.

        Args:
            settings: Application settings holding the connection parameters
                and pool bounds.
        """
        self.settings = settings
        self._pool: psycopg2.pool.ThreadedConnectionPool | None = None
        self._lock = threading.Lock()
        self._slots = threading.BoundedSemaphore(settings.pool_max_size)

    def _get_pool(self) -> psycopg2.pool.ThreadedConnectionPool:
        with self._lock:
            if self._pool is None:
                self._pool = psycopg2.pool.ThreadedConnectionPool(
                    self.settings.pool_min_size,
                    self.settings.pool_max_size,
                    **self.settings.connection_kwargs(),
                )
            return self._pool

    @contextlib.contextmanager
    def _connection(self) -> Iterator[psycopg2.extensions.connection]:
        """Borrow a pooled connection, discarding it if it was closed."""
        pool = self._get_pool()
        with self._slots:
            conn = pool.getconn()
            try:
                yield conn
            finally:
                pool.putconn(conn, close=bool(conn.closed))

    def fetch_all(
        self,
        query: sql.Composable | str,
        params: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Execute a read query and return every row as a dict.

        Args:
            query: Statement with identifiers already composed in.
            params: Named parameters bound by the driver.

        Returns:
            Rows keyed by column name.

        Raises:
            QueryFailed: On connection, pool or statement errors, carrying the
                driver's message.
        """
        try:
            with (
                self._connection() as conn,
                conn,
                conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur,
            ):
                cur.execute(query, params)
                return [dict(row) for row in cur.fetchall()]
        except psycopg2.Error as exc:
            message = str(exc).strip() or exc.__class__.__name__
            logger.warning("Spatial store query failed: %s", message)
            raise errors.QueryFailed(message) from exc

    def close(self) -> None:
        """Close every pooled connection."""
        with self._lock:
            if self._pool is not None:
                self._pool.closeall()
                self._pool = None


@functools.lru_cache
def get_spatial_store() -> PostgresSpatialStore:
    """Return the process-wide store built from the cached settings."""
    return PostgresSpatialStore(config.get_settings())


def close_spatial_store() -> None:
    """Close the shared pool if it was ever created."""
    if get_spatial_store.cache_info().currsize:
        get_spatial_store().close()
        get_spatial_store.cache_clear()
