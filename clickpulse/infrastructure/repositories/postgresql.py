# ==============================================================================
# PostgreSQL Repository Implementations
# ==============================================================================
"""
PostgreSQL implementations of the repository interfaces.

Provides:
- PostgreSQLEventStore: atomic batch insert and window queries
- PostgreSQLSiteRegistry: credential lookup against the sites table
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

import psycopg2
from psycopg2.extras import Json, RealDictCursor, execute_values
from psycopg2.pool import ThreadedConnectionPool

from clickpulse.base.repositories import EventStore, SiteRegistry
from clickpulse.core.models import TrackingEvent
from clickpulse.utils.config import Settings, get_settings
from clickpulse.utils.retry import POSTGRES_RETRY_EXCEPTIONS, retry_light

logger = logging.getLogger(__name__)

# Rows per INSERT statement for execute_values
PAGE_SIZE = 1000

# Connection timeout
CONNECT_TIMEOUT = 10


def _add_connect_timeout(conn_string: str) -> str:
    """Add connect_timeout to connection string if not present."""
    if "connect_timeout" not in conn_string:
        separator = "&" if "?" in conn_string else "?"
        return f"{conn_string}{separator}connect_timeout={CONNECT_TIMEOUT}"
    return conn_string


class _PostgreSQLConnection:
    """
    Shared connection handling for the PostgreSQL adapters.

    Each operation borrows its own connection from a ThreadedConnectionPool,
    so concurrent requests never share a transaction.
    """

    def __init__(self, settings: Settings | None = None):
        """
        Args:
            settings: Application settings. If None, uses get_settings().
        """
        self._settings = settings or get_settings()
        self._pool: ThreadedConnectionPool | None = None
        self._pool_lock = threading.Lock()
        self._slots = threading.BoundedSemaphore(self._settings.postgres.pool_size)
        self._schema = self._settings.postgres.schema_name

    @property
    def schema(self) -> str:
        """Get the database schema name."""
        return self._schema

    @retry_light(POSTGRES_RETRY_EXCEPTIONS, logger)
    def connect(self) -> None:
        """Open the connection pool."""
        with self._pool_lock:
            if self._pool is not None and not self._pool.closed:
                return
            conn_string = _add_connect_timeout(self._settings.postgres.connection_string)
            self._pool = ThreadedConnectionPool(1, self._settings.postgres.pool_size, conn_string)
        logger.info(
            "%s connected (schema=%s, pool_size=%d)",
            type(self).__name__,
            self._schema,
            self._settings.postgres.pool_size,
        )

    @contextmanager
    def _connection(self) -> Iterator["psycopg2.extensions.connection"]:
        """
        Borrow a pooled connection for the duration of one operation.

        Callers beyond pool_size wait for a free connection instead of
        failing with PoolError. Broken connections are discarded on return.
        """
        if self._pool is None or self._pool.closed:
            self.connect()
        pool = self._pool
        with self._slots:
            conn = pool.getconn()
            try:
                yield conn
            finally:
                pool.putconn(conn, close=bool(conn.closed))

    def close(self) -> None:
        """Close all pooled connections."""
        with self._pool_lock:
            if self._pool is None:
                return
            try:
                self._pool.closeall()
                logger.info("%s connection pool closed", type(self).__name__)
            except psycopg2.Error as e:
                logger.warning("Error closing connection pool: %s", e)
            finally:
                self._pool = None


class PostgreSQLEventStore(_PostgreSQLConnection, EventStore):
    """
    PostgreSQL implementation of EventStore.

    A batch is written with psycopg2.extras.execute_values() inside a single
    transaction on a connection borrowed for that batch alone; any error
    rolls the whole batch back, so a partial batch never becomes visible.

    Rows carry a nullable event_id with a partial unique index, so agent
    redeliveries that include an event_id are dropped by
    ON CONFLICT DO NOTHING. Such a batch still counts as accepted in full.
    """

    def insert_batch(self, events: list[TrackingEvent]) -> int:
        """
        Persist a batch in one transaction.

        Returns:
            Count of events accepted, i.e. the batch size. Events whose
            event_id is already stored are skipped and logged, not re-counted
            as failures.

        Raises:
            psycopg2.Error: On failure; the transaction is rolled back
        """
        if not events:
            return 0

        rows = []
        for event in events:
            record = event.to_record()
            record["site_id"] = event.metadata.get("site_id")
            record["metadata"] = Json(record["metadata"])
            rows.append(record)

        with self._connection() as conn:
            try:
                with conn.cursor() as cur:
                    inserted = execute_values(
                        cur,
                        f"""
                        INSERT INTO {self._schema}.events
                            (event_id, event_type, session_id, page_url, event_time,
                             site_credential, site_id, element_id, customer_id, metadata)
                        VALUES %s
                        ON CONFLICT DO NOTHING
                        RETURNING id
                        """,
                        rows,
                        template=(
                            f"(%(event_id)s, %(event_type)s::{self._schema}.event_type, "
                            "%(session_id)s, %(page_url)s, %(timestamp)s, "
                            "%(site_credential)s, %(site_id)s, %(element_id)s, "
                            "%(customer_id)s, %(metadata)s)"
                        ),
                        page_size=PAGE_SIZE,
                        fetch=True,
                    )
                conn.commit()
            except psycopg2.Error:
                conn.rollback()
                raise

        skipped = len(rows) - len(inserted)
        if skipped:
            logger.info("Skipped %d redelivered events already stored", skipped)
        logger.debug("Inserted %d events", len(inserted))
        return len(rows)

    def query(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        site_id: str | None = None,
        session_id: str | None = None,
        customer_id: str | None = None,
    ) -> list[TrackingEvent]:
        clauses = []
        params: dict = {}
        if start is not None:
            clauses.append("event_time >= %(start)s")
            params["start"] = start
        if end is not None:
            clauses.append("event_time < %(end)s")
            params["end"] = end
        if site_id is not None:
            clauses.append("site_id = %(site_id)s")
            params["site_id"] = site_id
        if session_id is not None:
            clauses.append("session_id = %(session_id)s")
            params["session_id"] = session_id
        if customer_id is not None:
            clauses.append("customer_id = %(customer_id)s")
            params["customer_id"] = customer_id

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._connection() as conn:
            try:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(
                        f"""
                        SELECT event_id, event_type::text AS event_type, session_id, page_url,
                               event_time AS timestamp, site_credential, element_id,
                               customer_id, metadata
                        FROM {self._schema}.events
                        {where}
                        ORDER BY event_time, id
                        """,
                        params,
                    )
                    rows = cur.fetchall()
            finally:
                # Read-only: end the transaction before the connection goes back
                conn.rollback()

        return [TrackingEvent.from_record(dict(row)) for row in rows]


class PostgreSQLSiteRegistry(_PostgreSQLConnection, SiteRegistry):
    """SiteRegistry backed by the sites table (credential -> site_id)."""

    def resolve(self, credential: str) -> str | None:
        with self._connection() as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute(
                        f"SELECT site_id FROM {self._schema}.sites "
                        "WHERE credential = %s AND active",
                        (credential,),
                    )
                    row = cur.fetchone()
            finally:
                conn.rollback()
        return row[0] if row else None
