"""Database connection handling module."""
import logging
import threading
from typing import Any, Dict, List, Mapping, Optional, Sequence

import psycopg2
from psycopg2.extensions import ISOLATION_LEVEL_REPEATABLE_READ, connection
from psycopg2.extras import RealDictCursor

from .capture import CatalogReader
from .models import CatalogKind

logger = logging.getLogger(__name__)


class DatabaseConnection:
    """Connection factory for one planning run.

    ``connect`` returns the shared leader connection, the one whose snapshot
    every catalog query sees; ``new_connection`` opens the per-thread worker
    connections that import it.
    """

    def __init__(self, params: Mapping[str, str]):
        """
        Args:
            params: psycopg2 keyword arguments, see PlannerConfig.connection_params
        """
        self.params = dict(params)
        self._conn: Optional[connection] = None

    def connect(self) -> connection:
        """Return the leader connection, reopening it if it was closed."""
        if not self._conn or self._conn.closed:
            self._conn = psycopg2.connect(**self.params)
        return self._conn

    def new_connection(self) -> connection:
        """Open a worker connection; the caller owns and closes it."""
        return psycopg2.connect(**self.params)

    def close(self):
        """Close the leader connection, ending its exported snapshot."""
        if self._conn and not self._conn.closed:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> connection:
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class SnapshotCatalogReader(CatalogReader):
    """Catalog reader whose every query sees one exported snapshot.

    The leader connection opens a repeatable-read, read-only transaction and
    exports its snapshot; each worker thread gets its own connection that
    imports it before running catalog queries.
    """

    def __init__(self, database: DatabaseConnection, queries: Mapping[Any, str]):
        """Initialize the reader.

        Args:
            database: Connection factory
            queries: Catalog query per kind; each takes a ``%(schemas)s``
                parameter and returns ``identity, kind, payload, dependencies``
                columns
        """
        self.database = database
        self.queries = {CatalogKind.parse(kind): query for kind, query in queries.items()}
        self.kinds = tuple(self.queries)
        self.snapshot_id: Optional[str] = None
        self._leader: Optional[connection] = None
        self._local = threading.local()
        self._workers: List[connection] = []
        self._lock = threading.Lock()

    def open(self) -> "SnapshotCatalogReader":
        self._leader = self.database.connect()
        self._leader.set_session(isolation_level=ISOLATION_LEVEL_REPEATABLE_READ, readonly=True)
        with self._leader.cursor() as cur:
            cur.execute("SELECT pg_export_snapshot()")
            self.snapshot_id = cur.fetchone()[0]
        logger.info(f"Exported catalog snapshot {self.snapshot_id}")
        return self

    def _worker(self) -> connection:
        conn = getattr(self._local, "conn", None)
        if conn is None or conn.closed:
            if self.snapshot_id is None:
                raise RuntimeError("Snapshot reader is not open")
            conn = self.database.new_connection()
            with self._lock:
                self._workers.append(conn)
            conn.set_session(isolation_level=ISOLATION_LEVEL_REPEATABLE_READ, readonly=True)
            with conn.cursor() as cur:
                cur.execute("SET TRANSACTION SNAPSHOT %s", (self.snapshot_id,))
            self._local.conn = conn
        return conn

    def fetch_batch(self, kind: CatalogKind, schemas: Sequence[str]) -> List[Dict[str, Any]]:
        query = self.queries[kind]
        with self._worker().cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(query, {"schemas": list(schemas)})
            return [dict(row) for row in cur.fetchall()]

    def close(self):
        """Roll back and close every connection."""
        with self._lock:
            workers, self._workers = self._workers, []
        for conn in workers:
            if not conn.closed:
                conn.rollback()
                conn.close()
        if self._leader is not None and not self._leader.closed:
            self._leader.rollback()
        self.database.close()
        self._leader = None
        self.snapshot_id = None

    def __enter__(self) -> "SnapshotCatalogReader":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
