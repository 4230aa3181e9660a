"""Bounded SQLite connection pool shared by the subject store."""
import logging
import sqlite3
import threading
from contextlib import contextmanager
from queue import Empty, Queue
from typing import Generator, List

logger = logging.getLogger(__name__)


class SQLiteConnectionPool:
    """Thread-safe SQLite connection pool.

    Connections are created lazily up to ``max_connections``; callers beyond
    that limit block until a connection is handed back.
    """

    def __init__(self, database: str, max_connections: int = 5, timeout: float = 30.0):
        if max_connections <= 0:
            raise ValueError("max_connections must be positive")
        self.database = database
        self.max_connections = max_connections
        self.timeout = timeout
        self._idle: Queue[sqlite3.Connection] = Queue(maxsize=max_connections)
        self._all: List[sqlite3.Connection] = []
        self._lock = threading.Lock()

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.database, timeout=self.timeout, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA busy_timeout = %d" % int(self.timeout * 1000))
        return conn

    def _acquire(self) -> sqlite3.Connection:
        try:
            return self._idle.get(block=False)
        except Empty:
            pass
        with self._lock:
            if len(self._all) < self.max_connections:
                conn = self._create_connection()
                self._all.append(conn)
                logger.debug("Opened SQLite connection %d/%d to %s", len(self._all), self.max_connections, self.database)
                return conn
        return self._idle.get(block=True)

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Lend a connection; uncommitted work is rolled back on return."""
        connection = self._acquire()
        try:
            yield connection
        finally:
            try:
                connection.rollback()
            except sqlite3.Error as exc:
                logger.error("Discarding broken SQLite connection: %s", exc)
                self._discard(connection)
            else:
                self._idle.put(connection)

    def _discard(self, connection: sqlite3.Connection) -> None:
        with self._lock:
            if connection in self._all:
                self._all.remove(connection)
        try:
            connection.close()
        except sqlite3.Error:
            logger.debug("Closing a broken connection failed", exc_info=True)

    def close_all(self) -> None:
        """Close every connection the pool has opened."""
        with self._lock:
            connections, self._all = self._all, []
        while True:
            try:
                self._idle.get(block=False)
            except Empty:
                break
        for connection in connections:
            try:
                connection.close()
            except sqlite3.Error:
                logger.debug("Closing pooled connection failed", exc_info=True)
