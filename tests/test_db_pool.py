import sqlite3
import threading

import pytest

from db_pool import SQLiteConnectionPool


def test_pool_reuses_connections(tmp_path):
    pool = SQLiteConnectionPool(str(tmp_path / "pool.db"), max_connections=2)
    with pool.get_connection() as first:
        pass
    with pool.get_connection() as second:
        assert second is first
    pool.close_all()


def test_uncommitted_work_is_rolled_back(tmp_path):
    pool = SQLiteConnectionPool(str(tmp_path / "pool.db"), max_connections=1)
    with pool.get_connection() as con:
        con.execute("CREATE TABLE t (x INTEGER)")
        con.commit()
        con.execute("INSERT INTO t VALUES (1)")

    with pool.get_connection() as con:
        assert con.execute("SELECT COUNT(*) FROM t").fetchone()[0] == 0
    pool.close_all()


def test_pool_blocks_at_capacity(tmp_path):
    pool = SQLiteConnectionPool(str(tmp_path / "pool.db"), max_connections=1)
    acquired = threading.Event()
    released = threading.Event()

    def borrower():
        with pool.get_connection():
            acquired.set()
            released.wait(timeout=5)

    worker = threading.Thread(target=borrower)
    worker.start()
    acquired.wait(timeout=5)
    assert len(pool._all) == 1
    released.set()
    with pool.get_connection() as con:
        assert isinstance(con, sqlite3.Connection)
    worker.join(timeout=5)
    assert len(pool._all) == 1
    pool.close_all()


def test_pool_requires_positive_size(tmp_path):
    with pytest.raises(ValueError):
        SQLiteConnectionPool(str(tmp_path / "pool.db"), max_connections=0)
