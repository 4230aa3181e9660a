import json
import logging
import os
import sqlite3
from typing import Any, Dict, Iterable, List, Mapping, Optional

from db_pool import SQLiteConnectionPool
from schemas import SOURCE_ROLES, SubjectRecord

logger = logging.getLogger(__name__)

DB_PATH = os.getenv("DB_PATH", "risk.db")

# Initialize connection pool
_pool = SQLiteConnectionPool(DB_PATH, max_connections=10)


def _conn():
    """Return a context manager for acquiring a pooled SQLite connection."""
    return _pool.get_connection()


def _exec(sql: str, params: Iterable = ()):
    with _pool.get_connection() as con:
        cur = con.execute(sql, params)
        con.commit()
        return cur


def _query(sql: str, params: Iterable = ()) -> list[sqlite3.Row]:
    with _pool.get_connection() as con:
        cur = con.execute(sql, params)
        return cur.fetchall()


def init():
    with _conn() as con:
        con.executescript(
            """
            CREATE TABLE IF NOT EXISTS subjects (
                subject_id TEXT PRIMARY KEY,
                record TEXT NOT NULL,
                risk_level TEXT NOT NULL DEFAULT 'pending',
                data_complete INTEGER NOT NULL DEFAULT 0,
                updated_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_subjects_risk_level ON subjects(risk_level);
            CREATE INDEX IF NOT EXISTS idx_subjects_updated_at ON subjects(updated_at);

            CREATE TABLE IF NOT EXISTS risk_config (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                config TEXT NOT NULL,
                updated_by TEXT,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        con.commit()


# -------------- subjects --------------
def _decode_subject(row: sqlite3.Row) -> SubjectRecord:
    return SubjectRecord.model_validate_json(row["record"])


def get_subject(subject_id: str) -> Optional[SubjectRecord]:
    rows = _query("SELECT record FROM subjects WHERE subject_id = ?", (subject_id,))
    return _decode_subject(rows[0]) if rows else None


def save_subject(record: SubjectRecord) -> None:
    """Upsert ``record`` keyed by its subject id."""
    _exec(
        """
        INSERT INTO subjects(subject_id, record, risk_level, data_complete, updated_at)
        VALUES (?,?,?,?,?)
        ON CONFLICT(subject_id) DO UPDATE SET
          record=excluded.record,
          risk_level=excluded.risk_level,
          data_complete=excluded.data_complete,
          updated_at=excluded.updated_at
        """,
        (
            record.subject_id,
            record.model_dump_json(),
            record.risk_level,
            1 if record.complete else 0,
            record.last_updated.isoformat(),
        ),
    )


def list_subjects(risk_level: Optional[str] = None, limit: Optional[int] = 100) -> List[SubjectRecord]:
    sql = "SELECT record FROM subjects"
    params: list[Any] = []
    if risk_level:
        sql += " WHERE risk_level = ?"
        params.append(risk_level)
    sql += " ORDER BY updated_at DESC, subject_id"
    if limit is not None:
        sql += " LIMIT ?"
        params.append(int(limit))
    return [_decode_subject(row) for row in _query(sql, params)]


def list_subject_ids() -> List[str]:
    return [row["subject_id"] for row in _query("SELECT subject_id FROM subjects ORDER BY subject_id")]


def subject_summary() -> Dict[str, Any]:
    """Aggregate completion and risk counts across all stored subjects."""
    flag_columns = ", ".join(
        f"COALESCE(SUM(json_extract(record, '$.completion.{role}')), 0) AS {role}"
        for role in SOURCE_ROLES
    )
    totals = _query(
        f"""
        SELECT COUNT(*) AS total,
               COALESCE(SUM(data_complete), 0) AS complete,
               AVG(json_extract(record, '$.attendance_rate')) AS avg_attendance,
               {flag_columns}
        FROM subjects
        """
    )[0]
    levels = _query(
        """
        SELECT risk_level, COUNT(*) AS count
        FROM subjects
        WHERE data_complete = 1
        GROUP BY risk_level
        """
    )

    total = int(totals["total"])
    complete = int(totals["complete"])
    avg_attendance = totals["avg_attendance"]
    risk = {"high": 0, "medium": 0, "low": 0, "pending": 0}
    for row in levels:
        risk[row["risk_level"]] = int(row["count"])
    return {
        "total": total,
        "avg_attendance": round(float(avg_attendance), 1) if avg_attendance is not None else 0.0,
        "risk": risk,
        "completion": {
            role: {"completed": int(totals[role]), "pending": total - int(totals[role])}
            for role in SOURCE_ROLES
        },
        "all_complete": complete,
        "pending_calculation": total - complete,
    }


# -------------- risk configuration --------------
def load_config() -> Optional[Dict[str, Any]]:
    """Return the stored threshold configuration, or ``None`` when unset."""
    rows = _query("SELECT config FROM risk_config WHERE id = 1")
    if not rows:
        return None
    return json.loads(rows[0]["config"])


def save_config(config: Mapping[str, Any], updated_by: str = "admin") -> None:
    _exec(
        """
        INSERT INTO risk_config(id, config, updated_by, updated_at)
        VALUES (1, ?, ?, CURRENT_TIMESTAMP)
        ON CONFLICT(id) DO UPDATE SET
          config=excluded.config,
          updated_by=excluded.updated_by,
          updated_at=CURRENT_TIMESTAMP
        """,
        (json.dumps(dict(config)), updated_by),
    )
    logger.info("Risk configuration updated by %s", updated_by)


def reset_config() -> None:
    _exec("DELETE FROM risk_config")
