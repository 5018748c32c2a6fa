"""
db.py – PostgreSQL access for the activity log.

Connection helpers, schema application, and the append-only activity log
(the durability point of the logging protocol).  Aggregate stores live in
aggregates.py, the leaderboard in leaderboard.py.
"""
from __future__ import annotations

import datetime as dt
import logging
from pathlib import Path
from typing import Any

import psycopg2
from psycopg2.extras import Json, RealDictCursor

from footprint.errors import PersistenceFailure
from footprint.schemas import ValidatedActivity

logger = logging.getLogger(__name__)


def get_connection(database_url: str):
    """Return a psycopg2 connection. Caller must close it."""
    return psycopg2.connect(database_url)


def check_connection(database_url: str) -> tuple[bool, str | None]:
    """
    Connect to PostgreSQL and run SELECT 1. Return (True, None) on success,
    (False, error_message) on failure.
    """
    try:
        conn = get_connection(database_url)
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                cur.fetchone()
        finally:
            conn.close()
        return True, None
    except psycopg2.Error as e:
        return False, str(e)


def apply_schema(database_url: str, schema_path: Path | None = None) -> tuple[bool, str | None]:
    """
    Execute the schema SQL file against the database. Creates tables and indexes.
    If schema_path is None, uses schema/footprint.sql at the repository root.
    Returns (True, None) on success, (False, error_message) on failure.
    """
    if schema_path is None:
        repo_root = Path(__file__).resolve().parent.parent
        schema_path = repo_root / "schema" / "footprint.sql"
    if not schema_path.exists():
        return False, f"Schema file not found: {schema_path}"
    sql = schema_path.read_text(encoding="utf-8")
    try:
        conn = get_connection(database_url)
        conn.autocommit = True
        try:
            with conn.cursor() as cur:
                cur.execute(sql)
        finally:
            conn.close()
        return True, None
    except psycopg2.Error as e:
        return False, str(e)


# ─────────────────────────────────────────────────────────────
# Activity log (append-only)
# ─────────────────────────────────────────────────────────────

def insert_activity_log(
    conn,
    activity: ValidatedActivity,
    carbon_footprint: float,
    factor_version: int | None,
) -> int:
    """
    Append one priced activity and commit.  Return the new activity_id.

    The row starts with aggregated_at = NULL: its daily aggregate and reward
    increments are still pending.  Raises PersistenceFailure on any database
    error (the transaction is rolled back, nothing was logged).
    """
    try:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO activity_logs
                    (user_id, activity_date, category, details,
                     carbon_footprint, factor_version, trip_id)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING activity_id
                """,
                (
                    activity.user_id,
                    activity.activity_date,
                    activity.category,
                    Json(activity.details),
                    carbon_footprint,
                    factor_version,
                    activity.trip_id,
                ),
            )
            row = cur.fetchone()
        conn.commit()
    except psycopg2.Error as exc:
        conn.rollback()
        raise PersistenceFailure(f"Could not save activity: {exc}") from exc

    if not row:
        raise PersistenceFailure("Could not save activity: no id returned")
    return row[0]


def fetch_activity_logs(
    conn,
    user_id: str,
    start_date: dt.date,
    end_date: dt.date,
) -> list[dict[str, Any]]:
    """Return the raw activities of *user_id* within [start_date, end_date], oldest first."""
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            """
            SELECT activity_id, user_id, activity_date, category, details,
                   carbon_footprint, factor_version, trip_id, created_at, aggregated_at
            FROM activity_logs
            WHERE user_id = %s AND activity_date BETWEEN %s AND %s
            ORDER BY activity_date, activity_id
            """,
            (user_id, start_date, end_date),
        )
        rows = [dict(r) for r in cur.fetchall()]
    for r in rows:
        r["carbon_footprint"] = float(r["carbon_footprint"])
    return rows


def with_connection(database_url: str, fn):
    """Run fn(conn) on a short-lived connection and return its result."""
    conn = get_connection(database_url)
    try:
        return fn(conn)
    finally:
        conn.close()
