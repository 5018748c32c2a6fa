"""
aggregates.py – Daily footprint aggregates and reward balances.

Write path
──────────
apply_activity_aggregates() applies stages 4–5 of the logging protocol for
one persisted activity, in a single transaction:

  1. claim the activity   UPDATE activity_logs SET aggregated_at = NOW()
                          WHERE activity_id = … AND aggregated_at IS NULL
  2. daily aggregate      total_footprint += carbon   (atomic upsert)
  3. reward balance       total_reward_points += 10   (atomic upsert)
  4. leaderboard mirror   total_reward_points += 10   (atomic upsert)

Increments are single-statement ``ON CONFLICT … DO UPDATE SET x = x + …``
upserts, so concurrent logs for the same (user, date) never lose updates.
The claim makes application exactly-once: a re-drive racing the live path
finds the row already claimed and does nothing.

Read path
─────────
get_daily_footprints() returns {date: total} for an inclusive range.  Days
with no logged activity are absent, never zero-filled.
"""
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Mapping

import psycopg2

from footprint.constants import (
    BUCKET_HIGH,
    BUCKET_LOW,
    BUCKET_MEDIUM,
    BUCKET_NONE,
    CARBON_DECIMALS,
    DEFAULT_REDRIVE_BATCH_SIZE,
    FOOTPRINT_LOW_THRESHOLD,
    FOOTPRINT_MEDIUM_THRESHOLD,
    REDRIVE_GRACE_SECONDS,
    REWARD_POINTS_PER_ACTIVITY,
)
from footprint.errors import AggregationFailure
from footprint.schemas import FootprintSummary

logger = logging.getLogger(__name__)


@dataclass
class RedriveSummary:
    """Outcome of one re-drive pass over pending activities."""
    pending: int = 0
    applied: int = 0
    skipped: int = 0          # already applied by a concurrent caller
    failed: list[int] = field(default_factory=list)


# ─────────────────────────────────────────────────────────────────────────────
# Atomic increments (run inside the caller's transaction)
# ─────────────────────────────────────────────────────────────────────────────

def _increment_daily_footprint(cur, user_id: str, day: dt.date, carbon) -> None:
    cur.execute(
        """
        INSERT INTO daily_footprints
            (user_id, footprint_date, total_footprint, activity_count)
        VALUES (%s, %s, %s, 1)
        ON CONFLICT (user_id, footprint_date)
            DO UPDATE SET
                total_footprint = daily_footprints.total_footprint + EXCLUDED.total_footprint,
                activity_count  = daily_footprints.activity_count + 1,
                updated_at      = NOW()
        """,
        (user_id, day, carbon),
    )


def _increment_reward_balance(cur, user_id: str, points: int) -> None:
    cur.execute(
        """
        INSERT INTO reward_balances (user_id, total_reward_points)
        VALUES (%s, %s)
        ON CONFLICT (user_id)
            DO UPDATE SET
                total_reward_points = reward_balances.total_reward_points
                                      + EXCLUDED.total_reward_points,
                updated_at          = NOW()
        """,
        (user_id, points),
    )


def _mirror_leaderboard_increment(cur, user_id: str, points: int) -> None:
    """Mirror a reward increment into the leaderboard projection."""
    cur.execute(
        """
        INSERT INTO leaderboard (user_id, username, profile_pic_url, total_reward_points)
        VALUES (
            %s,
            (SELECT username FROM user_profiles WHERE user_id = %s),
            (SELECT profile_pic_url FROM user_profiles WHERE user_id = %s),
            %s
        )
        ON CONFLICT (user_id)
            DO UPDATE SET
                total_reward_points = leaderboard.total_reward_points
                                      + EXCLUDED.total_reward_points,
                updated_at          = NOW()
        """,
        (user_id, user_id, user_id, points),
    )


# ─────────────────────────────────────────────────────────────────────────────
# Stages 4–5
# ─────────────────────────────────────────────────────────────────────────────

def _safe_rollback(conn) -> None:
    """Roll back unless the connection is already gone."""
    if conn.closed:
        return
    try:
        conn.rollback()
    except psycopg2.Error as exc:
        logger.warning("Rollback failed: %s", exc)


def apply_activity_aggregates(conn, activity_id: int) -> bool:
    """
    Apply the daily aggregate and reward increments for one activity.

    Returns True when the increments were applied by this call, False when
    the activity had already been applied.  Raises AggregationFailure on a
    database error; the activity then stays pending for re-drive.
    """
    try:
        with conn.cursor() as cur:
            cur.execute(
                """
                UPDATE activity_logs
                SET aggregated_at = NOW()
                WHERE activity_id = %s AND aggregated_at IS NULL
                RETURNING user_id, activity_date, carbon_footprint
                """,
                (activity_id,),
            )
            row = cur.fetchone()
            if row is None:
                conn.rollback()
                return False

            user_id, day, carbon = row
            _increment_daily_footprint(cur, user_id, day, carbon)
            _increment_reward_balance(cur, user_id, REWARD_POINTS_PER_ACTIVITY)
            _mirror_leaderboard_increment(cur, user_id, REWARD_POINTS_PER_ACTIVITY)
        conn.commit()
    except psycopg2.Error as exc:
        _safe_rollback(conn)
        raise AggregationFailure(activity_id, str(exc)) from exc

    logger.debug(
        "Aggregated activity_id=%d | user=%s date=%s +%s kg CO₂e +%d pts",
        activity_id, user_id, day, carbon, REWARD_POINTS_PER_ACTIVITY,
    )
    return True


def redrive_pending_aggregates(
    conn,
    *,
    limit: int = DEFAULT_REDRIVE_BATCH_SIZE,
    grace_seconds: float = REDRIVE_GRACE_SECONDS,
) -> RedriveSummary:
    """
    Re-apply aggregates for persisted activities still marked pending.

    Activities younger than *grace_seconds* are left to the live path.
    Oldest first, at most *limit* per pass.  Individual failures are logged
    and reported; they never stop the pass.
    """
    summary = RedriveSummary()

    with conn.cursor() as cur:
        cur.execute(
            """
            SELECT activity_id
            FROM activity_logs
            WHERE aggregated_at IS NULL
              AND created_at < NOW() - make_interval(secs => %s)
            ORDER BY created_at, activity_id
            LIMIT %s
            """,
            (grace_seconds, limit),
        )
        activity_ids = [row[0] for row in cur.fetchall()]
    conn.rollback()  # end the read transaction before per-activity commits

    summary.pending = len(activity_ids)
    for activity_id in activity_ids:
        try:
            if apply_activity_aggregates(conn, activity_id):
                summary.applied += 1
            else:
                summary.skipped += 1
        except AggregationFailure as exc:
            summary.failed.append(activity_id)
            logger.error("Re-drive failed: %s", exc)

    logger.info(
        "redrive_pending_aggregates complete | pending=%d applied=%d skipped=%d failed=%d",
        summary.pending, summary.applied, summary.skipped, len(summary.failed),
    )
    return summary


# ─────────────────────────────────────────────────────────────────────────────
# Read path
# ─────────────────────────────────────────────────────────────────────────────

def get_daily_footprints(
    conn, user_id: str, start_date: dt.date, end_date: dt.date
) -> dict[str, float]:
    """Return {"YYYY-MM-DD": total kg CO₂e} for every logged day in range."""
    with conn.cursor() as cur:
        cur.execute(
            """
            SELECT footprint_date, total_footprint
            FROM daily_footprints
            WHERE user_id = %s AND footprint_date BETWEEN %s AND %s
            ORDER BY footprint_date
            """,
            (user_id, start_date, end_date),
        )
        rows = cur.fetchall()
    return {day.isoformat(): float(total) for day, total in rows}


def summarize_footprints(footprints: Mapping[str, float]) -> FootprintSummary:
    """Total and per-logged-day average.  Absent days do not count as zero."""
    if not footprints:
        return FootprintSummary(total=0.0, average=None, days_logged=0)
    total = sum(footprints.values())
    days = len(footprints)
    return FootprintSummary(
        total=round(total, CARBON_DECIMALS),
        average=round(total / days, CARBON_DECIMALS),
        days_logged=days,
    )


def bucket_footprint(value: float | None) -> str:
    """Classify a day's total: low < 5 kg ≤ medium < 15 kg ≤ high."""
    if value is None:
        return BUCKET_NONE
    if value < FOOTPRINT_LOW_THRESHOLD:
        return BUCKET_LOW
    if value < FOOTPRINT_MEDIUM_THRESHOLD:
        return BUCKET_MEDIUM
    return BUCKET_HIGH


def build_calendar(footprints: Mapping[str, float]) -> dict[str, dict]:
    """{date: {"value": total, "bucket": "low" | "medium" | "high"}} for logged days."""
    return {
        day: {"value": value, "bucket": bucket_footprint(value)}
        for day, value in footprints.items()
    }
