"""
leaderboard.py – Ranking view over reward balances.

* Exact rank:   1 + number of users whose balance is strictly greater,
                read from the authoritative reward_balances table.  Users
                with equal balances share a rank.
* Top-N:        the leaderboard projection ordered by points desc, then
                user_id asc as a stable tie-break.
* Reconcile:    overwrite the projection from reward_balances and the
                profile store.  Only rows whose values differ are written,
                so re-running with no intervening logs changes nothing.
"""
from __future__ import annotations

import logging
from typing import Iterable

from psycopg2.extras import RealDictCursor

from footprint.schemas import LeaderboardEntry

logger = logging.getLogger(__name__)


def compute_rank(balance: int, balances: Iterable[int]) -> int:
    """Rank of *balance* among *balances*: 1 + count strictly greater."""
    return 1 + sum(1 for b in balances if b > balance)


def get_top_entries(conn, limit: int) -> list[LeaderboardEntry]:
    """Return the *limit* highest entries of the leaderboard projection."""
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            """
            SELECT user_id, username, profile_pic_url, total_reward_points
            FROM leaderboard
            ORDER BY total_reward_points DESC, user_id ASC
            LIMIT %s
            """,
            (limit,),
        )
        rows = cur.fetchall()
    return [
        LeaderboardEntry(
            user_id=r["user_id"],
            username=r.get("username"),
            profile_pic_url=r.get("profile_pic_url"),
            total_reward_points=int(r.get("total_reward_points") or 0),
        )
        for r in rows
    ]


def get_reward_balance(conn, user_id: str) -> int | None:
    """Current point balance of *user_id*, or None if they never logged."""
    with conn.cursor() as cur:
        cur.execute(
            "SELECT total_reward_points FROM reward_balances WHERE user_id = %s",
            (user_id,),
        )
        row = cur.fetchone()
    return int(row[0]) if row else None


def get_user_rank(conn, user_id: str) -> int | None:
    """Exact rank of *user_id*; None when the user has no reward balance."""
    balance = get_reward_balance(conn, user_id)
    if balance is None:
        return None
    with conn.cursor() as cur:
        cur.execute(
            "SELECT COUNT(*) FROM reward_balances WHERE total_reward_points > %s",
            (balance,),
        )
        higher = cur.fetchone()[0]
    return int(higher) + 1


def reconcile_leaderboard(conn) -> int:
    """
    Rebuild the leaderboard projection from reward balances and profiles.

    Every profile owner and every balance owner gets an entry (0 points
    when they never logged).  Returns the number of entries written.
    """
    try:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO leaderboard
                    (user_id, username, profile_pic_url, total_reward_points, updated_at)
                SELECT COALESCE(p.user_id, r.user_id),
                       p.username,
                       p.profile_pic_url,
                       COALESCE(r.total_reward_points, 0),
                       NOW()
                FROM user_profiles p
                FULL OUTER JOIN reward_balances r ON r.user_id = p.user_id
                ON CONFLICT (user_id)
                    DO UPDATE SET
                        username            = EXCLUDED.username,
                        profile_pic_url     = EXCLUDED.profile_pic_url,
                        total_reward_points = EXCLUDED.total_reward_points,
                        updated_at          = NOW()
                    WHERE leaderboard.username IS DISTINCT FROM EXCLUDED.username
                       OR leaderboard.profile_pic_url IS DISTINCT FROM EXCLUDED.profile_pic_url
                       OR leaderboard.total_reward_points IS DISTINCT FROM EXCLUDED.total_reward_points
                """
            )
            written = cur.rowcount
        conn.commit()
    except Exception:
        conn.rollback()
        raise

    logger.info("reconcile_leaderboard complete | entries written=%d", written)
    return written
