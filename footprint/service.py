"""
service.py – The engine's public operations.

Used by the FastAPI backend (footprint_api) and the CLI.  Every function
takes an open psycopg2 connection; the caller owns and closes it.

log_activity() walks the logging protocol:

  Validate → Price → Persist → Aggregate → Reward

Validation and pricing errors propagate before anything is written.  Once
the activity row is persisted it is logged for good: an aggregation error
is logged, the activity stays pending, and the call still succeeds.
"""
from __future__ import annotations

import datetime as dt
import logging
from typing import Any

from footprint.aggregates import (
    apply_activity_aggregates,
    build_calendar,
    get_daily_footprints,
    summarize_footprints,
)
from footprint.calculations import calculate_footprint
from footprint.constants import CARBON_DECIMALS, DEFAULT_SUMMARY_DAYS
from footprint.db import insert_activity_log
from footprint.emission_factors import EmissionFactorTable, load_active_table
from footprint.errors import AggregationFailure, InvalidInput
from footprint.leaderboard import get_top_entries, get_user_rank
from footprint.schemas import LeaderboardResult, LogActivityResult
from footprint.validators import validate_activity, validate_date_range, validate_limit

logger = logging.getLogger(__name__)


def log_activity(
    conn,
    user_id: str,
    payload: dict[str, Any],
    *,
    factor_table: EmissionFactorTable | None = None,
) -> LogActivityResult:
    """
    Log one activity for *user_id* and return its id and carbon value.

    *payload* is ``{"date", "activityType", "details", "tripId"?}``.  When
    *factor_table* is None the active table is loaded from the database.

    Raises InvalidInput, ConfigUnavailable, or PersistenceFailure; never
    AggregationFailure.
    """
    activity = validate_activity(user_id, payload)

    table = factor_table if factor_table is not None else load_active_table(conn)
    result = calculate_footprint(activity.category, activity.details, table)
    carbon = round(result.carbon_kg, CARBON_DECIMALS)

    activity_id = insert_activity_log(conn, activity, carbon, table.version)
    logger.info(
        "Logged activity_id=%d user=%s %s %s → %.4f kg CO₂e",
        activity_id, activity.user_id, activity.activity_date, activity.category, carbon,
    )

    aggregated = True
    try:
        apply_activity_aggregates(conn, activity_id)
    except AggregationFailure as exc:
        aggregated = False
        logger.error("Activity logged but aggregates left pending for re-drive: %s", exc)

    return LogActivityResult(
        activity_id=activity_id,
        carbon_footprint=carbon,
        factor_version=table.version,
        aggregated=aggregated,
    )


def get_footprints(conn, user_id: str, start_date: Any, end_date: Any) -> dict[str, float]:
    """
    Return {"YYYY-MM-DD": total kg CO₂e} for *user_id* in the inclusive range.

    Days without any logged activity are absent from the mapping.
    """
    if not user_id:
        raise InvalidInput("An owner identity is required to view footprints.")
    start, end = validate_date_range(start_date, end_date)
    return get_daily_footprints(conn, user_id, start, end)


def get_footprint_summary(
    conn,
    user_id: str,
    start_date: Any = None,
    end_date: Any = None,
    *,
    today: dt.date | None = None,
) -> dict[str, Any]:
    """
    Footprints, total / average and calendar buckets for a range.

    With no dates given, the range is the last 7 days ending *today*.
    """
    if start_date in (None, "") and end_date in (None, ""):
        end = today or dt.date.today()
        start = end - dt.timedelta(days=DEFAULT_SUMMARY_DAYS - 1)
        start_date, end_date = start.isoformat(), end.isoformat()

    footprints = get_footprints(conn, user_id, start_date, end_date)
    start, end = validate_date_range(start_date, end_date)
    return {
        "startDate": start.isoformat(),
        "endDate": end.isoformat(),
        "footprints": footprints,
        "summary": summarize_footprints(footprints).model_dump(by_alias=True),
        "calendar": build_calendar(footprints),
    }


def get_leaderboard(conn, user_id: str, limit: Any = None) -> LeaderboardResult:
    """Top *limit* entries plus the exact rank of *user_id* (None if unranked)."""
    size = validate_limit(limit)
    entries = get_top_entries(conn, size)
    rank = get_user_rank(conn, user_id) if user_id else None
    return LeaderboardResult(leaderboard=entries, user_rank=rank)
