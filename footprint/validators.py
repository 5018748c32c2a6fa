"""
validators.py – Request validation and normalisation (stage 1 of logging).

Every ``validate_*`` function either returns clean, typed values or raises
InvalidInput.  Nothing here touches the database.

Normalisation steps
-------------------
* Parse dates (ISO strings, common formats, date/datetime objects) to a
  calendar day.  Timezone-aware timestamps are converted to UTC first.
* Coerce numeric detail fields and apply the quantity default of 1.
* Reject non-positive distances and quantities below 1.
"""
from __future__ import annotations

import datetime as dt
import re
from typing import Any

from dateutil import parser as dateutil_parser
from pydantic import ValidationError

from footprint.constants import (
    ALLOWED_CATEGORIES,
    DEFAULT_LEADERBOARD_LIMIT,
    MAX_LEADERBOARD_LIMIT,
)
from footprint.errors import InvalidInput
from footprint.schemas import DETAILS_MODELS, ActivityRequest, ValidatedActivity

# dateutil fill-in dates; a fully specified day parses the same under both
_FILL_A = dt.datetime(2000, 1, 1)
_FILL_B = dt.datetime(2001, 2, 2)


# ─────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────

def _format_errors(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "payload"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def to_calendar_day(value: Any) -> dt.date | None:
    """
    Parse *value* as a calendar day.  Returns None on failure.

    Accepts: date/datetime objects, ISO strings, and common formats like
    ``MM/DD/YYYY``.  A timezone-aware timestamp is reduced to its UTC day.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, dt.datetime):
        parsed = value
    elif isinstance(value, dt.date):
        return value
    elif isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        if re.fullmatch(r"\d{4}-\d{2}-\d{2}", value):
            try:
                return dt.date.fromisoformat(value)
            except ValueError:
                return None
        try:
            parsed = dateutil_parser.parse(value, dayfirst=False, default=_FILL_A)
            alt = dateutil_parser.parse(value, dayfirst=False, default=_FILL_B)
        except (ValueError, OverflowError):
            return None
        # year, month or day missing
        if parsed.date() != alt.date():
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(dt.timezone.utc)
    return parsed.date()


# ─────────────────────────────────────────────────────────────
# Public validators
# ─────────────────────────────────────────────────────────────

def validate_details(category: str, details: Any) -> dict[str, Any]:
    """Validate a detail payload for *category* and return it normalised."""
    if category not in DETAILS_MODELS:
        raise InvalidInput(
            f"Unknown activity type {category!r}; expected one of {', '.join(ALLOWED_CATEGORIES)}."
        )
    if not isinstance(details, dict):
        raise InvalidInput("Activity details must be an object.")
    try:
        model = DETAILS_MODELS[category].model_validate(details)
    except ValidationError as exc:
        raise InvalidInput(f"Invalid {category} details: {_format_errors(exc)}") from exc
    return model.model_dump(by_alias=True)


def validate_activity(user_id: str, payload: dict[str, Any]) -> ValidatedActivity:
    """
    Validate a raw log request for *user_id*.

    Raises InvalidInput with a message naming the offending field(s).
    """
    if not user_id:
        raise InvalidInput("An owner identity is required to log activities.")
    try:
        request = ActivityRequest.model_validate(payload or {})
    except ValidationError as exc:
        raise InvalidInput(_format_errors(exc)) from exc

    if request.date in (None, "") or not request.activity_type or request.details is None:
        raise InvalidInput("Date, activity type, and details are required.")

    activity_date = to_calendar_day(request.date)
    if activity_date is None:
        raise InvalidInput(f"Unparseable activity date: {request.date!r}")

    details = validate_details(request.activity_type, request.details)

    return ValidatedActivity(
        user_id=user_id,
        activity_date=activity_date,
        category=request.activity_type,
        details=details,
        trip_id=request.trip_id or None,
    )


def validate_date_range(start: Any, end: Any) -> tuple[dt.date, dt.date]:
    """Parse an inclusive (start, end) range; start must not be after end."""
    if start in (None, "") or end in (None, ""):
        raise InvalidInput("Start and end dates are required.")
    start_day = to_calendar_day(start)
    end_day = to_calendar_day(end)
    if start_day is None:
        raise InvalidInput(f"Unparseable start date: {start!r}")
    if end_day is None:
        raise InvalidInput(f"Unparseable end date: {end!r}")
    if start_day > end_day:
        raise InvalidInput(f"Start date {start_day} is after end date {end_day}.")
    return start_day, end_day


def validate_limit(
    limit: Any,
    *,
    default: int = DEFAULT_LEADERBOARD_LIMIT,
    maximum: int = MAX_LEADERBOARD_LIMIT,
) -> int:
    """Page or batch size in 1..maximum; None means *default* (leaderboard: 20)."""
    if limit is None:
        return default
    if isinstance(limit, bool):
        raise InvalidInput("limit must be an integer.")
    try:
        value = int(limit)
    except (TypeError, ValueError):
        raise InvalidInput(f"limit must be an integer, got {limit!r}") from None
    if value != limit and not isinstance(limit, str):
        raise InvalidInput(f"limit must be an integer, got {limit!r}")
    if not 1 <= value <= maximum:
        raise InvalidInput(f"limit must be between 1 and {maximum}.")
    return value
