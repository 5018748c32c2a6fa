"""
errors.py – Error taxonomy for the footprint engine.

Validation and configuration errors are raised before any side effect.
PersistenceFailure means the activity was not logged (safe to retry).
AggregationFailure means the activity IS logged but its daily aggregate
and reward increments are still pending re-drive.
"""
from __future__ import annotations


class FootprintError(Exception):
    """Base class for all footprint engine errors."""


class InvalidInput(FootprintError):
    """Missing or malformed category, detail fields, date, or query range."""


class ConfigUnavailable(FootprintError):
    """The active emission factor table cannot be loaded."""


class PersistenceFailure(FootprintError):
    """Appending the activity record failed; nothing was logged."""


class AggregationFailure(FootprintError):
    """Aggregate / reward update failed after the activity was persisted."""

    def __init__(self, activity_id: int, message: str) -> None:
        super().__init__(f"activity_id={activity_id}: {message}")
        self.activity_id = activity_id
