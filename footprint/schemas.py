"""
schemas.py – Pydantic models for activity payloads and engine results.

Detail payloads accept the camelCase keys used by the mobile client
(``mealType``) as well as their snake_case field names.  Results serialise
back to camelCase with ``model_dump(by_alias=True)``.
"""
from __future__ import annotations

import datetime as dt
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from footprint.constants import (
    CATEGORY_ACCOMMODATION,
    CATEGORY_FOOD,
    CATEGORY_TRANSPORT,
)

Category = Literal["transport", "food", "accommodation"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _default_one(value: Any) -> Any:
    # An omitted or null quantity counts as a single unit.
    return 1 if value is None else value


# ─────────────────────────────────────────────────────────────
# Detail payloads
# ─────────────────────────────────────────────────────────────

class TransportDetails(_CamelModel):
    """A trip segment: mode of transport and distance in km."""

    mode: str = Field(..., min_length=1, description="Transport mode, e.g. car, train")
    distance: float = Field(..., gt=0, allow_inf_nan=False, description="Distance travelled in km")


class FoodDetails(_CamelModel):
    """One or more meals of the same type."""

    meal_type: str = Field(..., min_length=1, description="Meal type, e.g. vegetarian")
    count: int = Field(1, ge=1, description="Number of meals")

    @field_validator("count", mode="before")
    @classmethod
    def default_count(cls, value: Any) -> Any:
        return _default_one(value)


class AccommodationDetails(_CamelModel):
    """A stay: accommodation type and number of nights."""

    type: str = Field(..., min_length=1, description="Accommodation type, e.g. hotel")
    nights: int = Field(1, ge=1, description="Number of nights")

    @field_validator("nights", mode="before")
    @classmethod
    def default_nights(cls, value: Any) -> Any:
        return _default_one(value)


DETAILS_MODELS: dict[str, type[BaseModel]] = {
    CATEGORY_TRANSPORT: TransportDetails,
    CATEGORY_FOOD: FoodDetails,
    CATEGORY_ACCOMMODATION: AccommodationDetails,
}


# ─────────────────────────────────────────────────────────────
# Requests
# ─────────────────────────────────────────────────────────────

class ActivityRequest(_CamelModel):
    """Raw log request as submitted by the client (date not yet parsed)."""

    date: Any = Field(None, description="Calendar day of the activity")
    activity_type: Optional[str] = Field(None, description="transport | food | accommodation")
    details: Optional[dict[str, Any]] = Field(None, description="Category-specific payload")
    trip_id: Optional[str] = Field(None, description="Associated trip, if any")


class ValidatedActivity(BaseModel):
    """An activity that passed validation and is ready to be priced."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    activity_date: dt.date
    category: Category
    details: dict[str, Any]
    trip_id: Optional[str] = None


# ─────────────────────────────────────────────────────────────
# Results
# ─────────────────────────────────────────────────────────────

class LogActivityResult(_CamelModel):
    success: bool = True
    activity_id: int
    carbon_footprint: float
    factor_version: Optional[int] = None
    aggregated: bool = True


class LeaderboardEntry(_CamelModel):
    user_id: str = Field(..., serialization_alias="id")
    username: Optional[str] = None
    profile_pic_url: Optional[str] = None
    total_reward_points: int = 0


class LeaderboardResult(_CamelModel):
    leaderboard: list[LeaderboardEntry] = Field(default_factory=list)
    user_rank: Optional[int] = None


class FootprintSummary(_CamelModel):
    total: float = 0.0
    average: Optional[float] = None
    days_logged: int = 0
