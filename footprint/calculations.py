"""
calculations.py – Carbon footprint calculation engine.

Pure functions: an activity's category and detail payload plus an
EmissionFactorTable snapshot in, a carbon value out.  No I/O.

Formula references
──────────────────
 Category        Formula
 ─────────────────────────────────────────────────────────
 transport       factor[mode]     × distance (km)
 food            factor[mealType] × count    (default 1)
 accommodation   factor[type]     × nights   (default 1)

An unknown subtype prices at factor 0 (see EmissionFactorTable.factor).

Usage
──────
    from footprint.emission_factors import EmissionFactorTable
    from footprint.calculations import calculate_footprint

    table = EmissionFactorTable.from_mapping({"transport": {"car": 0.2}})
    result = calculate_footprint("transport", {"mode": "car", "distance": 50}, table)
    result.carbon_kg   # 10.0
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Mapping

from footprint.constants import (
    CATEGORY_ACCOMMODATION,
    CATEGORY_FOOD,
    CATEGORY_TRANSPORT,
    CATEGORY_UNIT,
)
from footprint.emission_factors import EmissionFactorTable
from footprint.errors import InvalidInput

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FootprintResult:
    """Single footprint calculation result."""
    category: str
    subtype: str
    quantity: float
    factor_used: float
    factor_unit: str         # e.g. 'kg CO2e/km'
    carbon_kg: float
    factor_version: int | None = None


# ─────────────────────────────────────────────────────────────────────────────
# Internal helpers
# ─────────────────────────────────────────────────────────────────────────────

def _require_subtype(detail: Mapping[str, Any], key: str, message: str) -> str:
    value = detail.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(message)
    return value


def _quantity(detail: Mapping[str, Any], key: str) -> int:
    """Meal / night count: omitted or null means 1, otherwise an integer >= 1."""
    value = detail.get(key)
    if value is None:
        return 1
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidInput(f"{key} must be an integer >= 1, got {value!r}")
    return value


def _result(
    table: EmissionFactorTable, category: str, subtype: str, quantity: float
) -> FootprintResult:
    factor = table.factor(category, subtype)
    carbon = factor * quantity
    logger.debug(
        "%s %s | %s %s × %.4f = %.4f kg CO₂e",
        category, subtype, quantity, CATEGORY_UNIT[category], factor, carbon,
    )
    return FootprintResult(
        category=category,
        subtype=subtype,
        quantity=quantity,
        factor_used=factor,
        factor_unit=f"kg CO2e/{CATEGORY_UNIT[category]}",
        carbon_kg=carbon,
        factor_version=table.version,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Per-category formulas
# ─────────────────────────────────────────────────────────────────────────────

def calc_transport_footprint(
    detail: Mapping[str, Any], table: EmissionFactorTable
) -> FootprintResult:
    """Transport: factor[mode] × distance.  Distance must be > 0 km."""
    mode = detail.get("mode")
    distance = detail.get("distance")
    if not isinstance(mode, str) or not mode.strip() or distance is None:
        raise InvalidInput(
            "Transport mode and distance are required for transport activities."
        )
    if isinstance(distance, bool) or not isinstance(distance, (int, float)):
        raise InvalidInput(f"distance must be a number, got {distance!r}")
    if not math.isfinite(distance):
        raise InvalidInput(f"distance must be a finite number, got {distance!r}")
    if distance <= 0:
        raise InvalidInput(f"distance must be > 0, got {distance!r}")
    return _result(table, CATEGORY_TRANSPORT, mode, float(distance))


def calc_food_footprint(
    detail: Mapping[str, Any], table: EmissionFactorTable
) -> FootprintResult:
    """Food: factor[mealType] × count (count defaults to 1)."""
    meal_type = _require_subtype(
        detail, "mealType", "Meal type is required for food activities."
    )
    return _result(table, CATEGORY_FOOD, meal_type, _quantity(detail, "count"))


def calc_accommodation_footprint(
    detail: Mapping[str, Any], table: EmissionFactorTable
) -> FootprintResult:
    """Accommodation: factor[type] × nights (nights defaults to 1)."""
    acc_type = _require_subtype(
        detail, "type", "Accommodation type is required for accommodation activities."
    )
    return _result(table, CATEGORY_ACCOMMODATION, acc_type, _quantity(detail, "nights"))


_CALCULATORS = {
    CATEGORY_TRANSPORT: calc_transport_footprint,
    CATEGORY_FOOD: calc_food_footprint,
    CATEGORY_ACCOMMODATION: calc_accommodation_footprint,
}


def calculate_footprint(
    category: str, detail: Mapping[str, Any], table: EmissionFactorTable
) -> FootprintResult:
    """
    Price one activity against *table*.

    Raises InvalidInput for an unknown category or missing / malformed
    detail fields.  The result is deterministic for a given table snapshot.
    """
    try:
        calc = _CALCULATORS[category]
    except KeyError:
        raise InvalidInput(f"Unknown activity type {category!r}") from None
    if not isinstance(detail, Mapping):
        raise InvalidInput("Activity details must be an object.")
    return calc(detail, table)
