"""
emission_factors.py – Emission factor table model and its versioned store.

All factors are in kg CO₂e per unit:
  transport       per km travelled
  food            per meal
  accommodation   per night

A table is loaded once per calculation request and is read-only to the
engine.  Unknown subtypes resolve to a factor of 0 (lenient policy kept
for compatibility with already-logged data; a warning is logged).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

import psycopg2
from psycopg2.extras import execute_values

from footprint.constants import (
    ALLOWED_CATEGORIES,
    CATEGORY_ACCOMMODATION,
    CATEGORY_FOOD,
    CATEGORY_TRANSPORT,
)
from footprint.errors import ConfigUnavailable

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# Default factor set (seeded by `footprint seed-factors`)
# Sources: UK DEFRA GHG Conversion Factors (2023), Poore & Nemecek (2018),
# Hotel Carbon Measurement Initiative averages.
# ─────────────────────────────────────────────────────────────
DEFAULT_EMISSION_FACTORS: dict[str, dict[str, float]] = {
    CATEGORY_TRANSPORT: {
        "car":      0.192,   # average petrol car, per passenger-km
        "bus":      0.105,
        "train":    0.041,   # national rail
        "plane":    0.255,   # short-haul economy incl. RF
        "bicycle":  0.0,
        "walking":  0.0,
    },
    CATEGORY_FOOD: {
        "meat":       3.3,   # per meal
        "vegetarian": 1.5,
        "vegan":      1.0,
        "local":      0.9,
    },
    CATEGORY_ACCOMMODATION: {
        "hotel":     15.0,   # per room-night
        "hostel":     6.0,
        "camping":    1.5,
        "eco_lodge":  4.0,
    },
}


def normalise_subtype(raw: str) -> str:
    """Lower-case and trim a subtype key ("Eco_Lodge " → "eco_lodge")."""
    return raw.strip().lower()


def _freeze(factors: Mapping[str, Any] | None, category: str) -> Mapping[str, float]:
    frozen: dict[str, float] = {}
    for subtype, value in (factors or {}).items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{category}.{subtype}: factor must be a number, got {value!r}")
        if value < 0:
            raise ValueError(f"{category}.{subtype}: factor must be >= 0, got {value!r}")
        frozen[normalise_subtype(str(subtype))] = float(value)
    return MappingProxyType(frozen)


@dataclass(frozen=True)
class EmissionFactorTable:
    """Immutable snapshot of the emission factors used to price activities."""

    transport: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({}))
    food: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({}))
    accommodation: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({}))
    version: int | None = None

    @classmethod
    def from_mapping(
        cls, data: Mapping[str, Any], version: int | None = None
    ) -> "EmissionFactorTable":
        """
        Build a table from ``{"transport": {...}, "food": {...}, "accommodation": {...}}``.

        Missing categories become empty maps.  Raises ValueError on unknown
        categories or negative / non-numeric factors.
        """
        unknown = set(data) - set(ALLOWED_CATEGORIES)
        if unknown:
            raise ValueError(f"Unknown factor categories: {', '.join(sorted(unknown))}")
        return cls(
            transport=_freeze(data.get(CATEGORY_TRANSPORT), CATEGORY_TRANSPORT),
            food=_freeze(data.get(CATEGORY_FOOD), CATEGORY_FOOD),
            accommodation=_freeze(data.get(CATEGORY_ACCOMMODATION), CATEGORY_ACCOMMODATION),
            version=version,
        )

    @classmethod
    def default(cls) -> "EmissionFactorTable":
        return cls.from_mapping(DEFAULT_EMISSION_FACTORS)

    def category_map(self, category: str) -> Mapping[str, float]:
        if category == CATEGORY_TRANSPORT:
            return self.transport
        if category == CATEGORY_FOOD:
            return self.food
        if category == CATEGORY_ACCOMMODATION:
            return self.accommodation
        raise KeyError(category)

    def factor(self, category: str, subtype: str) -> float:
        """
        Return kg CO₂e per unit for *subtype* within *category*.

        An unknown subtype resolves to 0.0 so the calculation proceeds.
        """
        key = normalise_subtype(subtype)
        factors = self.category_map(category)
        if key not in factors:
            logger.warning(
                "Unknown %s subtype %r (factor version %s) – pricing at 0",
                category, subtype, self.version,
            )
            return 0.0
        return factors[key]

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            CATEGORY_TRANSPORT: dict(self.transport),
            CATEGORY_FOOD: dict(self.food),
            CATEGORY_ACCOMMODATION: dict(self.accommodation),
        }


# ─────────────────────────────────────────────────────────────
# Versioned store
# ─────────────────────────────────────────────────────────────

def load_active_table(conn) -> EmissionFactorTable:
    """
    Load the currently active factor table.

    Raises ConfigUnavailable when no version is active or the read fails.
    """
    try:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT v.version, f.category, f.subtype, f.factor
                FROM emission_factor_versions v
                LEFT JOIN emission_factors f ON f.version = v.version
                WHERE v.is_active
                """
            )
            rows = cur.fetchall()
    except psycopg2.Error as exc:
        logger.error("Could not read emission factors: %s", exc)
        raise ConfigUnavailable("Could not read emission factors.") from exc

    if not rows:
        raise ConfigUnavailable("Emission factors configuration not found.")

    version = rows[0][0]
    data: dict[str, dict[str, float]] = {c: {} for c in ALLOWED_CATEGORIES}
    for _, category, subtype, factor in rows:
        if category is None:
            continue  # active version with no factor rows
        if category not in data:
            logger.warning("Ignoring factor row with unknown category %r", category)
            continue
        data[category][subtype] = float(factor)

    try:
        return EmissionFactorTable.from_mapping(data, version=version)
    except ValueError as exc:
        raise ConfigUnavailable(f"Emission factor version {version} is invalid: {exc}") from exc


def store_factor_table(conn, table: EmissionFactorTable, *, activate: bool = True) -> int:
    """
    Persist *table* as a new factor version and optionally make it active.

    Previously logged activities keep the version they were priced with.
    Returns the new version number.
    """
    try:
        with conn.cursor() as cur:
            cur.execute(
                "INSERT INTO emission_factor_versions (is_active) VALUES (FALSE) RETURNING version"
            )
            version = cur.fetchone()[0]

            rows = [
                (version, category, subtype, factor)
                for category in ALLOWED_CATEGORIES
                for subtype, factor in table.category_map(category).items()
            ]
            if rows:
                execute_values(
                    cur,
                    "INSERT INTO emission_factors (version, category, subtype, factor) VALUES %s",
                    rows,
                )

            if activate:
                # Two statements: the partial unique index allows one active row at a time.
                cur.execute(
                    "UPDATE emission_factor_versions SET is_active = FALSE "
                    "WHERE is_active AND version <> %s",
                    (version,),
                )
                cur.execute(
                    "UPDATE emission_factor_versions SET is_active = TRUE WHERE version = %s",
                    (version,),
                )
        conn.commit()
    except Exception:
        conn.rollback()
        raise

    logger.info(
        "Stored emission factor version %d (%d factors, active=%s)",
        version, len(rows), activate,
    )
    return version
