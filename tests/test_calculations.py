"""
Unit tests for footprint/calculations.py

The calculator is pure, so every test prices against a literal
EmissionFactorTable.  No database, no mocks.
"""
import pytest

from footprint.calculations import (
    FootprintResult,
    calc_accommodation_footprint,
    calc_food_footprint,
    calc_transport_footprint,
    calculate_footprint,
)
from footprint.emission_factors import EmissionFactorTable
from footprint.errors import InvalidInput


@pytest.fixture
def table():
    return EmissionFactorTable.from_mapping(
        {
            "transport": {"car": 0.2, "train": 0.041, "walking": 0.0},
            "food": {"vegetarian": 1.5, "meat": 3.3},
            "accommodation": {"hotel": 15.0, "camping": 1.5},
        },
        version=7,
    )


# ─────────────────────────────────────────────────────────────────────────────
# 1. Transport
# Formula: factor[mode] × distance
# ─────────────────────────────────────────────────────────────────────────────

class TestCalcTransportFootprint:

    def test_car_fifty_km(self):
        # 50 km × 0.2 = 10.0 kg CO₂e
        only_car = EmissionFactorTable.from_mapping({"transport": {"car": 0.2}})
        result = calculate_footprint("transport", {"mode": "car", "distance": 50}, only_car)
        assert result.carbon_kg == pytest.approx(10.0)

    @pytest.mark.parametrize("mode, distance, factor", [
        ("car", 12.5, 0.2),
        ("train", 300, 0.041),
        ("car", 0.1, 0.2),
    ])
    def test_factor_times_distance(self, table, mode, distance, factor):
        result = calc_transport_footprint({"mode": mode, "distance": distance}, table)
        assert result.carbon_kg == pytest.approx(factor * distance)
        assert result.factor_used == factor
        assert result.quantity == distance

    def test_zero_factor_mode_gives_zero(self, table):
        result = calc_transport_footprint({"mode": "walking", "distance": 8}, table)
        assert result.carbon_kg == 0.0

    def test_missing_mode_rejected(self, table):
        with pytest.raises(InvalidInput):
            calc_transport_footprint({"distance": 10}, table)

    def test_missing_distance_rejected(self, table):
        with pytest.raises(InvalidInput):
            calc_transport_footprint({"mode": "car"}, table)

    @pytest.mark.parametrize("distance", [0, -5, -0.1])
    def test_non_positive_distance_rejected(self, table, distance):
        with pytest.raises(InvalidInput):
            calc_transport_footprint({"mode": "car", "distance": distance}, table)

    @pytest.mark.parametrize("mode", ["car", "walking"])
    @pytest.mark.parametrize("distance", [float("inf"), float("nan"), float("-inf")])
    def test_non_finite_distance_rejected(self, table, mode, distance):
        with pytest.raises(InvalidInput, match="finite"):
            calc_transport_footprint({"mode": mode, "distance": distance}, table)

    def test_non_numeric_distance_rejected(self, table):
        with pytest.raises(InvalidInput):
            calc_transport_footprint({"mode": "car", "distance": "far"}, table)

    def test_factor_unit_label(self, table):
        result = calc_transport_footprint({"mode": "car", "distance": 1}, table)
        assert result.factor_unit == "kg CO2e/km"


# ─────────────────────────────────────────────────────────────────────────────
# 2. Food
# Formula: factor[mealType] × count (default 1)
# ─────────────────────────────────────────────────────────────────────────────

class TestCalcFoodFootprint:

    def test_count_defaults_to_one(self):
        veg = EmissionFactorTable.from_mapping({"food": {"vegetarian": 1.5}})
        result = calculate_footprint("food", {"mealType": "vegetarian"}, veg)
        assert result.carbon_kg == pytest.approx(1.5)
        assert result.quantity == 1

    def test_null_count_defaults_to_one(self, table):
        result = calc_food_footprint({"mealType": "meat", "count": None}, table)
        assert result.carbon_kg == pytest.approx(3.3)

    def test_factor_times_count(self, table):
        # 3 meals × 3.3 = 9.9 kg CO₂e
        result = calc_food_footprint({"mealType": "meat", "count": 3}, table)
        assert result.carbon_kg == pytest.approx(9.9)

    def test_missing_meal_type_rejected(self, table):
        with pytest.raises(InvalidInput, match="Meal type"):
            calc_food_footprint({"count": 2}, table)

    @pytest.mark.parametrize("count", [0, -1, 1.5, True])
    def test_bad_count_rejected(self, table, count):
        with pytest.raises(InvalidInput):
            calc_food_footprint({"mealType": "meat", "count": count}, table)


# ─────────────────────────────────────────────────────────────────────────────
# 3. Accommodation
# Formula: factor[type] × nights (default 1)
# ─────────────────────────────────────────────────────────────────────────────

class TestCalcAccommodationFootprint:

    def test_factor_times_nights(self, table):
        # 4 nights × 15.0 = 60.0 kg CO₂e
        result = calc_accommodation_footprint({"type": "hotel", "nights": 4}, table)
        assert result.carbon_kg == pytest.approx(60.0)

    def test_nights_default_to_one(self, table):
        result = calc_accommodation_footprint({"type": "camping"}, table)
        assert result.carbon_kg == pytest.approx(1.5)

    def test_missing_type_rejected(self, table):
        with pytest.raises(InvalidInput, match="Accommodation type"):
            calc_accommodation_footprint({"nights": 2}, table)

    def test_unit_label(self, table):
        result = calc_accommodation_footprint({"type": "hotel"}, table)
        assert result.factor_unit == "kg CO2e/night"


# ─────────────────────────────────────────────────────────────────────────────
# 4. Dispatcher and unknown subtypes
# ─────────────────────────────────────────────────────────────────────────────

class TestCalculateFootprint:

    def test_returns_footprint_result_with_version(self, table):
        result = calculate_footprint("food", {"mealType": "meat"}, table)
        assert isinstance(result, FootprintResult)
        assert result.factor_version == 7
        assert result.category == "food"
        assert result.subtype == "meat"

    @pytest.mark.parametrize("category, detail", [
        ("transport", {"mode": "hoverboard", "distance": 10}),
        ("food", {"mealType": "insects", "count": 2}),
        ("accommodation", {"type": "treehouse", "nights": 3}),
    ])
    def test_unknown_subtype_prices_at_zero(self, table, category, detail):
        result = calculate_footprint(category, detail, table)
        assert result.carbon_kg == 0.0
        assert result.factor_used == 0.0

    def test_unknown_subtype_logs_warning(self, table, caplog):
        with caplog.at_level("WARNING"):
            calculate_footprint("transport", {"mode": "hoverboard", "distance": 1}, table)
        assert "hoverboard" in caplog.text

    def test_subtype_lookup_ignores_case_and_whitespace(self, table):
        result = calculate_footprint("transport", {"mode": " Car ", "distance": 10}, table)
        assert result.carbon_kg == pytest.approx(2.0)

    def test_unknown_category_rejected(self, table):
        with pytest.raises(InvalidInput):
            calculate_footprint("shopping", {"item": "shoes"}, table)

    def test_non_mapping_detail_rejected(self, table):
        with pytest.raises(InvalidInput):
            calculate_footprint("food", ["vegetarian"], table)

    def test_deterministic_for_same_snapshot(self, table):
        detail = {"mode": "train", "distance": 123.4}
        first = calculate_footprint("transport", detail, table)
        second = calculate_footprint("transport", detail, table)
        assert first == second

    def test_empty_table_prices_everything_at_zero(self):
        result = calculate_footprint("food", {"mealType": "meat", "count": 5}, EmissionFactorTable())
        assert result.carbon_kg == 0.0
