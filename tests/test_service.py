"""
Unit tests for footprint/service.py

Stage functions (load_active_table, insert_activity_log,
apply_activity_aggregates, …) are patched so only the protocol ordering
and error policy are exercised.
"""
import datetime as dt
from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from footprint.emission_factors import EmissionFactorTable
from footprint.errors import (
    AggregationFailure,
    ConfigUnavailable,
    InvalidInput,
    PersistenceFailure,
)
from footprint.schemas import LeaderboardEntry
from footprint.service import (
    get_footprint_summary,
    get_footprints,
    get_leaderboard,
    log_activity,
)
from tests.mock_db import make_conn

TABLE = EmissionFactorTable.from_mapping(
    {"transport": {"car": 0.2, "walking": 0.0}, "food": {"vegetarian": 1.5}},
    version=3,
)

CAR_TRIP = {
    "date": "2024-01-02",
    "activityType": "transport",
    "details": {"mode": "car", "distance": 50},
}


# ─────────────────────────────────────────────────────────────────────────────
# 1. log_activity
# ─────────────────────────────────────────────────────────────────────────────

class TestLogActivity:

    def test_returns_id_and_carbon(self):
        conn = MagicMock()
        with patch("footprint.service.insert_activity_log", return_value=101) as mock_insert, \
             patch("footprint.service.apply_activity_aggregates", return_value=True) as mock_apply:
            result = log_activity(conn, "u1", CAR_TRIP, factor_table=TABLE)

        assert result.activity_id == 101
        assert result.carbon_footprint == pytest.approx(10.0)
        assert result.factor_version == 3
        assert result.aggregated is True
        mock_apply.assert_called_once_with(conn, 101)

        activity, carbon, version = mock_insert.call_args.args[1:]
        assert activity.user_id == "u1"
        assert activity.activity_date == dt.date(2024, 1, 2)
        assert carbon == pytest.approx(10.0)
        assert version == 3

    def test_food_count_omitted(self):
        payload = {"date": "2024-01-02", "activityType": "food", "details": {"mealType": "vegetarian"}}
        with patch("footprint.service.insert_activity_log", return_value=1), \
             patch("footprint.service.apply_activity_aggregates"):
            result = log_activity(MagicMock(), "u1", payload, factor_table=TABLE)
        assert result.carbon_footprint == pytest.approx(1.5)

    def test_loads_active_table_when_none_given(self):
        conn = MagicMock()
        with patch("footprint.service.load_active_table", return_value=TABLE) as mock_load, \
             patch("footprint.service.insert_activity_log", return_value=1), \
             patch("footprint.service.apply_activity_aggregates"):
            log_activity(conn, "u1", CAR_TRIP)
        mock_load.assert_called_once_with(conn)

    def test_carbon_rounded_before_persisting(self):
        table = EmissionFactorTable.from_mapping({"transport": {"car": 0.1234567891}})
        with patch("footprint.service.insert_activity_log", return_value=1) as mock_insert, \
             patch("footprint.service.apply_activity_aggregates"):
            result = log_activity(MagicMock(), "u1", CAR_TRIP, factor_table=table)

        persisted = mock_insert.call_args.args[2]
        assert persisted == round(0.1234567891 * 50, 6)
        assert result.carbon_footprint == persisted

    def test_invalid_input_has_no_side_effects(self):
        bad = dict(CAR_TRIP, details={"mode": "car", "distance": 0})
        with patch("footprint.service.load_active_table") as mock_load, \
             patch("footprint.service.insert_activity_log") as mock_insert:
            with pytest.raises(InvalidInput):
                log_activity(MagicMock(), "u1", bad)
        mock_load.assert_not_called()
        mock_insert.assert_not_called()

    def test_missing_config_has_no_side_effects(self):
        with patch("footprint.service.load_active_table",
                   side_effect=ConfigUnavailable("Emission factors configuration not found.")), \
             patch("footprint.service.insert_activity_log") as mock_insert:
            with pytest.raises(ConfigUnavailable):
                log_activity(MagicMock(), "u1", CAR_TRIP)
        mock_insert.assert_not_called()

    def test_persistence_failure_propagates_before_aggregation(self):
        with patch("footprint.service.insert_activity_log",
                   side_effect=PersistenceFailure("disk full")), \
             patch("footprint.service.apply_activity_aggregates") as mock_apply:
            with pytest.raises(PersistenceFailure):
                log_activity(MagicMock(), "u1", CAR_TRIP, factor_table=TABLE)
        mock_apply.assert_not_called()

    def test_aggregation_failure_still_succeeds(self, caplog):
        with patch("footprint.service.insert_activity_log", return_value=55), \
             patch("footprint.service.apply_activity_aggregates",
                   side_effect=AggregationFailure(55, "lock timeout")):
            with caplog.at_level("ERROR"):
                result = log_activity(MagicMock(), "u1", CAR_TRIP, factor_table=TABLE)

        assert result.success is True
        assert result.activity_id == 55
        assert result.aggregated is False
        assert "activity_id=55" in caplog.text

    def test_connection_lost_during_aggregation_still_succeeds(self):
        conn, cur = make_conn()
        cur.execute.side_effect = psycopg2.OperationalError("server closed the connection")
        conn.rollback.side_effect = psycopg2.InterfaceError("connection already closed")

        with patch("footprint.service.insert_activity_log", return_value=77):
            result = log_activity(conn, "u1", CAR_TRIP, factor_table=TABLE)

        assert result.success is True
        assert result.activity_id == 77
        assert result.aggregated is False

    def test_non_finite_distance_is_never_persisted(self):
        bad = dict(CAR_TRIP, details={"mode": "walking", "distance": float("inf")})
        with patch("footprint.service.insert_activity_log") as mock_insert:
            with pytest.raises(InvalidInput):
                log_activity(MagicMock(), "u1", bad, factor_table=TABLE)
        mock_insert.assert_not_called()

    def test_zero_factor_activity_is_logged(self):
        walk = dict(CAR_TRIP, details={"mode": "walking", "distance": 3})
        with patch("footprint.service.insert_activity_log", return_value=7), \
             patch("footprint.service.apply_activity_aggregates"):
            result = log_activity(MagicMock(), "u1", walk, factor_table=TABLE)
        assert result.carbon_footprint == 0.0

    def test_result_serialises_to_camel_case(self):
        with patch("footprint.service.insert_activity_log", return_value=9), \
             patch("footprint.service.apply_activity_aggregates"):
            result = log_activity(MagicMock(), "u1", CAR_TRIP, factor_table=TABLE)
        data = result.model_dump(by_alias=True)
        assert data["activityId"] == 9
        assert data["carbonFootprint"] == pytest.approx(10.0)
        assert data["success"] is True


# ─────────────────────────────────────────────────────────────────────────────
# 2. get_footprints / get_footprint_summary
# ─────────────────────────────────────────────────────────────────────────────

class TestGetFootprints:

    def test_passes_parsed_range(self):
        conn = MagicMock()
        with patch("footprint.service.get_daily_footprints",
                   return_value={"2024-01-02": 10.0}) as mock_daily:
            result = get_footprints(conn, "u1", "2024-01-01", "2024-01-03")

        assert result == {"2024-01-02": 10.0}
        mock_daily.assert_called_once_with(conn, "u1", dt.date(2024, 1, 1), dt.date(2024, 1, 3))

    def test_requires_owner(self):
        with pytest.raises(InvalidInput):
            get_footprints(MagicMock(), "", "2024-01-01", "2024-01-03")

    def test_rejects_reversed_range(self):
        with patch("footprint.service.get_daily_footprints") as mock_daily:
            with pytest.raises(InvalidInput):
                get_footprints(MagicMock(), "u1", "2024-01-03", "2024-01-01")
        mock_daily.assert_not_called()


class TestGetFootprintSummary:

    def test_defaults_to_last_seven_days(self):
        with patch("footprint.service.get_daily_footprints", return_value={}) as mock_daily:
            payload = get_footprint_summary(MagicMock(), "u1", today=dt.date(2024, 3, 10))

        assert payload["startDate"] == "2024-03-04"
        assert payload["endDate"] == "2024-03-10"
        assert mock_daily.call_args.args[2:] == (dt.date(2024, 3, 4), dt.date(2024, 3, 10))

    def test_combines_summary_and_calendar(self):
        footprints = {"2024-01-01": 2.0, "2024-01-02": 16.0}
        with patch("footprint.service.get_daily_footprints", return_value=footprints):
            payload = get_footprint_summary(MagicMock(), "u1", "2024-01-01", "2024-01-07")

        assert payload["footprints"] == footprints
        assert payload["summary"] == {"total": 18.0, "average": 9.0, "daysLogged": 2}
        assert payload["calendar"]["2024-01-01"]["bucket"] == "low"
        assert payload["calendar"]["2024-01-02"]["bucket"] == "high"


# ─────────────────────────────────────────────────────────────────────────────
# 3. get_leaderboard
# ─────────────────────────────────────────────────────────────────────────────

class TestGetLeaderboard:

    def test_entries_and_rank(self):
        entries = [LeaderboardEntry(user_id="A", total_reward_points=50)]
        conn = MagicMock()
        with patch("footprint.service.get_top_entries", return_value=entries) as mock_top, \
             patch("footprint.service.get_user_rank", return_value=3) as mock_rank:
            result = get_leaderboard(conn, "C", 5)

        mock_top.assert_called_once_with(conn, 5)
        mock_rank.assert_called_once_with(conn, "C")
        assert result.leaderboard == entries
        assert result.user_rank == 3

    def test_default_limit_is_twenty(self):
        with patch("footprint.service.get_top_entries", return_value=[]) as mock_top, \
             patch("footprint.service.get_user_rank", return_value=None):
            result = get_leaderboard(MagicMock(), "u1")
        assert mock_top.call_args.args[1] == 20
        assert result.model_dump(by_alias=True) == {"leaderboard": [], "userRank": None}

    def test_bad_limit_rejected(self):
        with pytest.raises(InvalidInput):
            get_leaderboard(MagicMock(), "u1", 0)
