"""Unit tests for ReconcileEngine day merges.

The merged day's calories always equal the sum over its food list, unless the
list is empty, in which case the stored aggregate is kept.
"""

import pytest

from custom_components.pillaflow import const
from custom_components.pillaflow.engines.reconcile_engine import ReconcileEngine


def food(entry_id=None, name="Apple", calories=100, timestamp=None, date="2024-01-01"):
    """Build a food entry for the tests."""
    return {
        const.DATA_ID: entry_id,
        const.DATA_NAME: name,
        const.DATA_FOOD_CALORIES: calories,
        const.DATA_FOOD_TIMESTAMP: timestamp,
        const.DATA_DATE: date,
    }


class TestFoodIdentity:
    """Identity precedence: id, then timestamp, then composite."""

    def test_id_wins(self) -> None:
        assert ReconcileEngine.food_identity(food("a", timestamp="t1")) == "a"

    def test_timestamp_when_no_id(self) -> None:
        assert ReconcileEngine.food_identity(food(timestamp="t1")) == "t1"

    def test_composite_fallback(self) -> None:
        assert (
            ReconcileEngine.food_identity(food(name="Toast", calories=80))
            == "Toast-80-2024-01-01"
        )

    def test_dedupe_keeps_first_in_order(self) -> None:
        """Later duplicates are dropped and order is preserved."""
        entries = [food("a", calories=100), food("b", calories=50), food("a", calories=999)]
        deduped = ReconcileEngine.dedupe_foods(entries)
        assert [entry[const.DATA_ID] for entry in deduped] == ["a", "b"]
        assert deduped[0][const.DATA_FOOD_CALORIES] == 100


class TestMergeDay:
    """merge_day combines remote and cached entries."""

    def test_remote_and_cached_overlap(self) -> None:
        """Remote a:100 plus cached {a:100, b:50} gives two foods and 150 kcal."""
        base = ReconcileEngine.default_health_day()
        base[const.DATA_HEALTH_CALORIES] = 100
        merged = ReconcileEngine.merge_day(
            [food("a", calories=100)],
            [food("a", calories=100), food("b", name="Bread", calories=50)],
            base,
        )
        assert [entry[const.DATA_ID] for entry in merged[const.DATA_HEALTH_FOODS]] == [
            "a",
            "b",
        ]
        assert merged[const.DATA_HEALTH_CALORIES] == 150

    def test_remote_copy_wins_on_collision(self) -> None:
        """On an identity clash the remote entry is the one kept."""
        merged = ReconcileEngine.merge_day(
            [food("a", calories=120)], [food("a", calories=100)], None
        )
        assert merged[const.DATA_HEALTH_CALORIES] == 120

    def test_merge_is_idempotent(self) -> None:
        """Merging the same inputs into the result changes nothing."""
        remote = [food("a", calories=100)]
        cached = [food("a", calories=100), food("b", calories=50)]
        once = ReconcileEngine.merge_day(remote, cached, None)
        twice = ReconcileEngine.merge_day(remote, cached, once)
        assert twice == once

    def test_empty_merge_keeps_base_aggregate(self) -> None:
        """With nothing to sum, a stored calorie count survives."""
        base = ReconcileEngine.default_health_day()
        base[const.DATA_HEALTH_CALORIES] = 420
        merged = ReconcileEngine.merge_day([], [], base)
        assert merged[const.DATA_HEALTH_FOODS] == []
        assert merged[const.DATA_HEALTH_CALORIES] == 420

    def test_non_numeric_calories_count_as_zero(self) -> None:
        merged = ReconcileEngine.merge_day(
            [food("a", calories="abc"), food("b", calories="30")], [], None
        )
        assert merged[const.DATA_HEALTH_CALORIES] == 30

    def test_inputs_are_not_mutated(self) -> None:
        base = ReconcileEngine.default_health_day()
        cached = [food("b", calories=50)]
        ReconcileEngine.merge_day([food("a")], cached, base)
        assert base[const.DATA_HEALTH_FOODS] == []
        assert len(cached) == 1

    def test_base_fields_carry_over(self) -> None:
        base = ReconcileEngine.default_health_day()
        base[const.DATA_HEALTH_MOOD] = "good"
        base[const.DATA_HEALTH_WATER_INTAKE] = 6
        merged = ReconcileEngine.merge_day([food("a")], [], base)
        assert merged[const.DATA_HEALTH_MOOD] == "good"
        assert merged[const.DATA_HEALTH_WATER_INTAKE] == 6

    def test_health_day_id_adopted_from_entries(self) -> None:
        entry = food("a")
        entry[const.DATA_HEALTH_DAY_ID] = "day-9"
        merged = ReconcileEngine.merge_day([entry], [], None)
        assert merged[const.DATA_HEALTH_DAY_ID] == "day-9"


class TestBuildHealthMap:
    """Session-start health map assembly."""

    def test_rows_foods_and_legacy_cache_keys(self) -> None:
        """Cached logs under a legacy day string land on the canonical key."""
        health_rows = [
            {const.DATA_ID: "h1", const.DATA_DATE: "2024-01-01", "calories": 300},
            {const.DATA_ID: "h2", const.DATA_DATE: "2024-01-03", "calories": 80},
        ]
        food_rows = [
            {
                const.DATA_ID: "a",
                const.DATA_NAME: "Apple",
                "calories": 100,
                const.DATA_DATE: "2024-01-01",
                const.DATA_CREATED_AT: "2024-01-01T08:00:00Z",
            }
        ]
        cached_logs = {"Mon Jan 01 2024": [food("b", name="Bread", calories=50)]}

        health_map = ReconcileEngine.build_health_map(health_rows, food_rows, cached_logs)

        day = health_map["2024-01-01"]
        assert day[const.DATA_HEALTH_DAY_ID] == "h1"
        assert day[const.DATA_HEALTH_CALORIES] == 150
        assert len(day[const.DATA_HEALTH_FOODS]) == 2
        assert health_map["2024-01-03"][const.DATA_HEALTH_CALORIES] == 80
        assert "Mon Jan 01 2024" not in health_map

    def test_missing_sources(self) -> None:
        """Failed fetches (None) still let the cache contribute."""
        health_map = ReconcileEngine.build_health_map(
            None, None, {"2024-02-01": [food("x", calories=10)]}
        )
        assert health_map["2024-02-01"][const.DATA_HEALTH_CALORIES] == 10


class TestLocalMutations:
    """Add and remove keep calories equal to the food sum."""

    def test_normalize_requires_name(self) -> None:
        with pytest.raises(ValueError):
            ReconcileEngine.normalize_food_entry({const.DATA_NAME: "  "}, "2024-01-01")

    def test_normalize_coerces_numbers(self) -> None:
        entry = ReconcileEngine.normalize_food_entry(
            {
                const.DATA_NAME: " Oats ",
                const.DATA_FOOD_CALORIES: "150",
                const.DATA_FOOD_PROTEIN_GRAMS: "",
                const.DATA_FOOD_CARBS_GRAMS: "27.5",
            },
            "2024-01-01",
            now_iso="2024-01-01T07:00:00+00:00",
        )
        assert entry[const.DATA_NAME] == "Oats"
        assert entry[const.DATA_FOOD_CALORIES] == 150
        assert entry[const.DATA_FOOD_PROTEIN_GRAMS] is None
        assert entry[const.DATA_FOOD_CARBS_GRAMS] == 27.5
        assert entry[const.DATA_FOOD_TIMESTAMP] == "2024-01-01T07:00:00+00:00"

    def test_add_then_remove(self) -> None:
        day = ReconcileEngine.add_food_entry(None, food("a", calories=100))
        day = ReconcileEngine.add_food_entry(day, food("b", calories=40))
        assert day[const.DATA_HEALTH_CALORIES] == 140

        day = ReconcileEngine.remove_food_entry(day, "a")
        assert day[const.DATA_HEALTH_CALORIES] == 40

        day = ReconcileEngine.remove_food_entry(day, "b")
        assert day[const.DATA_HEALTH_FOODS] == []
        assert day[const.DATA_HEALTH_CALORIES] == 0
