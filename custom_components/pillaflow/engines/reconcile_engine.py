"""Reconcile Engine - Pure logic for merging remote and cached day records.

This engine provides stateless, pure Python functions for:
- Food entry identity and de-duplication (first occurrence wins)
- Day merges that keep `calories` equal to the sum of the food list
- Mapping remote `health_daily` / `health_food_entries` rows into day records
- Local food entry add/remove mutations

ARCHITECTURE: This is a pure logic engine with NO Home Assistant dependencies.
All functions are static methods that operate on passed-in data and return new
dicts; inputs are never mutated. Locking, caching and remote calls belong in
HealthManager.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any, cast

from .. import const
from ..utils.dt_utils import as_utc, dt_day_key, dt_now_local
from ..utils.math_utils import as_number, normalize_optional_number

if TYPE_CHECKING:
    from ..type_defs import FoodEntryData, FoodLogs, HealthDayData, HealthMap


def _now_iso() -> str:
    """Return current UTC time as ISO string (engine-internal helper)."""
    return as_utc(dt_now_local()).isoformat()


class ReconcileEngine:
    """Stateless merge logic for health day records."""

    @staticmethod
    def default_health_day() -> HealthDayData:
        """Return an empty health day."""
        return {
            const.DATA_HEALTH_MOOD: None,
            const.DATA_HEALTH_WATER_INTAKE: 0,
            const.DATA_HEALTH_SLEEP_TIME: None,
            const.DATA_HEALTH_WAKE_TIME: None,
            const.DATA_HEALTH_SLEEP_QUALITY: None,
            const.DATA_HEALTH_CALORIES: 0,
            const.DATA_HEALTH_FOODS: [],
            const.DATA_HEALTH_DAY_ID: None,
            const.DATA_CREATED_AT: None,
            const.DATA_HEALTH_UPDATED_AT: None,
        }  # type: ignore[return-value]

    @staticmethod
    def food_identity(entry: Mapping[str, Any]) -> str:
        """Return the de-duplication identity of a food entry.

        `id` when present, else the creation `timestamp`, else the composite
        `name-calories-date` for entries that never reached the server.
        """
        entry_id = entry.get(const.DATA_ID)
        if entry_id:
            return str(entry_id)
        timestamp = entry.get(const.DATA_FOOD_TIMESTAMP)
        if timestamp:
            return str(timestamp)
        return (
            f"{entry.get(const.DATA_NAME)}-"
            f"{entry.get(const.DATA_FOOD_CALORIES)}-"
            f"{entry.get(const.DATA_DATE)}"
        )

    @staticmethod
    def dedupe_foods(entries: Iterable[FoodEntryData]) -> list[FoodEntryData]:
        """Drop entries whose identity was already seen, keeping order."""
        seen: set[str] = set()
        deduped: list[FoodEntryData] = []
        for entry in entries:
            if not entry:
                continue
            key = ReconcileEngine.food_identity(entry)
            if key in seen:
                continue
            seen.add(key)
            deduped.append(entry)
        return deduped

    @staticmethod
    def total_calories(foods: Iterable[Mapping[str, Any]]) -> float:
        """Sum calories over a food list, treating non-numeric values as 0."""
        return sum(
            as_number(food.get(const.DATA_FOOD_CALORIES), 0) or 0 for food in foods
        )

    @staticmethod
    def merge_day(
        remote_entries: Iterable[FoodEntryData] | None,
        cached_entries: Iterable[FoodEntryData] | None,
        base_day: HealthDayData | None,
    ) -> HealthDayData:
        """Merge remote and locally cached food entries into a day record.

        Remote entries come first, so on an identity collision the remote copy
        is kept. `calories` becomes the sum over the merged list; the base
        aggregate survives only when the merged list is empty. Other base
        fields are carried over unchanged.

        Args:
            remote_entries: Entries fetched from the backend (may be empty when
                the fetch failed)
            cached_entries: Entries from the local cache for the same day
            base_day: Existing day record, or None for a fresh day

        Returns:
            A new HealthDayData; no input is mutated.
        """
        base = dict(base_day) if base_day else dict(ReconcileEngine.default_health_day())
        combined = [*(remote_entries or []), *(cached_entries or [])]
        deduped = ReconcileEngine.dedupe_foods(combined)
        total = ReconcileEngine.total_calories(deduped)

        if deduped:
            calories = total
        else:
            calories = as_number(base.get(const.DATA_HEALTH_CALORIES), 0) or 0

        health_day_id = base.get(const.DATA_HEALTH_DAY_ID)
        if not health_day_id and deduped:
            health_day_id = deduped[0].get(const.DATA_HEALTH_DAY_ID)

        base[const.DATA_HEALTH_FOODS] = deduped
        base[const.DATA_HEALTH_CALORIES] = calories
        base[const.DATA_HEALTH_DAY_ID] = health_day_id
        return cast("HealthDayData", base)

    # -------------------------------------------------------------------------
    # Remote row mapping
    # -------------------------------------------------------------------------

    @staticmethod
    def map_health_row(
        row: Mapping[str, Any], fallback: HealthDayData | None = None
    ) -> HealthDayData:
        """Map a `health_daily` row onto a day record, filling gaps from fallback."""
        base = fallback or ReconcileEngine.default_health_day()

        def pick(key: str) -> Any:
            value = row.get(key)
            return base.get(key) if value is None else value

        foods = row.get(const.DATA_HEALTH_FOODS)
        return {
            const.DATA_HEALTH_MOOD: pick(const.DATA_HEALTH_MOOD),
            const.DATA_HEALTH_WATER_INTAKE: as_number(
                row.get(const.DATA_HEALTH_WATER_INTAKE),
                base.get(const.DATA_HEALTH_WATER_INTAKE),
            ),
            const.DATA_HEALTH_SLEEP_TIME: pick(const.DATA_HEALTH_SLEEP_TIME),
            const.DATA_HEALTH_WAKE_TIME: pick(const.DATA_HEALTH_WAKE_TIME),
            const.DATA_HEALTH_SLEEP_QUALITY: pick(const.DATA_HEALTH_SLEEP_QUALITY),
            const.DATA_HEALTH_CALORIES: as_number(
                row.get(const.DATA_HEALTH_CALORIES),
                base.get(const.DATA_HEALTH_CALORIES),
            ),
            const.DATA_HEALTH_FOODS: list(foods)
            if isinstance(foods, list)
            else list(base.get(const.DATA_HEALTH_FOODS) or []),
            const.DATA_HEALTH_DAY_ID: row.get(const.DATA_ID)
            or base.get(const.DATA_HEALTH_DAY_ID),
            const.DATA_CREATED_AT: pick(const.DATA_CREATED_AT),
            const.DATA_HEALTH_UPDATED_AT: pick(const.DATA_HEALTH_UPDATED_AT),
        }  # type: ignore[return-value]

    @staticmethod
    def map_food_row(row: Mapping[str, Any]) -> FoodEntryData:
        """Map a `health_food_entries` row onto a food entry."""
        return {
            const.DATA_ID: row.get(const.DATA_ID),
            const.DATA_NAME: row.get(const.DATA_NAME),
            const.DATA_FOOD_CALORIES: as_number(row.get(const.DATA_FOOD_CALORIES), 0),
            const.DATA_FOOD_PROTEIN_GRAMS: normalize_optional_number(
                row.get(const.DATA_FOOD_PROTEIN_GRAMS)
            ),
            const.DATA_FOOD_CARBS_GRAMS: normalize_optional_number(
                row.get(const.DATA_FOOD_CARBS_GRAMS)
            ),
            const.DATA_FOOD_FAT_GRAMS: normalize_optional_number(
                row.get(const.DATA_FOOD_FAT_GRAMS)
            ),
            const.DATA_FOOD_TIMESTAMP: row.get(const.DATA_CREATED_AT),
            const.DATA_HEALTH_DAY_ID: row.get(const.DATA_HEALTH_DAY_ID),
            const.DATA_DATE: row.get(const.DATA_DATE),
        }  # type: ignore[return-value]

    @staticmethod
    def group_food_rows(
        food_rows: Iterable[Mapping[str, Any]],
    ) -> dict[str, list[FoodEntryData]]:
        """Group food rows by canonical day key, skipping rows without a date."""
        grouped: dict[str, list[FoodEntryData]] = {}
        for row in food_rows:
            key = dt_day_key(row.get(const.DATA_DATE))
            if not key:
                continue
            grouped.setdefault(key, []).append(ReconcileEngine.map_food_row(row))
        return grouped

    @staticmethod
    def build_health_map(
        health_rows: Iterable[Mapping[str, Any]] | None,
        food_rows: Iterable[Mapping[str, Any]] | None,
        cached_food_logs: FoodLogs | None,
    ) -> HealthMap:
        """Build the per-day health map used at session start.

        Every day with remote food rows or cached food logs is merged with
        `merge_day`; days with only a `health_daily` row keep that row as-is.
        Cached log keys in the legacy day format are normalized first.
        """
        health_map: HealthMap = {}
        for row in health_rows or []:
            key = dt_day_key(row.get(const.DATA_DATE))
            if not key:
                continue
            health_map[key] = ReconcileEngine.map_health_row(row)

        remote_by_day = ReconcileEngine.group_food_rows(food_rows or [])

        cached_by_day: dict[str, list[FoodEntryData]] = {}
        for raw_key, foods in (cached_food_logs or {}).items():
            key = dt_day_key(raw_key)
            if not key:
                continue
            cached_by_day.setdefault(key, []).extend(foods or [])

        for key in sorted(set(remote_by_day) | set(cached_by_day)):
            health_map[key] = ReconcileEngine.merge_day(
                remote_by_day.get(key, []),
                cached_by_day.get(key, []),
                health_map.get(key),
            )

        return health_map

    # -------------------------------------------------------------------------
    # Local mutations
    # -------------------------------------------------------------------------

    @staticmethod
    def normalize_food_entry(
        entry: Mapping[str, Any], day_key: str, now_iso: str | None = None
    ) -> FoodEntryData:
        """Normalize a user-supplied food entry for the given day.

        Non-numeric calories become 0; blank or non-numeric macros become None.

        Raises:
            ValueError: When the entry has no name.
        """
        name = str(entry.get(const.DATA_NAME) or "").strip()
        if not name:
            raise ValueError("Food entry requires a name")

        timestamp = entry.get(const.DATA_FOOD_TIMESTAMP) or now_iso or _now_iso()
        return {
            const.DATA_ID: entry.get(const.DATA_ID),
            const.DATA_NAME: name,
            const.DATA_FOOD_CALORIES: as_number(
                entry.get(const.DATA_FOOD_CALORIES), 0
            ),
            const.DATA_FOOD_PROTEIN_GRAMS: normalize_optional_number(
                entry.get(const.DATA_FOOD_PROTEIN_GRAMS)
            ),
            const.DATA_FOOD_CARBS_GRAMS: normalize_optional_number(
                entry.get(const.DATA_FOOD_CARBS_GRAMS)
            ),
            const.DATA_FOOD_FAT_GRAMS: normalize_optional_number(
                entry.get(const.DATA_FOOD_FAT_GRAMS)
            ),
            const.DATA_FOOD_TIMESTAMP: timestamp,
            const.DATA_DATE: day_key,
            const.DATA_HEALTH_DAY_ID: entry.get(const.DATA_HEALTH_DAY_ID),
        }  # type: ignore[return-value]

    @staticmethod
    def add_food_entry(
        day: HealthDayData | None, entry: FoodEntryData
    ) -> HealthDayData:
        """Return a new day with the entry appended and calories re-summed."""
        base = dict(day) if day else dict(ReconcileEngine.default_health_day())
        foods = ReconcileEngine.dedupe_foods(
            [*(base.get(const.DATA_HEALTH_FOODS) or []), entry]
        )
        base[const.DATA_HEALTH_FOODS] = foods
        base[const.DATA_HEALTH_CALORIES] = ReconcileEngine.total_calories(foods)
        if not base.get(const.DATA_HEALTH_DAY_ID):
            base[const.DATA_HEALTH_DAY_ID] = entry.get(const.DATA_HEALTH_DAY_ID)
        return cast("HealthDayData", base)

    @staticmethod
    def remove_food_entry(day: HealthDayData | None, food_id: str) -> HealthDayData:
        """Return a new day without the entry whose identity is food_id.

        Calories are re-summed, so removing the last entry yields 0.
        """
        base = dict(day) if day else dict(ReconcileEngine.default_health_day())
        foods = [
            food
            for food in base.get(const.DATA_HEALTH_FOODS) or []
            if ReconcileEngine.food_identity(food) != food_id
        ]
        base[const.DATA_HEALTH_FOODS] = foods
        base[const.DATA_HEALTH_CALORIES] = ReconcileEngine.total_calories(foods)
        return cast("HealthDayData", base)
