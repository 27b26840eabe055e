"""Summary Engine - Pure aggregation over finance ledgers.

Day summaries filter by calendar-day equality of the transaction `date` and
sum amounts numerically. There is no currency conversion: a mixed-currency
ledger is summed as-is.

ARCHITECTURE: This is a pure logic engine with NO Home Assistant dependencies.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING, Any

from dateutil.relativedelta import relativedelta

from .. import const
from ..utils.dt_utils import as_local, dt_day_key, dt_parse_datetime, get_default_timezone
from ..utils.math_utils import as_number, round_amount

if TYPE_CHECKING:
    from ..type_defs import (
        BudgetAssignments,
        BudgetGroupData,
        BudgetSpend,
        DaySummary,
        TransactionData,
    )


class SummaryEngine:
    """Stateless finance aggregation."""

    @staticmethod
    def transactions_for_day(
        ledger: Iterable[TransactionData | Mapping[str, Any]],
        day: str | date | datetime,
    ) -> list[TransactionData]:
        """Return the transactions whose `date` falls on the given calendar day."""
        day_key = dt_day_key(day)
        if not day_key:
            return []
        return [
            entry  # type: ignore[misc]
            for entry in ledger
            if dt_day_key(entry.get(const.DATA_DATE)) == day_key
        ]

    @staticmethod
    def summary_for_day(
        ledger: Iterable[TransactionData | Mapping[str, Any]],
        day: str | date | datetime,
    ) -> DaySummary:
        """Return income, expenses and balance for one calendar day.

        Example:
            income 200 and expense 50 on 2024-01-01 →
            {"income": 200, "expenses": 50, "balance": 150}
        """
        income: float = 0
        expenses: float = 0
        for entry in SummaryEngine.transactions_for_day(ledger, day):
            amount = as_number(entry.get(const.DATA_TX_AMOUNT), 0) or 0
            tx_type = entry.get(const.DATA_TX_TYPE)
            if tx_type == const.TX_TYPE_INCOME:
                income += amount
            elif tx_type == const.TX_TYPE_EXPENSE:
                expenses += amount
        return {
            "income": round_amount(income),
            "expenses": round_amount(expenses),
            "balance": round_amount(income - expenses),
        }

    @staticmethod
    def budget_window(
        cadence: str | None, reference: datetime | date
    ) -> tuple[datetime, datetime]:
        """Return the [start, end) window containing reference.

        Weekly windows start on Sunday, monthly on the 1st, yearly on Jan 1.
        Unknown cadences are treated as monthly.
        """
        if isinstance(reference, datetime):
            ref_day = as_local(reference).date()
        else:
            ref_day = reference
        tz = get_default_timezone()

        if cadence == const.BUDGET_CADENCE_WEEKLY:
            # date.weekday(): Monday == 0, so Sunday-based offset is (weekday + 1) % 7
            start_day = ref_day - timedelta(days=(ref_day.weekday() + 1) % 7)
            end_day = start_day + timedelta(days=7)
        elif cadence == const.BUDGET_CADENCE_YEARLY:
            start_day = ref_day.replace(month=1, day=1)
            end_day = start_day + relativedelta(years=1)
        else:
            start_day = ref_day.replace(day=1)
            end_day = start_day + relativedelta(months=1)

        return (
            datetime.combine(start_day, time.min, tzinfo=tz),
            datetime.combine(end_day, time.min, tzinfo=tz),
        )

    @staticmethod
    def _transaction_instant(entry: Mapping[str, Any]) -> datetime | None:
        """Resolve the instant of a transaction from `date`, then `created_at`."""
        raw = entry.get(const.DATA_DATE) or entry.get(const.DATA_CREATED_AT)
        if not raw:
            return None
        parsed = dt_parse_datetime(raw) if isinstance(raw, str) else None
        if parsed is not None:
            return parsed
        day_key = dt_day_key(raw)
        if not day_key:
            return None
        return datetime.combine(
            date.fromisoformat(day_key), time.min, tzinfo=get_default_timezone()
        )

    @staticmethod
    def budget_spend_for_group(
        ledger: Iterable[TransactionData | Mapping[str, Any]],
        group: BudgetGroupData | Mapping[str, Any] | None,
        assignments: BudgetAssignments | None,
        reference: datetime | date,
    ) -> BudgetSpend | None:
        """Sum expenses assigned to a budget group inside its current window.

        Returns None when no group is given.
        """
        if not group:
            return None

        start, end = SummaryEngine.budget_window(
            group.get(const.DATA_BUDGET_CADENCE), reference
        )
        group_id = group.get(const.DATA_ID)
        assigned_map = assignments or {}

        spent: float = 0
        for entry in ledger:
            if entry.get(const.DATA_TX_TYPE) != const.TX_TYPE_EXPENSE:
                continue
            if group_id not in assigned_map.get(str(entry.get(const.DATA_ID)), []):
                continue
            instant = SummaryEngine._transaction_instant(entry)
            if instant is None or not start <= instant < end:
                continue
            spent += as_number(entry.get(const.DATA_TX_AMOUNT), 0) or 0

        return {
            "spent": round_amount(spent),
            "start": start.isoformat(),
            "end": end.isoformat(),
        }
