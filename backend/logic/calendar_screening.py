# backend/logic/calendar_screening.py
"""
Weekend and Holiday Screening

Expenses booked on a Saturday, Sunday or Korean public holiday are a
standard journal-entry test: business rarely runs on those days, so such
lines are worth a look (personal use, entertainment, backdated entries).

Month-end entries can be excluded because closing adjustments are dated on
the last day of the month whatever weekday it falls on.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

import pandas as pd

from .constants import FIXED_HOLIDAYS, LUNAR_HOLIDAYS, NON_OPERATIONAL_DESCRIPTIONS
from .journal import Transaction
from .logging_utils import get_logger
from .parse_utils import parse_date

logger = get_logger(__name__)

_LUNAR_HOLIDAYS = frozenset(LUNAR_HOLIDAYS)
_FIXED_HOLIDAYS = frozenset(FIXED_HOLIDAYS)


class DayType(str, Enum):
    WEEKDAY = "weekday"
    SATURDAY = "sat"
    SUNDAY = "sun"
    HOLIDAY = "holiday"


@dataclass
class AccountDayCounts:
    """Non-weekday lines of one account."""
    account_name: str
    saturday: int = 0
    sunday: int = 0
    holiday: int = 0

    @property
    def total(self) -> int:
        return self.saturday + self.sunday + self.holiday

    def to_dict(self) -> Dict:
        return {
            "account_name": self.account_name,
            "saturday": self.saturday,
            "sunday": self.sunday,
            "holiday": self.holiday,
            "total": self.total,
        }


@dataclass
class CalendarScreening:
    accounts: List[AccountDayCounts] = field(default_factory=list)
    weekday_count: int = 0
    excluded_month_end: int = 0
    undated_count: int = 0

    @property
    def flagged_count(self) -> int:
        return sum(a.total for a in self.accounts)

    def to_dict(self) -> Dict:
        return {
            "accounts": [a.to_dict() for a in self.accounts],
            "weekday_count": self.weekday_count,
            "flagged_count": self.flagged_count,
            "excluded_month_end": self.excluded_month_end,
            "undated_count": self.undated_count,
        }


def day_type(value) -> Optional[DayType]:
    """
    Classify a date as weekday, Saturday, Sunday or public holiday.

    Holidays win over weekends. Returns None when the value is not a date.
    """
    parsed = parse_date(value)
    if parsed is None:
        return None
    if parsed.strftime("%m-%d") in _FIXED_HOLIDAYS or parsed.strftime("%Y-%m-%d") in _LUNAR_HOLIDAYS:
        return DayType.HOLIDAY
    if parsed.dayofweek == 6:
        return DayType.SUNDAY
    if parsed.dayofweek == 5:
        return DayType.SATURDAY
    return DayType.WEEKDAY


def is_month_end(value) -> bool:
    parsed = parse_date(value)
    return parsed is not None and parsed.is_month_end


def is_operational(t: Transaction) -> bool:
    """False for carry-forward and closing entries (전기이월, 손익대체, ...)."""
    description = "".join(t.description.split())
    return description not in NON_OPERATIONAL_DESCRIPTIONS


def screen_transactions(
    transactions: Iterable[Transaction],
    exclude_month_end: bool = False
) -> CalendarScreening:
    """
    Count weekend and holiday lines per account.

    Args:
        transactions: Ledger lines
        exclude_month_end: Skip lines dated on the last day of a month

    Returns:
        CalendarScreening with accounts sorted by flagged lines, most first
    """
    result = CalendarScreening()
    per_account: Dict[str, AccountDayCounts] = {}

    for t in transactions:
        if not is_operational(t):
            continue
        kind = day_type(t.date)
        if kind is None:
            result.undated_count += 1
            continue
        if exclude_month_end and is_month_end(t.date):
            result.excluded_month_end += 1
            continue
        if kind == DayType.WEEKDAY:
            result.weekday_count += 1
            continue

        counts = per_account.setdefault(t.account_name, AccountDayCounts(t.account_name))
        if kind == DayType.SATURDAY:
            counts.saturday += 1
        elif kind == DayType.SUNDAY:
            counts.sunday += 1
        else:
            counts.holiday += 1

    result.accounts = sorted(per_account.values(), key=lambda c: c.total, reverse=True)
    logger.info(
        f"Calendar screening: {result.flagged_count} weekend/holiday lines in "
        f"{len(result.accounts)} accounts, {result.weekday_count} weekday lines"
    )
    return result


def weekend_holiday_lines(
    transactions: Iterable[Transaction],
    account_name: Optional[str] = None,
    kinds: Optional[Iterable[DayType]] = None,
    exclude_month_end: bool = False,
    expenses_only: bool = False
) -> List[Transaction]:
    """
    Drill-down: the lines behind a screening count.

    Args:
        account_name: Restrict to one account
        kinds: Day types to keep (default: Saturday, Sunday and holiday)
        exclude_month_end: Skip lines dated on the last day of a month
        expenses_only: Keep debit lines only
    """
    wanted = set(kinds) if kinds else {DayType.SATURDAY, DayType.SUNDAY, DayType.HOLIDAY}
    lines = []
    for t in transactions:
        if account_name is not None and t.account_name != account_name:
            continue
        if expenses_only and t.debit <= 0:
            continue
        if not is_operational(t):
            continue
        if exclude_month_end and is_month_end(t.date):
            continue
        if day_type(t.date) in wanted:
            lines.append(t)
    return lines


def screening_to_frame(result: CalendarScreening) -> pd.DataFrame:
    """One row per account, for export."""
    if not result.accounts:
        return pd.DataFrame(columns=["account_name", "saturday", "sunday", "holiday", "total"])
    return pd.DataFrame([a.to_dict() for a in result.accounts])
