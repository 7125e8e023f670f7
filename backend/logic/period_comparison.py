# backend/logic/period_comparison.py
"""
Prior-Period Comparison

Compares one account's current-period ledger with the same account in the
prior-period ledger, vendor by vendor. Large swings in a vendor's volume
(a new supplier taking most of the spend, a customer vanishing) are a
classic analytical-review lead.

Account names often carry a renumbered prefix between years
("101.외상매출금" vs "외상매출금"), so the prior account is matched first by
exact name and then by the name without its numeric prefix.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from .journal import Transaction
from .logging_utils import get_logger

logger = get_logger(__name__)

_NUMERIC_PREFIX_RE = re.compile(r"^\d+[.\s]*")
_UNKNOWN_VENDOR = "(미지정)"


class AmountFilter(str, Enum):
    ALL = "all"
    DEBIT = "debit"
    CREDIT = "credit"


@dataclass
class VendorChange:
    vendor: str
    current_debit: float = 0.0
    current_credit: float = 0.0
    previous_debit: float = 0.0
    previous_credit: float = 0.0
    current_amount: float = 0.0
    previous_amount: float = 0.0

    @property
    def change(self) -> float:
        return self.current_amount - self.previous_amount

    @property
    def change_percent(self) -> float:
        """Relative change; a vendor new this period counts as +100%."""
        if self.previous_amount:
            return self.change / self.previous_amount * 100
        return 100.0 if self.current_amount > 0 else 0.0

    def to_dict(self) -> Dict:
        return {
            "vendor": self.vendor,
            "current_debit": self.current_debit,
            "current_credit": self.current_credit,
            "previous_debit": self.previous_debit,
            "previous_credit": self.previous_credit,
            "current_amount": self.current_amount,
            "previous_amount": self.previous_amount,
            "change": self.change,
            "change_percent": round(self.change_percent, 1),
        }


@dataclass
class PeriodComparison:
    account_name: str
    previous_account_name: Optional[str]
    amount_filter: AmountFilter
    vendors: List[VendorChange]

    @property
    def current_total(self) -> float:
        return sum(v.current_amount for v in self.vendors)

    @property
    def previous_total(self) -> float:
        return sum(v.previous_amount for v in self.vendors)

    def to_dict(self) -> Dict:
        return {
            "account_name": self.account_name,
            "previous_account_name": self.previous_account_name,
            "amount_filter": self.amount_filter.value,
            "current_total": self.current_total,
            "previous_total": self.previous_total,
            "vendors": [v.to_dict() for v in self.vendors],
        }


def strip_account_prefix(name: str) -> str:
    """'101.외상매출금' -> '외상매출금'."""
    return _NUMERIC_PREFIX_RE.sub("", (name or "").strip())


def match_previous_account(account_name: str, previous_accounts: Iterable[str]) -> Optional[str]:
    """
    Prior-period account for a current account name.

    Exact name first, then the name without its numeric prefix on both sides.
    """
    candidates = list(previous_accounts)
    if account_name in candidates:
        return account_name
    key = strip_account_prefix(account_name)
    for candidate in candidates:
        if strip_account_prefix(candidate) == key:
            return candidate
    return None


def _filtered_amount(debit: float, credit: float, amount_filter: AmountFilter) -> float:
    if amount_filter == AmountFilter.DEBIT:
        return debit
    if amount_filter == AmountFilter.CREDIT:
        return credit
    return debit + credit


def compare_vendors(
    current: Sequence[Transaction],
    previous: Sequence[Transaction],
    account_name: str,
    amount_filter: AmountFilter = AmountFilter.ALL
) -> PeriodComparison:
    """
    Vendor-level change of one account between two periods.

    Args:
        current: Current-period lines (all accounts)
        previous: Prior-period lines (all accounts)
        account_name: Current-period account to compare
        amount_filter: Compare debits, credits or both summed

    Returns:
        PeriodComparison with vendors sorted by absolute percent change,
        largest first. Vendors with no amount in either period are left out.
    """
    amount_filter = AmountFilter(amount_filter)
    previous_name = match_previous_account(
        account_name, dict.fromkeys(t.account_name for t in previous)
    )
    if previous_name is None:
        logger.warning(f"No prior-period account matches '{account_name}'")

    vendors: Dict[str, VendorChange] = {}

    def entry(t: Transaction) -> VendorChange:
        name = (t.vendor or "").strip() or _UNKNOWN_VENDOR
        return vendors.setdefault(name, VendorChange(name))

    for t in current:
        if t.account_name == account_name:
            change = entry(t)
            change.current_debit += t.debit
            change.current_credit += t.credit
    if previous_name is not None:
        for t in previous:
            if t.account_name == previous_name:
                change = entry(t)
                change.previous_debit += t.debit
                change.previous_credit += t.credit

    rows = []
    for change in vendors.values():
        change.current_amount = _filtered_amount(change.current_debit, change.current_credit, amount_filter)
        change.previous_amount = _filtered_amount(change.previous_debit, change.previous_credit, amount_filter)
        if change.current_amount == 0 and change.previous_amount == 0:
            continue
        rows.append(change)
    rows.sort(key=lambda v: abs(v.change_percent), reverse=True)

    logger.info(
        f"Period comparison of '{account_name}' against '{previous_name}': {len(rows)} vendors"
    )
    return PeriodComparison(account_name, previous_name, amount_filter, rows)


def compare_account_totals(
    current: Iterable[Transaction],
    previous: Iterable[Transaction]
) -> List[Dict]:
    """
    Debit and credit totals per account in both periods.

    Current accounts are matched to prior ones the way compare_vendors does;
    prior accounts with no current counterpart are listed with zero current
    totals.
    """
    def totals(lines: Iterable[Transaction]) -> Dict[str, List[float]]:
        result: Dict[str, List[float]] = {}
        for t in lines:
            pair = result.setdefault(t.account_name, [0.0, 0.0])
            pair[0] += t.debit
            pair[1] += t.credit
        return result

    now = totals(current)
    before = totals(previous)
    used = set()
    rows = []
    for name, (debit, credit) in now.items():
        prior = match_previous_account(name, [n for n in before if n not in used])
        if prior is not None:
            used.add(prior)
        prev_debit, prev_credit = before.get(prior, [0.0, 0.0]) if prior else (0.0, 0.0)
        rows.append({
            "account_name": name,
            "previous_account_name": prior,
            "current_debit": debit,
            "current_credit": credit,
            "previous_debit": prev_debit,
            "previous_credit": prev_credit,
            "change": (debit + credit) - (prev_debit + prev_credit),
        })
    for name, (prev_debit, prev_credit) in before.items():
        if name in used:
            continue
        rows.append({
            "account_name": name,
            "previous_account_name": name,
            "current_debit": 0.0,
            "current_credit": 0.0,
            "previous_debit": prev_debit,
            "previous_credit": prev_credit,
            "change": -(prev_debit + prev_credit),
        })
    return rows
