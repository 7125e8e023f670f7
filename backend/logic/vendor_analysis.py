# backend/logic/vendor_analysis.py
"""
Vendor (거래처) Analysis

Three counterparty tests on ledger lines:

1. Dual counterparties: vendors that appear in both of two chosen accounts,
   e.g. the same company on 외상매출금 and 외상매입금, a sign of offsetting
   or round-tripping.
2. Sales/purchase vendors: vendors booked both on revenue accounts and on
   purchase/cost accounts (code 4xxxx, 5xxxx or 8xxxx in brackets).
3. Near-duplicate vendors: names that differ only by legal form, spacing or
   a typo ("(주)한빛상사" and "한빛상사 주식회사"), which split one
   counterparty's totals or hide a duplicate master record.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from rapidfuzz import fuzz

from .constants import (
    PURCHASE_ACCOUNT_CODE_PREFIXES,
    SALES_ACCOUNT_SUFFIXES,
    VENDOR_LEGAL_FORMS,
    VENDOR_SIMILARITY_THRESHOLD,
)
from .journal import Transaction
from .logging_utils import get_logger

logger = get_logger(__name__)

_BRACKETED_CODE_RE = re.compile(r"[(（]\s*([0-9]+)\s*[)）]")
_BRACKET_START_RE = re.compile(r"[(（]")
_CARRY_FORWARD = "전기이월"


def counterparty_name(t: Transaction) -> str:
    """Vendor of a line, falling back to its description."""
    return (t.vendor or t.description or "").strip()


def normalize_vendor_name(name: str) -> str:
    """Lowercase, legal forms such as (주) and 주식회사 removed, no whitespace."""
    text = (name or "").lower()
    for form in VENDOR_LEGAL_FORMS:
        text = text.replace(form, "")
    return re.sub(r"\s+", "", text)


# ==============================================================================
# DUAL COUNTERPARTIES
# ==============================================================================

@dataclass
class DualCounterparty:
    vendor: str
    debit_account_amount: float = 0.0
    debit_account_count: int = 0
    credit_account_amount: float = 0.0
    credit_account_count: int = 0

    def to_dict(self) -> Dict:
        return {
            "vendor": self.vendor,
            "debit_account_amount": self.debit_account_amount,
            "debit_account_count": self.debit_account_count,
            "credit_account_amount": self.credit_account_amount,
            "credit_account_count": self.credit_account_count,
        }


def dual_counterparties(
    transactions: Iterable[Transaction],
    debit_account: str,
    credit_account: str
) -> List[DualCounterparty]:
    """
    Vendors appearing in both accounts, with each account's turnover.

    Turnover is debit plus credit of the vendor's lines in that account.

    Returns:
        List sorted by vendor name
    """
    debit_side: Dict[str, List[Transaction]] = {}
    credit_side: Dict[str, List[Transaction]] = {}
    for t in transactions:
        name = counterparty_name(t)
        if not name:
            continue
        if t.account_name == debit_account:
            debit_side.setdefault(name, []).append(t)
        elif t.account_name == credit_account:
            credit_side.setdefault(name, []).append(t)

    results = []
    for name in sorted(set(debit_side) & set(credit_side)):
        entry = DualCounterparty(vendor=name)
        for t in debit_side[name]:
            entry.debit_account_amount += t.debit + t.credit
            entry.debit_account_count += 1
        for t in credit_side[name]:
            entry.credit_account_amount += t.debit + t.credit
            entry.credit_account_count += 1
        results.append(entry)

    logger.info(
        f"Dual counterparties of '{debit_account}' and '{credit_account}': {len(results)}"
    )
    return results


# ==============================================================================
# SALES / PURCHASE VENDORS
# ==============================================================================

def is_sales_side_account(name: str) -> bool:
    """Revenue account by name ending: 제품매출, 공사수입, 용역매출 (41110), ..."""
    base = _BRACKET_START_RE.split(name or "")[0]
    base = re.sub(r"\s+", "", base)
    return bool(base) and base.endswith(SALES_ACCOUNT_SUFFIXES)


def is_purchase_side_account(name: str) -> bool:
    """Account whose bracketed code starts with 4, 5 or 8: 원재료 (45100)."""
    match = _BRACKETED_CODE_RE.search(name or "")
    return bool(match) and match.group(1).startswith(PURCHASE_ACCOUNT_CODE_PREFIXES)


@dataclass
class SalesPurchaseVendor:
    vendor: str
    sales_amount: float = 0.0
    sales_count: int = 0
    purchase_amount: float = 0.0
    purchase_count: int = 0
    sales_accounts: Dict[str, float] = field(default_factory=dict)
    purchase_accounts: Dict[str, float] = field(default_factory=dict)

    @property
    def net_amount(self) -> float:
        return self.sales_amount - self.purchase_amount

    def to_dict(self) -> Dict:
        return {
            "vendor": self.vendor,
            "sales_amount": self.sales_amount,
            "sales_count": self.sales_count,
            "purchase_amount": self.purchase_amount,
            "purchase_count": self.purchase_count,
            "net_amount": self.net_amount,
            "sales_accounts": dict(self.sales_accounts),
            "purchase_accounts": dict(self.purchase_accounts),
        }


def sales_purchase_vendors(transactions: Iterable[Transaction]) -> List[SalesPurchaseVendor]:
    """
    Vendors with credits on revenue accounts and debits on purchase accounts.

    Carry-forward lines (전기이월) are ignored; they are last period's balances.

    Returns:
        List sorted by sales plus purchase amount, largest first
    """
    vendors: Dict[str, SalesPurchaseVendor] = {}
    for t in transactions:
        name = (t.vendor or "").strip()
        if not name or _CARRY_FORWARD in "".join(t.description.split()):
            continue

        if is_sales_side_account(t.account_name):
            if not t.credit:
                continue
            entry = vendors.setdefault(name, SalesPurchaseVendor(name))
            entry.sales_amount += t.credit
            entry.sales_count += 1
            entry.sales_accounts[t.account_name] = entry.sales_accounts.get(t.account_name, 0.0) + t.credit
        elif is_purchase_side_account(t.account_name) and t.debit:
            entry = vendors.setdefault(name, SalesPurchaseVendor(name))
            entry.purchase_amount += t.debit
            entry.purchase_count += 1
            entry.purchase_accounts[t.account_name] = (
                entry.purchase_accounts.get(t.account_name, 0.0) + t.debit
            )

    both = [v for v in vendors.values() if v.sales_amount and v.purchase_amount]
    both.sort(key=lambda v: v.sales_amount + v.purchase_amount, reverse=True)
    logger.info(f"Vendors on both sales and purchase accounts: {len(both)}")
    return both


# ==============================================================================
# NEAR-DUPLICATE VENDORS
# ==============================================================================

@dataclass
class VendorCluster:
    """Spellings that most likely name one counterparty."""
    canonical: str
    variants: Dict[str, int] = field(default_factory=dict)  # spelling -> line count
    amount: float = 0.0
    score: float = 100.0  # lowest similarity to the canonical spelling

    def to_dict(self) -> Dict:
        return {
            "canonical": self.canonical,
            "variants": dict(self.variants),
            "amount": self.amount,
            "score": self.score,
        }


def find_similar_vendors(
    transactions: Iterable[Transaction],
    threshold: Optional[int] = None
) -> List[VendorCluster]:
    """
    Group vendor spellings that normalize to the same or a near-identical name.

    The most frequent spelling is the canonical one. Names are compared with
    rapidfuzz fuzz.ratio after normalize_vendor_name.

    Args:
        transactions: Ledger lines
        threshold: Minimum similarity, 0-100 (default 90)

    Returns:
        Clusters with at least two spellings, largest amount first
    """
    threshold = VENDOR_SIMILARITY_THRESHOLD if threshold is None else threshold

    counts: Dict[str, int] = {}
    amounts: Dict[str, float] = {}
    for t in transactions:
        name = (t.vendor or "").strip()
        if not name:
            continue
        counts[name] = counts.get(name, 0) + 1
        amounts[name] = amounts.get(name, 0.0) + t.amount

    clusters: List[VendorCluster] = []
    keys: List[str] = []
    for name in sorted(counts, key=lambda n: (-counts[n], n)):
        key = normalize_vendor_name(name)
        if not key:
            continue
        for cluster, cluster_key in zip(clusters, keys):
            score = 100.0 if key == cluster_key else fuzz.ratio(key, cluster_key)
            if score >= threshold:
                cluster.variants[name] = counts[name]
                cluster.amount += amounts[name]
                cluster.score = min(cluster.score, round(score, 1))
                break
        else:
            clusters.append(VendorCluster(name, {name: counts[name]}, amounts[name]))
            keys.append(key)

    duplicates = [c for c in clusters if len(c.variants) > 1]
    duplicates.sort(key=lambda c: c.amount, reverse=True)
    logger.info(f"Near-duplicate vendor groups: {len(duplicates)} (threshold {threshold})")
    return duplicates
