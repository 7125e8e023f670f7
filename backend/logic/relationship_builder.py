# backend/logic/relationship_builder.py
"""
Account Relationship Builder

Reconstructs debit-account -> credit-account flows from journal lines.

Lines are grouped into vouchers (entry number, else date, else one group
per line). Inside a voucher every debit line is paired with every credit
line of a different account, and the pair's flow is the smaller of the two
amounts. For a balanced one-debit/one-credit voucher that is exact; for
multi-line vouchers it is an approximation that avoids double counting.

Edges are directed: (A, B) and (B, A) accumulate separately.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

import pandas as pd

from .constants import TOP_RELATION_LINKS
from .journal import Transaction
from .logging_utils import get_logger, timed

logger = get_logger(__name__)


@dataclass
class AccountRelation:
    """Accumulated flow from a debited account to a credited account."""
    source_account: str
    target_account: str
    count: int = 0
    amount: float = 0.0

    @property
    def key(self) -> Tuple[str, str]:
        return (self.source_account, self.target_account)

    def to_dict(self) -> Dict:
        return {
            "source": self.source_account,
            "target": self.target_account,
            "count": self.count,
            "amount": self.amount,
        }


@dataclass
class CounterAccountBreakdown:
    """One counter account of the analysed account/side."""
    account_name: str
    voucher_count: int
    amount: float
    percentage: float


@dataclass
class CounterAccountResult:
    """Which accounts sit on the other side of an account's vouchers."""
    account_name: str
    side: str  # "debit" or "credit"
    voucher_count: int = 0
    breakdown: List[CounterAccountBreakdown] = field(default_factory=list)
    transactions: List[Transaction] = field(default_factory=list)

    @property
    def unique_counter_accounts(self) -> int:
        return len(self.breakdown)


# ==============================================================================
# VOUCHER GROUPING
# ==============================================================================

def voucher_key(transaction: Transaction) -> str:
    """
    Grouping key: entry number, else date, else a key unique to the line.

    Lines with neither never merge with unrelated lines.
    """
    if transaction.entry_number:
        return f"entry:{transaction.entry_number}"
    if transaction.date:
        return f"date:{transaction.date}"
    return f"line:{id(transaction)}"


def group_vouchers(transactions: Iterable[Transaction]) -> Dict[str, List[Transaction]]:
    groups: Dict[str, List[Transaction]] = defaultdict(list)
    for t in transactions:
        groups[voucher_key(t)].append(t)
    return dict(groups)


# ==============================================================================
# RELATION GRAPH
# ==============================================================================

@timed
def build_account_relations(
    transactions: Iterable[Transaction]
) -> Dict[Tuple[str, str], AccountRelation]:
    """
    Build the debit -> credit account relation graph.

    Args:
        transactions: Journal lines (lines without an account are ignored)

    Returns:
        (source_account, target_account) -> AccountRelation
    """
    relations: Dict[Tuple[str, str], AccountRelation] = {}
    groups = group_vouchers(transactions)

    for group in groups.values():
        debit_lines = [t for t in group if t.debit > 0 and t.account_name]
        credit_lines = [t for t in group if t.credit > 0 and t.account_name]

        for debit_line in debit_lines:
            for credit_line in credit_lines:
                if debit_line.account_name == credit_line.account_name:
                    continue
                flow = min(debit_line.debit, credit_line.credit)
                if flow <= 0:
                    continue
                key = (debit_line.account_name, credit_line.account_name)
                relation = relations.get(key)
                if relation is None:
                    relation = relations[key] = AccountRelation(*key)
                relation.count += 1
                relation.amount += flow

    logger.info(f"Built {len(relations)} account relations from {len(groups)} voucher groups")
    return relations


def top_relation_links(
    relations: Dict[Tuple[str, str], AccountRelation],
    limit: int = TOP_RELATION_LINKS
) -> Dict[str, List]:
    """
    Heaviest links for a flow (Sankey) diagram.

    Returns:
        {"nodes": [account, ...], "links": [{"source": i, "target": j,
        "value": amount, "count": n}, ...]} with node indices into "nodes"
    """
    ranked = sorted(relations.values(), key=lambda r: r.amount, reverse=True)[:limit]

    nodes: List[str] = []
    index: Dict[str, int] = {}
    for relation in relations.values():
        for name in relation.key:
            if name not in index:
                index[name] = len(nodes)
                nodes.append(name)

    links = [
        {
            "source": index[r.source_account],
            "target": index[r.target_account],
            "value": r.amount,
            "count": r.count,
        }
        for r in ranked
    ]
    return {"nodes": nodes, "links": links}


def relation_matrix(
    relations: Dict[Tuple[str, str], AccountRelation],
    value: str = "amount"
) -> pd.DataFrame:
    """
    Square account x account matrix (rows = debited, columns = credited).

    Accounts are sorted by name; missing pairs are 0.

    Args:
        relations: Output of build_account_relations
        value: "amount" or "count"
    """
    accounts = sorted({name for key in relations for name in key})
    matrix = pd.DataFrame(0.0, index=accounts, columns=accounts)
    for relation in relations.values():
        matrix.at[relation.source_account, relation.target_account] = float(getattr(relation, value))
    matrix.index.name = "debit_account"
    matrix.columns.name = "credit_account"
    return matrix


def relations_to_frame(relations: Dict[Tuple[str, str], AccountRelation]) -> pd.DataFrame:
    """Relations as a DataFrame sorted by amount, largest first."""
    frame = pd.DataFrame(
        [r.to_dict() for r in relations.values()],
        columns=["source", "target", "count", "amount"],
    )
    return frame.sort_values("amount", ascending=False, kind="stable").reset_index(drop=True)


# ==============================================================================
# COUNTER-ACCOUNT ANALYSIS
# ==============================================================================

def counter_account_analysis(
    transactions: List[Transaction],
    account_name: str,
    side: str = "debit"
) -> CounterAccountResult:
    """
    Find the accounts on the opposite side of an account's vouchers.

    For every voucher (by entry number) where account_name appears on the
    given side, the lines on the opposite side, excluding the target lines
    themselves, are the counter accounts. Each counter account is counted
    once per voucher, and its opposite-side amounts are summed.

    Args:
        transactions: All journal lines
        account_name: Account to analyse
        side: "debit" or "credit" (the side account_name is on)

    Returns:
        CounterAccountResult with the breakdown sorted by voucher count
    """
    on_debit = side == "debit"

    def on_target_side(t: Transaction) -> bool:
        return t.account_name == account_name and (t.debit > 0 if on_debit else t.credit > 0)

    targets = [t for t in transactions if on_target_side(t)]
    result = CounterAccountResult(account_name=account_name, side=side, transactions=targets)
    if not targets:
        return result

    entry_numbers = list(dict.fromkeys(
        t.entry_number.strip() for t in targets if t.entry_number and t.entry_number.strip()
    ))
    wanted = set(entry_numbers)
    groups: Dict[str, List[Transaction]] = defaultdict(list)
    for t in transactions:
        key = t.entry_number.strip() if t.entry_number else ""
        if key in wanted:
            groups[key].append(t)

    voucher_hits: Dict[str, int] = defaultdict(int)
    amounts: Dict[str, float] = defaultdict(float)

    for key in entry_numbers:
        group = groups.get(key, [])
        target_ids = {id(t) for t in group if on_target_side(t)}
        if not target_ids:
            continue

        per_voucher: Dict[str, float] = {}
        for t in group:
            if id(t) in target_ids:
                continue
            amount = t.credit if on_debit else t.debit
            if amount > 0:
                per_voucher[t.account_name] = per_voucher.get(t.account_name, 0.0) + amount

        for name, amount in per_voucher.items():
            voucher_hits[name] += 1
            amounts[name] += amount

    total_hits = sum(voucher_hits.values())
    ranked = sorted(voucher_hits.items(), key=lambda item: item[1], reverse=True)
    result.voucher_count = len(entry_numbers)
    result.breakdown = [
        CounterAccountBreakdown(
            account_name=name,
            voucher_count=count,
            amount=amounts[name],
            percentage=round(count / total_hits * 100, 1) if total_hits else 0.0,
        )
        for name, count in ranked
    ]
    return result
