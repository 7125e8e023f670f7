# backend/logic/journal.py
"""
Journal Conversion

Converts sanitized, header-keyed ledger rows into canonical Transaction
objects that the relationship, sampling and AI-summary modules consume.
"""

import numbers
from dataclasses import dataclass, asdict
from typing import Dict, Iterable, List, Optional

import pandas as pd

from .column_detector import SemanticColumnMap, extract_row_amounts
from .logging_utils import get_logger
from .parse_utils import cell_text, to_iso_date

logger = get_logger(__name__)


@dataclass(eq=False)
class Transaction:
    """
    One canonical ledger line.

    Compared by identity: two lines with identical fields are still two
    transactions, which is what sampling disjointness relies on.
    """
    account_name: str
    date: str  # YYYY-MM-DD, "" when the source date could not be parsed
    debit: float = 0.0
    credit: float = 0.0
    description: str = ""
    vendor: str = ""
    entry_number: Optional[str] = None
    row_id: Optional[int] = None

    @property
    def amount(self) -> float:
        """Larger of the two sides."""
        return max(self.debit, self.credit)

    @property
    def month(self) -> str:
        """YYYY-MM, or "" for undated lines."""
        return self.date[:7] if self.date else ""

    def to_dict(self) -> Dict:
        return asdict(self)


def rows_to_transactions(
    rows: pd.DataFrame,
    columns: SemanticColumnMap,
    default_account: str = ""
) -> List[Transaction]:
    """
    Convert sanitized rows into transactions.

    The account name comes from the account column; without one, the
    default account (usually the sheet name) is used, and failing that the
    description. Lines without an account name or without any amount are
    skipped.

    Args:
        rows: Sanitized header-keyed rows
        columns: Resolved columns of the sheet
        default_account: Account name for sheets without an account column

    Returns:
        List of Transaction in row order
    """
    if rows is None or rows.empty:
        return []

    transactions: List[Transaction] = []
    skipped = 0

    for idx, record in zip(rows.index, rows.to_dict("records")):
        if columns.account:
            account = cell_text(record.get(columns.account))
        else:
            account = default_account or cell_text(record.get(columns.description))
        if not account:
            skipped += 1
            continue

        debit, credit = extract_row_amounts(record, columns)
        if debit == 0 and credit == 0:
            skipped += 1
            continue

        entry_number = cell_text(record.get(columns.entry_number)) if columns.entry_number else ""

        transactions.append(Transaction(
            account_name=account,
            date=to_iso_date(record.get(columns.date)) if columns.date else "",
            debit=debit,
            credit=credit,
            description=cell_text(record.get(columns.description)) if columns.description else "",
            vendor=cell_text(record.get(columns.vendor)) if columns.vendor else "",
            entry_number=entry_number or None,
            row_id=int(idx) if isinstance(idx, numbers.Integral) else None,
        ))

    if skipped:
        logger.debug(f"Skipped {skipped} rows without account or amount")
    return transactions


def tables_to_transactions(tables: Dict) -> List[Transaction]:
    """
    Transactions from every loaded sheet, in workbook order.

    Args:
        tables: Sheet name -> LedgerTable (see sheet_loader.load_ledger_workbook)
    """
    transactions: List[Transaction] = []
    for name, table in tables.items():
        if table.is_empty:
            continue
        transactions.extend(rows_to_transactions(table.rows, table.columns, default_account=str(name)))
    logger.info(f"Converted {len(transactions)} transactions from {len(tables)} sheets")
    return transactions


def account_names(transactions: Iterable[Transaction]) -> List[str]:
    """Distinct account names in first-seen order."""
    return list(dict.fromkeys(t.account_name for t in transactions))


def filter_by_account(transactions: Iterable[Transaction], account_name: str) -> List[Transaction]:
    return [t for t in transactions if t.account_name == account_name]
