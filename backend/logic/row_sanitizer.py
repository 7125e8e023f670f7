# backend/logic/row_sanitizer.py
"""
Ledger Row Sanitizer

Removes rows that are not transactions and normalizes date cells.

Dropped rows:
- monthly / cumulative totals (월계, 누계) and bracketed carry-forward
  banners such as "[ 전기이월 ]"
- header rows repeated on later printed pages
- blank rows (every cell empty, "0" or "-")
- rows whose debit, credit and amount columns are all zero (only when
  amount columns are given)

Running the sanitizer on its own output changes nothing.
"""

import re
from typing import Dict, Iterable, Mapping, Optional, Sequence

import pandas as pd

from .column_detector import normalize_header
from .constants import (
    SUMMARY_ROW_MARKERS,
    BRACKETED_SUMMARY_MARKERS,
    BLANK_CELL_TOKENS,
    DUPLICATE_DATE_HEADER_LITERALS,
)
from .logging_utils import get_logger
from .parse_utils import clean_amount, is_empty, parse_date

logger = get_logger(__name__)

_BRACKETS_RE = re.compile(r"[\[\]()<>{}]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_cell_text(v) -> str:
    """Cell text with whitespace and brackets removed, lowercased."""
    if is_empty(v):
        return ""
    return _BRACKETS_RE.sub("", _WHITESPACE_RE.sub("", str(v))).lower()


def is_summary_row(values: Iterable) -> bool:
    """True when any cell marks a monthly/cumulative total or carry-forward banner."""
    for v in values:
        if is_empty(v) or not isinstance(v, str):
            continue
        compact = _WHITESPACE_RE.sub("", v)
        if any(marker in compact for marker in BRACKETED_SUMMARY_MARKERS):
            return True
        text = normalize_cell_text(v)
        if any(marker in text for marker in SUMMARY_ROW_MARKERS):
            return True
    return False


def is_duplicate_header_row(row: Mapping, date_column: Optional[str]) -> bool:
    """True when the date cell repeats the date header itself."""
    if not date_column:
        return False
    value = row.get(date_column)
    if is_empty(value) or not isinstance(value, str):
        return False
    text = normalize_header(value)
    literals = {normalize_header(date_column)}
    literals.update(normalize_header(s) for s in DUPLICATE_DATE_HEADER_LITERALS)
    return text in literals


def _is_blank_cell(v) -> bool:
    if is_empty(v):
        return True
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return v == 0
    return str(v).strip() in BLANK_CELL_TOKENS


def is_blank_row(values: Iterable) -> bool:
    """True when no cell holds anything but "", "0" or "-"."""
    return all(_is_blank_cell(v) for v in values)


def is_zero_amount_row(row: Mapping, amount_columns: Sequence[str]) -> bool:
    """True when every given amount column is zero (or blank)."""
    if not amount_columns:
        return False
    return all(clean_amount(row.get(c)) == 0 for c in amount_columns)


def sanitize_rows(
    rows: pd.DataFrame,
    date_column: Optional[str] = None,
    amount_columns: Sequence[str] = (),
    report: Optional[Dict[str, int]] = None
) -> pd.DataFrame:
    """
    Drop non-transaction rows and parse date cells.

    Args:
        rows: Header-keyed rows
        date_column: Resolved date column (enables duplicate-header removal
            and date parsing)
        amount_columns: Resolved debit/credit/amount columns; rows where all
            of them are zero are dropped
        report: Optional dict that receives drop counts per reason

    Returns:
        New DataFrame with the surviving rows; the index is preserved
    """
    if rows is None or rows.empty:
        return pd.DataFrame() if rows is None else rows.copy()

    counts = {"summary": 0, "duplicate_header": 0, "blank": 0, "zero_amount": 0}
    kept_records = []
    kept_index = []

    for idx, record in zip(rows.index, rows.to_dict("records")):
        values = list(record.values())
        if is_summary_row(values):
            counts["summary"] += 1
            continue
        if is_duplicate_header_row(record, date_column):
            counts["duplicate_header"] += 1
            continue
        if is_blank_row(values):
            counts["blank"] += 1
            continue
        if is_zero_amount_row(record, amount_columns):
            counts["zero_amount"] += 1
            continue

        if date_column and date_column in record:
            parsed = parse_date(record[date_column])
            if parsed is not None:
                record[date_column] = parsed

        kept_records.append(record)
        kept_index.append(idx)

    dropped = sum(counts.values())
    if dropped:
        logger.debug(f"Dropped {dropped} non-transaction rows: {counts}")
    if report is not None:
        for key, value in counts.items():
            report[f"dropped_{key}"] = report.get(f"dropped_{key}", 0) + value

    return pd.DataFrame(kept_records, index=kept_index, columns=rows.columns, dtype=object)


def exclude_summary_rows(rows: pd.DataFrame) -> pd.DataFrame:
    """Only the summary-row filter; used before statistics."""
    if rows is None or rows.empty:
        return pd.DataFrame() if rows is None else rows
    mask = [not is_summary_row(values) for values in rows.itertuples(index=False, name=None)]
    return rows[mask]
