# backend/logic/parse_utils.py
"""
Parsing Utilities Module

Handles safe parsing of numbers and dates from ledger export cells.
Spreadsheet exports mix native dates, Excel serial numbers and partial
"M/D" strings in the same column, so every parser here returns None (or a
neutral default) instead of raising.
"""

import re
import numpy as np
import pandas as pd
from datetime import datetime, date
from typing import Optional

from .logging_utils import get_logger
from .constants import (
    EXCEL_SERIAL_DATE_BASE,
    MIN_EXCEL_SERIAL_DATE,
    MAX_EXCEL_SERIAL_DATE,
)

logger = get_logger(__name__)

_MONTH_DAY_RE = re.compile(r"^(\d{1,2})[-/](\d{1,2})$")
_FULL_DATE_RE = re.compile(r"^(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})(?:[ T].*)?$")
_CURRENCY_RE = re.compile(r"[$,€£¥₩\s]")


def is_empty(v) -> bool:
    """True for None, NaN/NaT and whitespace-only strings."""
    if v is None:
        return True
    if isinstance(v, str):
        return v.strip() == ""
    try:
        return bool(pd.isna(v))
    except (TypeError, ValueError):
        return False


# ==============================================================================
# NUMBER PARSING
# ==============================================================================

def parse_number(v, default: Optional[float] = None) -> Optional[float]:
    """
    Parse a numeric value from various formats.

    Handles:
    - String numbers with commas: "1,234.56" -> 1234.56
    - String numbers with currency: "₩1,234" -> 1234.0
    - Accounting format negatives: "(1,234.56)" -> -1234.56
    - Already numeric values

    Infinities ("inf", "1e999") and NaN are not amounts and give the default.

    Args:
        v: Value to parse
        default: Default value if parsing fails

    Returns:
        Parsed float or default value
    """
    if is_empty(v) or isinstance(v, bool):
        return default

    try:
        if isinstance(v, (int, float, np.integer, np.floating)):
            result = float(v)
        else:
            result = _parse_number_text(str(v))

    except (ValueError, TypeError, AttributeError, OverflowError) as e:
        logger.debug(f"Failed to parse number from '{v}': {e}")
        return default

    if not np.isfinite(result):
        logger.debug(f"Non-finite number '{v}' ignored")
        return default
    return result


def _parse_number_text(s: str) -> float:
    s = s.strip()

    is_negative = False
    if s.startswith("(") and s.endswith(")"):
        is_negative = True
        s = s[1:-1]

    s = _CURRENCY_RE.sub("", s)

    if s.startswith("-"):
        is_negative = not is_negative
        s = s[1:]

    result = float(s)
    return -result if is_negative else result


def clean_amount(v) -> float:
    """
    Parse a ledger amount cell, treating blanks, dashes and junk as zero.

    Ledger exports print "-" or leave the cell blank for the side of the
    entry that carries no amount.
    """
    if isinstance(v, str) and v.strip() in ("", "-", "0"):
        return 0.0
    return parse_number(v, default=0.0)


# ==============================================================================
# DATE PARSING
# ==============================================================================

def _build_date(year: int, month: int, day: int) -> Optional[pd.Timestamp]:
    # datetime rejects 2/30 etc., which is the round-trip check
    try:
        return pd.Timestamp(datetime(year, month, day))
    except ValueError:
        return None


def parse_date(v, today: Optional[date] = None) -> Optional[pd.Timestamp]:
    """
    Parse a ledger date cell.

    Accepts:
    - native dates (datetime, date, pd.Timestamp)
    - "M/D" or "M-D" without a year; the current year is assumed
    - Excel 1900-system serial numbers strictly between 1 and 50000
    - full "YYYY-MM-DD", "YYYY/MM/DD" or "YYYY.MM.DD" strings

    Args:
        v: Cell value
        today: Reference date for year inference (defaults to today)

    Returns:
        pd.Timestamp, or None when the value is not a date
    """
    if is_empty(v) or isinstance(v, bool):
        return None

    if isinstance(v, pd.Timestamp):
        return v
    if isinstance(v, (datetime, date)):
        return pd.Timestamp(v)

    if isinstance(v, (int, float, np.integer, np.floating)):
        if MIN_EXCEL_SERIAL_DATE < v < MAX_EXCEL_SERIAL_DATE:
            return pd.Timestamp(EXCEL_SERIAL_DATE_BASE) + pd.to_timedelta(float(v), unit="D")
        return None

    if not isinstance(v, str):
        return None

    s = v.strip()

    match = _MONTH_DAY_RE.match(s)
    if match:
        year = (today or date.today()).year
        return _build_date(year, int(match.group(1)), int(match.group(2)))

    match = _FULL_DATE_RE.match(s)
    if match:
        return _build_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    return None


def is_date_like(v) -> bool:
    """True when parse_date recognises the value."""
    return parse_date(v) is not None


def to_iso_date(v) -> str:
    """Format a cell as YYYY-MM-DD, or return "" when it is not a date."""
    parsed = parse_date(v)
    if parsed is None:
        return ""
    return parsed.strftime("%Y-%m-%d")


# ==============================================================================
# TEXT
# ==============================================================================

def cell_text(v) -> str:
    """
    Display text for a cell.

    Integral floats lose their ".0" (voucher numbers read from Excel come
    back as 12.0), dates become YYYY-MM-DD and empty cells become "".
    """
    if is_empty(v):
        return ""
    if isinstance(v, (float, np.floating)) and float(v).is_integer():
        return str(int(v))
    if isinstance(v, (datetime, date)):
        return pd.Timestamp(v).strftime("%Y-%m-%d")
    return str(v).strip()
