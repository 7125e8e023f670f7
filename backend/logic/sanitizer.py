# backend/logic/sanitizer.py
"""
Ledger Privacy Sanitizer

Privacy controls applied before ledger data leaves the core:

1. Bank account number masking. Rows of deposit and borrowing accounts
   often carry the bank account number in the vendor or description text.
   Those numbers are masked (first and last four digits kept) as soon as a
   sheet is loaded.
2. Pseudonymisation. Vendor names and descriptions are swapped for stable
   placeholders (거래처A, 적요1, ...) before being sent to an external AI
   service, and swapped back in the returned analysis text.

SECURITY: every AI-bound payload must be built from masked rows.
"""

import re
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

import pandas as pd

from .constants import MASK_MIN_DIGITS, MASK_MAX_DIGITS, MASK_VISIBLE_DIGITS
from .logging_utils import get_logger
from .parse_utils import is_empty

logger = get_logger(__name__)

# ==============================================================================
# ACCOUNT NUMBER MASKING
# ==============================================================================

# 1234567890, 123-456-789012, 1234 5678 9012, 1234-56-789012 ...
_ACCOUNT_NUMBER_PATTERN = re.compile(r"(\d{3,4}[-.\s]?\d{2,4}[-.\s]?\d{4,8})")
_SEPARATOR_PATTERN = re.compile(r"[-.\s]")

DEPOSIT_ACCOUNT_KEYWORDS = [
    "예금", "보통예금", "당좌예금", "정기예금", "적립예금", "저축예금", "수신", "자금",
]
LOAN_ACCOUNT_KEYWORDS = [
    "차입금", "차입", "단기차입금", "장기차입금", "대출", "사채", "차입대출",
]


def _mask_match(match: re.Match) -> str:
    text = match.group(0)
    digits = _SEPARATOR_PATTERN.sub("", text)

    if not MASK_MIN_DIGITS <= len(digits) <= MASK_MAX_DIGITS:
        return text

    front = digits[:MASK_VISIBLE_DIGITS]
    back = digits[-MASK_VISIBLE_DIGITS:]
    stars = "*" * (len(digits) - 2 * MASK_VISIBLE_DIGITS)

    if "-" in text:
        parts = _SEPARATOR_PATTERN.split(text)
        first, last = parts[0], parts[-1]
        if len(parts) >= 2 and len(first) <= 4 and len(last) <= 4:
            return f"{first}{'-' * (len(parts) - 2)}{stars}{last}"

    return f"{front}{stars}{back}"


def mask_account_number(text: str) -> str:
    """
    Mask bank-account-like digit runs in text.

    Only runs of 10-16 digits (separators ignored) are masked; shorter
    numbers such as dates or voucher numbers are left alone.

    Examples:
        "신한 110123456789" -> "신한 1101****6789"
    """
    if not text or not isinstance(text, str):
        return text
    return _ACCOUNT_NUMBER_PATTERN.sub(_mask_match, text)


def contains_account_number(text: str) -> bool:
    """True when text holds a digit run that mask_account_number would change."""
    if not text or not isinstance(text, str):
        return False
    return mask_account_number(text) != text


def is_deposit_or_loan_account(account_name) -> bool:
    """True for deposit (예금, 자금 ...) and borrowing (차입금, 사채 ...) accounts."""
    if is_empty(account_name) or not isinstance(account_name, str):
        return False
    normalized = re.sub(r"\s+", "", account_name).lower()
    return any(k in normalized for k in DEPOSIT_ACCOUNT_KEYWORDS + LOAN_ACCOUNT_KEYWORDS)


def mask_account_numbers_in_rows(
    rows: pd.DataFrame,
    account_column: Optional[str] = None,
    fallback_account: str = ""
) -> pd.DataFrame:
    """
    Mask account numbers in the text cells of deposit/loan account rows.

    Args:
        rows: Header-keyed rows
        account_column: Resolved account-name column
        fallback_account: Account name to use when there is no account
            column (typically the sheet name)

    Returns:
        New DataFrame; other rows and non-text cells are untouched
    """
    if rows is None or rows.empty:
        return rows

    masked = rows.copy()
    masked_cells = 0

    for idx in masked.index:
        if account_column and account_column in masked.columns:
            account_name = masked.at[idx, account_column]
        else:
            account_name = fallback_account
        if not is_deposit_or_loan_account(account_name):
            continue

        for column in masked.columns:
            if column == account_column:
                continue
            value = masked.at[idx, column]
            if isinstance(value, str):
                new_value = mask_account_number(value)
                if new_value != value:
                    masked.at[idx, column] = new_value
                    masked_cells += 1

    if masked_cells:
        logger.info(f"Masked account numbers in {masked_cells} cells")
    return masked


# ==============================================================================
# PSEUDONYMISATION
# ==============================================================================

def _letter_code(n: int) -> str:
    """1 -> A, 26 -> Z, 27 -> AA"""
    letters = ""
    while n > 0:
        n, rem = divmod(n - 1, 26)
        letters = chr(65 + rem) + letters
    return letters


class Anonymizer:
    """
    Stable two-way mapping between real vendor/description text and
    placeholders.

    One instance covers one analysis: the same vendor always maps to the
    same placeholder, and placeholders in AI responses can be restored.
    """

    VENDOR_PREFIX = "거래처"
    DESCRIPTION_PREFIX = "적요"

    def __init__(self):
        self._vendors: Dict[str, str] = {}
        self._descriptions: Dict[str, str] = {}

    def anonymize_vendor(self, name) -> str:
        if is_empty(name):
            return ""
        key = str(name).strip()
        if key not in self._vendors:
            self._vendors[key] = f"{self.VENDOR_PREFIX}{_letter_code(len(self._vendors) + 1)}"
        return self._vendors[key]

    def anonymize_description(self, text) -> str:
        if is_empty(text):
            return ""
        key = str(text).strip()
        if key not in self._descriptions:
            self._descriptions[key] = f"{self.DESCRIPTION_PREFIX}{len(self._descriptions) + 1}"
        return self._descriptions[key]

    def deanonymize_vendor(self, placeholder: str) -> str:
        return self._reverse(self._vendors, placeholder)

    def deanonymize_description(self, placeholder: str) -> str:
        return self._reverse(self._descriptions, placeholder)

    @staticmethod
    def _reverse(mapping: Dict[str, str], placeholder: str) -> str:
        if not placeholder or not placeholder.strip():
            return ""
        wanted = placeholder.strip()
        for real, pseudo in mapping.items():
            if pseudo == wanted:
                return real
        # not a placeholder we issued
        return placeholder

    def anonymize_transactions(self, transactions: Iterable) -> List:
        """Copies of the transactions with vendor and description replaced."""
        return [
            replace(
                t,
                vendor=self.anonymize_vendor(t.vendor) if t.vendor else t.vendor,
                description=self.anonymize_description(t.description) if t.description else t.description,
            )
            for t in transactions
        ]

    def deanonymize_text(self, text: str) -> str:
        """Restore every issued placeholder found in free text."""
        if not text:
            return text
        pairs = list(self._vendors.items()) + list(self._descriptions.items())
        # longest first so 적요12 is not read as 적요1 + "2"
        pairs.sort(key=lambda p: len(p[1]), reverse=True)
        for real, pseudo in pairs:
            text = re.sub(re.escape(pseudo) + r"(?![0-9A-Za-z])", lambda _m, r=real: r, text)
        return text

    @property
    def mappings(self) -> Dict[str, Dict[str, str]]:
        return {"vendors": dict(self._vendors), "descriptions": dict(self._descriptions)}

    def reset(self) -> None:
        self._vendors.clear()
        self._descriptions.clear()
