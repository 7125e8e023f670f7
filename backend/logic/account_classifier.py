# backend/logic/account_classifier.py
"""
Account Classifier

Keyword-based classification of Korean account names into the five
accounting element types, plus the account-group helpers used by the
monthly summaries (SG&A, manufacturing cost, sales, logistics).

The element type decides which side of an entry carries the "natural"
amount: assets and expenses grow on the debit side, liabilities, equity
and revenue on the credit side.
"""

import re
from enum import Enum
from typing import Optional

from .parse_utils import is_empty


class AccountType(str, Enum):
    ASSET = "asset"
    EXPENSE = "expense"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    UNKNOWN = "unknown"


# Checked in this order; the first family with a hit wins, so 매출채권 is an
# asset even though 매출 alone means revenue.
ACCOUNT_TYPE_KEYWORDS = (
    (AccountType.ASSET, [
        "자산", "현금", "예금", "매출채권", "외상매출금", "외상매출", "선급금", "선급비용",
        "재고자산", "재고", "유형자산", "무형자산", "투자자산", "당좌자산", "유동자산", "비유동자산",
        "매입채권", "외상매입금", "미수금", "미수수익", "선수금", "선수수익", "기타자산",
    ]),
    (AccountType.EXPENSE, [
        "비용", "원가", "매출원가", "판매비", "관리비", "영업비용", "판관비", "판매관리비",
        "급여", "임금", "수당", "복리후생비", "임차료", "임대료", "광고선전비", "운반비", "보험료",
        "세금", "세금과세금", "감가상각비", "충당금", "손실", "기타비용", "차감", "감소",
    ]),
    (AccountType.LIABILITY, [
        "부채", "차입금", "차입", "대출", "사채", "채권", "매입채무", "외상매입금",
        "미지급금", "미지급비용", "선수금", "선수수익", "예수금", "유동부채", "비유동부채",
        "단기차입금", "장기차입금", "기타부채",
    ]),
    (AccountType.EQUITY, [
        "자본", "자본금", "주식", "자본잉여금", "이익잉여금", "자본변동", "기타포괄손익",
        "자기자본", "납입자본", "이익", "손익",
    ]),
    (AccountType.REVENUE, [
        "매출", "수익", "영업수익", "영업외수익", "기타수익", "이자수익", "배당수익",
        "임대수익", "수수료수익", "기타영업수익", "증가", "발생",
    ]),
)

DEBIT_NORMAL_TYPES = {AccountType.ASSET, AccountType.EXPENSE}
CREDIT_NORMAL_TYPES = {AccountType.LIABILITY, AccountType.EQUITY, AccountType.REVENUE}


def classify_account(account_name: Optional[str]) -> AccountType:
    """
    Classify an account name by keyword presence.

    >>> classify_account("보통예금")
    <AccountType.ASSET: 'asset'>
    >>> classify_account("상품매출")
    <AccountType.REVENUE: 'revenue'>
    """
    if is_empty(account_name):
        return AccountType.UNKNOWN
    normalized = re.sub(r"\s+", "", str(account_name)).lower()
    for account_type, keywords in ACCOUNT_TYPE_KEYWORDS:
        if any(k in normalized for k in keywords):
            return account_type
    return AccountType.UNKNOWN


def natural_amount(debit: float, credit: float, account_type: Optional[AccountType]) -> float:
    """
    Amount of an entry seen from its account's normal side.

    Debit-normal accounts use the debit amount (credit when debit is zero),
    credit-normal accounts the reverse. Unknown types add both sides.
    """
    debit = abs(debit or 0.0)
    credit = abs(credit or 0.0)
    if account_type in DEBIT_NORMAL_TYPES:
        return debit if debit else credit
    if account_type in CREDIT_NORMAL_TYPES:
        return credit if credit else debit
    return debit + credit


# ==============================================================================
# ACCOUNT GROUPS (chart-of-accounts code conventions)
# ==============================================================================

# (판) marker or an 8xx account code
_SGA_CODE_RE = re.compile(r"[\(\[]8\d{2,}[\)\]]")
# (제) marker or a 5xx account code
_MANUFACTURING_CODE_RE = re.compile(r"[\(\[]5\d{2,}[\)\]]")
# 4xx account code
_SALES_CODE_RE = re.compile(r"[\(\[]4\d{2,}[\)\]]")

LOGISTICS_KEYWORDS = ("운반", "운임", "택배", "선적", "보관")


def _has_code_prefix(name: str, digit: str) -> bool:
    return (
        f"({digit}" in name
        or f"[{digit}" in name
        or re.match(rf"^{digit}\d{{2}}", name) is not None
    )


def is_sga_account(name: str) -> bool:
    n = (name or "").strip()
    return "(판)" in n or _has_code_prefix(n, "8") or bool(_SGA_CODE_RE.search(n))


def is_manufacturing_account(name: str) -> bool:
    n = (name or "").strip()
    return "(제)" in n or _has_code_prefix(n, "5") or bool(_MANUFACTURING_CODE_RE.search(n))


def is_sales_account(name: str) -> bool:
    n = (name or "").strip()
    return (
        "매출" in n
        or "수익" in n
        or _has_code_prefix(n, "4")
        or bool(_SALES_CODE_RE.search(n))
    )


def is_logistics_account(name: str) -> bool:
    n = (name or "").lower()
    return any(k in n for k in LOGISTICS_KEYWORDS)
