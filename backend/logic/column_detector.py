"""
Ledger Insight - Column Detection Module

Header keyword dictionary and the column resolver that maps semantic roles
(date, debit, credit, account, vendor, description, ...) onto whatever a
ledger export happens to call its columns. Korean and English synonyms are
both recognised.

Resolution order for a role:
1. exact match of the whitespace-stripped, lowercased header
2. substring match (header contains keyword)
3. fuzzy match with rapidfuzz (opt-in, for messy headers)

Debit and credit additionally fall back to the data itself when no header
names them.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from dataclasses import dataclass, asdict

import pandas as pd
from rapidfuzz import fuzz

from .parse_utils import clean_amount, is_empty
from .logging_utils import get_logger

logger = get_logger(__name__)


# ====================================================================================
# HEADER KEYWORD DICTIONARY
# ====================================================================================

HEADER_KEYS: Dict[str, List[str]] = {
    "date": ["일자", "날짜", "거래일", "date"],
    "debit": ["차변", "debit", "차변금액", "debit amount"],
    "credit": ["대변", "credit", "대변금액", "credit amount", "대변액"],
    "account": [
        "계정명", "계정과목", "계정", "account",
        "차변계정과목", "대변계정과목", "데변계정과목",
    ],
    "vendor": ["거래처", "업체", "회사", "vendor", "customer"],
    "description": ["적요", "내용", "비고", "description", "remark", "적요란", "내역"],
    "balance": ["잔액", "balance"],
    "amount": ["금액", "amount", "거래금액", "액수"],
    "entry_number": ["전표번호", "전표", "entry", "entrynumber", "entry_number", "no", "번호"],
    "classification": ["구분", "분류", "classification", "type"],
    "account_code": ["계정코드", "코드", "accountcode", "account_code", "code"],
}

# Generic words that show up on ledger header rows but name no single role
GENERIC_HEADER_WORDS = ["금액", "코드", "내용", "비고"]

# Keyword families counted when deciding whether a row looks like a header
HEADER_ROW_KEYWORDS: List[str] = (
    HEADER_KEYS["description"]
    + HEADER_KEYS["vendor"]
    + HEADER_KEYS["debit"]
    + HEADER_KEYS["credit"]
    + HEADER_KEYS["balance"]
    + GENERIC_HEADER_WORDS
)

# Short keywords that only count on an exact header match
EXACT_ONLY_KEYWORDS = {"no", "번호", "code", "type"}

# Column names that never hold a transaction amount
NON_AMOUNT_WORDS = ["일자", "날짜", "잔액", "balance", "적요", "거래처", "코드", "내용", "전표", "번호"]

BALANCE_WORDS = ["잔액", "balance"]
ACCOUNT_NAME_WORDS = ["계정", "account"]

CLASSIFICATION_DEBIT_VALUES = {"차변", "debit"}
CLASSIFICATION_CREDIT_VALUES = {"대변", "credit"}

FUZZY_MATCH_THRESHOLD = 85

ROLE_ORDER = (
    "date", "debit", "credit", "balance", "account", "vendor",
    "description", "amount", "entry_number", "classification", "account_code",
)


class MatchRule(str, Enum):
    EXACT = "exact"
    SUBSTRING = "substring"
    FUZZY = "fuzzy"


DEFAULT_RULES: Tuple[MatchRule, ...] = (MatchRule.EXACT, MatchRule.SUBSTRING)


@dataclass(frozen=True)
class SemanticColumnMap:
    """Resolved role -> source column name. Unresolved roles are None."""
    date: Optional[str] = None
    debit: Optional[str] = None
    credit: Optional[str] = None
    vendor: Optional[str] = None
    description: Optional[str] = None
    account: Optional[str] = None
    balance: Optional[str] = None
    amount: Optional[str] = None
    entry_number: Optional[str] = None
    classification: Optional[str] = None
    account_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return asdict(self)

    @property
    def amount_columns(self) -> List[str]:
        """Columns that can carry a transaction amount, in resolution order."""
        return [c for c in (self.debit, self.credit, self.amount) if c]

    @property
    def has_amounts(self) -> bool:
        return bool(self.amount_columns)

    def __repr__(self) -> str:
        resolved = ", ".join(f"{k}={v!r}" for k, v in self.to_dict().items() if v)
        return f"SemanticColumnMap({resolved})"


# ====================================================================================
# MATCHING PRIMITIVES
# ====================================================================================

def normalize_header(header) -> str:
    """
    Normalize header text for matching: drop all whitespace and lowercase.

    "차 변 금 액" and "Debit Amount" become "차변금액" and "debitamount".
    """
    if header is None:
        return ""
    return re.sub(r"\s+", "", str(header)).lower()


def _contains_any(header, words: Iterable[str]) -> bool:
    norm = normalize_header(header)
    return any(normalize_header(w) in norm for w in words)


def _match_exact(headers: Sequence, keywords: Sequence[str]) -> Optional[str]:
    normalized = [normalize_header(h) for h in headers]
    for keyword in keywords:
        target = normalize_header(keyword)
        for header, norm in zip(headers, normalized):
            if norm and norm == target:
                return header
    return None


def _match_substring(headers: Sequence, keywords: Sequence[str]) -> Optional[str]:
    normalized = [normalize_header(h) for h in headers]
    for keyword in keywords:
        target = normalize_header(keyword)
        if not target or target in EXACT_ONLY_KEYWORDS:
            continue
        for header, norm in zip(headers, normalized):
            if target in norm:
                return header
    return None


def _match_fuzzy(
    headers: Sequence,
    keywords: Sequence[str],
    threshold: int
) -> Optional[str]:
    best_header = None
    best_score = 0.0
    for header in headers:
        norm = normalize_header(header)
        if not norm:
            continue
        for keyword in keywords:
            score = fuzz.ratio(normalize_header(keyword), norm)
            if score >= threshold and score > best_score:
                best_header, best_score = header, score
    if best_header is not None:
        logger.debug(f"Fuzzy header match '{best_header}' (score {best_score:.0f})")
    return best_header


def resolve_column(
    headers: Sequence,
    keywords: Sequence[str],
    rules: Sequence[MatchRule] = DEFAULT_RULES,
    exclude: Optional[Callable[[str], bool]] = None,
    fuzzy_threshold: int = FUZZY_MATCH_THRESHOLD
) -> Optional[str]:
    """
    Resolve one semantic role to a header.

    Rules are tried in the order given; the first rule producing a match
    wins. Within a rule, keyword order takes precedence over header order.

    Args:
        headers: Ordered header names of the sheet
        keywords: Role keywords, most specific first
        rules: Match rules to try, in priority order
        exclude: Predicate for headers that must never be returned
        fuzzy_threshold: Minimum rapidfuzz ratio for the FUZZY rule

    Returns:
        The matching header, or None
    """
    candidates = [
        h for h in headers
        if not is_empty(h) and not (exclude and exclude(h))
    ]
    if not candidates:
        return None

    for rule in rules:
        if rule == MatchRule.EXACT:
            found = _match_exact(candidates, keywords)
        elif rule == MatchRule.SUBSTRING:
            found = _match_substring(candidates, keywords)
        else:
            found = _match_fuzzy(candidates, keywords, fuzzy_threshold)
        if found is not None:
            return found
    return None


# ====================================================================================
# DEBIT / CREDIT RESOLUTION
# ====================================================================================

def _column_abs_sum(rows: pd.DataFrame, column) -> float:
    if column not in rows.columns:
        return 0.0
    return float(sum(abs(clean_amount(v)) for v in rows[column].tolist()))


def _largest_numeric_column(
    headers: Sequence,
    rows: Optional[pd.DataFrame],
    skip: Iterable,
    banned_words: Sequence[str]
) -> Optional[str]:
    """Pick the column with the largest absolute-value sum, or None."""
    if rows is None or rows.empty:
        return None

    skip = {s for s in skip if s}
    best_column = None
    best_sum = 0.0
    for header in headers:
        if is_empty(header) or header in skip or _contains_any(header, banned_words):
            continue
        total = _column_abs_sum(rows, header)
        if total > best_sum:
            best_column, best_sum = header, total
    return best_column


def find_debit_credit_headers(
    headers: Sequence,
    rows: Optional[pd.DataFrame] = None,
    date_header: Optional[str] = None,
    rules: Sequence[MatchRule] = DEFAULT_RULES,
    reserved: Iterable = (),
    fuzzy_threshold: int = FUZZY_MATCH_THRESHOLD
) -> Tuple[Optional[str], Optional[str]]:
    """
    Resolve the debit and credit columns.

    1. Keyword match (account-name columns such as "차변계정과목" are skipped).
    2. Data fallback: the numeric column with the largest absolute sum among
       columns not assigned elsewhere and not named like the opposite side,
       a date, a balance, a description, a vendor, a code or a content field.
       Credit runs after debit and never reuses it. Reserved headers never
       take part.
    3. Balance correction: a resolved column named like a balance is demoted
       and keyword matching is retried without balance-like names; when that
       fails the role stays unresolved.

    Args:
        reserved: Headers owned by another role, e.g. the generic amount
            column of a sheet whose 구분 column carries the side
        fuzzy_threshold: Minimum rapidfuzz ratio when FUZZY is enabled

    Returns:
        (debit_header, credit_header)
    """
    reserved = tuple(reserved)

    def account_like(h) -> bool:
        return _contains_any(h, ACCOUNT_NAME_WORDS)

    debit = resolve_column(headers, HEADER_KEYS["debit"], rules,
                           exclude=account_like, fuzzy_threshold=fuzzy_threshold)
    credit = resolve_column(headers, HEADER_KEYS["credit"], rules,
                            exclude=account_like, fuzzy_threshold=fuzzy_threshold)

    if debit is None:
        debit = _largest_numeric_column(
            headers, rows,
            skip=(credit, date_header) + reserved,
            banned_words=HEADER_KEYS["credit"] + NON_AMOUNT_WORDS,
        )
        if debit is not None:
            logger.info(f"Debit column inferred from data: '{debit}'")

    if credit is None:
        credit = _largest_numeric_column(
            headers, rows,
            skip=(debit, date_header) + reserved,
            banned_words=HEADER_KEYS["debit"] + NON_AMOUNT_WORDS,
        )
        if credit is not None:
            logger.info(f"Credit column inferred from data: '{credit}'")

    def balance_or_account(h) -> bool:
        return _contains_any(h, BALANCE_WORDS) or account_like(h)

    if debit is not None and _contains_any(debit, BALANCE_WORDS):
        logger.info(f"Debit column '{debit}' looks like a balance; retrying")
        debit = resolve_column(
            headers, HEADER_KEYS["debit"], rules,
            exclude=lambda h: balance_or_account(h) or h == credit,
            fuzzy_threshold=fuzzy_threshold,
        )

    if credit is not None and _contains_any(credit, BALANCE_WORDS):
        logger.info(f"Credit column '{credit}' looks like a balance; retrying")
        credit = resolve_column(
            headers, HEADER_KEYS["credit"], rules,
            exclude=lambda h: balance_or_account(h) or h == debit,
            fuzzy_threshold=fuzzy_threshold,
        )

    return debit, credit


# ====================================================================================
# FULL ROLE RESOLUTION
# ====================================================================================

def resolve_semantic_columns(
    headers: Sequence,
    rows: Optional[pd.DataFrame] = None,
    rules: Optional[Sequence[MatchRule]] = None,
    fuzzy_threshold: int = FUZZY_MATCH_THRESHOLD
) -> SemanticColumnMap:
    """
    Resolve every semantic role for one sheet.

    Each header is assigned to at most one role. Roles are resolved in
    ROLE_ORDER so the more specific roles claim their columns first.

    Args:
        headers: Ordered header names
        rows: Header-keyed data rows, used by the debit/credit data fallback
        rules: Match rules (defaults to exact then substring)
        fuzzy_threshold: Minimum rapidfuzz ratio when FUZZY is enabled

    Returns:
        SemanticColumnMap
    """
    rules = tuple(rules) if rules else DEFAULT_RULES
    assigned: Dict[str, Optional[str]] = {}

    def taken(h) -> bool:
        return h in assigned.values()

    assigned["date"] = resolve_column(
        headers, HEADER_KEYS["date"], rules, fuzzy_threshold=fuzzy_threshold
    )

    side_words = HEADER_KEYS["debit"][:2] + HEADER_KEYS["credit"][:2] + BALANCE_WORDS

    def amount_excluded(h) -> bool:
        return taken(h) or _contains_any(h, side_words)

    # A 구분 column means one generic amount column holds both sides.
    reserved = []
    classification = resolve_column(
        headers, HEADER_KEYS["classification"], rules,
        exclude=taken, fuzzy_threshold=fuzzy_threshold,
    )
    if classification is not None:
        amount = resolve_column(
            headers, HEADER_KEYS["amount"], rules,
            exclude=lambda h: amount_excluded(h) or h == classification,
            fuzzy_threshold=fuzzy_threshold,
        )
        if amount is not None:
            reserved.append(amount)

    assigned["debit"], assigned["credit"] = find_debit_credit_headers(
        headers, rows, assigned["date"], rules,
        reserved=reserved, fuzzy_threshold=fuzzy_threshold,
    )

    for role in ROLE_ORDER[3:]:
        exclude = taken
        if role == "amount":
            exclude = amount_excluded
        assigned[role] = resolve_column(
            headers, HEADER_KEYS[role], rules,
            exclude=exclude, fuzzy_threshold=fuzzy_threshold,
        )

    columns = SemanticColumnMap(**assigned)
    logger.info(f"Resolved columns: {columns!r}")
    return columns


def extract_row_amounts(row: Mapping, columns: SemanticColumnMap) -> Tuple[float, float]:
    """
    Extract (debit, credit) for one row.

    A classification column whose value is literally debit/차변 or
    credit/대변 decides which side the row's amount belongs to. The side
    column is used when it holds a value, otherwise the generic amount
    column. Without a usable classification, a row with neither side filled
    puts its generic amount on the debit side.

    Returns:
        (debit, credit), both non-negative
    """
    def amount_of(column) -> float:
        return clean_amount(row.get(column)) if column else 0.0

    debit = amount_of(columns.debit)
    credit = amount_of(columns.credit)
    amount = amount_of(columns.amount)

    kind = ""
    if columns.classification:
        value = row.get(columns.classification)
        kind = "" if is_empty(value) else normalize_header(value)

    if kind in CLASSIFICATION_DEBIT_VALUES:
        if debit == 0 and amount > 0:
            debit = amount
    elif kind in CLASSIFICATION_CREDIT_VALUES:
        if credit == 0 and amount > 0:
            credit = amount
    elif debit == 0 and credit == 0 and columns.amount:
        debit = amount

    return abs(debit), abs(credit)


def get_all_keywords_for_role(role: str) -> List[str]:
    """Keywords registered for a role (empty list for unknown roles)."""
    return list(HEADER_KEYS.get(role, []))
