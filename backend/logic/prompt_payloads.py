# backend/logic/prompt_payloads.py
"""
AI-Bound Payloads

Compact text summaries of a ledger for an AI collaborator: monthly
aggregates, per-account monthly tables (SG&A, manufacturing cost), sales vs.
SG&A by month, a statistics summary, and a sampled transaction CSV. Also
rough token and cost estimates for such a payload.

The text is Korean because the collaborator is prompted in Korean.
"""

import math
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from .account_classifier import (
    is_sga_account,
    is_manufacturing_account,
    is_sales_account,
    is_logistics_account,
)
from .config_manager import get_config_value
from .constants import (
    DEFAULT_KRW_PER_USD,
    MODEL_PRICING_PER_MILLION,
    CHARS_PER_TOKEN_KOREAN,
    CHARS_PER_TOKEN_ENGLISH,
    CHARS_PER_TOKEN_OTHER,
)
from .journal import Transaction
from .logging_utils import get_logger
from .sampling import hybrid_sample
from .sanitizer import Anonymizer

logger = get_logger(__name__)

MONTH_LABELS = [f"{m}월" for m in range(1, 13)]
SAMPLE_CSV_COLUMNS = ["일자", "적요", "차변", "대변"]

_KOREAN_RE = re.compile(r"[가-힣]")
_ENGLISH_RE = re.compile(r"[a-zA-Z]")
_NEWLINE_RE = re.compile(r"\r\n|\r|\n")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_won(value: float) -> str:
    """Rounded amount with thousands separators: 1234567.6 -> '1,234,568'."""
    return f"{_round_half_up(value):,}"


def _month_index(transaction: Transaction) -> Optional[int]:
    """Calendar month 0-11 of a dated transaction."""
    if not transaction.date:
        return None
    try:
        month = int(transaction.date[5:7])
    except ValueError:
        return None
    return month - 1 if 1 <= month <= 12 else None


# ==============================================================================
# MONTHLY AGGREGATES
# ==============================================================================

def monthly_aggregates(transactions: Iterable[Transaction]) -> str:
    """
    One line per YYYY-MM with count, debit total and credit total.

    Undated transactions are left out.
    """
    months: Dict[str, Dict[str, float]] = {}
    for t in transactions:
        if not t.month:
            continue
        bucket = months.setdefault(t.month, {"count": 0, "debit": 0.0, "credit": 0.0})
        bucket["count"] += 1
        bucket["debit"] += t.debit
        bucket["credit"] += t.credit

    if not months:
        return "데이터 없음"

    return "\n".join(
        f"- {m}: 건수 {int(d['count'])}건, 차변합계 {format_won(d['debit'])}, 대변합계 {format_won(d['credit'])}"
        for m, d in sorted(months.items())
    )


# ==============================================================================
# PER-ACCOUNT MONTHLY TABLES
# ==============================================================================

@dataclass
class MonthlyAccountRow:
    account_name: str
    months: List[float]
    total: float


@dataclass
class MonthlySummary:
    """Markdown table plus the numbers behind it."""
    summary_table: str
    account_count: int
    raw_data: List[MonthlyAccountRow] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "summary_table": self.summary_table,
            "account_count": self.account_count,
            "raw_data": [
                {"account_name": r.account_name, "months": list(r.months), "total": r.total}
                for r in self.raw_data
            ],
        }


def monthly_summary_table(
    transactions: Iterable[Transaction],
    account_filter: Callable[[str], bool],
    title: str
) -> MonthlySummary:
    """
    Account x calendar-month table for the accounts passing account_filter.

    Sales accounts are measured as credit - debit, everything else as
    debit - credit. Accounts are sorted by total, largest first; accounts
    whose total is zero are omitted from the table but still counted.

    Args:
        transactions: Journal lines
        account_filter: Predicate on the account name
        title: Label used when nothing matches
    """
    selected = [t for t in transactions if account_filter(t.account_name)]
    if not selected:
        return MonthlySummary(f"{title} 관련 거래 내역을 찾을 수 없습니다.", 0)

    by_account: Dict[str, List[float]] = {}
    for t in selected:
        months = by_account.setdefault(t.account_name, [0.0] * 12)
        month = _month_index(t)
        if month is None:
            continue
        if is_sales_account(t.account_name):
            months[month] += t.credit - t.debit
        else:
            months[month] += t.debit - t.credit

    lines = [
        "| 계정과목 | " + " | ".join(MONTH_LABELS) + " | 합계 |",
        "|" + "---|" * 14,
    ]
    raw_data: List[MonthlyAccountRow] = []
    ordered = sorted(by_account.items(), key=lambda item: sum(item[1]), reverse=True)

    for name, months in ordered:
        total = sum(months)
        if abs(total) == 0:
            continue
        raw_data.append(MonthlyAccountRow(name, months, total))
        cells = " | ".join(format_won(v) for v in months)
        lines.append(f"| {name} | {cells} | {format_won(total)} |")

    return MonthlySummary("\n".join(lines) + "\n", len(ordered), raw_data)


def sga_monthly_summary(transactions: Iterable[Transaction]) -> MonthlySummary:
    return monthly_summary_table(transactions, is_sga_account, "판관비[(판), (8xx) 등]")


def manufacturing_monthly_summary(transactions: Iterable[Transaction]) -> MonthlySummary:
    return monthly_summary_table(transactions, is_manufacturing_account, "제조원가[(제), (5xx) 등]")


def sales_vs_sga_monthly(transactions: Iterable[Transaction]) -> List[Dict]:
    """
    Sales, SG&A and logistics cost per calendar month, with SG&A/sales in %.

    Returns:
        Twelve dicts {"month", "sales", "sga", "logistics", "ratio"}
    """
    data = [{"sales": 0.0, "sga": 0.0, "logistics": 0.0} for _ in range(12)]
    for t in transactions:
        month = _month_index(t)
        if month is None:
            continue
        if is_sales_account(t.account_name):
            data[month]["sales"] += t.credit - t.debit
        elif is_sga_account(t.account_name):
            expense = t.debit - t.credit
            data[month]["sga"] += expense
            if is_logistics_account(t.account_name):
                data[month]["logistics"] += expense

    return [
        {
            "month": MONTH_LABELS[i],
            "sales": d["sales"],
            "sga": d["sga"],
            "logistics": d["logistics"],
            "ratio": d["sga"] / d["sales"] * 100 if d["sales"] != 0 else 0.0,
        }
        for i, d in enumerate(data)
    ]


# ==============================================================================
# DATA SUMMARY
# ==============================================================================

def _side_stats(label: str, amounts: Sequence[float]) -> str:
    ordered = sorted(amounts)
    return (
        f"{label} 통계:\n"
        f"- {label} 거래 수: {len(ordered):,}건\n"
        f"- {label} 총액: {format_won(sum(ordered))}원\n"
        f"- {label} 최대값: {format_won(ordered[-1])}원\n"
        f"- {label} 중앙값: {format_won(ordered[len(ordered) // 2])}원"
    )


def generate_data_summary(transactions: Sequence[Transaction], account_name: str) -> str:
    """
    Statistics summary of one account's lines for the AI context.

    Covers the analysis period, debit and credit side statistics, and
    overall mean/median/min/max/population standard deviation of the
    larger side of each line.
    """
    if not transactions:
        return "데이터 없음"

    dates = sorted(t.date for t in transactions if t.date)
    header = [f"계정과목: {account_name}"]
    if dates:
        header.append(f"분석 기간: {dates[0]} ~ {dates[-1]}")
    header.append(f"총 거래 수: {len(transactions):,}건")

    amounts = np.array([t.amount for t in transactions if t.amount > 0], dtype=float)
    if amounts.size == 0:
        return "\n".join(header + ["차변/대변 금액이 있는 거래가 없습니다."])

    sections = []
    debits = [t.debit for t in transactions if t.debit > 0]
    credits = [t.credit for t in transactions if t.credit > 0]
    if debits:
        sections.append(_side_stats("차변", debits))
    if credits:
        sections.append(_side_stats("대변", credits))

    ordered = np.sort(amounts)
    sections.append(
        "전체 통계:\n"
        f"- 총 금액: {format_won(amounts.sum())}원\n"
        f"- 평균 거래액: {format_won(amounts.mean())}원\n"
        f"- 중앙값: {format_won(ordered[ordered.size // 2])}원\n"
        f"- 최소값: {format_won(ordered[0])}원\n"
        f"- 최대값: {format_won(ordered[-1])}원\n"
        f"- 표준편차: {format_won(amounts.std())}원"
    )
    return "\n".join(header) + "\n\n" + "\n\n".join(sections)


# ==============================================================================
# SAMPLED CSV
# ==============================================================================

@dataclass
class SampledTransactions:
    csv: str
    sample_info: str
    samples: List[Transaction] = field(default_factory=list)


def sampled_transactions_csv(
    transactions: Sequence[Transaction],
    anonymizer: Optional[Anonymizer] = None
) -> SampledTransactions:
    """
    Hybrid sample of the lines rendered as CSV (일자,적요,차변,대변), date order.

    With an anonymizer, descriptions and vendors are replaced by its
    placeholders before rendering; the returned samples stay the originals
    so a reply can be mapped back with the same anonymizer.
    """
    if not transactions:
        return SampledTransactions("거래 내역 없음", "데이터 없음")

    sample = hybrid_sample(transactions)
    rendered = anonymizer.anonymize_transactions(sample.items) if anonymizer else sample.items

    frame = pd.DataFrame(
        [
            [t.date, _NEWLINE_RE.sub(" ", t.description), _round_half_up(t.debit), _round_half_up(t.credit)]
            for t in rendered
        ],
        columns=SAMPLE_CSV_COLUMNS,
    )
    csv = frame.to_csv(index=False, lineterminator="\n").rstrip("\n")
    return SampledTransactions(csv, sample.description, sample.items)


# ==============================================================================
# TOKEN / COST ESTIMATES
# ==============================================================================

def estimate_tokens(text: str) -> int:
    """
    Rough token count: Korean ~1.5 chars, English ~4 chars, anything else
    ~2 chars per token.
    """
    if not text:
        return 0
    korean = len(_KOREAN_RE.findall(text))
    english = len(_ENGLISH_RE.findall(text))
    other = len(text) - korean - english
    return math.ceil(
        korean / CHARS_PER_TOKEN_KOREAN
        + english / CHARS_PER_TOKEN_ENGLISH
        + other / CHARS_PER_TOKEN_OTHER
    )


def estimate_cost_krw(input_tokens: int, output_tokens: int = 2000, model: str = "flash") -> int:
    """
    Estimated cost in KRW, rounded up.

    Args:
        input_tokens: Prompt tokens
        output_tokens: Expected response tokens
        model: "flash" or "pro" pricing tier
    """
    if model not in MODEL_PRICING_PER_MILLION:
        raise ValueError(f"Unknown pricing tier: {model}")
    input_price, output_price = MODEL_PRICING_PER_MILLION[model]
    rate = get_config_value("krw_per_usd", DEFAULT_KRW_PER_USD)
    cost = (input_tokens / 1_000_000 * input_price + output_tokens / 1_000_000 * output_price) * rate
    return math.ceil(cost)
