# backend/logic/benford.py
"""
Benford's Law First-Digit Analysis

Compares the leading-digit distribution of positive amounts with the
theoretical Benford distribution. Large deviations point at fabricated or
threshold-driven figures and are a standard audit heuristic.

Fewer than 50 amounts still produce a result, flagged as low confidence.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

from .config_manager import get_config_value
from .constants import (
    BENFORD_EXPECTED_PERCENT,
    BENFORD_MIN_SAMPLE,
    BENFORD_MAD_CLOSE,
    BENFORD_MAD_ACCEPTABLE,
    BENFORD_MAD_MARGINAL,
)
from .logging_utils import get_logger
from .parse_utils import clean_amount
from .row_sanitizer import exclude_summary_rows

logger = get_logger(__name__)

DIGITS = range(1, 10)


@dataclass
class BenfordResult:
    """Observed vs. expected share of one leading digit."""
    digit: int
    actual_count: int
    actual_percent: float
    benford_percent: float
    difference: float

    def to_dict(self) -> Dict:
        return {
            "digit": self.digit,
            "actual_count": self.actual_count,
            "actual_percent": self.actual_percent,
            "benford_percent": self.benford_percent,
            "difference": self.difference,
        }


@dataclass
class BenfordReport:
    """Distribution for digits 1-9 plus goodness-of-fit figures."""
    results: List[BenfordResult] = field(default_factory=list)
    total_count: int = 0
    low_confidence: bool = True
    suspect_digit: Optional[int] = None
    max_abs_difference: float = 0.0
    chi_square: float = 0.0
    mad: float = 0.0

    @property
    def conformity(self) -> str:
        """Nigrini first-digit conformity band for the mean absolute deviation."""
        if self.total_count == 0:
            return "no data"
        if self.mad <= BENFORD_MAD_CLOSE:
            return "close"
        if self.mad <= BENFORD_MAD_ACCEPTABLE:
            return "acceptable"
        if self.mad <= BENFORD_MAD_MARGINAL:
            return "marginal"
        return "nonconforming"

    def to_dict(self) -> Dict:
        return {
            "results": [r.to_dict() for r in self.results],
            "total_count": self.total_count,
            "low_confidence": self.low_confidence,
            "suspect_digit": self.suspect_digit,
            "max_abs_difference": self.max_abs_difference,
            "chi_square": self.chi_square,
            "mad": self.mad,
            "conformity": self.conformity,
        }


def leading_digit(amount: float) -> Optional[int]:
    """First digit of the integer part of a positive amount (None below 1)."""
    if amount is None or not np.isfinite(amount) or amount <= 0:
        return None
    digit = int(str(int(amount))[0])
    return digit if digit in DIGITS else None


def benford_from_amounts(amounts: Iterable[float]) -> BenfordReport:
    """
    Build the Benford report for a sequence of amounts.

    Only amounts > 0 with a leading digit 1-9 are counted.
    """
    counts = np.zeros(10, dtype=int)
    for amount in amounts:
        digit = leading_digit(amount)
        if digit is not None:
            counts[digit] += 1

    total = int(counts[1:].sum())
    min_sample = get_config_value("benford_min_sample", BENFORD_MIN_SAMPLE)
    report = BenfordReport(total_count=total, low_confidence=total < min_sample)

    if total < min_sample:
        logger.warning(
            f"Benford analysis on {total} amounts (fewer than {min_sample}); "
            f"results have low confidence"
        )

    expected = np.array(BENFORD_EXPECTED_PERCENT)
    actual = counts[1:] / total * 100 if total else np.zeros(9)
    differences = actual - expected

    for digit in DIGITS:
        i = digit - 1
        report.results.append(BenfordResult(
            digit=digit,
            actual_count=int(counts[digit]),
            actual_percent=round(float(actual[i]), 1),
            benford_percent=float(expected[i]),
            difference=round(float(differences[i]), 1),
        ))

    if total:
        # first digit wins ties
        i = int(np.argmax(np.abs(differences)))
        report.suspect_digit = i + 1
        report.max_abs_difference = float(abs(differences[i]))

        expected_counts = expected / 100 * total
        report.chi_square = float(np.sum((counts[1:] - expected_counts) ** 2 / expected_counts))
        report.mad = float(np.mean(np.abs(actual - expected)) / 100)

    return report


def benford_analysis(rows: pd.DataFrame, amount_column: str) -> BenfordReport:
    """
    Benford report for one amount column of a ledger sheet.

    Summary rows are excluded before digits are counted.
    """
    if rows is None or rows.empty or amount_column not in rows.columns:
        return benford_from_amounts([])
    filtered = exclude_summary_rows(rows)
    return benford_from_amounts(clean_amount(v) for v in filtered[amount_column].tolist())


def benford_from_transactions(transactions: Iterable) -> BenfordReport:
    """Benford report over the larger side (debit or credit) of each transaction."""
    return benford_from_amounts(max(t.debit, t.credit) for t in transactions)


def rows_with_leading_digit(rows: pd.DataFrame, amount_column: str, digit: int) -> pd.DataFrame:
    """Drill-down: rows whose amount starts with the given digit."""
    if rows is None or rows.empty or amount_column not in rows.columns:
        return pd.DataFrame()
    mask = [leading_digit(clean_amount(v)) == digit for v in rows[amount_column].tolist()]
    return rows[mask]


def format_benford_table(report: BenfordReport) -> str:
    """Markdown table of the distribution for AI-bound prompts."""
    if report.total_count == 0:
        return "데이터 부족으로 분석 불가"

    lines = [
        "| 숫자(Digit) | 실제 비율(Actual) | 벤포드 기대비율(Expected) | 차이(Diff) |",
        "|---|---|---|---|",
    ]
    for r in report.results:
        sign = "+" if r.difference > 0 else ""
        lines.append(
            f"| {r.digit} | {r.actual_percent:.1f}% | {r.benford_percent}% | {sign}{r.difference:.1f}% |"
        )
    return "\n".join(lines) + "\n"
