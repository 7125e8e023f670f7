# backend/logic/outlier_detector.py
"""
Amount Anomaly Detector

Flags unusual transaction amounts in one amount column of a ledger sheet.
Summary rows (월계/누계) are excluded first and only positive amounts are
analysed.

Rules, applied in order (one row may trigger several):
1. |z| > 3                          -> high
2. |z| > 2                          -> at least medium
3. outside the 1.5 x IQR fences     -> at least medium
4. more than 10x the mean           -> at least medium
5. a round amount (1,000 ... 10,000,000) above the mean -> reason only
6. equals the maximum while max > 5x mean -> high, always
"""

import math
import numbers
from dataclasses import dataclass, field
from typing import Dict, Hashable, Iterable, List, Optional

import numpy as np
import pandas as pd

from .constants import (
    Z_SCORE_HIGH,
    Z_SCORE_MEDIUM,
    IQR_MULTIPLIER,
    LARGE_AMOUNT_MEAN_MULTIPLE,
    MAXIMUM_AMOUNT_MEAN_MULTIPLE,
    ROUND_NUMBER_AMOUNTS,
    ROUND_NUMBER_TOLERANCE,
    SEVERITY_ORDER,
)
from .logging_utils import get_logger
from .parse_utils import clean_amount
from .row_sanitizer import exclude_summary_rows

logger = get_logger(__name__)


@dataclass
class AmountStatistics:
    """Descriptive statistics over positive amounts (population variance)."""
    count: int
    mean: float
    std_dev: float
    min: float
    max: float
    median: float
    q1: float
    q3: float

    @property
    def iqr(self) -> float:
        return self.q3 - self.q1

    @property
    def lower_fence(self) -> float:
        return self.q1 - IQR_MULTIPLIER * self.iqr

    @property
    def upper_fence(self) -> float:
        return self.q3 + IQR_MULTIPLIER * self.iqr

    def to_dict(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "mean": self.mean,
            "std_dev": self.std_dev,
            "min": self.min,
            "max": self.max,
            "median": self.median,
            "q1": self.q1,
            "q3": self.q3,
            "iqr": self.iqr,
        }


@dataclass
class AnomalyResult:
    """One flagged row."""
    index: Hashable
    row: Dict
    amount: float
    severity: str  # high, medium, low
    reasons: List[str] = field(default_factory=list)
    z_score: Optional[float] = None

    def to_dict(self) -> Dict:
        index = int(self.index) if isinstance(self.index, numbers.Integral) else self.index
        return {
            "index": index,
            "amount": self.amount,
            "severity": self.severity,
            "reasons": list(self.reasons),
            "z_score": self.z_score,
        }


def compute_amount_statistics(amounts: Iterable[float]) -> Optional[AmountStatistics]:
    """
    Statistics over the positive values of amounts.

    Quartiles are read at index floor(n * 0.25) / floor(n * 0.75) of the
    sorted values, the median at floor(n / 2).

    Returns:
        AmountStatistics, or None when there are no positive amounts
    """
    values = np.array([a for a in amounts if a is not None and a > 0], dtype=float)
    if values.size == 0:
        return None

    ordered = np.sort(values)
    n = ordered.size
    return AmountStatistics(
        count=int(n),
        mean=float(values.mean()),
        std_dev=float(values.std()),
        min=float(ordered[0]),
        max=float(ordered[-1]),
        median=float(ordered[n // 2]),
        q1=float(ordered[int(math.floor(n * 0.25))]),
        q3=float(ordered[int(math.floor(n * 0.75))]),
    )


def _is_round_amount(amount: float) -> bool:
    return any(abs(amount - r) < ROUND_NUMBER_TOLERANCE for r in ROUND_NUMBER_AMOUNTS)


def _raise_to_medium(severity: str) -> str:
    return "medium" if severity == "low" else severity


def evaluate_amount(amount: float, stats: AmountStatistics) -> Optional[AnomalyResult]:
    """
    Apply the anomaly rules to one positive amount.

    Returns:
        AnomalyResult without row/index filled in, or None when no rule fired
    """
    reasons: List[str] = []
    severity = "low"

    z_score = (amount - stats.mean) / stats.std_dev
    if abs(z_score) > Z_SCORE_HIGH:
        reasons.append(f"z-score {z_score:.2f}: far outlier (more than 3 standard deviations from the mean)")
        severity = "high"
    elif abs(z_score) > Z_SCORE_MEDIUM:
        reasons.append(f"z-score {z_score:.2f}: more than 2 standard deviations from the mean")
        severity = _raise_to_medium(severity)

    if amount > stats.upper_fence:
        reasons.append(f"IQR outlier: above {stats.upper_fence:,.0f}")
        severity = _raise_to_medium(severity)
    elif amount < stats.lower_fence:
        reasons.append(f"IQR outlier: below {stats.lower_fence:,.0f}")
        severity = _raise_to_medium(severity)

    if amount > stats.mean * LARGE_AMOUNT_MEAN_MULTIPLE:
        reasons.append(f"abnormally large: {amount / stats.mean:.1f}x the mean")
        severity = _raise_to_medium(severity)

    # Round amounts add a reason but never change the severity
    if _is_round_amount(amount) and amount > stats.mean:
        reasons.append(f"suspicious round number: {amount:,.0f}")

    if amount == stats.max and stats.max > stats.mean * MAXIMUM_AMOUNT_MEAN_MULTIPLE:
        reasons.append(f"equals the maximum amount {stats.max:,.0f}")
        severity = "high"

    if not reasons:
        return None
    return AnomalyResult(
        index=None, row={}, amount=amount, severity=severity,
        reasons=reasons, z_score=float(z_score),
    )


def detect_anomalies(rows: pd.DataFrame, amount_column: str) -> List[AnomalyResult]:
    """
    Detect anomalous amounts in one column.

    Args:
        rows: Header-keyed ledger rows
        amount_column: Column holding the amounts to analyse

    Returns:
        Flagged rows sorted by severity (high first), then |z| descending.
        Empty when there is no usable data or the amounts do not vary.
    """
    if rows is None or rows.empty or amount_column not in rows.columns:
        return []

    filtered = exclude_summary_rows(rows)
    amounts = [clean_amount(v) for v in filtered[amount_column].tolist()]

    stats = compute_amount_statistics(amounts)
    if stats is None or stats.std_dev == 0:
        logger.info(f"No anomaly analysis for '{amount_column}': no variation in amounts")
        return []

    results: List[AnomalyResult] = []
    for (idx, record), amount in zip(zip(filtered.index, filtered.to_dict("records")), amounts):
        if amount <= 0:
            continue
        result = evaluate_amount(amount, stats)
        if result is None:
            continue
        result.index = idx
        result.row = record
        results.append(result)

    results.sort(key=lambda r: (SEVERITY_ORDER[r.severity], -abs(r.z_score or 0.0)))

    logger.info(
        f"Anomaly scan of '{amount_column}': {len(results)} flagged of {stats.count} amounts "
        f"({sum(1 for r in results if r.severity == 'high')} high)"
    )
    return results


def summarize_anomalies(results: List[AnomalyResult]) -> Dict[str, int]:
    """Count of flagged rows per severity."""
    summary = {"high": 0, "medium": 0, "low": 0, "total": len(results)}
    for r in results:
        summary[r.severity] += 1
    return summary


def anomalies_to_frame(results: List[AnomalyResult]) -> pd.DataFrame:
    """
    Flagged rows as a DataFrame with 'severity', 'z_score' and 'reason' columns
    added to the original row values. Always returns a DataFrame.
    """
    if not results:
        return pd.DataFrame()
    records = []
    for r in results:
        record = dict(r.row)
        record["severity"] = r.severity
        record["z_score"] = r.z_score
        record["reason"] = "; ".join(r.reasons)
        records.append(record)
    return pd.DataFrame(records, index=[r.index for r in results])
