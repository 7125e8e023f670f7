# backend/logic/audit_sampling.py
"""
Audit Sampling Module

Classic substantive-test samples of one account's lines, chosen by the
auditor rather than sized for an AI payload:

- random: uniform draw without replacement
- systematic: fixed interval from a random start
- MUS (monetary unit sampling): each currency unit is a sampling unit, so
  a line's chance of selection is proportional to its amount

MUS sample size from a statistical table:
    n = ceil(population value x reliability factor / materiality)
with factors 2.31 / 3.00 / 4.61 for 90% / 95% / 99% confidence.

High-severity amount anomalies can be forced into the sample first; the
method then fills the rest from the remaining lines.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

import numpy as np

from .constants import (
    AUDIT_DEFAULT_SAMPLE_SIZE,
    MUS_CONFIDENCE_FACTORS,
    MUS_DEFAULT_CONFIDENCE,
)
from .journal import Transaction
from .logging_utils import get_logger, timed
from .outlier_detector import compute_amount_statistics, evaluate_amount

logger = get_logger(__name__)


class AuditSamplingMethod(str, Enum):
    RANDOM = "random"
    SYSTEMATIC = "systematic"
    MUS = "mus"


class AmountSide(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"
    BOTH = "both"


@dataclass
class AuditSample:
    """Lines picked for substantive testing and how they were picked."""
    method: AuditSamplingMethod
    items: List[Transaction]
    sample_size: int
    population_count: int
    population_value: float = 0.0
    anomaly_count: int = 0
    side: AmountSide = AmountSide.BOTH

    def __len__(self) -> int:
        return len(self.items)

    def to_dict(self) -> Dict:
        return {
            "method": self.method.value,
            "side": self.side.value,
            "sample_size": self.sample_size,
            "selected": len(self.items),
            "population_count": self.population_count,
            "population_value": self.population_value,
            "anomaly_count": self.anomaly_count,
            "items": [t.to_dict() for t in self.items],
        }


def side_amount(t: Transaction, side: AmountSide = AmountSide.BOTH) -> float:
    """Amount of a line on the chosen side (both sides summed for BOTH)."""
    if side == AmountSide.DEBIT:
        return abs(t.debit)
    if side == AmountSide.CREDIT:
        return abs(t.credit)
    return abs(t.debit) + abs(t.credit)


def mus_sample_size(
    population_value: float,
    materiality: float,
    confidence: int = MUS_DEFAULT_CONFIDENCE
) -> int:
    """
    Statistical-table MUS sample size.

    Unknown confidence levels use the 95% factor. An empty population
    needs no sample.

    Examples:
        mus_sample_size(10_000_000, 1_000_000, 95) -> 30
        mus_sample_size(10_000_000, 1_000_000, 90) -> 24

    Raises:
        ValueError: materiality is not positive
    """
    if materiality <= 0:
        raise ValueError(f"Materiality must be positive, got {materiality}")
    if population_value <= 0:
        return 0
    factor = MUS_CONFIDENCE_FACTORS.get(confidence, MUS_CONFIDENCE_FACTORS[MUS_DEFAULT_CONFIDENCE])
    return max(1, math.ceil(population_value * factor / materiality))


# ==============================================================================
# SELECTION METHODS
# ==============================================================================

def random_selection(population: Sequence, size: int, rng: np.random.Generator) -> List:
    size = min(size, len(population))
    if size <= 0:
        return []
    return [population[i] for i in rng.permutation(len(population))[:size]]


def systematic_selection(population: Sequence, size: int, rng: np.random.Generator) -> List:
    """Every interval-th line from a random start inside the first interval."""
    size = min(size, len(population))
    if size <= 0:
        return []
    interval = len(population) // size
    start = int(rng.integers(0, interval)) if interval > 1 else 0
    return [population[(start + i * interval) % len(population)] for i in range(size)]


def mus_selection(
    population: Sequence[Transaction],
    size: int,
    rng: np.random.Generator,
    side: AmountSide = AmountSide.BOTH
) -> List[Transaction]:
    """
    Cell selection: the total is cut into size equal intervals and one
    random currency unit is drawn in each. A line large enough to span
    several hits is selected once, so the result can be shorter than size.
    """
    amounts = np.array([side_amount(t, side) for t in population], dtype=float)
    total = float(amounts.sum())
    if size <= 0 or total <= 0:
        return []

    cumulative = np.cumsum(amounts)
    interval = total / size
    targets = rng.random(size) * interval + np.arange(size) * interval
    hits = np.searchsorted(cumulative, targets, side="left")

    chosen: List[int] = []
    for hit in hits:
        index = min(int(hit), len(population) - 1)
        if index not in chosen:
            chosen.append(index)
    return [population[i] for i in chosen]


def high_severity_lines(
    population: Sequence[Transaction],
    side: AmountSide = AmountSide.BOTH
) -> List[Transaction]:
    """Lines whose amount the anomaly rules rate high, in population order."""
    amounts = [side_amount(t, side) for t in population]
    stats = compute_amount_statistics(amounts)
    if stats is None or stats.std_dev == 0:
        return []
    flagged = []
    for t, amount in zip(population, amounts):
        result = evaluate_amount(amount, stats)
        if result is not None and result.severity == "high":
            flagged.append(t)
    return flagged


@timed
def audit_sample(
    transactions: Sequence[Transaction],
    method: AuditSamplingMethod = AuditSamplingMethod.RANDOM,
    sample_size: Optional[int] = None,
    side: AmountSide = AmountSide.BOTH,
    materiality: Optional[float] = None,
    confidence: int = MUS_DEFAULT_CONFIDENCE,
    include_anomalies: bool = False,
    rng: Optional[np.random.Generator] = None
) -> AuditSample:
    """
    Draw an audit sample from the lines that carry an amount on the chosen side.

    Args:
        transactions: Lines of the account under test
        method: Random, systematic or MUS selection
        sample_size: Requested size (default 30); ignored for MUS when a
            materiality is given
        side: Which amount counts (debit, credit or both summed)
        materiality: MUS materiality; sizes the sample from the statistical table
        confidence: MUS confidence level in percent (90, 95 or 99)
        include_anomalies: Put high-severity anomalies first, within the size
        rng: numpy Generator (unseeded by default)

    Returns:
        AuditSample, never larger than the sample size
    """
    rng = rng or np.random.default_rng()
    method = AuditSamplingMethod(method)
    side = AmountSide(side)

    population = [t for t in transactions if side_amount(t, side) > 0]
    population_value = float(sum(side_amount(t, side) for t in population))

    if method == AuditSamplingMethod.MUS and materiality:
        size = mus_sample_size(population_value, materiality, confidence)
    else:
        size = AUDIT_DEFAULT_SAMPLE_SIZE if sample_size is None else sample_size
    size = max(0, size)

    forced: List[Transaction] = []
    if include_anomalies:
        forced = high_severity_lines(population, side)[:size]
    forced_ids = {id(t) for t in forced}
    remaining = [t for t in population if id(t) not in forced_ids]
    room = size - len(forced)

    if method == AuditSamplingMethod.RANDOM:
        picked = random_selection(remaining, room, rng)
    elif method == AuditSamplingMethod.SYSTEMATIC:
        picked = systematic_selection(remaining, room, rng)
    else:
        picked = mus_selection(remaining, room, rng, side)

    sample = AuditSample(
        method=method,
        items=(forced + picked)[:size],
        sample_size=size,
        population_count=len(population),
        population_value=population_value,
        anomaly_count=len(forced),
        side=side,
    )
    logger.info(
        f"{method.value} audit sample: {len(sample)} of {len(population)} lines "
        f"(size {size}, {len(forced)} anomalies forced in)"
    )
    return sample
