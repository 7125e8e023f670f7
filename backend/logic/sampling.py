# backend/logic/sampling.py
"""
Transaction Sampling for AI Review

Keeps AI-bound payloads bounded while preserving material and
representative coverage.

Two sample-size policies exist side by side and are deliberately not
merged, because different analyses were tuned against each:

- AUDIT_TIERED: <=100 all, <=500 20%, <=5,000 5%, <=50,000 3%,
  otherwise 1% capped at 2,000 (ratios rounded up)
- SMART: <=500 20%, <=1,000 10%, <=10,000 5%, otherwise 2% (floored),
  clamped to [50, 1,000]

Two samplers use them:

- smart_sample: 30% top amounts (account-side aware), 20% most recent,
  10% statistical outliers, 30% month-stratified, 10% uniform random,
  then random backfill. Stage order matters: each stage skips what an
  earlier stage already took.
- hybrid_sample: 50% top by materiality, 50% fixed-stride systematic picks
  from the rest, returned in date order.

Random stages use an unseeded generator unless one is passed in, so only
structural properties (size, disjointness, composition) are reproducible.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

import numpy as np

from .account_classifier import classify_account, natural_amount, AccountType
from .constants import (
    AUDIT_TIERED_TABLE,
    AUDIT_TIERED_FINAL_RATIO,
    AUDIT_TIERED_CAP,
    SMART_TABLE,
    SMART_FINAL_RATIO,
    SMART_MIN_SAMPLE,
    SMART_MAX_SAMPLE,
    SMART_TOP_AMOUNT_SHARE,
    SMART_RECENT_SHARE,
    SMART_OUTLIER_SHARE,
    SMART_MONTHLY_SHARE,
    SMART_RANDOM_SHARE,
    SMART_OUTLIER_SIGMA,
    HYBRID_MATERIALITY_SHARE,
)
from .journal import Transaction
from .logging_utils import get_logger, timed

logger = get_logger(__name__)


class SamplePolicy(str, Enum):
    AUDIT_TIERED = "audit_tiered"
    SMART = "smart"


@dataclass
class SampleSet:
    """A bounded subset of transactions and how it was assembled."""
    items: List[Transaction]
    target_size: int
    total_count: int
    policy: SamplePolicy
    composition: Dict[str, int] = field(default_factory=dict)
    description: str = ""

    def __len__(self) -> int:
        return len(self.items)

    @property
    def is_complete(self) -> bool:
        """True when every input transaction is in the sample."""
        return len(self.items) == self.total_count

    @property
    def sampling_ratio(self) -> float:
        return len(self.items) / self.total_count if self.total_count else 0.0

    def to_dict(self) -> Dict:
        return {
            "policy": self.policy.value,
            "target_size": self.target_size,
            "total_count": self.total_count,
            "sample_size": len(self.items),
            "composition": dict(self.composition),
            "description": self.description,
            "items": [t.to_dict() for t in self.items],
        }


# ==============================================================================
# SAMPLE SIZE POLICIES
# ==============================================================================

def calculate_sample_size(total_count: int, policy: SamplePolicy = SamplePolicy.AUDIT_TIERED) -> int:
    """
    Target sample size for a population.

    Examples:
        calculate_sample_size(300, SamplePolicy.SMART) -> 60
        calculate_sample_size(300, SamplePolicy.AUDIT_TIERED) -> 60
        calculate_sample_size(80, SamplePolicy.AUDIT_TIERED) -> 80
    """
    if total_count <= 0:
        return 0

    if policy == SamplePolicy.SMART:
        ratio = SMART_FINAL_RATIO
        for upper, tier_ratio in SMART_TABLE:
            if total_count <= upper:
                ratio = tier_ratio
                break
        size = math.floor(total_count * ratio)
        return min(max(size, SMART_MIN_SAMPLE), SMART_MAX_SAMPLE)

    for upper, tier_ratio in AUDIT_TIERED_TABLE:
        if total_count <= upper:
            if tier_ratio is None:
                return total_count
            return math.ceil(total_count * tier_ratio)
    return min(AUDIT_TIERED_CAP, math.ceil(total_count * AUDIT_TIERED_FINAL_RATIO))


# ==============================================================================
# HELPERS
# ==============================================================================

def _date_sort_key(t: Transaction):
    # undated lines sort last
    return (0, t.date) if t.date else (1, "")


def sort_by_date(transactions: Sequence[Transaction]) -> List[Transaction]:
    """Stable ascending date sort; undated transactions go last."""
    return sorted(transactions, key=_date_sort_key)


def _shuffled(items: List, rng: np.random.Generator) -> List:
    return [items[i] for i in rng.permutation(len(items))]


# ==============================================================================
# SMART SAMPLE
# ==============================================================================

@timed
def smart_sample(
    transactions: Sequence[Transaction],
    sample_size: Optional[int] = None,
    account_name: Optional[str] = None,
    rng: Optional[np.random.Generator] = None
) -> SampleSet:
    """
    Stratified sample: materiality, recency, outliers, months, randomness.

    Args:
        transactions: Population (typically one account's lines)
        sample_size: Target size (defaults to the SMART policy size)
        account_name: Decides the debit/credit side preference for amounts
        rng: numpy Generator for the random stages

    Returns:
        SampleSet; the population itself (copied) when it fits the target
    """
    data = list(transactions)
    total = len(data)
    target = calculate_sample_size(total, SamplePolicy.SMART) if sample_size is None else sample_size

    if total == 0:
        return SampleSet([], target, 0, SamplePolicy.SMART, description="데이터 없음")
    if total <= target:
        return SampleSet(
            data, target, total, SamplePolicy.SMART,
            composition={"all": total},
            description=f"(전체 {total:,}건 데이터 전수 분석)",
        )

    rng = rng or np.random.default_rng()
    account_type = classify_account(account_name) if account_name else AccountType.UNKNOWN
    amounts = [natural_amount(t.debit, t.credit, account_type) for t in data]

    logger.debug(f"Smart sample of {total} lines, account type {account_type.value}, target {target}")

    used = set()
    result: List[int] = []
    composition: Dict[str, int] = {}

    def take(stage: str, candidates: Sequence[int], limit: int, check_size: bool = True) -> None:
        taken = 0
        for i in candidates[:limit] if limit is not None else candidates:
            if i in used:
                continue
            result.append(i)
            used.add(i)
            taken += 1
            if check_size and len(result) >= target:
                break
        composition[stage] = composition.get(stage, 0) + taken

    # 1. top amounts
    by_amount = sorted(range(total), key=lambda i: amounts[i], reverse=True)
    take("top_amount", by_amount, math.floor(target * SMART_TOP_AMOUNT_SHARE), check_size=False)

    # 2. most recent
    dated = [i for i in range(total) if data[i].date]
    undated = [i for i in range(total) if not data[i].date]
    by_recency = sorted(dated, key=lambda i: data[i].date, reverse=True) + undated
    take("recent", by_recency, math.floor(target * SMART_RECENT_SHARE))

    # 3. outliers beyond 2 sigma of the positive amounts
    positive = np.array([a for a in amounts if a > 0], dtype=float)
    if positive.size:
        mean, std = float(positive.mean()), float(positive.std())
        outliers = [
            i for i in range(total)
            if amounts[i] > 0 and abs(amounts[i] - mean) > SMART_OUTLIER_SIGMA * std
        ]
        outliers.sort(key=lambda i: abs(amounts[i] - mean), reverse=True)
        if len(result) < target:
            take("outlier", outliers, math.floor(target * SMART_OUTLIER_SHARE))

    # 4. month-stratified
    by_month: Dict[str, List[int]] = {}
    for i in dated:
        by_month.setdefault(data[i].month, []).append(i)
    monthly_count = math.floor(target * SMART_MONTHLY_SHARE)
    if by_month and len(result) < target:
        per_month = math.ceil(monthly_count / len(by_month))
        for month in sorted(by_month):
            take("monthly", _shuffled(by_month[month], rng), per_month)
            if len(result) >= target:
                break

    # 5. uniform random from what is left
    if len(result) < target:
        remaining = [i for i in range(total) if i not in used]
        take("random", _shuffled(remaining, rng), math.floor(target * SMART_RANDOM_SHARE))

    # 6. backfill
    if len(result) < target:
        remaining = [i for i in range(total) if i not in used]
        take("backfill", _shuffled(remaining, rng), target - len(result))

    items = [data[i] for i in result]
    description = (
        f"(전체 {total:,}건 중 {len(items):,}건 스마트 샘플링 - "
        f"금액 상위, 최신, 이상치, 월별 균등, 무작위 추출 적용)"
    )
    logger.info(f"Smart sample: {len(items)} of {total} ({composition})")
    return SampleSet(items, target, total, SamplePolicy.SMART, composition, description)


# ==============================================================================
# HYBRID SAMPLE (materiality + systematic)
# ==============================================================================

@timed
def hybrid_sample(
    transactions: Sequence[Transaction],
    target_size: Optional[int] = None
) -> SampleSet:
    """
    Materiality plus systematic sample, sorted by date.

    Half the target (rounded up) is the largest transactions by
    max(debit, credit); the rest is picked from the remaining lines at
    index floor(i * stride), stride = remaining / systematic count.

    Args:
        transactions: Population
        target_size: Target size (defaults to the AUDIT_TIERED policy size)

    Returns:
        SampleSet sorted by date ascending
    """
    data = list(transactions)
    total = len(data)
    target = calculate_sample_size(total, SamplePolicy.AUDIT_TIERED) if target_size is None else target_size

    if total == 0:
        return SampleSet([], target, 0, SamplePolicy.AUDIT_TIERED, description="데이터 없음")

    if target >= total:
        return SampleSet(
            sort_by_date(data), target, total, SamplePolicy.AUDIT_TIERED,
            composition={"all": total},
            description=f"(전체 {total:,}건 데이터 전수 분석)",
        )

    materiality_count = math.ceil(target * HYBRID_MATERIALITY_SHARE)
    systematic_count = target - materiality_count

    order = sorted(range(total), key=lambda i: data[i].amount, reverse=True)
    material = order[:materiality_count]
    chosen = set(material)
    remaining = [i for i in range(total) if i not in chosen]

    systematic: List[int] = []
    if remaining and systematic_count > 0:
        stride = len(remaining) / systematic_count
        for k in range(systematic_count):
            idx = math.floor(k * stride)
            if idx < len(remaining):
                systematic.append(remaining[idx])

    items = sort_by_date([data[i] for i in material + systematic])
    percentage = target / total * 100
    description = (
        f"(보안을 위해 전체 {total:,}건 중 약 {percentage:.1f}%인 {len(items):,}건을 표본 추출하여 분석 "
        f"- 중요거래 및 기간별 분산 추출 적용)"
    )
    logger.info(f"Hybrid sample: {len(items)} of {total}")
    return SampleSet(
        items, target, total, SamplePolicy.AUDIT_TIERED,
        composition={"materiality": len(material), "systematic": len(systematic)},
        description=description,
    )
