# backend/logic/usage_ledger.py
"""
AI Usage Ledger

Immutable history of AI analyses (tokens and KRW cost per run). Recording
returns a new ledger; nothing is stored at module level, so callers decide
where a ledger lives (session, file, database).
"""

import uuid
from dataclasses import dataclass, field, asdict, replace
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from .constants import USAGE_LEDGER_MAX_RECORDS


@dataclass(frozen=True)
class UsageRecord:
    """One AI analysis run."""
    account_name: str
    analysis_type: str
    total_count: int
    sample_size: int
    sampling_ratio: float
    tokens_used: int
    cost_krw: int
    model: str
    timestamp: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass(frozen=True)
class UsageSummary:
    total_cost: int
    total_analyses: int
    today_cost: int
    this_month_cost: int


@dataclass(frozen=True)
class UsageLedger:
    """Records newest first, at most USAGE_LEDGER_MAX_RECORDS of them."""
    records: Tuple[UsageRecord, ...] = ()
    max_records: int = USAGE_LEDGER_MAX_RECORDS

    def __len__(self) -> int:
        return len(self.records)

    def record(self, usage: UsageRecord) -> "UsageLedger":
        """New ledger with usage prepended; the oldest records fall off."""
        return replace(self, records=((usage,) + self.records)[:self.max_records])

    def clear(self) -> "UsageLedger":
        return replace(self, records=())

    def summary(self, now: Optional[datetime] = None) -> UsageSummary:
        now = now or datetime.now()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        start_of_month = start_of_day.replace(day=1)
        return UsageSummary(
            total_cost=sum(r.cost_krw for r in self.records),
            total_analyses=len(self.records),
            today_cost=sum(r.cost_krw for r in self.records if r.timestamp >= start_of_day),
            this_month_cost=sum(r.cost_krw for r in self.records if r.timestamp >= start_of_month),
        )

    def between(self, start: datetime, end: datetime) -> List[UsageRecord]:
        """Records with start <= timestamp <= end."""
        return [r for r in self.records if start <= r.timestamp <= end]

    def by_analysis_type(self) -> Dict[str, Dict[str, int]]:
        result: Dict[str, Dict[str, int]] = {}
        for r in self.records:
            bucket = result.setdefault(r.analysis_type, {"count": 0, "cost": 0})
            bucket["count"] += 1
            bucket["cost"] += r.cost_krw
        return result

    def daily_cost(self, days: int = 30, now: Optional[datetime] = None) -> List[Dict]:
        """Cost per day for the last `days` days, oldest first, zero-filled."""
        today = (now or datetime.now()).date()
        totals = {today - timedelta(days=offset): 0 for offset in range(days - 1, -1, -1)}
        for r in self.records:
            day = r.timestamp.date()
            if day in totals:
                totals[day] += r.cost_krw
        return [{"date": day.isoformat(), "cost": cost} for day, cost in totals.items()]

    def to_frame(self) -> pd.DataFrame:
        columns = [
            "id", "timestamp", "account_name", "analysis_type", "total_count",
            "sample_size", "sampling_ratio", "tokens_used", "cost_krw", "model",
        ]
        return pd.DataFrame([r.to_dict() for r in self.records], columns=columns)

    def to_csv(self) -> str:
        return self.to_frame().to_csv(index=False)

    @classmethod
    def from_records(cls, records: Iterable[UsageRecord]) -> "UsageLedger":
        ordered = sorted(records, key=lambda r: r.timestamp, reverse=True)
        return cls(records=tuple(ordered[:USAGE_LEDGER_MAX_RECORDS]))
