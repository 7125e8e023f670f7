"""
Audit Check Tests

Weekend/holiday screening, auditor-chosen samples (random, systematic and
MUS), vendor checks and prior-period comparison.
Run with: pytest tests/test_audit_checks.py -v
"""

import pytest
import numpy as np
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from logic.journal import Transaction
from logic.calendar_screening import (
    DayType,
    day_type,
    is_month_end,
    screen_transactions,
    weekend_holiday_lines,
    screening_to_frame,
)
from logic.audit_sampling import (
    AuditSamplingMethod,
    AmountSide,
    audit_sample,
    mus_sample_size,
    systematic_selection,
)
from logic.vendor_analysis import (
    normalize_vendor_name,
    find_similar_vendors,
    dual_counterparties,
    sales_purchase_vendors,
    is_sales_side_account,
    is_purchase_side_account,
)
from logic.period_comparison import (
    strip_account_prefix,
    match_previous_account,
    compare_vendors,
    compare_account_totals,
)


def line(account, date="2024-01-08", debit=0, credit=0, description="", vendor=""):
    return Transaction(account, date, float(debit), float(credit), description, vendor)


class TestDayType:
    """Test weekday/weekend/holiday classification."""

    def test_weekend_days(self):
        assert day_type("2024-01-06") == DayType.SATURDAY
        assert day_type("2024-01-07") == DayType.SUNDAY
        assert day_type("2024-01-08") == DayType.WEEKDAY

    def test_holidays_win_over_weekends(self):
        assert day_type("2024-03-01") == DayType.HOLIDAY
        # 설날 on a Saturday
        assert day_type("2024-02-10") == DayType.HOLIDAY

    def test_not_a_date(self):
        assert day_type("") is None
        assert day_type("회식") is None

    def test_month_end(self):
        assert is_month_end("2024-02-29")
        assert not is_month_end("2024-02-28")
        assert not is_month_end("")


class TestCalendarScreening:
    """Test per-account weekend and holiday counts."""

    @pytest.fixture
    def lines(self):
        return [
            line("복리후생비", "2024-01-06", debit=10000),
            line("복리후생비", "2024-01-07", debit=20000),
            line("복리후생비", "2024-03-01", debit=30000),
            line("접대비", "2024-01-06", debit=40000),
            line("복리후생비", "2024-01-08", debit=50000),
            line("복리후생비", "", debit=60000),
            line("이익잉여금", "2024-01-06", credit=70000, description="전기 이월"),
            line("급여", "2024-08-31", debit=80000),
        ]

    def test_counts_per_account(self, lines):
        result = screen_transactions(lines)
        assert [a.account_name for a in result.accounts] == ["복리후생비", "접대비", "급여"]
        welfare = result.accounts[0]
        assert (welfare.saturday, welfare.sunday, welfare.holiday) == (1, 1, 1)
        assert result.flagged_count == 5
        assert result.weekday_count == 1
        assert result.undated_count == 1

    def test_month_end_exclusion(self, lines):
        result = screen_transactions(lines, exclude_month_end=True)
        assert result.excluded_month_end == 1
        assert result.flagged_count == 4
        assert "급여" not in [a.account_name for a in result.accounts]

    def test_drill_down(self, lines):
        sundays = weekend_holiday_lines(lines, account_name="복리후생비", kinds=[DayType.SUNDAY])
        assert [t.debit for t in sundays] == [20000]
        assert len(weekend_holiday_lines(lines)) == 5

    def test_expenses_only(self):
        lines = [
            line("보통예금", "2024-01-06", credit=10000),
            line("복리후생비", "2024-01-06", debit=10000),
        ]
        kept = weekend_holiday_lines(lines, expenses_only=True)
        assert [t.account_name for t in kept] == ["복리후생비"]

    def test_frame(self, lines):
        frame = screening_to_frame(screen_transactions(lines))
        assert list(frame["total"]) == [3, 1, 1]
        assert screening_to_frame(screen_transactions([])).empty


class TestAuditSampling:
    """Test random, systematic and monetary unit sampling."""

    def make_lines(self, n, amount=10000):
        return [line("외상매출금", debit=amount, description=f"매출 {i}") for i in range(n)]

    def test_mus_sample_size_table(self):
        assert mus_sample_size(10_000_000, 1_000_000, 95) == 30
        assert mus_sample_size(10_000_000, 1_000_000, 90) == 24
        assert mus_sample_size(10_000_000, 1_000_000, 99) == 47
        assert mus_sample_size(0, 1_000_000) == 0

    def test_mus_sample_size_needs_materiality(self):
        with pytest.raises(ValueError):
            mus_sample_size(10_000_000, 0)

    def test_random_sample_is_distinct(self):
        data = self.make_lines(50)
        sample = audit_sample(data, "random", sample_size=10, rng=np.random.default_rng(3))
        assert len(sample) == 10
        assert len({id(t) for t in sample.items}) == 10
        assert sample.population_count == 50

    def test_systematic_interval(self):
        population = list(range(100))
        picked = systematic_selection(population, 10, np.random.default_rng(5))
        assert len(picked) == 10
        assert all(b - a == 10 for a, b in zip(picked, picked[1:]))
        assert 0 <= picked[0] < 10

    def test_small_population_is_taken_whole(self):
        sample = audit_sample(self.make_lines(3), AuditSamplingMethod.SYSTEMATIC, rng=np.random.default_rng(0))
        assert sample.sample_size == 30
        assert len(sample) == 3

    def test_mus_favours_large_amounts(self):
        data = self.make_lines(10, amount=100_000) + [line("외상매출금", debit=9_000_000)]
        sample = audit_sample(
            data, AuditSamplingMethod.MUS, materiality=1_000_000, rng=np.random.default_rng(1)
        )
        assert sample.sample_size == 30
        assert sample.population_value == 10_000_000
        assert data[-1] in sample.items
        assert len(sample) <= len(data)

    def test_side_selects_population(self):
        data = self.make_lines(5)
        sample = audit_sample(data, "random", side=AmountSide.CREDIT, rng=np.random.default_rng(0))
        assert sample.population_count == 0
        assert len(sample) == 0

    def test_anomalies_come_first(self):
        data = self.make_lines(40) + [line("외상매출금", debit=10_000_000)]
        sample = audit_sample(
            data, "random", sample_size=5, include_anomalies=True, rng=np.random.default_rng(2)
        )
        assert sample.anomaly_count == 1
        assert sample.items[0] is data[-1]
        assert len(sample) == 5
        assert sample.to_dict()["selected"] == 5


class TestVendorAnalysis:
    """Test counterparty checks."""

    def test_normalize_vendor_name(self):
        assert normalize_vendor_name("(주)한빛상사") == "한빛상사"
        assert normalize_vendor_name("한빛상사 주식회사") == "한빛상사"
        assert normalize_vendor_name("Samsung Electronics Co.,Ltd.") == "samsungelectronics"

    def test_similar_vendors(self):
        lines = [
            line("외상매입금", credit=1_000_000, vendor="(주)한빛상사"),
            line("외상매입금", credit=1_000_000, vendor="(주)한빛상사"),
            line("외상매입금", credit=500_000, vendor="한빛상사 주식회사"),
            line("외상매입금", credit=100_000, vendor="Samsung Electronics"),
            line("외상매입금", credit=100_000, vendor="Samsung Electronic"),
            line("외상매입금", credit=100_000, vendor="LG Display"),
        ]
        clusters = find_similar_vendors(lines)
        assert len(clusters) == 2
        assert clusters[0].canonical == "(주)한빛상사"
        assert clusters[0].variants == {"(주)한빛상사": 2, "한빛상사 주식회사": 1}
        assert clusters[0].amount == 2_500_000
        assert clusters[1].score >= 90

        strict = find_similar_vendors(lines, threshold=99)
        assert [c.canonical for c in strict] == ["(주)한빛상사"]

    def test_dual_counterparties(self):
        lines = [
            line("외상매출금", debit=100, vendor="가나상사"),
            line("외상매출금", credit=30, vendor="가나상사"),
            line("외상매입금", credit=50, vendor="가나상사"),
            line("외상매출금", debit=10, description="다라상사"),
            line("외상매입금", credit=20, vendor="다라상사"),
            line("외상매입금", credit=5, vendor="마바상사"),
        ]
        shared = dual_counterparties(lines, "외상매출금", "외상매입금")
        assert [v.vendor for v in shared] == ["가나상사", "다라상사"]
        assert shared[0].debit_account_amount == 130
        assert shared[0].debit_account_count == 2
        assert shared[0].credit_account_amount == 50

    def test_account_sides(self):
        assert is_sales_side_account("제품매출 (41100)")
        assert is_sales_side_account("공사수입")
        assert not is_sales_side_account("매출원가(45100)")
        assert is_purchase_side_account("원재료(45100)")
        assert is_purchase_side_account("외주가공비（53300）")
        assert not is_purchase_side_account("보통예금(10300)")

    def test_sales_purchase_vendors(self):
        lines = [
            line("제품매출(41100)", credit=1_000_000, vendor="X상사"),
            line("제품매출(41100)", debit=90_000, vendor="X상사", description="매출환입"),
            line("원재료(45100)", debit=300_000, vendor="X상사"),
            line("원재료(45100)", debit=200_000, vendor="X상사", description="전기이월"),
            line("제품매출(41100)", credit=70_000, vendor="Y상사"),
            line("외주가공비(53300)", debit=50_000, vendor="Z건설"),
            line("공사수입(41200)", credit=80_000, vendor="Z건설"),
        ]
        vendors = sales_purchase_vendors(lines)
        assert [v.vendor for v in vendors] == ["X상사", "Z건설"]
        assert vendors[0].sales_amount == 1_000_000
        assert vendors[0].purchase_amount == 300_000
        assert vendors[0].net_amount == 700_000
        assert vendors[1].to_dict()["sales_accounts"] == {"공사수입(41200)": 80_000}


class TestPeriodComparison:
    """Test vendor-level comparison against the prior period."""

    @pytest.fixture
    def periods(self):
        current = [
            line("101.외상매출금", debit=200, vendor="A"),
            line("101.외상매출금", debit=100, vendor="B"),
            line("101.외상매출금", debit=50, vendor="C"),
            line("보통예금", credit=999, vendor="A"),
        ]
        previous = [
            line("외상매출금", debit=100, vendor="A"),
            line("외상매출금", debit=100, vendor="B"),
            line("외상매출금", debit=40, vendor="D"),
            line("미지급금", credit=10, vendor="E"),
        ]
        return current, previous

    def test_account_matching(self):
        assert strip_account_prefix("101.외상매출금") == "외상매출금"
        assert strip_account_prefix("101 외상매출금") == "외상매출금"
        assert match_previous_account("외상매출금", ["외상매출금", "101.외상매출금"]) == "외상매출금"
        assert match_previous_account("101.외상매출금", ["외상매출금"]) == "외상매출금"
        assert match_previous_account("미수금", ["외상매출금"]) is None

    def test_vendor_changes(self, periods):
        current, previous = periods
        result = compare_vendors(current, previous, "101.외상매출금")
        assert result.previous_account_name == "외상매출금"
        assert [v.vendor for v in result.vendors] == ["A", "C", "D", "B"]
        by_vendor = {v.vendor: v for v in result.vendors}
        assert by_vendor["A"].change == 100
        assert by_vendor["A"].change_percent == 100.0
        assert by_vendor["C"].change_percent == 100.0
        assert by_vendor["D"].change_percent == -100.0
        assert by_vendor["B"].change_percent == 0.0
        assert result.current_total == 350
        assert result.previous_total == 240

    def test_amount_filter(self, periods):
        current, previous = periods
        result = compare_vendors(current, previous, "101.외상매출금", amount_filter="credit")
        assert result.vendors == []

    def test_unmatched_account(self, periods):
        current, previous = periods
        result = compare_vendors(current, previous, "보통예금")
        assert result.previous_account_name is None
        assert [v.vendor for v in result.vendors] == ["A"]

    def test_account_totals(self, periods):
        current, previous = periods
        rows = {r["account_name"]: r for r in compare_account_totals(current, previous)}
        assert rows["101.외상매출금"]["previous_account_name"] == "외상매출금"
        assert rows["101.외상매출금"]["change"] == 110
        assert rows["미지급금"]["current_credit"] == 0.0
        assert rows["미지급금"]["change"] == -10
