"""
Sampling Tests

Sample-size policies and the smart / hybrid samplers. Random stages are
seeded where a test depends on them; otherwise only structural properties
are checked.
Run with: pytest tests/test_sampling.py -v
"""

import pytest
import numpy as np
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from logic.journal import Transaction
from logic.sampling import (
    SamplePolicy,
    calculate_sample_size,
    smart_sample,
    hybrid_sample,
    sort_by_date,
)


def make_transactions(n, account="복리후생비"):
    """n lines spread over twelve months with increasing debit amounts."""
    return [
        Transaction(
            account_name=account,
            date=f"2024-{(i % 12) + 1:02d}-{(i % 28) + 1:02d}",
            debit=float((i + 1) * 1000),
            credit=0.0,
            description=f"거래 {i}",
        )
        for i in range(n)
    ]


class TestSampleSizePolicies:
    """The two policies are separate tables."""

    @pytest.mark.parametrize("total,expected", [
        (0, 0),
        (80, 80),
        (100, 100),
        (300, 60),
        (1000, 50),
        (10000, 300),
        (300000, 2000),
    ])
    def test_audit_tiered(self, total, expected):
        assert calculate_sample_size(total, SamplePolicy.AUDIT_TIERED) == expected

    @pytest.mark.parametrize("total,expected", [
        (100, 50),
        (300, 60),
        (1000, 100),
        (8000, 400),
        (100000, 1000),
    ])
    def test_smart(self, total, expected):
        assert calculate_sample_size(total, SamplePolicy.SMART) == expected

    def test_audit_tiered_rounds_up(self):
        assert calculate_sample_size(101, SamplePolicy.AUDIT_TIERED) == 21


class TestSmartSample:
    """Test the stratified smart sampler."""

    def test_size_and_disjointness(self):
        data = make_transactions(300)
        sample = smart_sample(data, rng=np.random.default_rng(7))
        assert sample.target_size == 60
        assert len(sample) == 60
        assert len({id(t) for t in sample.items}) == 60
        assert all(any(t is d for d in data) for t in sample.items)
        assert sum(sample.composition.values()) == 60

    def test_top_amounts_always_included(self):
        data = make_transactions(300)
        sample = smart_sample(data, 60, account_name="복리후생비", rng=np.random.default_rng(1))
        top = sorted(data, key=lambda t: t.debit, reverse=True)[:18]
        chosen = {id(t) for t in sample.items}
        assert all(id(t) in chosen for t in top)
        assert sample.composition["top_amount"] == 18

    def test_small_population_returned_as_is(self):
        """No size inflation: a population below the target comes back unchanged."""
        data = make_transactions(10)
        sample = smart_sample(data, len(data) + 50)
        assert sample.items == data
        assert sample.items is not data
        assert sample.is_complete

    def test_empty(self):
        sample = smart_sample([])
        assert sample.items == []
        assert sample.total_count == 0

    def test_credit_normal_account_uses_credit_side(self):
        """For revenue accounts the credit side decides the top amounts."""
        data = [
            Transaction("상품매출", f"2024-01-{i + 1:02d}", debit=float(i), credit=float(1000 - i))
            for i in range(25)
        ]
        sample = smart_sample(data, 10, account_name="상품매출", rng=np.random.default_rng(0))
        top = sample.items[:3]
        assert [t.credit for t in top] == [1000.0, 999.0, 998.0]

    def test_undated_lines_still_sampled(self):
        data = make_transactions(100) + [Transaction("복리후생비", "", 5.0, 0.0) for _ in range(100)]
        sample = smart_sample(data, 50, rng=np.random.default_rng(3))
        assert len(sample) == 50


class TestHybridSample:
    """Test materiality + systematic sampling."""

    def test_materiality_and_date_order(self):
        data = make_transactions(300)
        sample = hybrid_sample(data)
        assert len(sample) == 60
        assert sample.composition == {"materiality": 30, "systematic": 30}

        top = sorted(data, key=lambda t: t.debit, reverse=True)[:30]
        chosen = {id(t) for t in sample.items}
        assert all(id(t) in chosen for t in top)

        dates = [t.date for t in sample.items]
        assert dates == sorted(dates)
        assert len(chosen) == 60

    def test_description(self):
        sample = hybrid_sample(make_transactions(300))
        assert sample.description == (
            "(보안을 위해 전체 300건 중 약 20.0%인 60건을 표본 추출하여 분석 "
            "- 중요거래 및 기간별 분산 추출 적용)"
        )

    def test_full_population_sorted(self):
        data = list(reversed(make_transactions(20)))
        sample = hybrid_sample(data)
        assert len(sample) == 20
        assert sample.description == "(전체 20건 데이터 전수 분석)"
        assert [t.date for t in sample.items] == sorted(t.date for t in data)

    def test_explicit_target_larger_than_population(self):
        data = make_transactions(10)
        assert len(hybrid_sample(data, len(data) + 50)) == 10

    def test_undated_sort_last(self):
        undated = Transaction("A", "", 1.0, 0.0)
        dated = Transaction("A", "2024-01-01", 1.0, 0.0)
        assert sort_by_date([undated, dated]) == [dated, undated]

    def test_empty(self):
        sample = hybrid_sample([])
        assert len(sample) == 0
        assert sample.description == "데이터 없음"
