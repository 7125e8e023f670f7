"""
Parsing and Column Resolution Tests

Covers cell parsing helpers and the header keyword resolver.
Run with: pytest tests/test_parsing.py -v
"""

import pytest
import pandas as pd
import sys
import os
from datetime import date, datetime

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from logic.parse_utils import parse_number, clean_amount, parse_date, to_iso_date, cell_text, is_empty
from logic.column_detector import (
    HEADER_KEYS,
    MatchRule,
    SemanticColumnMap,
    resolve_column,
    find_debit_credit_headers,
    resolve_semantic_columns,
    extract_row_amounts,
    get_all_keywords_for_role,
)


class TestNumberParsing:
    """Test amount cells in their various export formats."""

    def test_parses_thousands_separators(self):
        """Should strip commas."""
        assert parse_number("1,234.56") == 1234.56

    def test_parses_accounting_negatives(self):
        """Parentheses mean a negative amount."""
        assert parse_number("(1,234)") == -1234.0

    def test_parses_currency_symbols(self):
        """Should strip the won sign and spaces."""
        assert parse_number("₩ 5,000") == 5000.0

    def test_unparseable_returns_default(self):
        assert parse_number("abc") is None
        assert parse_number("abc", default=0.0) == 0.0

    def test_clean_amount_treats_placeholders_as_zero(self):
        """Blank, dash and NaN cells carry no amount."""
        assert clean_amount("-") == 0.0
        assert clean_amount("") == 0.0
        assert clean_amount(None) == 0.0
        assert clean_amount(float("nan")) == 0.0
        assert clean_amount("1,000") == 1000.0

    def test_non_finite_values_are_not_amounts(self):
        """'inf' and overflowing exponents parse to floats Python accepts but no ledger holds."""
        assert parse_number("inf") is None
        assert parse_number("-Infinity", default=0.0) == 0.0
        assert parse_number("1e999") is None
        assert parse_number(float("inf")) is None
        assert parse_number("nan") is None
        assert clean_amount("1e999") == 0.0
        assert clean_amount("-inf") == 0.0

    def test_is_empty(self):
        assert is_empty(None)
        assert is_empty("   ")
        assert is_empty(float("nan"))
        assert not is_empty(0)


class TestDateParsing:
    """Test the ledger date parser."""

    def test_month_day_uses_reference_year(self):
        """'M/D' has no year; the current year is assumed."""
        assert parse_date("3/15", today=date(2024, 1, 1)) == pd.Timestamp(2024, 3, 15)
        assert parse_date("12-31", today=date(2023, 6, 1)) == pd.Timestamp(2023, 12, 31)

    def test_invalid_month_day_is_rejected(self):
        """2/30 does not round-trip and is not a date."""
        assert parse_date("2/30", today=date(2024, 1, 1)) is None

    def test_excel_serial_numbers(self):
        """Serial numbers between 1 and 50000 are days since 1899-12-30."""
        assert parse_date(45000) == pd.Timestamp(2023, 3, 15)
        assert parse_date(0) is None
        assert parse_date(50000) is None

    def test_full_date_strings(self):
        assert parse_date("2024-01-05") == pd.Timestamp(2024, 1, 5)
        assert parse_date("2024.01.05") == pd.Timestamp(2024, 1, 5)
        assert parse_date("2024/1/5") == pd.Timestamp(2024, 1, 5)

    def test_native_dates_pass_through(self):
        assert parse_date(datetime(2024, 2, 1, 10, 30)) == pd.Timestamp(2024, 2, 1, 10, 30)
        assert parse_date(date(2024, 2, 1)) == pd.Timestamp(2024, 2, 1)

    def test_text_is_not_a_date(self):
        assert parse_date("적요") is None
        assert parse_date(True) is None

    def test_iso_formatting(self):
        assert to_iso_date(datetime(2024, 1, 5)) == "2024-01-05"
        assert to_iso_date("not a date") == ""

    def test_cell_text_drops_float_suffix(self):
        """Voucher numbers read from Excel come back as floats."""
        assert cell_text(12.0) == "12"
        assert cell_text(None) == ""
        assert cell_text(" 보통예금 ") == "보통예금"


class TestColumnResolution:
    """Test keyword-based header resolution."""

    def test_exact_match_beats_substring(self):
        """An exact '일자' wins over '거래일자' even though it comes later."""
        assert resolve_column(["거래일자", "일자"], HEADER_KEYS["date"]) == "일자"
        assert resolve_column(["차변금액", "차변"], ["차변"]) == "차변"

    def test_keyword_order_beats_header_order(self):
        """'날짜' is listed before 'date' in the keyword family."""
        assert resolve_column(["date", "날짜"], HEADER_KEYS["date"]) == "날짜"

    def test_substring_match_ignores_whitespace(self):
        assert resolve_column(["거래 일자 ", "적요"], HEADER_KEYS["date"]) == "거래 일자 "

    def test_short_keywords_need_exact_match(self):
        """'no' must not match 'Notes'."""
        assert resolve_column(["Notes"], HEADER_KEYS["entry_number"]) is None
        assert resolve_column(["No"], HEADER_KEYS["entry_number"]) == "No"

    def test_fuzzy_rule_is_opt_in(self):
        """A misspelt header only resolves when the fuzzy rule is enabled."""
        assert resolve_column(["Debiit"], ["debit"]) is None
        fuzzy = (MatchRule.EXACT, MatchRule.SUBSTRING, MatchRule.FUZZY)
        assert resolve_column(["Debiit"], ["debit"], rules=fuzzy) == "Debiit"

    def test_exclude_predicate(self):
        assert resolve_column(["차변계정과목", "차변"], HEADER_KEYS["debit"],
                              exclude=lambda h: "계정" in h) == "차변"

    def test_unknown_role_has_no_keywords(self):
        assert get_all_keywords_for_role("nope") == []
        assert "차변" in get_all_keywords_for_role("debit")


class TestDebitCreditResolution:
    """Test debit/credit resolution including the data fallback."""

    def test_skips_account_name_columns(self):
        """'차변계정과목' names an account, not an amount."""
        headers = ["일자", "차변계정과목", "차변", "대변계정과목", "대변"]
        assert find_debit_credit_headers(headers) == ("차변", "대변")

    def test_falls_back_to_largest_numeric_columns(self):
        """Without keywords, the largest absolute sums become debit then credit."""
        headers = ["일자", "적요", "A", "B"]
        rows = pd.DataFrame({
            "일자": ["2024-01-01", "2024-01-02"],
            "적요": ["x", "y"],
            "A": [100, 200],
            "B": [400, -600],
        }, dtype=object)
        debit, credit = find_debit_credit_headers(headers, rows, date_header="일자")
        assert debit == "B"
        assert credit == "A"

    def test_balance_column_is_demoted(self):
        """'차변잔액' is a balance; with no other debit column the role stays unresolved."""
        debit, credit = find_debit_credit_headers(["일자", "차변잔액", "대변"])
        assert debit is None
        assert credit == "대변"


class TestSemanticColumns:
    """Test whole-sheet role resolution."""

    def test_typical_korean_ledger(self):
        headers = ["일자", "계정과목", "거래처", "적요", "차변", "대변", "잔액"]
        columns = resolve_semantic_columns(headers)
        assert columns.date == "일자"
        assert columns.account == "계정과목"
        assert columns.vendor == "거래처"
        assert columns.description == "적요"
        assert columns.debit == "차변"
        assert columns.credit == "대변"
        assert columns.balance == "잔액"
        assert columns.amount is None
        assert columns.amount_columns == ["차변", "대변"]

    def test_each_header_has_one_role(self):
        headers = ["Date", "Account", "Description", "Amount", "Type", "No"]
        columns = resolve_semantic_columns(headers)
        assigned = [v for v in columns.to_dict().values() if v]
        assert len(assigned) == len(set(assigned))
        assert columns.amount == "Amount"
        assert columns.classification == "Type"
        assert columns.entry_number == "No"


class TestRowAmounts:
    """Test debit/credit extraction for a single row."""

    def test_classification_moves_amount_to_credit(self):
        columns = SemanticColumnMap(amount="금액", classification="구분")
        assert extract_row_amounts({"구분": "대변", "금액": "5,000"}, columns) == (0.0, 5000.0)
        assert extract_row_amounts({"구분": "차변", "금액": 3000}, columns) == (3000.0, 0.0)

    def test_amount_without_classification_goes_to_debit(self):
        columns = SemanticColumnMap(amount="금액")
        assert extract_row_amounts({"금액": 700}, columns) == (700.0, 0.0)

    def test_negative_amounts_become_positive(self):
        columns = SemanticColumnMap(debit="차변", credit="대변")
        assert extract_row_amounts({"차변": "-1,000", "대변": None}, columns) == (1000.0, 0.0)


class TestAmountColumnRoles:
    """Test how generic amount columns and fuzzy settings shape the role map."""

    def test_classification_sheet_keeps_generic_amount(self):
        """With a 구분 column the 금액 column is the amount, never a data-inferred debit."""
        headers = ["일자", "계정과목", "구분", "금액", "적요"]
        rows = pd.DataFrame({
            "일자": ["2024-01-01", "2024-01-01"],
            "계정과목": ["보통예금", "상품매출"],
            "구분": ["차변", "대변"],
            "금액": [50000, 50000],
            "적요": ["매출 입금", "매출 입금"],
        }, dtype=object)
        columns = resolve_semantic_columns(headers, rows)
        assert columns.amount == "금액"
        assert columns.classification == "구분"
        assert columns.debit is None
        assert columns.credit is None

    def test_generic_amount_without_classification_still_falls_back(self):
        headers = ["일자", "적요", "금액"]
        rows = pd.DataFrame({"일자": ["2024-01-01"], "적요": ["x"], "금액": [100]}, dtype=object)
        debit, credit = find_debit_credit_headers(headers, rows, date_header="일자")
        assert debit == "금액"
        debit, credit = find_debit_credit_headers(headers, rows, date_header="일자", reserved=["금액"])
        assert (debit, credit) == (None, None)

    def test_fuzzy_threshold_reaches_every_role(self):
        """'Debiit' scores about 91 against 'debit'."""
        fuzzy = (MatchRule.EXACT, MatchRule.SUBSTRING, MatchRule.FUZZY)
        headers = ["일자", "Debiit", "대변", "Vendr"]
        loose = resolve_semantic_columns(headers, rules=fuzzy, fuzzy_threshold=85)
        assert loose.debit == "Debiit"
        assert loose.vendor == "Vendr"
        strict = resolve_semantic_columns(headers, rules=fuzzy, fuzzy_threshold=95)
        assert strict.debit is None
        assert strict.vendor is None
        assert strict.credit == "대변"
