"""
API and Analyzer Tests

Uploads small in-memory workbooks through the FastAPI app and drives the
analyzer service directly.
Run with: pytest tests/test_api.py -v
"""

import io
import pytest
import sys
import os

import numpy as np
from openpyxl import Workbook

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fastapi.testclient import TestClient

from backend.api import app
from backend.services.analyzer import LedgerAnalyzer
from backend.services.ledger_importer import LedgerImporter, LedgerImportError

XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def ledger_workbook_bytes():
    """Two vouchers paid from 보통예금, under a title banner like real exports."""
    wb = Workbook()
    ws = wb.active
    ws.title = "원장"
    ws.append(["계정별원장"])
    ws.append(["일자", "계정과목", "적요", "거래처", "차변", "대변", "전표번호"])
    ws.append(["2024-01-05", "복리후생비", "직원 회식", "식당", 50000, None, "V1"])
    ws.append(["2024-01-05", "보통예금", "직원 회식", "식당", None, 50000, "V1"])
    ws.append(["2024-02-10", "소모품비", "사무용품", "문구점", 20000, None, "V2"])
    ws.append(["2024-02-10", "보통예금", "사무용품", "문구점", None, 20000, "V2"])
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestAnalyzeEndpoint:
    """Test POST /api/v1/analyze."""

    def test_analyze_workbook(self, client):
        response = client.post(
            "/api/v1/analyze",
            files={"file": ("ledger.xlsx", ledger_workbook_bytes(), XLSX_TYPE)},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["filename"] == "ledger.xlsx"
        assert body["transaction_count"] == 4
        assert body["accounts"] == ["복리후생비", "보통예금", "소모품비"]

        sheet = body["sheets"][0]
        assert sheet["header_row"] == 1
        assert sheet["columns"]["debit"] == "차변"
        assert sheet["columns"]["entry_number"] == "전표번호"

        nodes = body["relations"]["nodes"]
        flows = {(nodes[l["source"]], nodes[l["target"]]): l["value"] for l in body["relations"]["links"]}
        assert flows[("복리후생비", "보통예금")] == 50000
        assert flows[("소모품비", "보통예금")] == 20000

        assert body["sample"]["sample_size"] == 4
        assert body["benford"]["total_count"] == 4
        assert body["monthly_summary"].startswith("- 2024-01: 건수 2건")
        assert body["calendar"]["flagged_count"] == 2

    def test_sample_size_override(self, client):
        response = client.post(
            "/api/v1/analyze",
            params={"sample_size": 2},
            files={"file": ("ledger.xlsx", ledger_workbook_bytes(), XLSX_TYPE)},
        )
        assert response.status_code == 200
        assert response.json()["sample"]["sample_size"] == 2

    def test_corrupt_workbook(self, client):
        response = client.post(
            "/api/v1/analyze",
            files={"file": ("x.xlsx", b"not a workbook", XLSX_TYPE)},
        )
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "INVALID_LEDGER_FILE"

    def test_unsupported_type(self, client):
        response = client.post(
            "/api/v1/analyze",
            files={"file": ("report.pdf", b"%PDF-1.4", "application/pdf")},
        )
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "INVALID_LEDGER_FILE"

    def test_empty_upload(self, client):
        response = client.post(
            "/api/v1/analyze",
            files={"file": ("empty.xlsx", b"", XLSX_TYPE)},
        )
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "EMPTY_FILE"


class TestEstimateEndpoint:
    """Test POST /api/v1/estimate."""

    def test_estimate(self, client):
        response = client.post("/api/v1/estimate", json={"text": "가나다", "output_tokens": 0})
        assert response.status_code == 200
        body = response.json()
        assert body["input_tokens"] == 2
        assert body["model"] == "flash"
        assert body["cost_krw"] >= 0

    def test_unknown_model_rejected(self, client):
        response = client.post("/api/v1/estimate", json={"text": "abc", "model": "ultra"})
        assert response.status_code == 422


class TestLedgerImporter:
    """Test reading raw grids from uploaded bytes."""

    def test_csv_upload(self):
        content = "일자,적요,차변,대변\n2024-01-01,식대,1000,\n".encode("cp949")
        result = LedgerImporter().import_file(content, "복리후생비.csv")
        assert list(result.tables) == ["복리후생비"]
        assert result.row_count == 1

    def test_csv_with_title_banner(self):
        """A one-cell banner line must not narrow the grid to one column."""
        content = (
            "계정별원장\n"
            "일자,계정과목,적요,차변,대변\n"
            "2024-01-02,복리후생비,식대,12000,\n"
            "2024-01-02,보통예금,식대,,12000\n"
        ).encode("utf-8-sig")
        grids = LedgerImporter().read_grids(content, "원장.csv")
        assert grids["원장"].shape == (4, 5)
        result = LedgerImporter().import_file(content, "원장.csv")
        table = result.tables["원장"]
        assert table.header_row == 1
        assert table.columns.credit == "대변"
        assert result.row_count == 2

    def test_legacy_xls_is_rejected(self):
        with pytest.raises(LedgerImportError, match="Unsupported file type: .xls"):
            LedgerImporter().read_grids(b"\xd0\xcf\x11\xe0", "ledger.xls")

    def test_undecodable_csv(self):
        with pytest.raises(LedgerImportError):
            LedgerImporter().read_grids(b"\xff\xfe\x00\x81\xff", "broken.csv")

    def test_unsupported_suffix(self):
        with pytest.raises(LedgerImportError):
            LedgerImporter().read_grids(b"abc", "notes.docx")

    def test_headerless_sheet_becomes_warning(self):
        wb = Workbook()
        wb.active.append(["메모"])
        buffer = io.BytesIO()
        wb.save(buffer)
        result = LedgerImporter().import_file(buffer.getvalue(), "memo.xlsx")
        assert result.row_count == 0
        assert any("no header row" in w for w in result.warnings)


class TestLedgerAnalyzer:
    """Test the analyzer service without HTTP."""

    def test_account_drill_down(self):
        analyzer = LedgerAnalyzer()
        analysis = analyzer.analyze_file(ledger_workbook_bytes(), "ledger.xlsx")
        detail = analyzer.analyze_account(
            analysis.transactions, "보통예금", rng=np.random.default_rng(0)
        )
        assert detail["transaction_count"] == 2
        assert detail["data_summary"].startswith("계정과목: 보통예금")
        assert detail["sample"]["sample_size"] == 2
        # 보통예금 is credited, so its counter accounts sit on the debit side
        names = [b["account_name"] for b in detail["counter_accounts"]["credit"]]
        assert names == ["복리후생비", "소모품비"]

    def test_sheet_anomaly_scan(self):
        analysis = LedgerAnalyzer().analyze_file(ledger_workbook_bytes(), "ledger.xlsx")
        sheet = analysis.sheets[0]
        assert sheet.amount_column == "차변"
        assert sheet.statistics["count"] == 2
        # 50,000 is a round amount above the mean: flagged, but only as low
        summary = analysis.to_dict()["sheets"][0]["anomaly_summary"]
        assert summary["total"] == 1
        assert summary["low"] == 1

    def test_holiday_lines_are_screened(self):
        analysis = LedgerAnalyzer().analyze_file(ledger_workbook_bytes(), "ledger.xlsx")
        # 2024-02-10 is 설날
        assert analysis.calendar.flagged_count == 2
        assert {a.account_name for a in analysis.calendar.accounts} == {"소모품비", "보통예금"}
        body = analysis.to_dict()
        assert body["calendar"]["weekday_count"] == 2
        assert body["similar_vendors"] == []
        assert body["sales_purchase_vendors"] == []

    def test_audit_sample_of_one_account(self):
        analyzer = LedgerAnalyzer()
        analysis = analyzer.analyze_file(ledger_workbook_bytes(), "ledger.xlsx")
        sample = analyzer.audit_sample(
            analysis.transactions, "보통예금", method="systematic", side="credit",
            rng=np.random.default_rng(0),
        )
        assert sample.population_count == 2
        assert sample.population_value == 70000
        assert len(sample) == 2

    def test_counterparty_and_period_checks(self):
        analyzer = LedgerAnalyzer()
        analysis = analyzer.analyze_file(ledger_workbook_bytes(), "ledger.xlsx")
        shared = analyzer.counterparty_checks(analysis.transactions, "복리후생비", "보통예금")
        assert [v["vendor"] for v in shared["vendors"]] == ["식당"]

        comparison = analyzer.compare_periods(analysis.transactions, analysis.transactions, "보통예금")
        assert comparison.previous_account_name == "보통예금"
        assert {v.vendor for v in comparison.vendors} == {"식당", "문구점"}
        assert all(v.change == 0 for v in comparison.vendors)
