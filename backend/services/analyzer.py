from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np

from backend.logic.audit_sampling import AuditSample, AuditSamplingMethod, AmountSide, audit_sample
from backend.logic.benford import BenfordReport, benford_from_transactions
from backend.logic.calendar_screening import CalendarScreening, screen_transactions
from backend.logic.journal import Transaction, tables_to_transactions, account_names, filter_by_account
from backend.logic.logging_utils import get_logger
from backend.logic.outlier_detector import (
    AnomalyResult,
    compute_amount_statistics,
    detect_anomalies,
    summarize_anomalies,
)
from backend.logic.parse_utils import clean_amount
from backend.logic.period_comparison import AmountFilter, PeriodComparison, compare_vendors
from backend.logic.prompt_payloads import generate_data_summary, monthly_aggregates
from backend.logic.relationship_builder import (
    build_account_relations,
    counter_account_analysis,
    top_relation_links,
)
from backend.logic.sampling import SampleSet, hybrid_sample, smart_sample
from backend.logic.sheet_loader import LedgerTable
from backend.logic.vendor_analysis import (
    VendorCluster,
    SalesPurchaseVendor,
    dual_counterparties,
    find_similar_vendors,
    sales_purchase_vendors,
)
from backend.services.ledger_importer import LedgerImporter

logger = get_logger(__name__)


@dataclass
class SheetAnalysis:
    """Per-sheet anomaly scan."""
    sheet_name: str
    header_row: int
    columns: Dict[str, Optional[str]]
    row_count: int
    amount_column: Optional[str] = None
    statistics: Optional[Dict[str, float]] = None
    anomalies: List[AnomalyResult] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "sheet_name": self.sheet_name,
            "header_row": self.header_row,
            "columns": self.columns,
            "row_count": self.row_count,
            "amount_column": self.amount_column,
            "statistics": self.statistics,
            "anomaly_summary": summarize_anomalies(self.anomalies),
            "anomalies": [a.to_dict() for a in self.anomalies],
        }


@dataclass
class LedgerAnalysis:
    """Everything derived from one uploaded ledger."""
    filename: str
    sheets: List[SheetAnalysis] = field(default_factory=list)
    transactions: List[Transaction] = field(default_factory=list)
    benford: BenfordReport = field(default_factory=BenfordReport)
    relations: Dict = field(default_factory=dict)
    sample: Optional[SampleSet] = None
    monthly_summary: str = ""
    calendar: CalendarScreening = field(default_factory=CalendarScreening)
    similar_vendors: List[VendorCluster] = field(default_factory=list)
    sales_purchase_vendors: List[SalesPurchaseVendor] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def accounts(self) -> List[str]:
        return account_names(self.transactions)

    def to_dict(self) -> Dict:
        return {
            "filename": self.filename,
            "transaction_count": len(self.transactions),
            "accounts": self.accounts,
            "sheets": [s.to_dict() for s in self.sheets],
            "benford": self.benford.to_dict(),
            "relations": self.relations,
            "sample": self.sample.to_dict() if self.sample else None,
            "monthly_summary": self.monthly_summary,
            "calendar": self.calendar.to_dict(),
            "similar_vendors": [c.to_dict() for c in self.similar_vendors],
            "sales_purchase_vendors": [v.to_dict() for v in self.sales_purchase_vendors],
            "warnings": self.warnings,
        }


class LedgerAnalyzer:
    """
    Runs the ledger pipeline end to end: load sheets, convert to
    transactions, then anomaly, Benford, relationship, sampling and
    calendar/vendor screening passes.
    """

    def __init__(self, importer: Optional[LedgerImporter] = None):
        self.importer = importer or LedgerImporter()

    def analyze_file(
        self,
        source: Union[str, Path, bytes],
        filename: Optional[str] = None,
        sample_size: Optional[int] = None
    ) -> LedgerAnalysis:
        """Import a workbook and analyze it. Raises LedgerImportError."""
        imported = self.importer.import_file(source, filename)
        analysis = self.analyze_tables(imported.tables, imported.filename, sample_size)
        analysis.warnings = imported.warnings + analysis.warnings
        return analysis

    def analyze_tables(
        self,
        tables: Dict[str, LedgerTable],
        filename: str = "",
        sample_size: Optional[int] = None
    ) -> LedgerAnalysis:
        analysis = LedgerAnalysis(filename=filename)

        for name, table in tables.items():
            if table.is_empty:
                continue
            analysis.sheets.append(self.analyze_sheet(table))
            if not table.columns.has_amounts:
                analysis.warnings.append(f"Sheet '{name}': no debit, credit or amount column")

        analysis.transactions = tables_to_transactions(tables)
        if not analysis.transactions:
            logger.warning(f"No transactions in '{filename}'")
            return analysis

        analysis.benford = benford_from_transactions(analysis.transactions)
        analysis.relations = top_relation_links(build_account_relations(analysis.transactions))
        analysis.sample = hybrid_sample(analysis.transactions, sample_size)
        analysis.monthly_summary = monthly_aggregates(analysis.transactions)
        analysis.calendar = screen_transactions(analysis.transactions)
        analysis.similar_vendors = find_similar_vendors(analysis.transactions)
        analysis.sales_purchase_vendors = sales_purchase_vendors(analysis.transactions)

        logger.info(
            f"Analyzed '{filename}': {len(analysis.transactions)} transactions, "
            f"{len(analysis.accounts)} accounts, sample {len(analysis.sample)}"
        )
        return analysis

    def analyze_sheet(self, table: LedgerTable, amount_column: Optional[str] = None) -> SheetAnalysis:
        """
        Anomaly scan of one sheet. Defaults to the first amount column
        (debit, then credit, then single amount).
        """
        columns = table.columns
        column = amount_column or next(iter(columns.amount_columns), None)
        result = SheetAnalysis(
            sheet_name=table.sheet_name,
            header_row=table.header_row,
            columns=columns.to_dict(),
            row_count=table.row_count,
            amount_column=column,
        )
        if column is None:
            return result

        stats = compute_amount_statistics(clean_amount(v) for v in table.rows[column].tolist())
        result.statistics = stats.to_dict() if stats else None
        result.anomalies = detect_anomalies(table.rows, column)
        return result

    def analyze_account(
        self,
        transactions: List[Transaction],
        account_name: str,
        sample_size: Optional[int] = None,
        rng: Optional[np.random.Generator] = None
    ) -> Dict:
        """
        Account drill-down: statistics summary, smart sample and the
        counter accounts on both sides.
        """
        lines = filter_by_account(transactions, account_name)
        sample = smart_sample(lines, sample_size, account_name=account_name, rng=rng)
        debit_side = counter_account_analysis(transactions, account_name, side="debit")
        credit_side = counter_account_analysis(transactions, account_name, side="credit")

        return {
            "account_name": account_name,
            "transaction_count": len(lines),
            "data_summary": generate_data_summary(lines, account_name),
            "sample": sample.to_dict(),
            "counter_accounts": {
                "debit": [asdict(b) for b in debit_side.breakdown],
                "credit": [asdict(b) for b in credit_side.breakdown],
            },
        }

    def audit_sample(
        self,
        transactions: List[Transaction],
        account_name: str,
        method: AuditSamplingMethod = AuditSamplingMethod.RANDOM,
        sample_size: Optional[int] = None,
        side: AmountSide = AmountSide.BOTH,
        materiality: Optional[float] = None,
        confidence: int = 95,
        include_anomalies: bool = False,
        rng: Optional[np.random.Generator] = None
    ) -> AuditSample:
        """Auditor-chosen sample of one account's lines."""
        lines = filter_by_account(transactions, account_name)
        return audit_sample(
            lines,
            method=method,
            sample_size=sample_size,
            side=side,
            materiality=materiality,
            confidence=confidence,
            include_anomalies=include_anomalies,
            rng=rng,
        )

    def counterparty_checks(
        self,
        transactions: List[Transaction],
        debit_account: str,
        credit_account: str
    ) -> Dict:
        """Vendors shared by two accounts, e.g. receivables and payables."""
        shared = dual_counterparties(transactions, debit_account, credit_account)
        return {
            "debit_account": debit_account,
            "credit_account": credit_account,
            "vendors": [v.to_dict() for v in shared],
        }

    def compare_periods(
        self,
        current: List[Transaction],
        previous: List[Transaction],
        account_name: str,
        amount_filter: AmountFilter = AmountFilter.ALL
    ) -> PeriodComparison:
        return compare_vendors(current, previous, account_name, amount_filter)
