# backend/services/__init__.py
"""
Service Layer for Ledger Insight

- LedgerImporter: workbook/CSV reading into raw sheet grids
- LedgerAnalyzer: end-to-end ledger analysis
"""

from .ledger_importer import LedgerImporter, LedgerImportError, ImportResult
from .analyzer import LedgerAnalyzer, LedgerAnalysis, SheetAnalysis

__all__ = [
    "LedgerImporter",
    "LedgerImportError",
    "ImportResult",
    "LedgerAnalyzer",
    "LedgerAnalysis",
    "SheetAnalysis",
]
