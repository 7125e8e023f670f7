# backend/__init__.py
"""
Ledger Insight Backend Package

General-ledger analysis for exported accounting workbooks
- Auto-detection of header rows and ledger columns
- Account relationship reconstruction from journal vouchers
- Amount anomaly and Benford first-digit screening
- Bounded transaction samples for AI-assisted review
"""

__version__ = "1.0.0"
__author__ = "Ledger Insight Team"
