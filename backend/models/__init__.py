# backend/models/__init__.py
"""
API Models for Ledger Insight

Pydantic request/response schemas for the HTTP surface. Domain objects
(transactions, anomalies, Benford reports) are dataclasses in backend.logic.
"""

from .api_models import (
    AnalyzeResponse,
    AnomalyItem,
    BenfordDigit,
    BenfordSummary,
    CostEstimateRequest,
    CostEstimateResponse,
    ErrorResponse,
    RelationGraph,
    RelationLink,
    SampleSummary,
    SheetSummary,
    TransactionItem,
)

__all__ = [
    "AnalyzeResponse",
    "AnomalyItem",
    "BenfordDigit",
    "BenfordSummary",
    "CostEstimateRequest",
    "CostEstimateResponse",
    "ErrorResponse",
    "RelationGraph",
    "RelationLink",
    "SampleSummary",
    "SheetSummary",
    "TransactionItem",
]
