from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Body of every 4xx/5xx response, under FastAPI's "detail" key."""
    error: str = Field(..., description="Machine-readable code, e.g. INVALID_LEDGER_FILE")
    message: str
    details: Optional[Dict[str, Any]] = None


class TransactionItem(BaseModel):
    """A canonical ledger line as returned by the API."""
    account_name: str
    date: str = Field("", description="YYYY-MM-DD, empty when the source date was unparseable")
    debit: float = Field(0.0, ge=0)
    credit: float = Field(0.0, ge=0)
    description: str = ""
    vendor: str = ""
    entry_number: Optional[str] = None
    row_id: Optional[int] = Field(None, description="Row number in the source sheet")


class AnomalyItem(BaseModel):
    index: Optional[Union[int, str]] = Field(None, description="Row label in the source sheet")
    amount: float
    severity: str = Field(..., description="high, medium or low")
    reasons: List[str] = Field(default_factory=list)
    z_score: Optional[float] = None


class SheetSummary(BaseModel):
    sheet_name: str
    header_row: int
    columns: Dict[str, Optional[str]] = Field(default_factory=dict, description="Role -> source column")
    row_count: int = 0
    amount_column: Optional[str] = None
    statistics: Optional[Dict[str, float]] = None
    anomaly_summary: Dict[str, int] = Field(default_factory=dict)
    anomalies: List[AnomalyItem] = Field(default_factory=list)


class BenfordDigit(BaseModel):
    digit: int = Field(..., ge=1, le=9)
    actual_count: int = 0
    actual_percent: float = 0.0
    benford_percent: float
    difference: float = 0.0


class BenfordSummary(BaseModel):
    results: List[BenfordDigit] = Field(default_factory=list)
    total_count: int = 0
    low_confidence: bool = True
    suspect_digit: Optional[int] = None
    max_abs_difference: float = 0.0
    chi_square: float = 0.0
    mad: float = 0.0
    conformity: str = "no data"


class RelationLink(BaseModel):
    source: int = Field(..., description="Index into nodes (debited account)")
    target: int = Field(..., description="Index into nodes (credited account)")
    value: float
    count: int


class RelationGraph(BaseModel):
    nodes: List[str] = Field(default_factory=list)
    links: List[RelationLink] = Field(default_factory=list)


class SampleSummary(BaseModel):
    policy: str
    target_size: int
    total_count: int
    sample_size: int
    composition: Dict[str, int] = Field(default_factory=dict)
    description: str = ""
    items: List[TransactionItem] = Field(default_factory=list)


class AccountDayCountItem(BaseModel):
    account_name: str
    saturday: int = 0
    sunday: int = 0
    holiday: int = 0
    total: int = 0


class CalendarSummary(BaseModel):
    """Weekend and public-holiday lines per account."""
    accounts: List[AccountDayCountItem] = Field(default_factory=list)
    weekday_count: int = 0
    flagged_count: int = 0
    excluded_month_end: int = 0
    undated_count: int = 0


class VendorClusterItem(BaseModel):
    canonical: str
    variants: Dict[str, int] = Field(default_factory=dict, description="Spelling -> line count")
    amount: float = 0.0
    score: float = Field(100.0, description="Lowest similarity to the canonical spelling")


class SalesPurchaseVendorItem(BaseModel):
    vendor: str
    sales_amount: float = 0.0
    sales_count: int = 0
    purchase_amount: float = 0.0
    purchase_count: int = 0
    net_amount: float = 0.0
    sales_accounts: Dict[str, float] = Field(default_factory=dict)
    purchase_accounts: Dict[str, float] = Field(default_factory=dict)


class AnalyzeResponse(BaseModel):
    """Result of POST /api/v1/analyze."""
    filename: str
    transaction_count: int = 0
    accounts: List[str] = Field(default_factory=list)
    sheets: List[SheetSummary] = Field(default_factory=list)
    benford: BenfordSummary = Field(default_factory=BenfordSummary)
    relations: RelationGraph = Field(default_factory=RelationGraph)
    sample: Optional[SampleSummary] = None
    monthly_summary: str = ""
    calendar: CalendarSummary = Field(default_factory=CalendarSummary)
    similar_vendors: List[VendorClusterItem] = Field(default_factory=list)
    sales_purchase_vendors: List[SalesPurchaseVendorItem] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class CostEstimateRequest(BaseModel):
    text: str = Field(..., description="Prompt text to be sent to the AI model")
    output_tokens: int = Field(2000, ge=0)
    model: str = Field("flash", pattern="^(flash|pro)$")


class CostEstimateResponse(BaseModel):
    input_tokens: int
    output_tokens: int
    model: str
    cost_krw: int
