# backend/logic/constants.py
"""
Centralized Constants Module

Thresholds, limits and fixed tables used by the ledger ingestion and
analysis modules. Anything that reads like a magic number belongs here.
"""

# ==============================================================================
# HEADER DETECTION
# ==============================================================================

# Only the top of a sheet is searched for the header row
HEADER_SCAN_ROWS = 20

# Rows below a candidate header inspected for a leading date cell
HEADER_LOOKAHEAD_ROWS = 5

# Density fallback needs at least this many filled cells in a row
MIN_HEADER_DENSITY = 3

# Rows shorter than this are never keyword-anchored headers
MIN_HEADER_ROW_LENGTH = 3

# Title banner printed above account ledgers ("account ledger")
LEDGER_TITLE_BANNER = "계정별원장"

# Placeholder names for blank header cells (__EMPTY, __EMPTY_1, ...)
EMPTY_HEADER_PREFIX = "__EMPTY"


# ==============================================================================
# ROW FILTERING
# ==============================================================================

# Running monthly / cumulative total markers
SUMMARY_ROW_MARKERS = ("월계", "누계")

# Bracketed carry-forward banners, compared after whitespace removal
BRACKETED_SUMMARY_MARKERS = ("[월계]", "[누계]", "[전기이월]", "[전월이월]", "[차기이월]")

# Cell text that counts as "nothing" when deciding whether a row is blank
BLANK_CELL_TOKENS = ("", "0", "-")

# Repeated header literals for the date column on later printed pages
DUPLICATE_DATE_HEADER_LITERALS = ("일  자", "일자")


# ==============================================================================
# DATE PARSING
# ==============================================================================

# Excel's 1900 date system, offset for the Lotus leap-year bug
EXCEL_SERIAL_DATE_BASE = "1899-12-30"

# Serial numbers strictly between these bounds are treated as dates
MIN_EXCEL_SERIAL_DATE = 1
MAX_EXCEL_SERIAL_DATE = 50000


# ==============================================================================
# ACCOUNT NUMBER MASKING
# ==============================================================================

# Bank account numbers shorter or longer than this are left alone
MASK_MIN_DIGITS = 10
MASK_MAX_DIGITS = 16
MASK_VISIBLE_DIGITS = 4


# ==============================================================================
# ANOMALY DETECTION
# ==============================================================================

Z_SCORE_HIGH = 3.0
Z_SCORE_MEDIUM = 2.0
IQR_MULTIPLIER = 1.5
LARGE_AMOUNT_MEAN_MULTIPLE = 10
MAXIMUM_AMOUNT_MEAN_MULTIPLE = 5

ROUND_NUMBER_AMOUNTS = (
    1_000, 5_000, 10_000, 50_000, 100_000,
    500_000, 1_000_000, 5_000_000, 10_000_000,
)
ROUND_NUMBER_TOLERANCE = 1

SEVERITY_ORDER = {"high": 0, "medium": 1, "low": 2}


# ==============================================================================
# BENFORD'S LAW
# ==============================================================================

# Theoretical first-digit distribution in percent, digits 1-9
BENFORD_EXPECTED_PERCENT = (30.1, 17.6, 12.5, 9.7, 7.9, 6.7, 5.8, 5.1, 4.6)

# Below this many amounts the distribution is reported as low confidence
BENFORD_MIN_SAMPLE = 50

# Nigrini first-digit mean absolute deviation bands (proportions)
BENFORD_MAD_CLOSE = 0.006
BENFORD_MAD_ACCEPTABLE = 0.012
BENFORD_MAD_MARGINAL = 0.015


# ==============================================================================
# SAMPLING
# ==============================================================================

# AUDIT_TIERED policy: (upper bound inclusive, ratio); None ratio = take all
AUDIT_TIERED_TABLE = (
    (100, None),
    (500, 0.20),
    (5_000, 0.05),
    (50_000, 0.03),
)
AUDIT_TIERED_FINAL_RATIO = 0.01
AUDIT_TIERED_CAP = 2_000

# SMART policy: (upper bound inclusive, ratio), floored then clamped
SMART_TABLE = (
    (500, 0.20),
    (1_000, 0.10),
    (10_000, 0.05),
)
SMART_FINAL_RATIO = 0.02
SMART_MIN_SAMPLE = 50
SMART_MAX_SAMPLE = 1_000

# Smart sample stage shares of the target size
SMART_TOP_AMOUNT_SHARE = 0.30
SMART_RECENT_SHARE = 0.20
SMART_OUTLIER_SHARE = 0.10
SMART_MONTHLY_SHARE = 0.30
SMART_RANDOM_SHARE = 0.10
SMART_OUTLIER_SIGMA = 2.0

# Hybrid sample: share of the target taken by materiality
HYBRID_MATERIALITY_SHARE = 0.5

# Monetary unit sampling reliability factors by confidence level (%)
MUS_CONFIDENCE_FACTORS = {90: 2.31, 95: 3.00, 99: 4.61}
MUS_DEFAULT_CONFIDENCE = 95

# Default size for random and systematic audit samples
AUDIT_DEFAULT_SAMPLE_SIZE = 30


# ==============================================================================
# CALENDAR SCREENING
# ==============================================================================

# Korean public holidays on a fixed solar date (MM-DD)
FIXED_HOLIDAYS = ("01-01", "03-01", "05-05", "06-06", "08-15", "10-03", "10-09", "12-25")

# Lunar-calendar holidays (설날, 부처님오신날, 추석) by year
LUNAR_HOLIDAYS = (
    "2024-02-09", "2024-02-10", "2024-02-11", "2024-02-12",
    "2024-05-15",
    "2024-09-16", "2024-09-17", "2024-09-18",
    "2025-01-28", "2025-01-29", "2025-01-30",
    "2025-05-05",
    "2025-10-05", "2025-10-06", "2025-10-07", "2025-10-08",
)

# Closing and carry-forward entries that are not day-to-day activity
NON_OPERATIONAL_DESCRIPTIONS = ("전기이월", "차기이월", "손익대체", "집합손익", "결산대체")


# ==============================================================================
# VENDOR ANALYSIS
# ==============================================================================

# Legal-form tokens stripped before vendor names are compared
VENDOR_LEGAL_FORMS = ("주식회사", "(주)", "㈜", "(유)", "유한회사", "(사)", "co.,ltd.", "co.,ltd", "inc.", "ltd.")

# rapidfuzz fuzz.ratio of normalized names at or above this marks them as one vendor
VENDOR_SIMILARITY_THRESHOLD = 90

# Account-name endings of revenue accounts on the sales side
SALES_ACCOUNT_SUFFIXES = ("매출", "매출액", "공사", "수입")

# Leading digit of the bracketed account code of purchase-side accounts
PURCHASE_ACCOUNT_CODE_PREFIXES = ("4", "5", "8")


# ==============================================================================
# RELATIONSHIP GRAPH
# ==============================================================================

# Sankey-style views show only the heaviest links
TOP_RELATION_LINKS = 30


# ==============================================================================
# AI PAYLOAD ESTIMATES
# ==============================================================================

DEFAULT_KRW_PER_USD = 1350

# USD per 1M tokens (input, output)
MODEL_PRICING_PER_MILLION = {
    "flash": (0.075, 0.30),
    "pro": (1.25, 5.00),
}

# Characters per token by script
CHARS_PER_TOKEN_KOREAN = 1.5
CHARS_PER_TOKEN_ENGLISH = 4
CHARS_PER_TOKEN_OTHER = 2

# Usage ledger keeps only the newest records
USAGE_LEDGER_MAX_RECORDS = 1000
