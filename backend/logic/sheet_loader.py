# backend/logic/sheet_loader.py
"""
General Ledger Sheet Loader

Turns the raw cell grid of an exported ledger sheet into a header-keyed
table of transaction rows.

Key Features:
- Header row detection that tolerates banner rows, merged titles and
  repeated headers from multi-page printouts
- Header naming compatible with spreadsheet exports (__EMPTY placeholders,
  suffixed duplicates)
- Semantic column resolution (date/debit/credit/account/...)
- Row sanitizing and account-number masking before anything leaves the loader

Failures never raise: a sheet without a recognisable header yields an
empty LedgerTable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import pandas as pd

from .column_detector import (
    HEADER_KEYS,
    HEADER_ROW_KEYWORDS,
    DEFAULT_RULES,
    FUZZY_MATCH_THRESHOLD,
    MatchRule,
    SemanticColumnMap,
    normalize_header,
    resolve_column,
    resolve_semantic_columns,
)
from .config_manager import get_config_value
from .constants import (
    HEADER_SCAN_ROWS,
    HEADER_LOOKAHEAD_ROWS,
    MIN_HEADER_DENSITY,
    MIN_HEADER_ROW_LENGTH,
    LEDGER_TITLE_BANNER,
    EMPTY_HEADER_PREFIX,
)
from .logging_utils import get_logger
from .parse_utils import cell_text, is_empty, parse_date
from .row_sanitizer import sanitize_rows
from .sanitizer import mask_account_numbers_in_rows

logger = get_logger(__name__)


@dataclass
class LedgerTable:
    """One sheet after header detection, column resolution and sanitizing."""
    sheet_name: str
    header_row: int = -1
    headers: List[str] = field(default_factory=list)
    rows: pd.DataFrame = field(default_factory=pd.DataFrame)
    columns: SemanticColumnMap = field(default_factory=SemanticColumnMap)
    stats: Dict[str, int] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return self.rows is None or self.rows.empty

    @property
    def row_count(self) -> int:
        return 0 if self.is_empty else len(self.rows)

    def to_dict(self) -> Dict:
        """Summary for JSON serialization (rows excluded)."""
        return {
            "sheet_name": self.sheet_name,
            "header_row": self.header_row,
            "headers": self.headers,
            "columns": self.columns.to_dict(),
            "row_count": self.row_count,
            "stats": self.stats,
        }


# ====================================================================================
# HEADER ROW DETECTION
# ====================================================================================

def _row_cells(grid: pd.DataFrame, i: int) -> List:
    """Row values with trailing empty cells trimmed."""
    cells = grid.iloc[i].tolist()
    while cells and is_empty(cells[-1]):
        cells.pop()
    return cells


def _non_empty_count(cells: List) -> int:
    return sum(1 for c in cells if not is_empty(c))


def _cell_has_keyword(cell, keywords: List[str]) -> bool:
    if is_empty(cell):
        return False
    text = normalize_header(cell)
    return any(normalize_header(k) in text for k in keywords)


def _looks_like_header(cells: List) -> bool:
    """A date keyword plus at least two other ledger keywords."""
    has_date = any(_cell_has_keyword(c, HEADER_KEYS["date"]) for c in cells)
    if not has_date:
        return False
    others = sum(1 for c in cells if _cell_has_keyword(c, HEADER_ROW_KEYWORDS))
    return others >= 2


def _is_title_banner(cells: List) -> bool:
    filled = [c for c in cells if not is_empty(c)]
    return len(filled) == 1 and normalize_header(filled[0]) == LEDGER_TITLE_BANNER


def locate_header_row(
    grid: pd.DataFrame,
    scan_rows: Optional[int] = None,
    lookahead_rows: Optional[int] = None
) -> int:
    """
    Find the header row of a raw ledger grid.

    Attempts, first success wins:
    1. Keyword row (date keyword + 2 other ledger keywords) followed within
       lookahead_rows by a row whose first cell parses as a date
    2. Keyword row followed by any non-empty row
    3. Densest row (>= 3 filled cells, last maximum wins), ignoring the
       ledger title banner

    Args:
        grid: Sheet read with header=None
        scan_rows: Rows searched from the top (default 20)
        lookahead_rows: Rows checked for a leading date (default 5)

    Returns:
        Row index, or -1 when the sheet has no usable header
    """
    if grid is None or len(grid) < 2:
        return -1

    scan_rows = scan_rows or get_config_value("header_scan_rows", HEADER_SCAN_ROWS)
    lookahead_rows = lookahead_rows or get_config_value(
        "header_lookahead_rows", HEADER_LOOKAHEAD_ROWS
    )

    n_rows = len(grid)
    limit = min(scan_rows, n_rows)
    rows = [_row_cells(grid, i) for i in range(n_rows)]

    # Attempt 1: keyword row confirmed by a date in the first column below it
    for i in range(limit):
        cells = rows[i]
        if len(cells) < MIN_HEADER_ROW_LENGTH or not _looks_like_header(cells):
            continue
        for j in range(i + 1, min(i + 1 + lookahead_rows, n_rows)):
            below = rows[j]
            if below and parse_date(below[0]) is not None:
                logger.info(f"Header row {i} found by keywords (date confirmed at row {j})")
                return i

    # Attempt 2: keyword row followed by anything
    for i in range(limit):
        cells = rows[i]
        if len(cells) < MIN_HEADER_ROW_LENGTH or not _looks_like_header(cells):
            continue
        if i + 1 < n_rows and _non_empty_count(rows[i + 1]) > 0:
            logger.info(f"Header row {i} found by keywords (relaxed)")
            return i

    # Attempt 3: densest row that still has data under it
    has_data_below = [False] * n_rows
    seen = False
    for i in range(n_rows - 1, -1, -1):
        has_data_below[i] = seen
        seen = seen or _non_empty_count(rows[i]) > 0

    best_row, best_count = -1, 0
    for i in range(limit):
        cells = rows[i]
        if _is_title_banner(cells) or not has_data_below[i]:
            continue
        count = _non_empty_count(cells)
        if count >= MIN_HEADER_DENSITY and count >= best_count:
            best_row, best_count = i, count

    if best_row >= 0:
        logger.info(f"Header row {best_row} chosen by density ({best_count} cells)")
    else:
        logger.warning("No header row found")
    return best_row


# ====================================================================================
# HEADER-KEYED TABLE
# ====================================================================================

def build_header_names(raw_headers: List) -> List[str]:
    """
    Name header cells the way spreadsheet exports do.

    Blank cells become __EMPTY, __EMPTY_1, ...; a repeated name gets a
    _1, _2 ... suffix.
    """
    names: List[str] = []
    seen: Dict[str, int] = {}
    for raw in raw_headers:
        base = cell_text(raw) or EMPTY_HEADER_PREFIX
        name = base
        while name in seen:
            seen[base] = seen.get(base, 0) + 1
            name = f"{base}_{seen[base]}"
        seen.setdefault(name, 0)
        names.append(name)
    return names


def extract_ledger_table(grid: pd.DataFrame, header_row: int) -> Tuple[List[str], pd.DataFrame]:
    """
    Build header-keyed rows from the grid below header_row.

    Fully empty rows are skipped, as are columns with neither a header nor
    any data. The DataFrame index keeps each row's position in the grid.

    Returns:
        (ordered header names, rows DataFrame with object dtype)
    """
    if grid is None or header_row < 0 or header_row >= len(grid) - 1:
        return [], pd.DataFrame()

    body = grid.iloc[header_row + 1:]
    raw_headers = grid.iloc[header_row].tolist()

    keep = [
        c for c, raw in enumerate(raw_headers)
        if not is_empty(raw) or body.iloc[:, c].map(lambda v: not is_empty(v)).any()
    ]
    headers = build_header_names([raw_headers[c] for c in keep])

    records = []
    index = []
    for i, values in zip(body.index, body.itertuples(index=False, name=None)):
        cells = [None if is_empty(values[c]) else values[c] for c in keep]
        if all(v is None for v in cells):
            continue
        records.append(cells)
        index.append(i)

    rows = pd.DataFrame(records, columns=headers, index=index, dtype=object)
    return headers, rows


# ====================================================================================
# SHEET / WORKBOOK LOADING
# ====================================================================================

def _match_rules() -> Tuple[MatchRule, ...]:
    if get_config_value("fuzzy_header_matching", False):
        return DEFAULT_RULES + (MatchRule.FUZZY,)
    return DEFAULT_RULES


def load_ledger_sheet(grid: pd.DataFrame, sheet_name: str = "") -> LedgerTable:
    """
    Run the full ingestion pipeline for one sheet.

    header detection -> header-keyed rows -> row sanitizing -> column
    resolution -> zero-amount filtering -> account-number masking.

    The sheet name stands in for the account name when the sheet has no
    account column (one sheet per account is the common export layout).
    """
    table = LedgerTable(sheet_name=sheet_name)

    header_row = locate_header_row(grid)
    if header_row < 0:
        logger.warning(f"Sheet '{sheet_name}': no header row, skipping")
        return table

    headers, raw_rows = extract_ledger_table(grid, header_row)
    table.header_row = header_row
    table.headers = headers
    if raw_rows.empty:
        logger.warning(f"Sheet '{sheet_name}': header at row {header_row} but no data rows")
        return table

    rules = _match_rules()
    threshold = get_config_value("fuzzy_match_threshold", FUZZY_MATCH_THRESHOLD)
    stats: Dict[str, int] = {"raw_rows": len(raw_rows)}

    date_column = resolve_column(headers, HEADER_KEYS["date"], rules, fuzzy_threshold=threshold)
    rows = sanitize_rows(raw_rows, date_column=date_column, report=stats)

    columns = resolve_semantic_columns(headers, rows, rules=rules, fuzzy_threshold=threshold)
    rows = sanitize_rows(
        rows,
        date_column=columns.date,
        amount_columns=columns.amount_columns,
        report=stats,
    )
    rows = mask_account_numbers_in_rows(rows, columns.account, fallback_account=sheet_name)

    stats["rows"] = len(rows)
    table.columns = columns
    table.rows = rows
    table.stats = stats

    logger.info(
        f"Sheet '{sheet_name}': header row {header_row}, "
        f"{len(rows)} of {stats['raw_rows']} rows kept"
    )
    return table


def load_ledger_workbook(sheets: Dict[str, pd.DataFrame]) -> Dict[str, LedgerTable]:
    """
    Load every sheet of a workbook.

    Args:
        sheets: Sheet name -> grid (as returned by pd.read_excel(sheet_name=None, header=None))

    Returns:
        Sheet name -> LedgerTable, in workbook order. Unusable sheets are
        present with an empty table.
    """
    tables: Dict[str, LedgerTable] = {}
    for name, grid in sheets.items():
        tables[name] = load_ledger_sheet(grid, str(name))

    usable = sum(1 for t in tables.values() if not t.is_empty)
    logger.info(f"Loaded {usable} of {len(tables)} sheets with data")
    return tables
