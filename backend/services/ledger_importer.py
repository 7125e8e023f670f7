import csv
import io
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

import pandas as pd

from backend.logic.logging_utils import get_logger
from backend.logic.sheet_loader import LedgerTable, load_ledger_workbook

logger = get_logger(__name__)

EXCEL_EXTENSIONS = {".xlsx", ".xlsm"}
CSV_EXTENSIONS = {".csv", ".txt"}
CSV_ENCODINGS = ("utf-8-sig", "cp949")


class LedgerImportError(Exception):
    """The file could not be read as a ledger workbook."""


@dataclass
class ImportResult:
    """Loaded sheets plus what happened while reading them."""
    filename: str
    tables: Dict[str, LedgerTable] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return sum(t.row_count for t in self.tables.values())

    def to_dict(self) -> Dict:
        return {
            "filename": self.filename,
            "warnings": self.warnings,
            "row_count": self.row_count,
            "sheets": {name: t.to_dict() for name, t in self.tables.items()},
        }


class LedgerImporter:
    """
    Reads exported ledger files into raw cell grids and hands them to the
    sheet loader.

    Every sheet is read with header=None: header detection is the loader's
    job, not pandas'. Sheets without a header or rows become warnings;
    only a file that cannot be opened at all raises LedgerImportError.
    """

    def read_grids(
        self,
        source: Union[str, Path, bytes],
        filename: Optional[str] = None
    ) -> Dict[str, pd.DataFrame]:
        """
        Read every sheet of a workbook (or a single CSV) as a raw grid.

        Args:
            source: File path or file content
            filename: Name used to pick the format when source is bytes

        Returns:
            Sheet name -> DataFrame of raw cells
        """
        name = filename or (str(source) if not isinstance(source, bytes) else "")
        suffix = Path(name).suffix.lower()
        handle = io.BytesIO(source) if isinstance(source, bytes) else source

        if suffix in CSV_EXTENSIONS:
            return {Path(name).stem or "Sheet1": self._read_csv(handle)}
        if suffix and suffix not in EXCEL_EXTENSIONS:
            raise LedgerImportError(f"Unsupported file type: {suffix}")

        try:
            sheets = pd.read_excel(handle, sheet_name=None, header=None, engine="openpyxl")
        except Exception as e:
            logger.error(f"Could not open workbook '{name}': {e}")
            raise LedgerImportError(f"Could not open workbook: {e}") from e

        logger.info(f"Read {len(sheets)} sheets from '{name}'")
        return sheets

    def _read_csv(self, handle) -> pd.DataFrame:
        """
        Read a CSV export as a raw grid.

        Title banners make the first line narrower than the table, so the
        grid width is the widest line rather than the first one.
        """
        try:
            raw = handle.getvalue() if isinstance(handle, io.BytesIO) else Path(handle).read_bytes()
        except OSError as e:
            raise LedgerImportError(f"Could not read CSV: {e}") from e

        text = None
        for encoding in CSV_ENCODINGS:
            try:
                text = raw.decode(encoding)
                break
            except UnicodeDecodeError:
                logger.debug(f"CSV is not {encoding}")
        if text is None:
            raise LedgerImportError(f"Could not decode CSV as any of {', '.join(CSV_ENCODINGS)}")

        width = max((len(r) for r in csv.reader(io.StringIO(text))), default=0)
        if width == 0:
            raise LedgerImportError("Could not read CSV: file is empty")
        try:
            return pd.read_csv(io.StringIO(text), header=None, names=list(range(width)), dtype=object)
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise LedgerImportError(f"Could not read CSV: {e}") from e

    def import_file(
        self,
        source: Union[str, Path, bytes],
        filename: Optional[str] = None
    ) -> ImportResult:
        """Read a file and load every sheet into a LedgerTable."""
        grids = self.read_grids(source, filename)
        result = ImportResult(filename=filename or str(source if not isinstance(source, bytes) else ""))
        result.tables = load_ledger_workbook(grids)

        for sheet_name, table in result.tables.items():
            if table.header_row < 0:
                result.warnings.append(f"Sheet '{sheet_name}': no header row found")
            elif table.is_empty:
                result.warnings.append(f"Sheet '{sheet_name}': no transaction rows")

        if not result.tables or all(t.is_empty for t in result.tables.values()):
            logger.warning(f"No ledger data found in '{result.filename}'")
        return result
