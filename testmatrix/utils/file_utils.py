"""Workbook utilities for reading and writing sheet rows."""

import os
import shutil
import logging
import tempfile
from pathlib import Path
from typing import List, Dict, Any, Sequence, Optional

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

logger = logging.getLogger(__name__)


def read_sheet_rows(file_path: str, sheet_name: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Read a worksheet as a list of dicts keyed by the header row.

    Args:
        file_path: Path to the .xlsx file
        sheet_name: Worksheet to read (defaults to the first sheet)

    Returns:
        One dict per non-empty data row; blank cells map to None
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    wb = load_workbook(str(path), data_only=True, read_only=True)
    try:
        ws = wb[sheet_name] if sheet_name else wb.worksheets[0]
        rows = ws.iter_rows(values_only=True)
        header = next(rows, None)
        if header is None:
            return []

        columns = [str(h).strip() if h is not None else "" for h in header]
        records = []
        for values in rows:
            if values is None or all(_is_blank(v) for v in values):
                continue
            record = {}
            for column, value in zip(columns, values):
                if column:
                    record[column] = value
            records.append(record)
    finally:
        wb.close()

    logger.debug(f"Read {len(records)} rows from: {file_path}")
    return records


def write_sheet_rows(
    file_path: str,
    records: List[Dict[str, Any]],
    columns: Sequence[str],
    sheet_name: str = "Sheet1",
) -> None:
    """
    Replace a workbook with one sheet holding ``records``.

    The workbook is saved to a temporary file in the same directory and then
    moved over the target, so readers never see a half-written file.

    Args:
        file_path: Output file path
        records: Rows to write, keyed by column heading
        columns: Column headings, in order
        sheet_name: Name of the single worksheet
    """
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    wb = Workbook()
    ws = wb.active
    ws.title = sheet_name
    ws.append(list(columns))
    for cell in ws[1]:
        cell.font = Font(bold=True)

    for record in records:
        ws.append([_cell_value(record.get(column)) for column in columns])
        _keep_as_text(ws[ws.max_row])

    for idx, column in enumerate(columns, 1):
        ws.column_dimensions[get_column_letter(idx)].width = max(12, min(len(column) + 4, 40))

    fd, tmp_name = tempfile.mkstemp(suffix=".xlsx", prefix=f".{path.stem}_", dir=str(path.parent))
    os.close(fd)
    try:
        wb.save(tmp_name)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.info(f"Workbook written to: {file_path} ({len(records)} rows)")


def write_report_workbook(
    file_path: str,
    summary: Dict[str, Any],
    records: List[Dict[str, Any]],
    columns: Sequence[str],
    sheet_name: str = "Report",
) -> None:
    """
    Write a one-sheet report: a summary block, a blank row, then a table.

    Args:
        file_path: Output file path
        summary: Summary headings and values, written as two rows
        records: Table rows, keyed by column heading
        columns: Table column headings, in order
        sheet_name: Name of the worksheet
    """
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    wb = Workbook()
    ws = wb.active
    ws.title = sheet_name

    ws.append(list(summary.keys()))
    for cell in ws[1]:
        cell.font = Font(bold=True)
    ws.append([_cell_value(value) for value in summary.values()])
    _keep_as_text(ws[2])

    ws.append([])
    ws.append(list(columns))
    for cell in ws[ws.max_row]:
        cell.font = Font(bold=True)

    for record in records:
        ws.append([_cell_value(record.get(column)) for column in columns])
        _keep_as_text(ws[ws.max_row])

    width = max(len(columns), len(summary))
    for idx in range(1, width + 1):
        ws.column_dimensions[get_column_letter(idx)].width = 20

    wb.save(str(path))
    logger.info(f"Report written to: {file_path} ({len(records)} rows)")


def backup_file(file_path: str, suffix: str = "_backup") -> Path:
    """
    Copy a file next to itself with ``suffix`` added to the stem.

    Returns:
        Path of the backup copy
    """
    path = Path(file_path)
    backup = path.with_name(f"{path.stem}{suffix}{path.suffix}")
    shutil.copyfile(path, backup)
    logger.info(f"Backup created: {backup}")
    return backup


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def _keep_as_text(cells) -> None:
    """Leading "=" in a value is text, never a formula."""
    for cell in cells:
        if isinstance(cell.value, str) and cell.value.startswith("="):
            cell.data_type = "s"


def _cell_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return value
