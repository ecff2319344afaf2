"""Workbook-backed collaborators using openpyxl."""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

from pydantic import ValidationError as PydanticValidationError

from .base import CellConfigRegistry, SiteRegistry, StatusStore, TemplateCatalog
from ..entities.converters import (
    STATUS_COLUMNS,
    TEMPLATE_COLUMNS,
    status_entry_to_row,
    template_to_row,
    to_cell_type_config,
    to_site_record,
    to_status_entry,
    to_test_case_template,
)
from ..entities.records import CellTypeConfig, SiteRecord, TestCaseTemplate, TestStatusEntry
from ..utils.error_handler import handle_errors
from ..utils.exceptions import ConflictError, StoreError
from ..utils.file_utils import read_sheet_rows, write_sheet_rows

logger = logging.getLogger(__name__)

T = TypeVar("T")

MISSING_VERSION = "missing"


def _load_rows(path: Path, required: bool) -> List[Dict[str, Any]]:
    if not path.exists():
        if required:
            raise StoreError(f"{path.name} not found in {path.parent}", file_path=str(path))
        return []
    return read_sheet_rows(str(path))


def _convert_rows(path: Path, rows: List[Dict[str, Any]], convert: Callable[[Dict[str, Any]], T]) -> List[T]:
    """Convert rows, skipping (and logging) rows that do not form a valid record."""
    records = []
    for row_number, row in enumerate(rows, 2):
        try:
            records.append(convert(row))
        except PydanticValidationError as e:
            logger.warning(f"Skipping invalid row {row_number} in {path.name}: {e.error_count()} errors")
    return records


class ExcelTemplateCatalog(TemplateCatalog):
    """Templates from ``test_cases.xlsx``."""

    def __init__(self, path: Path):
        self.path = Path(path)

    @handle_errors("Failed to read template catalog")
    def list(self) -> List[TestCaseTemplate]:
        rows = _load_rows(self.path, required=True)
        return _convert_rows(self.path, rows, to_test_case_template)

    @handle_errors("Failed to add template")
    def add(self, template: TestCaseTemplate) -> None:
        rows = [template_to_row(t) for t in self.list()]
        rows.append(template_to_row(template))
        write_sheet_rows(str(self.path), rows, TEMPLATE_COLUMNS, sheet_name="Test Cases")


class ExcelCellConfigRegistry(CellConfigRegistry):
    """Cell type configuration from ``cell_types.xlsx``; a missing file means none."""

    def __init__(self, path: Path):
        self.path = Path(path)

    @handle_errors("Failed to read cell types")
    def list(self) -> List[CellTypeConfig]:
        rows = _load_rows(self.path, required=False)
        return _convert_rows(self.path, rows, to_cell_type_config)


class ExcelSiteRegistry(SiteRegistry):
    """Sites from ``site_info.xlsx``."""

    def __init__(self, path: Path):
        self.path = Path(path)

    @handle_errors("Failed to read site info")
    def list(self) -> List[SiteRecord]:
        rows = _load_rows(self.path, required=True)
        return _convert_rows(self.path, rows, to_site_record)


class ExcelStatusStore(StatusStore):
    """Status entries in ``test_status.xlsx``.

    The version token is derived from the file's stat, so a replace by another
    process is detected too. A missing file reads as an empty collection.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    @handle_errors("Failed to read test status")
    def read(self) -> List[TestStatusEntry]:
        rows = _load_rows(self.path, required=False)
        entries = []
        for row_number, row in enumerate(rows, 2):
            try:
                entries.append(to_status_entry(row))
            except PydanticValidationError as e:
                # dropping a row here would delete it on the next write
                raise StoreError(
                    f"Invalid status row {row_number} in {self.path.name}: {e}",
                    file_path=str(self.path),
                )
        logger.info(f"Loaded {len(entries)} status entries from {self.path}")
        return entries

    def version(self) -> str:
        if not self.path.exists():
            return MISSING_VERSION
        stat = self.path.stat()
        return f"{stat.st_mtime_ns}-{stat.st_size}-{stat.st_ino}"

    @handle_errors("Failed to write test status")
    def write(self, entries: List[TestStatusEntry], expected_version: Optional[str] = None) -> str:
        if expected_version is not None and expected_version != self.version():
            raise ConflictError(f"{self.path.name} changed since it was read")
        rows = [status_entry_to_row(entry) for entry in entries]
        write_sheet_rows(str(self.path), rows, STATUS_COLUMNS, sheet_name="Test Status")
        return self.version()
