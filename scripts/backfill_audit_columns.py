"""Fill empty audit columns of the template workbook.

Rows without a ``Last Modified`` timestamp or ``Modified User`` get the
current time and a migration user. A backup copy of the workbook is written
next to it before anything changes.
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from testmatrix.entities.records import DATETIME_FMT
from testmatrix.utils.config_loader import get_config_loader
from testmatrix.utils.file_utils import backup_file, read_sheet_rows, write_sheet_rows
from testmatrix.utils.logger import setup_logger

logger = logging.getLogger(__name__)

AUDIT_COLUMNS = ("Last Modified", "Modified User")
DEFAULT_USER = "System Migration"


def _columns(rows: List[Dict[str, Any]]) -> List[str]:
    columns: List[str] = []
    for row in rows:
        for column in row:
            if column not in columns:
                columns.append(column)
    for column in AUDIT_COLUMNS:
        if column not in columns:
            columns.append(column)
    return columns


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def backfill_audit_columns(
    workbook: Path,
    user: str = DEFAULT_USER,
    now: Optional[datetime] = None,
    dry_run: bool = False,
) -> int:
    """
    Populate missing audit values.

    Returns:
        Number of rows that needed a value; nothing is written when it is 0
    """
    rows = read_sheet_rows(str(workbook))
    timestamp = (now or datetime.now()).strftime(DATETIME_FMT)

    changed = 0
    for row in rows:
        touched = False
        if _blank(row.get("Last Modified")):
            row["Last Modified"] = timestamp
            touched = True
        if _blank(row.get("Modified User")):
            row["Modified User"] = user
            touched = True
        changed += touched

    if not changed:
        logger.info(f"Audit columns of {workbook.name} are already populated")
        return 0
    if dry_run:
        logger.info(f"[dry-run] {changed} of {len(rows)} rows would be updated")
        return changed

    backup_file(str(workbook))
    write_sheet_rows(str(workbook), rows, _columns(rows), sheet_name="Test Cases")
    logger.info(f"Populated audit columns on {changed} of {len(rows)} rows")
    return changed


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Fill empty 'Last Modified' / 'Modified User' cells in the template workbook."
    )
    parser.add_argument(
        "--workbook",
        type=Path,
        default=None,
        help="Path to the template workbook (defaults to the configured test_cases workbook)",
    )
    parser.add_argument(
        "--user",
        default=DEFAULT_USER,
        help=f"Value written to empty 'Modified User' cells (default: {DEFAULT_USER})",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would change without writing anything",
    )
    args = parser.parse_args(argv)

    setup_logger(name="backfill")

    workbook = args.workbook or get_config_loader().workbook_path("test_cases")
    workbook = workbook.resolve()
    if not workbook.exists():
        logger.error(f"Template workbook not found: {workbook}")
        return 1

    backfill_audit_columns(workbook, user=args.user, dry_run=args.dry_run)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
