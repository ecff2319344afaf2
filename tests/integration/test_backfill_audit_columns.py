"""Integration tests for the audit column backfill script."""

import importlib.util
from datetime import datetime
from pathlib import Path

import pytest

from testmatrix.utils.file_utils import read_sheet_rows, write_sheet_rows

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "backfill_audit_columns.py"


@pytest.fixture(scope="module")
def backfill():
    spec = importlib.util.spec_from_file_location("backfill_audit_columns", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def workbook(tmp_path):
    path = tmp_path / "test_cases.xlsx"
    write_sheet_rows(
        str(path),
        [
            {"Cell Type": "FLIB", "Test ID": "T1", "Test Case": "Pick cycle"},
            {"Cell Type": "FLIB", "Test ID": "T2", "Last Modified": "2023-05-01 08:00:00", "Modified User": "erin"},
        ],
        ["Cell Type", "Test ID", "Test Case", "Last Modified", "Modified User"],
    )
    return path


def test_fills_empty_audit_cells(backfill, workbook):
    changed = backfill.backfill_audit_columns(workbook, now=datetime(2024, 6, 1, 12, 0, 0))

    rows = read_sheet_rows(str(workbook))
    assert changed == 1
    assert rows[0]["Last Modified"] == "2024-06-01 12:00:00"
    assert rows[0]["Modified User"] == "System Migration"
    assert rows[1]["Modified User"] == "erin"
    assert (workbook.parent / "test_cases_backup.xlsx").exists()


def test_adds_missing_columns(backfill, tmp_path):
    path = tmp_path / "test_cases.xlsx"
    write_sheet_rows(str(path), [{"Cell Type": "FLIB", "Test ID": "T1"}], ["Cell Type", "Test ID"])

    backfill.backfill_audit_columns(path, user="admin")

    row = read_sheet_rows(str(path))[0]
    assert row["Modified User"] == "admin"
    assert row["Last Modified"]


def test_populated_workbook_is_left_alone(backfill, workbook):
    backfill.backfill_audit_columns(workbook)
    backup = workbook.parent / "test_cases_backup.xlsx"
    backup.unlink()

    assert backfill.backfill_audit_columns(workbook) == 0
    assert not backup.exists()


def test_dry_run_writes_nothing(backfill, workbook):
    assert backfill.backfill_audit_columns(workbook, dry_run=True) == 1
    assert read_sheet_rows(str(workbook))[0].get("Modified User") in ("", None)


def test_main_reports_missing_workbook(backfill, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert backfill.main(["--workbook", str(tmp_path / "absent.xlsx")]) == 1
