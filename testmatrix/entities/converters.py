"""Helpers to convert workbook rows into entity models and back."""

from __future__ import annotations

from typing import Any, Dict

from .records import (
    DATETIME_FMT,
    CellTypeConfig,
    HardeningDay,
    HardeningLog,
    SiteRecord,
    TestCaseTemplate,
    TestStatusEntry,
)
from ..engine.hardening import compute_status


TEMPLATE_COLUMNS = [
    "DC Type", "Sub Type", "Cell Type", "Test Case", "Test ID", "Scope", "Phase",
    "Coverage", "Driveway Type", "Combined Test", "Steps", "Expected Output",
    "Requirements", "Image", "Last Modified", "Modified User",
]

CELL_TYPE_COLUMNS = [
    "Cell Type", "DC Type", "Has Multiple Driveways", "Number of Driveways", "Driveway Types",
]

SITE_COLUMNS = ["Network", "DC Type", "Sub Type", "DC Number", "City", "State"]

STATUS_COLUMNS = [
    "Unique Key", "DC Type", "Sub Type", "Site", "Phase", "Cell Type", "Cell",
    "Test Case", "Test ID", "Scope", "Coverage", "Status",
    "Driveway 1 Status", "Driveway 2 Status", "Driveway Config",
    "Day 1 Date", "Day 1 Production", "Day 1 Notes",
    "Day 2 Date", "Day 2 Production", "Day 2 Notes",
    "Day 3 Date", "Day 3 Production", "Day 3 Notes",
    "Hardening Status",
    "VT Volume", "VT Start DateTime", "VT End DateTime", "CH Volume", "CH Date",
    "Last modified", "Modified User", "Notes",
]


def _format_datetime(value) -> str:
    return value.strftime(DATETIME_FMT) if value else ""


def _production_cell(value):
    if value is None:
        return ""
    return int(value) if float(value).is_integer() else value


def to_test_case_template(row: Dict[str, Any]) -> TestCaseTemplate:
    """Build a TestCaseTemplate from a catalog workbook row."""
    return TestCaseTemplate(
        dc_type=row.get("DC Type"),
        sub_type=row.get("Sub Type"),
        cell_type=row.get("Cell Type"),
        test_case=row.get("Test Case"),
        test_id=row.get("Test ID"),
        scope=row.get("Scope"),
        phase=row.get("Phase"),
        coverage=row.get("Coverage"),
        driveway_type=row.get("Driveway Type"),
        combined_test=row.get("Combined Test"),
        steps=row.get("Steps"),
        expected_output=row.get("Expected Output"),
        requirements=row.get("Requirements"),
        image=row.get("Image"),
        last_modified=row.get("Last Modified") or None,
        modified_by=row.get("Modified User") or row.get("Modified By"),
    )


def template_to_row(template: TestCaseTemplate) -> Dict[str, Any]:
    return {
        "DC Type": template.dc_type,
        "Sub Type": template.sub_type,
        "Cell Type": template.cell_type,
        "Test Case": template.test_case,
        "Test ID": template.test_id,
        "Scope": template.scope,
        "Phase": template.phase,
        "Coverage": template.coverage,
        "Driveway Type": template.driveway_type,
        "Combined Test": template.combined_test,
        "Steps": template.steps,
        "Expected Output": template.expected_output,
        "Requirements": template.requirements,
        "Image": template.image,
        "Last Modified": _format_datetime(template.last_modified),
        "Modified User": template.modified_by,
    }


def to_cell_type_config(row: Dict[str, Any]) -> CellTypeConfig:
    """Build a CellTypeConfig from a cell types workbook row."""
    return CellTypeConfig(
        cell_type=row.get("Cell Type"),
        dc_type=row.get("DC Type"),
        has_multiple_driveways=row.get("Has Multiple Driveways") or False,
        number_of_driveways=row.get("Number of Driveways"),
        driveway_types=row.get("Driveway Types"),
    )


def cell_type_config_to_row(config: CellTypeConfig) -> Dict[str, Any]:
    return {
        "Cell Type": config.cell_type,
        "DC Type": config.dc_type,
        "Has Multiple Driveways": "Yes" if config.has_multiple_driveways else "No",
        "Number of Driveways": config.number_of_driveways,
        "Driveway Types": ", ".join(config.driveway_types),
    }


def to_site_record(row: Dict[str, Any]) -> SiteRecord:
    """Build a SiteRecord from a site info workbook row."""
    return SiteRecord(
        network=row.get("Network"),
        dc_type=row.get("DC Type"),
        sub_type=row.get("Sub Type"),
        dc_number=row.get("DC Number"),
        city=row.get("City"),
        state=row.get("State"),
    )


def site_record_to_row(site: SiteRecord) -> Dict[str, Any]:
    return {
        "Network": site.network,
        "DC Type": site.dc_type,
        "Sub Type": site.sub_type,
        "DC Number": site.dc_number,
        "City": site.city,
        "State": site.state,
    }


def to_status_entry(row: Dict[str, Any]) -> TestStatusEntry:
    """Build a TestStatusEntry from a status workbook row.

    The stored hardening status column is ignored; it is derived from the
    three days every time a row is loaded.
    """
    hardening = HardeningLog(
        **{
            f"day{n}": HardeningDay(
                date=row.get(f"Day {n} Date"),
                production=row.get(f"Day {n} Production"),
                notes=row.get(f"Day {n} Notes"),
            )
            for n in (1, 2, 3)
        }
    )
    return TestStatusEntry(
        unique_key=row.get("Unique Key"),
        dc_type=row.get("DC Type"),
        sub_type=row.get("Sub Type"),
        site=row.get("Site"),
        phase=row.get("Phase"),
        cell_type=row.get("Cell Type"),
        cell=row.get("Cell"),
        test_case=row.get("Test Case"),
        test_id=row.get("Test ID"),
        scope=row.get("Scope"),
        coverage=row.get("Coverage"),
        status=row.get("Status"),
        driveway1_status=row.get("Driveway 1 Status"),
        driveway2_status=row.get("Driveway 2 Status"),
        driveway_config=row.get("Driveway Config"),
        hardening=hardening,
        hardening_status=compute_status(*hardening.days),
        vt_volume=row.get("VT Volume"),
        vt_start_datetime=row.get("VT Start DateTime"),
        vt_end_datetime=row.get("VT End DateTime"),
        ch_volume=row.get("CH Volume"),
        ch_date=row.get("CH Date"),
        last_modified=row.get("Last modified") or None,
        modified_user=row.get("Modified User"),
        notes=row.get("Notes"),
    )


def status_entry_to_row(entry: TestStatusEntry) -> Dict[str, Any]:
    row = {
        "Unique Key": entry.unique_key,
        "DC Type": entry.dc_type,
        "Sub Type": entry.sub_type,
        "Site": entry.site,
        "Phase": entry.phase,
        "Cell Type": entry.cell_type,
        "Cell": entry.cell,
        "Test Case": entry.test_case,
        "Test ID": entry.test_id,
        "Scope": entry.scope,
        "Coverage": entry.coverage,
        "Status": entry.status,
        "Driveway 1 Status": entry.driveway1_status,
        "Driveway 2 Status": entry.driveway2_status,
        "Driveway Config": entry.driveway_config,
        "Hardening Status": entry.hardening_status,
        "VT Volume": entry.vt_volume,
        "VT Start DateTime": entry.vt_start_datetime,
        "VT End DateTime": entry.vt_end_datetime,
        "CH Volume": entry.ch_volume,
        "CH Date": entry.ch_date,
        "Last modified": _format_datetime(entry.last_modified),
        "Modified User": entry.modified_user,
        "Notes": entry.notes,
    }
    for n, day in enumerate(entry.hardening.days, 1):
        row[f"Day {n} Date"] = day.date
        row[f"Day {n} Production"] = _production_cell(day.production)
        row[f"Day {n} Notes"] = day.notes
    return row

