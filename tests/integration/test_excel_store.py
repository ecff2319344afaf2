"""Integration tests for the workbook-backed stores."""

import pytest

from testmatrix.engine import hardening, volumes
from testmatrix.entities.records import TestCaseTemplate as Template
from testmatrix.services import TestMatrixService as MatrixService
from testmatrix.stores import StoreFactory
from testmatrix.stores.excel_store import ExcelStatusStore, ExcelTemplateCatalog
from testmatrix.utils.exceptions import ConflictError, StoreError
from testmatrix.utils.file_utils import read_sheet_rows, write_sheet_rows

from conftest import SITE_A, make_template
from workbooks import seed_workbooks


@pytest.fixture
def bundle(tmp_path, templates, cell_configs, sites):
    data_dir = seed_workbooks(tmp_path / "data", templates, cell_configs, sites)
    return StoreFactory.create_stores("excel", data_dir=str(data_dir))


class TestWorkbookRegistries:
    """Test catalog and registry loading."""

    def test_templates_load(self, bundle, templates):
        loaded = bundle.templates.list()
        assert [t.identity for t in loaded] == [t.identity for t in templates]
        assert loaded[1].coverage == "System"

    def test_sites_and_cell_types_load(self, bundle):
        assert [s.label for s in bundle.sites.list()] == ["CityA - DC1", "CityB - DC2"]
        configs = {c.cell_type: c for c in bundle.cell_configs.list()}
        assert configs["ASRS"].has_multiple_driveways
        assert configs["ASRS"].driveway_types == ["Inbound", "Outbound"]
        assert not configs["FLIB"].has_multiple_driveways

    def test_missing_catalog_is_an_error(self, tmp_path):
        with pytest.raises(StoreError):
            ExcelTemplateCatalog(tmp_path / "absent.xlsx").list()

    def test_missing_cell_types_is_empty(self, tmp_path):
        bundle = StoreFactory.create_stores("excel", data_dir=str(tmp_path))
        assert bundle.cell_configs.list() == []

    def test_invalid_template_rows_are_skipped(self, tmp_path):
        path = tmp_path / "test_cases.xlsx"
        write_sheet_rows(
            str(path),
            [{"Cell Type": "FLIB", "Test ID": "T1"}, {"Cell Type": "FLIB", "Test ID": ""}],
            ["Cell Type", "Test ID"],
        )
        assert [t.test_id for t in ExcelTemplateCatalog(path).list()] == ["T1"]

    def test_catalog_add(self, bundle):
        bundle.templates.add(make_template(test_id="T8", test_case="Label print", modified_by="dana"))
        loaded = bundle.templates.list()
        assert loaded[-1].test_id == "T8"
        assert loaded[-1].modified_by == "dana"

    def test_template_with_defaulted_fields_survives_a_round_trip(self, bundle):
        bundle.templates.add(Template.model_validate({"cellType": "FLIB", "testId": "T9"}))

        loaded = {t.test_id: t for t in bundle.templates.list()}
        assert loaded["T9"].coverage == "All"
        assert loaded["T9"].phase == "All"

    def test_registered_template_stays_in_the_catalog(self, bundle):
        service = MatrixService.from_bundle(bundle)
        service.register_template({"cell_type": "FLIB", "test_id": "T9", "test_case": "New"})

        assert "T9" in [t.test_id for t in MatrixService.from_bundle(bundle).templates.list()]
        assert any(e.test_id == "T9" for e in bundle.status.read())


class TestStatusWorkbook:
    """Test the status workbook round trip."""

    def test_missing_file_reads_empty(self, tmp_path):
        store = ExcelStatusStore(tmp_path / "test_status.xlsx")
        assert store.read() == []
        assert store.version() == "missing"

    def test_entries_survive_a_round_trip(self, bundle, engine, templates):
        entries = engine.expand(SITE_A, "Phase 1", [{"cell_type": "ASRS", "quantity": 1}], templates)
        hardening.set_day(entries[0], 1, "2024-01-01", 0, "zero")
        bundle.status.write(entries)

        loaded = bundle.status.read()

        assert [e.unique_key for e in loaded] == [e.unique_key for e in entries]
        first = loaded[0]
        assert first.hardening.day1.date == "2024-01-01"
        assert first.hardening.day1.production == 0
        assert first.hardening_status == "DAY 1 COMPLETED"
        assert first.driveway1_status == "NOT RUN"
        assert first.last_modified is not None

    def test_text_fields_keep_leading_equals(self, bundle, engine, templates):
        entries = engine.expand(SITE_A, "Phase 1", [{"cell_type": "FLIB", "quantity": 1}], templates)
        entries[0].notes = "=see ticket 12"
        bundle.status.write(entries)

        assert bundle.status.read()[0].notes == "=see ticket 12"

    def test_volumes_survive_a_round_trip(self, bundle, engine, templates):
        entries = engine.expand(SITE_A, "Phase 1", [{"cell_type": "FLIB", "quantity": 1}], templates)
        volumes.apply_volumes(
            entries[0],
            volumes.normalize_volume_update(
                vt_volume=1500, vt_start_datetime="2024-03-01 08:00", vt_end_datetime="2024-03-01 16:00",
                ch_volume="320", ch_date="2024-03-02",
            ),
        )
        bundle.status.write(entries)

        loaded = bundle.status.read()[0]
        assert loaded.vt_volume == "1500"
        assert loaded.vt_start_datetime == "2024-03-01 08:00:00"
        assert loaded.vt_end_datetime == "2024-03-01 16:00:00"
        assert loaded.ch_volume == "320"
        assert loaded.ch_date == "2024-03-02"
        assert "VT Volume" in read_sheet_rows(str(bundle.status.path))[0]

    def test_hardening_status_is_recomputed_on_load(self, bundle, engine, templates):
        entries = engine.expand(SITE_A, "Phase 1", [{"cell_type": "FLIB", "quantity": 1}], templates)
        bundle.status.write(entries)

        path = bundle.status.path
        rows = read_sheet_rows(str(path))
        rows[0]["Hardening Status"] = "COMPLETED"
        rows[0]["Day 2 Date"] = "2024-02-02"
        rows[0]["Day 2 Production"] = 12
        write_sheet_rows(str(path), rows, list(rows[0].keys()))

        assert bundle.status.read()[0].hardening_status == "DAY 1 COMPLETED"

    def test_invalid_status_row_is_an_error(self, tmp_path):
        path = tmp_path / "test_status.xlsx"
        write_sheet_rows(str(path), [{"Unique Key": "K1", "Site": "CityA - DC1"}], ["Unique Key", "Site"])
        with pytest.raises(StoreError):
            ExcelStatusStore(path).read()

    def test_stale_version_is_rejected(self, bundle, engine, templates):
        entries = engine.expand(SITE_A, "Phase 1", [{"cell_type": "FLIB", "quantity": 1}], templates)
        version = bundle.status.version()
        bundle.status.write(entries, expected_version=version)

        with pytest.raises(ConflictError):
            bundle.status.write([], expected_version=version)
        assert len(bundle.status.read()) == len(entries)


class TestStoreFactory:
    """Test backend selection."""

    def test_memory_backend(self):
        bundle = StoreFactory.create_stores("memory")
        assert bundle.status.read() == []

    def test_invalid_backend(self):
        with pytest.raises(ValueError):
            StoreFactory.create_stores("sqlite")
