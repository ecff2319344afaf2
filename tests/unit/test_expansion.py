"""Unit tests for the expansion engine."""

import pytest

from testmatrix.engine.expansion import parse_selection
from testmatrix.entities.records import CellTypeSelection
from testmatrix.utils.exceptions import NotFoundError, ValidationError

from conftest import FIXED_NOW, SITE_A, make_template


class TestExpand:
    """Test site/phase expansion."""

    def test_all_coverage_with_named_cells(self, engine):
        entries = engine.expand(
            SITE_A,
            "Phase 1",
            [{"cellType": "FLIB", "quantity": 2, "cellNames": ["A", "B"]}],
            [make_template(coverage="All", test_id="T1")],
            now=FIXED_NOW,
        )

        assert [e.cell for e in entries] == ["FLIB A", "FLIB B"]
        assert [e.unique_key for e in entries] == [
            "CityA_-_DC1_Phase_1_FLIB_A_T1",
            "CityA_-_DC1_Phase_1_FLIB_B_T1",
        ]
        assert all(e.status == "NOT RUN" for e in entries)
        assert all(e.hardening_status == "NOT STARTED" for e in entries)
        assert all(e.last_modified == FIXED_NOW for e in entries)

    def test_system_coverage_yields_one_entry(self, engine):
        entries = engine.expand(
            SITE_A,
            "Phase 1",
            [{"cellType": "FLIB", "quantity": 2, "cellNames": ["A", "B"]}],
            [make_template(coverage="System", test_id="T1")],
        )

        assert len(entries) == 1
        assert entries[0].cell == "SYSTEM"
        assert entries[0].unique_key == "CityA_-_DC1_Phase_1_SYSTEM_T1"

    def test_mixed_catalog(self, engine, templates):
        entries = engine.expand(
            SITE_A,
            "Phase 1",
            [{"cell_type": "FLIB", "quantity": 2}, {"cell_type": "ASRS", "quantity": 1}],
            templates,
        )

        cells = {(e.test_id, e.cell) for e in entries}
        assert cells == {
            ("T1", "FLIB1"),
            ("T1", "FLIB2"),
            ("T2", "SYSTEM"),
            ("T3", "FLIB1"),
            ("A1", "ASRS1"),
            ("G1", "GENERAL"),
        }
        assert len({e.unique_key for e in entries}) == len(entries)

    def test_general_templates_once_per_site_phase(self, engine):
        general = make_template(cell_type="General", test_id="G1", coverage="All")
        entries = engine.expand(
            SITE_A,
            "Phase 1",
            [{"cell_type": "FLIB", "quantity": 1}, {"cell_type": "ASRS", "quantity": 1}],
            [general],
        )

        assert len(entries) == 1
        assert entries[0].cell_type == "General"
        assert entries[0].cell == "GENERAL"

    def test_templates_for_other_phases_are_skipped(self, engine):
        entries = engine.expand(
            SITE_A,
            "Phase 1",
            [{"cell_type": "FLIB", "quantity": 1}],
            [make_template(phase="Phase 2")],
        )
        assert entries == []

    def test_classification_filters_templates(self, engine):
        templates = [
            make_template(test_id="T1", dc_type="Regional", sub_type="Standard"),
            make_template(test_id="T9", dc_type="Regional", sub_type="Compact"),
        ]
        entries = engine.expand(SITE_A, "Phase 1", [{"cell_type": "FLIB", "quantity": 1}], templates)

        assert [e.test_id for e in entries] == ["T1"]
        assert entries[0].dc_type == "Regional"
        assert entries[0].sub_type == "Standard"

    def test_entry_classification_falls_back_to_site(self, engine):
        entries = engine.expand(SITE_A, "Phase 1", [{"cell_type": "FLIB", "quantity": 1}], [make_template()])
        assert entries[0].dc_type == "Regional"
        assert entries[0].sub_type == "Standard"

    def test_multi_driveway_cells(self, engine):
        entries = engine.expand(
            SITE_A,
            "Phase 1",
            [
                {
                    "cell_type": "ASRS",
                    "quantity": 2,
                    "driveway_config": {0: {"Driveway 1": "Inbound", "Driveway 2": "Outbound"}},
                }
            ],
            [make_template(cell_type="ASRS", test_id="A1")],
        )

        assert entries[0].driveway_config == "Driveway 1: Inbound; Driveway 2: Outbound"
        assert entries[1].driveway_config == ""
        assert all(e.driveway1_status == "NOT RUN" for e in entries)
        assert all(e.driveway2_status == "NOT RUN" for e in entries)

    def test_single_driveway_cells_have_no_driveway_status(self, engine):
        entries = engine.expand(SITE_A, "Phase 1", [{"cell_type": "FLIB", "quantity": 1}], [make_template()])
        assert entries[0].driveway1_status == ""
        assert entries[0].driveway_config == ""

    def test_duplicate_selections_are_deduplicated(self, engine):
        entries = engine.expand(
            SITE_A,
            "Phase 1",
            [{"cell_type": "FLIB", "quantity": 1}, {"cell_type": "FLIB", "quantity": 1}],
            [make_template()],
        )
        assert len(entries) == 1

    def test_user_is_recorded(self, engine):
        entries = engine.expand(
            SITE_A, "Phase 1", [{"cell_type": "FLIB", "quantity": 1}], [make_template()], user="alice"
        )
        assert entries[0].modified_user == "alice"


class TestExpandValidation:
    """Test input validation of expand."""

    @pytest.mark.parametrize("site, phase", [("", "Phase 1"), (SITE_A, ""), ("  ", "Phase 1")])
    def test_missing_site_or_phase(self, engine, site, phase):
        with pytest.raises(ValidationError):
            engine.expand(site, phase, [{"cell_type": "FLIB", "quantity": 1}], [make_template()])

    def test_no_selections(self, engine):
        with pytest.raises(ValidationError):
            engine.expand(SITE_A, "Phase 1", [], [make_template()])

    @pytest.mark.parametrize("quantity", [0, -1, "2", 1.5, None, True])
    def test_invalid_quantity(self, engine, quantity):
        with pytest.raises(ValidationError):
            engine.expand(SITE_A, "Phase 1", [{"cell_type": "FLIB", "quantity": quantity}], [make_template()])

    def test_unknown_site(self, engine):
        with pytest.raises(NotFoundError):
            engine.expand("Nowhere - DC9", "Phase 1", [{"cell_type": "FLIB", "quantity": 1}], [make_template()])

    def test_selection_without_cell_type(self):
        with pytest.raises(ValidationError):
            parse_selection({"quantity": 1})

    def test_parse_selection_passes_models_through(self):
        selection = CellTypeSelection(cell_type="FLIB", quantity=2)
        assert parse_selection(selection) is selection


class TestPropagateTemplate:
    """Test propagation of a new template to existing sites."""

    def test_all_phase_template_goes_to_every_site_and_default_phase(self, engine, sites, cell_configs):
        entries = engine.propagate_template(make_template(test_id="T7"), sites, cell_configs)

        assert {(e.site, e.phase) for e in entries} == {
            ("CityA - DC1", "Phase 1"),
            ("CityA - DC1", "Phase 2"),
            ("CityB - DC2", "Phase 1"),
            ("CityB - DC2", "Phase 2"),
        }
        assert {e.cell for e in entries} == {"FLIB1"}

    def test_phase_specific_template(self, engine, sites, cell_configs):
        entries = engine.propagate_template(make_template(phase="Phase 2"), sites, cell_configs)
        assert {e.phase for e in entries} == {"Phase 2"}

    def test_phase_outside_defaults_is_used_directly(self, engine, sites, cell_configs):
        entries = engine.propagate_template(make_template(phase="Phase 9"), sites, cell_configs)
        assert {e.phase for e in entries} == {"Phase 9"}

    def test_classification_limits_sites(self, engine, sites, cell_configs):
        template = make_template(dc_type="Regional", sub_type="Compact")
        entries = engine.propagate_template(template, sites, cell_configs)
        assert {e.site for e in entries} == {"CityB - DC2"}

    def test_system_template(self, engine, sites, cell_configs):
        entries = engine.propagate_template(make_template(coverage="System"), sites, cell_configs)
        assert {e.cell for e in entries} == {"SYSTEM"}
        assert len(entries) == 4

    def test_multi_driveway_type(self, engine, sites, cell_configs):
        entries = engine.propagate_template(make_template(cell_type="ASRS"), sites, cell_configs)
        assert all(e.driveway1_status == "NOT RUN" for e in entries)
