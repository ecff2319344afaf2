"""Unit tests for the reconciled matrix view."""

from testmatrix.engine.reconciliation import derive_view, infer_inventory

from conftest import SITE_A, SITE_B, make_template


def _expand(engine, templates, site=SITE_A, phase="Phase 1", selections=None):
    selections = selections or [{"cell_type": "FLIB", "quantity": 2}]
    return engine.expand(site, phase, selections, templates)


class TestInferInventory:
    """Test inventory inference from persisted rows."""

    def test_cells_in_first_seen_order(self, engine, templates):
        entries = _expand(engine, templates)
        inventory = infer_inventory(entries)

        assert [c.name for c in inventory["FLIB"]] == ["FLIB1", "FLIB2"]
        assert inventory["General"] == []


class TestDeriveView:
    """Test grouping and merging."""

    def test_groups_ordered_system_first_all(self, engine, templates):
        entries = _expand(engine, templates)
        groups = derive_view(SITE_A, "Phase 1", templates, entries)

        assert [g.coverage_class for g in groups] == ["System", "System", "First", "All"]
        assert {(g.coverage_class, g.cell_type) for g in groups} == {
            ("System", "FLIB"),
            ("System", "General"),
            ("First", "FLIB"),
            ("All", "FLIB"),
        }

    def test_every_pair_appears_once(self, engine, templates):
        entries = _expand(engine, templates)
        groups = derive_view(SITE_A, "Phase 1", templates, entries)

        keys = [row.unique_key for g in groups for row in g.rows]
        assert sorted(keys) == sorted(e.unique_key for e in entries)

    def test_rows_carry_template_fields(self, engine):
        template = make_template(steps="1. Start\n2. Stop", expected_output="Cycle completes", image="pick.png")
        entries = _expand(engine, [template])
        groups = derive_view(SITE_A, "Phase 1", [template], entries)

        row = groups[0].rows[0]
        assert row.steps == "1. Start\n2. Stop"
        assert row.expected_output == "Cycle completes"
        assert row.image == "pick.png"
        assert row.status == "NOT RUN"

    def test_all_groups_split_by_scope(self, engine):
        templates = [
            make_template(test_id="T1", test_case="Pick", scope="Throughput"),
            make_template(test_id="T2", test_case="Drop", scope="Safety"),
        ]
        entries = _expand(engine, templates)
        groups = derive_view(SITE_A, "Phase 1", templates, entries)

        assert [g.scope for g in groups] == ["Throughput", "Safety"]
        assert groups[0].label == "All / Throughput - FLIB (Phase 1)"

    def test_template_without_rows_is_omitted(self, engine):
        old = make_template(test_id="T1", test_case="Pick")
        new = make_template(test_id="T5", test_case="Late addition")
        entries = _expand(engine, [old])

        groups = derive_view(SITE_A, "Phase 1", [old, new], entries)

        test_ids = {row.test_id for g in groups for row in g.rows}
        assert test_ids == {"T1"}

    def test_rows_without_template_are_omitted(self, engine):
        kept = make_template(test_id="T1", test_case="Pick")
        retired = make_template(test_id="T2", test_case="Retired")
        entries = _expand(engine, [kept, retired])

        groups = derive_view(SITE_A, "Phase 1", [kept], entries)
        assert {row.test_id for g in groups for row in g.rows} == {"T1"}

    def test_phase_filter_and_other_sites(self, engine, templates):
        entries = (
            _expand(engine, templates)
            + _expand(engine, templates, phase="Phase 2")
            + _expand(engine, templates, site=SITE_B)
        )

        phase_one = derive_view(SITE_A, "Phase 1", templates, entries)
        assert {g.phase for g in phase_one} == {"Phase 1"}
        assert all(row.site == SITE_A for g in phase_one for row in g.rows)

        both = derive_view(SITE_A, None, templates, entries)
        assert {g.phase for g in both} == {"Phase 1", "Phase 2"}

    def test_unknown_site_is_empty(self, engine, templates):
        entries = _expand(engine, templates)
        assert derive_view("Elsewhere - DC5", None, templates, entries) == []

    def test_view_is_idempotent_and_read_only(self, engine, templates):
        entries = _expand(engine, templates)
        before = [e.model_dump() for e in entries]

        first = derive_view(SITE_A, "Phase 1", templates, entries)
        second = derive_view(SITE_A, "Phase 1", templates, entries)

        assert [g.model_dump() for g in first] == [g.model_dump() for g in second]
        assert [e.model_dump() for e in entries] == before
