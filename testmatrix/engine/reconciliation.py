"""Read-only merge of the template catalog with persisted status rows."""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from .coverage import phase_matches, resolve_coverage
from ..entities.records import (
    GENERAL_CELL,
    SYSTEM_CELL,
    CellInstance,
    Coverage,
    MatrixGroup,
    MatrixRow,
    TestCaseTemplate,
    TestStatusEntry,
)

logger = logging.getLogger(__name__)

# Grouping order of coverage classes
COVERAGE_ORDER = (Coverage.SYSTEM.value, Coverage.FIRST.value, Coverage.ALL.value)

MatchKey = Tuple[str, str, str, str]
GroupKey = Tuple[str, str, str, str]


def _match_key(cell_type: str, test_case: str, cell: str, coverage: str) -> MatchKey:
    return (cell_type, test_case, cell, coverage)


def infer_inventory(entries: Iterable[TestStatusEntry]) -> Dict[str, List[CellInstance]]:
    """
    Rebuild the cell inventory of one site/phase from its persisted rows.

    Cells are ordered by first appearance; SYSTEM and GENERAL tokens are not
    cells.
    """
    names: Dict[str, List[str]] = {}
    for entry in entries:
        cells = names.setdefault(entry.cell_type, [])
        if entry.cell in (SYSTEM_CELL, GENERAL_CELL) or entry.cell in cells:
            continue
        cells.append(entry.cell)

    return {
        cell_type: [CellInstance(cell_type=cell_type, index=i, name=name) for i, name in enumerate(cells)]
        for cell_type, cells in names.items()
    }


def merge_row(template: TestCaseTemplate, entry: TestStatusEntry) -> MatrixRow:
    """Persisted status fields plus the template's descriptive fields."""
    return MatrixRow(
        unique_key=entry.unique_key,
        site=entry.site,
        phase=entry.phase,
        cell_type=entry.cell_type,
        cell=entry.cell,
        test_case=entry.test_case,
        test_id=entry.test_id,
        scope=entry.scope or template.scope,
        coverage=entry.coverage,
        status=entry.status,
        driveway1_status=entry.driveway1_status,
        driveway2_status=entry.driveway2_status,
        driveway_config=entry.driveway_config,
        hardening=entry.hardening.model_copy(deep=True),
        hardening_status=entry.hardening_status,
        vt_volume=entry.vt_volume,
        vt_start_datetime=entry.vt_start_datetime,
        vt_end_datetime=entry.vt_end_datetime,
        ch_volume=entry.ch_volume,
        ch_date=entry.ch_date,
        last_modified=entry.last_modified,
        modified_user=entry.modified_user,
        notes=entry.notes,
        driveway_type=template.driveway_type,
        combined_test=template.combined_test,
        steps=template.steps,
        expected_output=template.expected_output,
        requirements=template.requirements,
        image=template.image,
    )


def derive_view(
    site: str,
    phase: Optional[str],
    templates: Iterable[TestCaseTemplate],
    existing_entries: Iterable[TestStatusEntry],
) -> List[MatrixGroup]:
    """
    Build the display matrix for a site, optionally narrowed to one phase.

    Coverage is resolved against the inventory inferred from the site's
    persisted rows, and each resolved pair is shown only if a persisted row
    exists for it. Templates added after a site was configured therefore do
    not appear until an expansion or propagation creates their rows.

    Nothing is created, deleted or modified.

    Returns:
        Groups ordered System, First, All; then by first appearance of
        (cell type, phase). Every resolved pair appears in exactly one group.
    """
    templates = list(templates)
    site_entries = [
        entry for entry in existing_entries
        if entry.site == site and (not phase or entry.phase == phase)
    ]

    phases: List[str] = []
    by_phase: Dict[str, List[TestStatusEntry]] = {}
    for entry in site_entries:
        if entry.phase not in by_phase:
            phases.append(entry.phase)
            by_phase[entry.phase] = []
        by_phase[entry.phase].append(entry)

    groups: Dict[GroupKey, MatrixGroup] = {}
    dropped = 0

    for current_phase in phases:
        phase_entries = by_phase[current_phase]
        inventory = infer_inventory(phase_entries)
        lookup: Dict[MatchKey, TestStatusEntry] = {}
        for entry in phase_entries:
            lookup.setdefault(_match_key(entry.cell_type, entry.test_case, entry.cell, entry.coverage), entry)

        for template in templates:
            if template.cell_type not in inventory or not phase_matches(template.phase, current_phase):
                continue

            for _, token in resolve_coverage(template, inventory[template.cell_type]):
                entry = lookup.get(_match_key(template.cell_type, template.test_case, token, template.coverage))
                if entry is None:
                    dropped += 1
                    continue

                scope = template.scope if template.coverage == Coverage.ALL else ""
                key = (template.coverage, scope, template.cell_type, current_phase)
                group = groups.get(key)
                if group is None:
                    group = MatrixGroup(
                        coverage_class=template.coverage,
                        scope=scope,
                        cell_type=template.cell_type,
                        phase=current_phase,
                    )
                    groups[key] = group
                group.rows.append(merge_row(template, entry))

    if dropped:
        logger.debug(f"{dropped} resolved pairs for {site} have no persisted row and were omitted")

    ordered = sorted(groups.values(), key=lambda g: COVERAGE_ORDER.index(g.coverage_class))
    logger.info(f"Derived {len(ordered)} groups for {site}" + (f" / {phase}" if phase else ""))
    return ordered
