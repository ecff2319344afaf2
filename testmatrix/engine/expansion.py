"""Expansion of templates into per-cell status entries."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Union

from pydantic import ValidationError as PydanticValidationError

from .coverage import (
    build_cell_instances,
    build_key,
    flatten_driveway_config,
    phase_matches,
    resolve_coverage,
)
from .hardening import NOT_STARTED
from ..entities.records import (
    CellTypeConfig,
    CellTypeSelection,
    SiteRecord,
    TestCaseTemplate,
    TestStatus,
    TestStatusEntry,
)
from ..utils.config_loader import get_config_loader
from ..utils.exceptions import NotFoundError, ValidationError

if TYPE_CHECKING:
    from ..stores.base import CellConfigRegistry, SiteRegistry

logger = logging.getLogger(__name__)

SelectionLike = Union[CellTypeSelection, Mapping[str, Any]]


def parse_selection(raw: SelectionLike, position: int = 0) -> CellTypeSelection:
    """Validate one cell type selection, accepting camelCase or snake_case keys."""
    if isinstance(raw, CellTypeSelection):
        return raw
    if not isinstance(raw, Mapping):
        raise ValidationError(f"Selection {position + 1} must be a mapping", field="cell_type_selections")

    cell_type = str(raw.get("cell_type") or raw.get("cellType") or "").strip()
    if not cell_type:
        raise ValidationError(f"Selection {position + 1} is missing a cell type", field="cell_type")

    quantity = raw.get("quantity")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError(
            f"Quantity for {cell_type} must be a positive integer, got {quantity!r}",
            field="quantity",
        )

    try:
        return CellTypeSelection(
            cell_type=cell_type,
            quantity=quantity,
            cell_names=raw.get("cell_names", raw.get("cellNames")),
            driveway_config=raw.get("driveway_config", raw.get("drivewayConfig")) or {},
        )
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid selection for {cell_type}: {e}", field="cell_type_selections")


def classification_matches(template: TestCaseTemplate, site: SiteRecord) -> bool:
    """Blank DC type / sub type on a template matches any site."""
    if template.dc_type and template.dc_type != site.dc_type:
        return False
    if template.sub_type and template.sub_type != site.sub_type:
        return False
    return True


class ExpansionEngine:
    """Builds fresh status entries from templates and a declared inventory."""

    def __init__(
        self,
        site_registry: SiteRegistry,
        cell_config_registry: Optional[CellConfigRegistry] = None,
        default_phases: Optional[Sequence[str]] = None,
        default_cell_count: Optional[int] = None,
    ):
        """
        Initialize expansion engine.

        Args:
            site_registry: Source of known sites
            cell_config_registry: Source of driveway configuration per cell type
            default_phases: Phases synthesized when propagating a new template
                (defaults to ``propagation.default_phases`` in settings)
            default_cell_count: Placeholder cells per type when propagating
                (defaults to ``propagation.default_cell_count`` in settings)
        """
        self.site_registry = site_registry
        self.cell_config_registry = cell_config_registry
        self._default_phases = list(default_phases) if default_phases is not None else None
        self._default_cell_count = default_cell_count

    @property
    def default_phases(self) -> List[str]:
        if self._default_phases is None:
            self._default_phases = get_config_loader().default_phases
        return self._default_phases

    @property
    def default_cell_count(self) -> int:
        if self._default_cell_count is None:
            self._default_cell_count = get_config_loader().default_cell_count
        return self._default_cell_count

    def resolve_site(self, site: str) -> SiteRecord:
        for record in self.site_registry.list():
            if record.label == site:
                return record
        raise NotFoundError(f"Site not found: {site}", resource="site", identifier=site)

    def expand(
        self,
        site: str,
        phase: str,
        cell_type_selections: Sequence[SelectionLike],
        templates: Iterable[TestCaseTemplate],
        user: str = "",
        now: Optional[datetime] = None,
    ) -> List[TestStatusEntry]:
        """
        Build the status entries for one site/phase/inventory combination.

        Store state is not consulted; the caller appends the result and
        de-duplicates it against what is already persisted.

        Args:
            site: Site label, e.g. ``CityA - DC1``
            phase: Concrete phase, e.g. ``Phase 1``
            cell_type_selections: ``{cell_type, quantity, cell_names?, driveway_config?}``
            templates: Template catalog
            user: Recorded as the modifying user
            now: Creation timestamp (defaults to the current time)

        Returns:
            New entries, all ``NOT RUN``, with distinct unique keys

        Raises:
            ValidationError: Missing site/phase, no selections, bad quantity
            NotFoundError: Site unknown to the site registry
        """
        site = (site or "").strip()
        phase = (phase or "").strip()
        if not site:
            raise ValidationError("Site is required", field="site")
        if not phase:
            raise ValidationError("Phase is required", field="phase")
        if not cell_type_selections:
            raise ValidationError("At least one cell type selection is required", field="cell_type_selections")

        selections = [parse_selection(raw, i) for i, raw in enumerate(cell_type_selections)]
        site_record = self.resolve_site(site)
        templates = list(templates)
        configs = self._cell_configs()
        timestamp = now or datetime.now()

        logger.info(
            f"Expanding {len(templates)} templates for {site} / {phase} "
            f"over {len(selections)} cell type selections"
        )

        entries: List[TestStatusEntry] = []
        seen: Set[str] = set()

        for selection in selections:
            cells = build_cell_instances(selection.cell_type, selection.quantity, selection.cell_names)
            cells_by_name = {cell.name: cell for cell in cells}
            config = configs.get(selection.cell_type)
            multi_driveway = bool(config and config.has_multiple_driveways)

            for template in templates:
                if template.is_general or template.cell_type != selection.cell_type:
                    continue
                if not phase_matches(template.phase, phase) or not classification_matches(template, site_record):
                    continue

                for _, token in resolve_coverage(template, cells):
                    driveway_config = ""
                    cell = cells_by_name.get(token)
                    if multi_driveway and cell is not None:
                        driveway_config = flatten_driveway_config(selection.driveway_config.get(cell.index))
                    self._emit(
                        entries,
                        seen,
                        self._new_entry(
                            site_record, site, phase, template, token,
                            driveway_config, multi_driveway, user, timestamp,
                        ),
                    )

        for template in templates:
            if not template.is_general:
                continue
            if not phase_matches(template.phase, phase) or not classification_matches(template, site_record):
                continue
            for _, token in resolve_coverage(template, []):
                self._emit(
                    entries,
                    seen,
                    self._new_entry(site_record, site, phase, template, token, "", False, user, timestamp),
                )

        logger.info(f"Created {len(entries)} status entries for {site} / {phase}")
        return entries

    def propagate_template(
        self,
        template: TestCaseTemplate,
        all_sites: Iterable[SiteRecord],
        all_cell_configs: Iterable[CellTypeConfig],
        user: str = "",
        now: Optional[datetime] = None,
    ) -> List[TestStatusEntry]:
        """
        Build entries for a newly added template across existing sites.

        No live inventory is known here, so phases come from the configured
        default set and cells are placeholders (``<type>1`` ... ``<type>N``),
        not the cells a site was actually configured with.
        """
        timestamp = now or datetime.now()
        configs = {config.cell_type: config for config in all_cell_configs}
        config = configs.get(template.cell_type)
        multi_driveway = bool(config and config.has_multiple_driveways)

        phases = [phase for phase in self.default_phases if phase_matches(template.phase, phase)]
        if not phases and template.phase not in self.default_phases:
            phases = [template.phase]

        cells = [] if template.is_general else build_cell_instances(template.cell_type, self.default_cell_count)
        tokens = [token for _, token in resolve_coverage(template, cells)]

        sites = [site for site in all_sites if classification_matches(template, site)]
        logger.info(
            f"Propagating template {template.test_id} to {len(sites)} sites "
            f"x {len(phases)} phases x {len(tokens)} cells"
        )

        entries: List[TestStatusEntry] = []
        seen: Set[str] = set()
        for site in sites:
            for phase in phases:
                for token in tokens:
                    self._emit(
                        entries,
                        seen,
                        self._new_entry(site, site.label, phase, template, token, "", multi_driveway, user, timestamp),
                    )
        return entries

    def _cell_configs(self) -> Dict[str, CellTypeConfig]:
        if self.cell_config_registry is None:
            return {}
        return {config.cell_type: config for config in self.cell_config_registry.list()}

    @staticmethod
    def _emit(entries: List[TestStatusEntry], seen: Set[str], entry: TestStatusEntry) -> None:
        if entry.unique_key in seen:
            logger.warning(f"Skipping duplicate status entry: {entry.unique_key}")
            return
        seen.add(entry.unique_key)
        entries.append(entry)

    @staticmethod
    def _new_entry(
        site_record: SiteRecord,
        site: str,
        phase: str,
        template: TestCaseTemplate,
        cell_token: str,
        driveway_config: str,
        multi_driveway: bool,
        user: str,
        timestamp: datetime,
    ) -> TestStatusEntry:
        driveway_status = TestStatus.NOT_RUN.value if multi_driveway else ""
        return TestStatusEntry(
            unique_key=build_key(site, phase, cell_token, template.test_id),
            dc_type=template.dc_type or site_record.dc_type,
            sub_type=template.sub_type or site_record.sub_type,
            site=site,
            phase=phase,
            cell_type=template.cell_type,
            cell=cell_token,
            test_case=template.test_case,
            test_id=template.test_id,
            scope=template.scope,
            coverage=template.coverage,
            status=TestStatus.NOT_RUN,
            driveway1_status=driveway_status,
            driveway2_status=driveway_status,
            driveway_config=driveway_config,
            hardening_status=NOT_STARTED,
            last_modified=timestamp,
            modified_user=user,
        )
