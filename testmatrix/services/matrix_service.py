"""Site test matrix operations over the injected collaborators.

Every mutation reads the whole status collection, computes the new collection
in memory and replaces it in one write. Writes are serialized per service
instance and carry the version read, so a concurrent replace by another
writer surfaces as a ConflictError instead of a lost update.
"""

import logging
import re
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, TypeVar, Union

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from ..engine import hardening, volumes
from ..engine.expansion import ExpansionEngine, SelectionLike
from ..engine.reconciliation import derive_view
from ..entities.records import (
    DATETIME_FMT,
    MatrixGroup,
    TemplateIdentity,
    TestCaseTemplate,
    TestStatus,
    TestStatusEntry,
    UniqueKey,
)
from ..stores.base import CellConfigRegistry, SiteRegistry, StatusStore, TemplateCatalog
from ..stores.store_factory import StoreBundle
from ..utils.exceptions import ConflictError, NotFoundError, TestMatrixError, ValidationError
from ..utils.file_utils import write_report_workbook

logger = logging.getLogger(__name__)

T = TypeVar("T")

STATUS_VALUES = tuple(status.value for status in TestStatus)

RESULT_COLUMNS = [
    "Cell Type", "Cell", "Test Case", "Case ID", "Status", "Phase",
    "VT Volume", "CH Volume", "Last Modified", "Modified User",
]

_SAFE_NAME = re.compile(r"[^\w.-]+")


class StatusCounts(BaseModel):
    total: int = 0
    passed: int = 0
    failed: int = 0
    blocked: int = 0
    not_run: int = 0

    def add(self, status: str) -> None:
        self.total += 1
        if status == TestStatus.PASS.value:
            self.passed += 1
        elif status == TestStatus.FAIL.value:
            self.failed += 1
        elif status == TestStatus.BLOCKED.value:
            self.blocked += 1
        else:
            self.not_run += 1


class MatrixStatistics(BaseModel):
    """Overall and grouped execution counts."""

    overall: StatusCounts = Field(default_factory=StatusCounts)
    completion_rate: int = 0
    pass_rate: int = 0
    by_site: Dict[str, StatusCounts] = Field(default_factory=dict)
    by_phase: Dict[str, StatusCounts] = Field(default_factory=dict)
    by_cell_type: Dict[str, StatusCounts] = Field(default_factory=dict)


def _percent(part: int, whole: int) -> int:
    """Whole-number percentage, rounding halves up."""
    if whole <= 0:
        return 0
    return int(part * 100 / whole + 0.5)


def _require(value: Any, field: str, label: str) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValidationError(f"{label} is required", field=field)
    return text


class TestMatrixService:
    """Operations the outer layers (CLI, HTTP) call."""

    def __init__(
        self,
        templates: TemplateCatalog,
        cell_configs: CellConfigRegistry,
        sites: SiteRegistry,
        status_store: StatusStore,
        engine: Optional[ExpansionEngine] = None,
    ):
        self.templates = templates
        self.cell_configs = cell_configs
        self.sites = sites
        self.status_store = status_store
        self.engine = engine or ExpansionEngine(sites, cell_configs)
        self._lock = threading.RLock()

    @classmethod
    def from_bundle(cls, bundle: StoreBundle, engine: Optional[ExpansionEngine] = None) -> "TestMatrixService":
        return cls(bundle.templates, bundle.cell_configs, bundle.sites, bundle.status, engine=engine)

    def _mutate(self, change: Callable[[List[TestStatusEntry]], Tuple[T, Optional[List[TestStatusEntry]]]]) -> T:
        """Read, apply ``change`` and replace the collection; ``None`` means no write."""
        with self._lock:
            version = self.status_store.version()
            entries = self.status_store.read()
            result, updated = change(entries)
            if updated is not None:
                self.status_store.write(updated, expected_version=version)
            return result

    # ------------------------------------------------------------------
    # Configuration and propagation
    # ------------------------------------------------------------------

    def create_configuration(
        self,
        site: str,
        phase: str,
        cell_type_selections: Sequence[SelectionLike],
        user: str = "",
    ) -> List[TestStatusEntry]:
        """
        Expand a site/phase inventory and append the new rows to the store.

        Rows whose unique key is already stored are left untouched, so
        re-running a configuration only adds what is missing.

        Returns:
            The entries actually added
        """
        templates = self.templates.list()
        new_entries = self.engine.expand(site, phase, cell_type_selections, templates, user=user)

        def change(entries: List[TestStatusEntry]):
            existing = {entry.unique_key for entry in entries}
            added = [entry for entry in new_entries if entry.unique_key not in existing]
            skipped = len(new_entries) - len(added)
            if skipped:
                logger.info(f"{skipped} entries for {site} / {phase} already exist and were kept")
            return added, (entries + added if added else None)

        added = self._mutate(change)
        logger.info(f"Site {site} - {phase} configured: {len(added)} entries created")
        return added

    def register_template(self, template: Union[TestCaseTemplate, Mapping[str, Any]], user: str = "") -> int:
        """
        Add a template to the catalog and propagate it to every matching site.

        Status rows are written before the catalog entry. If the catalog
        update fails, the rows written for it are removed again, so a failed
        registration can simply be retried.

        Returns:
            Number of status entries created

        Raises:
            ValidationError: If the template is malformed
            ConflictError: If a template with the same identity exists
        """
        if not isinstance(template, TestCaseTemplate):
            try:
                template = TestCaseTemplate.model_validate(dict(template))
            except (PydanticValidationError, TypeError) as e:
                raise ValidationError(f"Invalid template: {e}", field="template")

        if template.modified_by == "" and user:
            template = template.model_copy(update={"modified_by": user, "last_modified": datetime.now()})

        def change(entries: List[TestStatusEntry]):
            existing = {entry.unique_key for entry in entries}
            added = [entry for entry in propagated if entry.unique_key not in existing]
            return added, (entries + added if added else None)

        with self._lock:
            if any(existing.identity == template.identity for existing in self.templates.list()):
                raise ConflictError(f"Template already exists: {template.test_id} ({template.test_case})")

            propagated = self.engine.propagate_template(
                template, self.sites.list(), self.cell_configs.list(), user=user
            )
            added = self._mutate(change)
            try:
                self.templates.add(template)
            except TestMatrixError:
                if added:
                    logger.error(
                        f"Catalog update for {template.test_id} failed; removing {len(added)} propagated entries"
                    )
                    self._remove_entries({entry.unique_key for entry in added})
                raise

        logger.info(f"Registered template {template.test_id}; propagated {len(added)} entries")
        return len(added)

    def _remove_entries(self, keys: Set[str]) -> None:
        self._mutate(lambda entries: (None, [entry for entry in entries if entry.unique_key not in keys]))

    def retire_template(self, identity: Union[TemplateIdentity, TestCaseTemplate]) -> int:
        """Delete every status row created from a retired template."""
        if isinstance(identity, TestCaseTemplate):
            identity = identity.identity
        if not identity.cell_type or not identity.test_id:
            raise ValidationError("Template cell type and test ID are required", field="template")

        def change(entries: List[TestStatusEntry]):
            kept = [entry for entry in entries if not entry.matches_template(identity)]
            removed = len(entries) - len(kept)
            return removed, (kept if removed else None)

        removed = self._mutate(change)
        logger.info(f"Retired template {identity.test_id}: removed {removed} status entries")
        return removed

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def get_matrix_for_site(self, site: str, phase: Optional[str] = None) -> List[MatrixGroup]:
        site = _require(site, "site", "Site")
        return derive_view(site, phase or None, self.templates.list(), self.status_store.read())

    def list_configured_sites(self) -> Dict[str, List[str]]:
        """Sites present in the store, with their phases in first-seen order."""
        sites: Dict[str, List[str]] = {}
        for entry in self.status_store.read():
            phases = sites.setdefault(entry.site, [])
            if entry.phase not in phases:
                phases.append(entry.phase)
        return sites

    def get_statistics(self) -> MatrixStatistics:
        stats = MatrixStatistics()
        for entry in self.status_store.read():
            stats.overall.add(entry.status)
            stats.by_site.setdefault(entry.site, StatusCounts()).add(entry.status)
            stats.by_phase.setdefault(entry.phase, StatusCounts()).add(entry.status)
            stats.by_cell_type.setdefault(entry.cell_type, StatusCounts()).add(entry.status)

        completed = stats.overall.passed + stats.overall.failed
        stats.completion_rate = _percent(completed, stats.overall.total)
        stats.pass_rate = _percent(stats.overall.passed, completed)
        return stats

    # ------------------------------------------------------------------
    # Status updates
    # ------------------------------------------------------------------

    def update_test_status(
        self,
        unique_key: str,
        status: str,
        user: str = "",
        notes: Optional[str] = None,
        driveway1_status: Optional[str] = None,
        driveway2_status: Optional[str] = None,
    ) -> TestStatusEntry:
        """Change the execution status of one entry."""
        key = UniqueKey.parse(unique_key)
        status = self._validate_status(status, "status")
        if driveway1_status is not None:
            driveway1_status = self._validate_status(driveway1_status, "driveway1_status")
        if driveway2_status is not None:
            driveway2_status = self._validate_status(driveway2_status, "driveway2_status")

        def change(entries: List[TestStatusEntry]):
            for entry in entries:
                if entry.unique_key == key.value:
                    logger.info(f"Updating {entry.unique_key}: {entry.status} -> {status}")
                    entry.status = status
                    if driveway1_status is not None:
                        entry.driveway1_status = driveway1_status
                    if driveway2_status is not None:
                        entry.driveway2_status = driveway2_status
                    if notes is not None:
                        entry.notes = notes
                    entry.last_modified = datetime.now()
                    entry.modified_user = user
                    return entry, entries
            raise NotFoundError(f"Test not found: {key}", resource="status_entry", identifier=key.value)

        return self._mutate(change)

    def record_volumes(
        self,
        unique_key: str,
        vt_volume: Any = None,
        vt_start_datetime: Any = None,
        vt_end_datetime: Any = None,
        ch_volume: Any = None,
        ch_date: Any = None,
        user: str = "",
    ) -> TestStatusEntry:
        """
        Record Volume Test and Cell Hardening measurements on one entry.

        ``None`` leaves a field unchanged; an empty string clears it.

        Raises:
            ValidationError: Nothing to change, a value that does not parse,
                or a VT window that ends before it starts
            NotFoundError: If no entry has the key
        """
        key = UniqueKey.parse(unique_key)
        changes = volumes.normalize_volume_update(
            vt_volume, vt_start_datetime, vt_end_datetime, ch_volume, ch_date
        )

        def change(entries: List[TestStatusEntry]):
            for entry in entries:
                if entry.unique_key == key.value:
                    volumes.apply_volumes(entry, changes)
                    entry.last_modified = datetime.now()
                    entry.modified_user = user
                    return entry, entries
            raise NotFoundError(f"Test not found: {key}", resource="status_entry", identifier=key.value)

        entry = self._mutate(change)
        logger.info(f"Volumes recorded on {entry.unique_key}: {', '.join(sorted(changes))}")
        return entry

    # ------------------------------------------------------------------
    # Results export
    # ------------------------------------------------------------------

    def export_results(
        self,
        site: str,
        output_dir: Union[str, Path],
        submitted_by: str = "",
        now: Optional[datetime] = None,
    ) -> Path:
        """
        Write a results workbook for one site into ``output_dir``.

        The sheet starts with a submission summary (totals and pass rate over
        all entries of the site) followed by one row per entry.

        Returns:
            Path of the written workbook

        Raises:
            NotFoundError: If the site has no status entries
        """
        site = _require(site, "site", "Site")
        entries = [entry for entry in self.status_store.read() if entry.site == site]
        if not entries:
            raise NotFoundError(f"No test entries found for site: {site}", resource="site", identifier=site)

        submitted_at = now or datetime.now()
        stamp = submitted_at.strftime("%Y%m%d-%H%M%S")
        passed = sum(1 for entry in entries if entry.status == TestStatus.PASS.value)
        summary = {
            "Submission ID": f"{_SAFE_NAME.sub('_', site)}-{stamp}",
            "Site": site,
            "Submitted By": submitted_by,
            "Submitted At": submitted_at.strftime(DATETIME_FMT),
            "Total Tests": len(entries),
            "Passed Tests": passed,
            "Pass Rate": f"{_percent(passed, len(entries))}%",
        }
        rows = [
            {
                "Cell Type": entry.cell_type,
                "Cell": entry.cell,
                "Test Case": entry.test_case,
                "Case ID": entry.test_id,
                "Status": entry.status,
                "Phase": entry.phase,
                "VT Volume": entry.vt_volume,
                "CH Volume": entry.ch_volume,
                "Last Modified": entry.last_modified.strftime(DATETIME_FMT) if entry.last_modified else "",
                "Modified User": entry.modified_user,
            }
            for entry in entries
        ]

        path = Path(output_dir) / f"test_results_{_SAFE_NAME.sub('_', site)}_{stamp}.xlsx"
        write_report_workbook(str(path), summary, rows, RESULT_COLUMNS, sheet_name="Test Results")
        logger.info(f"Results for {site} exported to {path} ({len(entries)} entries, {passed} passed)")
        return path

    @staticmethod
    def _validate_status(value: str, field: str) -> str:
        status = (value or "").strip().upper()
        if status not in STATUS_VALUES:
            raise ValidationError(
                f"Status must be one of {', '.join(STATUS_VALUES)}; got {value!r}", field=field
            )
        return status

    # ------------------------------------------------------------------
    # Hardening
    # ------------------------------------------------------------------

    def _apply_to_cell(
        self,
        site: str,
        cell_type: str,
        cell: str,
        apply: Callable[[TestStatusEntry], None],
        user: str,
    ) -> List[TestStatusEntry]:
        """Apply a hardening change to every row of one physical cell."""

        def change(entries: List[TestStatusEntry]):
            updated = []
            for entry in entries:
                if entry.cell_key == (site, cell_type, cell):
                    apply(entry)
                    entry.last_modified = datetime.now()
                    if user:
                        entry.modified_user = user
                    updated.append(entry)
            if not updated:
                raise NotFoundError(
                    f"No test entries found for cell {cell} ({cell_type}) at {site}",
                    resource="cell",
                    identifier=cell,
                )
            return updated, entries

        return self._mutate(change)

    def record_hardening_day(
        self,
        site: str,
        cell_type: str,
        cell: str,
        day: Any,
        date: Any,
        production: Any,
        notes: Optional[str] = "",
        user: str = "",
    ) -> List[TestStatusEntry]:
        """Record one hardening day on every row of a physical cell."""
        site = _require(site, "site", "Site")
        cell_type = _require(cell_type, "cell_type", "Cell type")
        cell = _require(cell, "cell", "Cell")
        number = hardening.validate_day_number(day)
        day_date = hardening.parse_hardening_date(date)
        amount = hardening.parse_production(production)

        updated = self._apply_to_cell(
            site, cell_type, cell,
            lambda entry: hardening.set_day(entry, number, day_date, amount, notes),
            user,
        )
        logger.info(f"Day {number} hardening recorded for {cell} at {site} ({len(updated)} rows)")
        return updated

    def update_hardening_day(
        self,
        site: str,
        cell_type: str,
        cell: str,
        day: Any,
        production: Any,
        notes: Optional[str] = None,
        user: str = "",
    ) -> List[TestStatusEntry]:
        """Change the production (and optionally notes) of a recorded day."""
        site = _require(site, "site", "Site")
        cell_type = _require(cell_type, "cell_type", "Cell type")
        cell = _require(cell, "cell", "Cell")
        number = hardening.validate_day_number(day)
        amount = hardening.parse_production(production)

        updated = self._apply_to_cell(
            site, cell_type, cell,
            lambda entry: hardening.update_day(entry, number, amount, notes),
            user,
        )
        logger.info(f"Day {number} hardening updated for {cell} at {site}")
        return updated

    def clear_hardening_day(
        self,
        site: str,
        cell_type: str,
        cell: str,
        day: Any,
        user: str = "",
    ) -> List[TestStatusEntry]:
        """Clear one hardening day on every row of a physical cell."""
        site = _require(site, "site", "Site")
        cell_type = _require(cell_type, "cell_type", "Cell type")
        cell = _require(cell, "cell", "Cell")
        number = hardening.validate_day_number(day)

        updated = self._apply_to_cell(
            site, cell_type, cell,
            lambda entry: hardening.clear_day(entry, number),
            user,
        )
        logger.info(f"Day {number} hardening cleared for {cell} at {site}")
        return updated

    def _filter_cells(
        self,
        site: Optional[str],
        cell_type: Optional[str],
        cell: Optional[str],
    ) -> Iterable[TestStatusEntry]:
        for entry in self.status_store.read():
            if site and entry.site != site:
                continue
            if cell_type and entry.cell_type != cell_type:
                continue
            if cell and entry.cell != cell:
                continue
            yield entry

    def get_cell_hardening(
        self,
        site: Optional[str] = None,
        cell_type: Optional[str] = None,
        cell: Optional[str] = None,
    ) -> List[hardening.CellHardening]:
        return hardening.cell_hardening(self._filter_cells(site, cell_type, cell))

    def get_hardening_summary(
        self,
        site: Optional[str] = None,
        cell_type: Optional[str] = None,
        cell: Optional[str] = None,
    ) -> List[hardening.HardeningSummary]:
        return hardening.summarize(self._filter_cells(site, cell_type, cell))
