"""In-memory collaborators, used for tests and embedding."""

import logging
from typing import Iterable, List, Optional

from .base import CellConfigRegistry, SiteRegistry, StatusStore, TemplateCatalog
from ..entities.records import CellTypeConfig, SiteRecord, TestCaseTemplate, TestStatusEntry
from ..utils.exceptions import ConflictError

logger = logging.getLogger(__name__)


class InMemoryTemplateCatalog(TemplateCatalog):

    def __init__(self, templates: Iterable[TestCaseTemplate] = ()):
        self._templates = list(templates)

    def list(self) -> List[TestCaseTemplate]:
        return list(self._templates)

    def add(self, template: TestCaseTemplate) -> None:
        self._templates.append(template)


class InMemoryCellConfigRegistry(CellConfigRegistry):

    def __init__(self, configs: Iterable[CellTypeConfig] = ()):
        self._configs = list(configs)

    def list(self) -> List[CellTypeConfig]:
        return [config.model_copy(deep=True) for config in self._configs]


class InMemorySiteRegistry(SiteRegistry):

    def __init__(self, sites: Iterable[SiteRecord] = ()):
        self._sites = list(sites)

    def list(self) -> List[SiteRecord]:
        return [site.model_copy() for site in self._sites]


class InMemoryStatusStore(StatusStore):
    """Status store holding deep copies, versioned by a write counter."""

    def __init__(self, entries: Iterable[TestStatusEntry] = ()):
        self._entries = [entry.model_copy(deep=True) for entry in entries]
        self._version = 0

    def read(self) -> List[TestStatusEntry]:
        return [entry.model_copy(deep=True) for entry in self._entries]

    def version(self) -> str:
        return str(self._version)

    def write(self, entries: List[TestStatusEntry], expected_version: Optional[str] = None) -> str:
        if expected_version is not None and expected_version != self.version():
            raise ConflictError(
                f"Status store changed since it was read (expected version {expected_version}, "
                f"found {self.version()})"
            )
        self._entries = [entry.model_copy(deep=True) for entry in entries]
        self._version += 1
        logger.debug(f"In-memory store replaced with {len(self._entries)} entries")
        return self.version()
