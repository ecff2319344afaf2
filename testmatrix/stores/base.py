"""Collaborator interfaces for catalogs, registries and the status store."""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..entities.records import CellTypeConfig, SiteRecord, TestCaseTemplate, TestStatusEntry


class TemplateCatalog(ABC):
    """Source of test-case templates."""

    @abstractmethod
    def list(self) -> List[TestCaseTemplate]:
        """Return every template in catalog order."""
        pass

    @abstractmethod
    def add(self, template: TestCaseTemplate) -> None:
        """Append a template to the catalog."""
        pass


class CellConfigRegistry(ABC):
    """Source of driveway configuration per cell type."""

    @abstractmethod
    def list(self) -> List[CellTypeConfig]:
        pass


class SiteRegistry(ABC):
    """Source of known sites."""

    @abstractmethod
    def list(self) -> List[SiteRecord]:
        pass


class StatusStore(ABC):
    """Whole-collection store of status entries.

    There is no row-level primitive: callers read everything, compute the new
    collection in memory and replace it in one write.
    """

    @abstractmethod
    def read(self) -> List[TestStatusEntry]:
        """
        Read the full collection.

        Returns:
            Independent copies; mutating them does not touch the store
        """
        pass

    @abstractmethod
    def version(self) -> str:
        """Opaque token that changes whenever the collection is replaced."""
        pass

    @abstractmethod
    def write(self, entries: List[TestStatusEntry], expected_version: Optional[str] = None) -> str:
        """
        Replace the full collection atomically.

        Args:
            entries: New collection
            expected_version: Version the caller read; the write is refused
                if the store has been replaced since

        Returns:
            The new version token

        Raises:
            ConflictError: If ``expected_version`` is stale
            StoreError: If the write fails; the previous collection survives
        """
        pass
