"""Factory for wiring catalog, registries and status store together."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional

from .base import CellConfigRegistry, SiteRegistry, StatusStore, TemplateCatalog
from .excel_store import ExcelCellConfigRegistry, ExcelSiteRegistry, ExcelStatusStore, ExcelTemplateCatalog
from .memory_store import (
    InMemoryCellConfigRegistry,
    InMemorySiteRegistry,
    InMemoryStatusStore,
    InMemoryTemplateCatalog,
)
from ..utils.config_loader import ConfigLoader, get_config_loader

logger = logging.getLogger(__name__)

StoreBackend = Literal["excel", "memory"]


@dataclass
class StoreBundle:
    """The four collaborators the matrix service consumes."""

    templates: TemplateCatalog
    cell_configs: CellConfigRegistry
    sites: SiteRegistry
    status: StatusStore


class StoreFactory:
    """Factory for creating store bundles."""

    @staticmethod
    def create_stores(
        backend: StoreBackend = "excel",
        config_loader: Optional[ConfigLoader] = None,
        data_dir: Optional[str] = None,
    ) -> StoreBundle:
        """
        Create the collaborators for a backend.

        Args:
            backend: "excel" for the workbooks under the data directory,
                "memory" for empty in-memory stores
            config_loader: Settings source (defaults to the global loader)
            data_dir: Workbook directory overriding the configured one

        Raises:
            ValueError: If backend is invalid
        """
        if backend == "memory":
            logger.info("Creating in-memory stores")
            return StoreBundle(
                templates=InMemoryTemplateCatalog(),
                cell_configs=InMemoryCellConfigRegistry(),
                sites=InMemorySiteRegistry(),
                status=InMemoryStatusStore(),
            )

        elif backend == "excel":
            loader = config_loader or get_config_loader()

            def path_for(name: str) -> Path:
                if data_dir:
                    return Path(data_dir) / loader.get(f"workbooks.{name}")
                return loader.workbook_path(name)

            logger.info(f"Creating workbook stores in {path_for('test_status').parent}")
            return StoreBundle(
                templates=ExcelTemplateCatalog(path_for("test_cases")),
                cell_configs=ExcelCellConfigRegistry(path_for("cell_types")),
                sites=ExcelSiteRegistry(path_for("site_info")),
                status=ExcelStatusStore(path_for("test_status")),
            )

        else:
            raise ValueError(f"Invalid backend: {backend}. Use 'excel' or 'memory'.")
