"""Catalog, registry and status store implementations."""

from .base import CellConfigRegistry, SiteRegistry, StatusStore, TemplateCatalog
from .excel_store import ExcelCellConfigRegistry, ExcelSiteRegistry, ExcelStatusStore, ExcelTemplateCatalog
from .memory_store import (
    InMemoryCellConfigRegistry,
    InMemorySiteRegistry,
    InMemoryStatusStore,
    InMemoryTemplateCatalog,
)
from .store_factory import StoreBundle, StoreFactory

__all__ = [
    "CellConfigRegistry",
    "SiteRegistry",
    "StatusStore",
    "TemplateCatalog",
    "ExcelCellConfigRegistry",
    "ExcelSiteRegistry",
    "ExcelStatusStore",
    "ExcelTemplateCatalog",
    "InMemoryCellConfigRegistry",
    "InMemorySiteRegistry",
    "InMemoryStatusStore",
    "InMemoryTemplateCatalog",
    "StoreBundle",
    "StoreFactory",
]
