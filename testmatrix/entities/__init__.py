"""Entity models for templates, site inventory and status rows."""

from .records import (
    ALL_PHASES,
    DATE_FMT,
    DATETIME_FMT,
    GENERAL_CELL,
    GENERAL_CELL_TYPE,
    SYSTEM_CELL,
    CellInstance,
    CellTypeConfig,
    CellTypeSelection,
    Coverage,
    HardeningDay,
    HardeningLog,
    MatrixGroup,
    MatrixRow,
    SiteRecord,
    TemplateIdentity,
    TestCaseTemplate,
    TestStatus,
    TestStatusEntry,
    UniqueKey,
)

__all__ = [
    "ALL_PHASES",
    "DATE_FMT",
    "DATETIME_FMT",
    "GENERAL_CELL",
    "GENERAL_CELL_TYPE",
    "SYSTEM_CELL",
    "CellInstance",
    "CellTypeConfig",
    "CellTypeSelection",
    "Coverage",
    "HardeningDay",
    "HardeningLog",
    "MatrixGroup",
    "MatrixRow",
    "SiteRecord",
    "TemplateIdentity",
    "TestCaseTemplate",
    "TestStatus",
    "TestStatusEntry",
    "UniqueKey",
]
