"""Coverage resolution and unique key construction."""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..entities.records import (
    ALL_PHASES,
    GENERAL_CELL,
    SYSTEM_CELL,
    CellInstance,
    Coverage,
    TestCaseTemplate,
    UniqueKey,
)
from ..utils.exceptions import ValidationError

logger = logging.getLogger(__name__)

CoveragePair = Tuple[TestCaseTemplate, str]


def resolve_coverage(
    template: TestCaseTemplate,
    cell_instances: Sequence[CellInstance],
) -> List[CoveragePair]:
    """
    Work out which cell tokens a template is tracked against.

    Args:
        template: Catalog template
        cell_instances: Instantiated cells of the template's cell type, in order

    Returns:
        (template, cell token) pairs; SYSTEM for system-wide tests, GENERAL
        for templates without a cell dimension
    """
    if template.is_general:
        return [(template, GENERAL_CELL)]

    if template.coverage == Coverage.SYSTEM:
        return [(template, SYSTEM_CELL)]

    if template.coverage == Coverage.FIRST:
        if not cell_instances:
            return []
        return [(template, cell_instances[0].name)]

    if template.coverage == Coverage.ALL:
        return [(template, cell.name) for cell in cell_instances]

    raise ValidationError(
        f"Unknown coverage '{template.coverage}' on template {template.test_id}",
        field="coverage",
    )


def build_key(site: str, phase: str, cell_token: str, test_id: str) -> str:
    """Unique key string; parts are positional and must not be reordered."""
    return str(UniqueKey.build(site, phase, cell_token, test_id))


def phase_matches(template_phase: str, phase: str) -> bool:
    """``All`` matches every phase; anything else only matches itself."""
    return template_phase == ALL_PHASES or template_phase == phase


def build_cell_instances(
    cell_type: str,
    quantity: int,
    cell_names: Optional[Sequence[str]] = None,
) -> List[CellInstance]:
    """
    Instantiate ``quantity`` named cells of one type.

    Supplied names are used only when there is exactly one per cell; each is
    prefixed with the cell type (``FLIB`` + ``A`` gives ``FLIB A``). Otherwise
    cells are numbered from 1 (``FLIB1``, ``FLIB2``).
    """
    names = [str(name).strip() for name in cell_names] if cell_names else []
    if names and len(names) == quantity and all(names):
        return [
            CellInstance(cell_type=cell_type, index=index, name=f"{cell_type} {name}")
            for index, name in enumerate(names)
        ]

    if names:
        logger.warning(
            f"Ignoring {len(names)} cell names for {cell_type}: expected {quantity}, using default naming"
        )
    return [
        CellInstance(cell_type=cell_type, index=index, name=f"{cell_type}{index + 1}")
        for index in range(quantity)
    ]


def flatten_driveway_config(config: Optional[Mapping[str, object]]) -> str:
    """Encode driveway assignments as ``key: value; key: value``."""
    if not config:
        return ""
    return "; ".join(f"{key}: {value}" for key, value in config.items())


def parse_driveway_config(text: str) -> Dict[str, str]:
    """Inverse of flatten_driveway_config, for display."""
    result: Dict[str, str] = {}
    for part in (text or "").split(";"):
        if ":" not in part:
            continue
        key, value = part.split(":", 1)
        result[key.strip()] = value.strip()
    return result
