"""Expansion, reconciliation and hardening logic of the test matrix."""

from .hardening import (
    COMPLETED,
    NOT_STARTED,
    CellHardening,
    HardeningSummary,
    cell_hardening,
    clear_day,
    compute_status,
    set_day,
    summarize,
    update_day,
)
from .coverage import build_cell_instances, build_key, phase_matches, resolve_coverage
from .expansion import ExpansionEngine, parse_selection
from .reconciliation import derive_view

__all__ = [
    "COMPLETED",
    "NOT_STARTED",
    "CellHardening",
    "HardeningSummary",
    "cell_hardening",
    "clear_day",
    "compute_status",
    "set_day",
    "summarize",
    "update_day",
    "build_cell_instances",
    "build_key",
    "phase_matches",
    "resolve_coverage",
    "ExpansionEngine",
    "parse_selection",
    "derive_view",
]
