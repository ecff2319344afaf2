"""Hardening progress tracking for physical cells.

A cell is hardened over three production days. Each day records a date and a
production count; a day counts as complete once both are present. The status
label only reflects how many days are complete, not which ones.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, Field

from ..entities.records import DATE_FMT, HardeningDay, HardeningLog, TestStatusEntry
from ..utils.exceptions import ValidationError

logger = logging.getLogger(__name__)

NOT_STARTED = "NOT STARTED"
COMPLETED = "COMPLETED"
HARDENING_DAYS = (1, 2, 3)

DayLike = Union[HardeningDay, Mapping[str, Any], None]


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def is_day_complete(day: DayLike) -> bool:
    """A day is complete when both its date and production are present."""
    if day is None:
        return False
    if isinstance(day, HardeningDay):
        return day.is_complete
    return _is_present(day.get("date")) and _is_present(day.get("production"))


def compute_status(day1: DayLike, day2: DayLike, day3: DayLike) -> str:
    """Derive the hardening label from the number of complete days."""
    completed = sum(1 for day in (day1, day2, day3) if is_day_complete(day))
    if completed == 0:
        return NOT_STARTED
    if completed == len(HARDENING_DAYS):
        return COMPLETED
    return f"DAY {completed} COMPLETED"


def validate_day_number(day_number: Any) -> int:
    """Return the day as an int, or raise if it is not 1, 2 or 3."""
    if isinstance(day_number, bool):
        raise ValidationError("Day must be 1, 2, or 3", field="day")
    try:
        number = int(day_number)
    except (TypeError, ValueError):
        raise ValidationError("Day must be 1, 2, or 3", field="day")
    if number != day_number and str(number) != str(day_number).strip():
        raise ValidationError("Day must be 1, 2, or 3", field="day")
    if number not in HARDENING_DAYS:
        raise ValidationError("Day must be 1, 2, or 3", field="day")
    return number


def parse_hardening_date(value: Any) -> str:
    """Normalize a calendar date to ``YYYY-MM-DD``."""
    if isinstance(value, datetime):
        return value.strftime(DATE_FMT)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return datetime.strptime(text, DATE_FMT).strftime(DATE_FMT)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text).strftime(DATE_FMT)
        except ValueError:
            pass
    raise ValidationError(f"Invalid date format: {value!r}", field="date")


def parse_production(value: Any) -> float:
    """Production must be a finite number greater than or equal to zero."""
    if isinstance(value, bool) or value is None:
        raise ValidationError("Production number must be a positive number", field="production")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError("Production number must be a positive number", field="production")
    if not math.isfinite(number) or number < 0:
        raise ValidationError("Production number must be a positive number", field="production")
    return number


def refresh_status(entry: TestStatusEntry) -> TestStatusEntry:
    entry.hardening_status = compute_status(*entry.hardening.days)
    return entry


def set_day(
    entry: TestStatusEntry,
    day_number: Any,
    date_value: Any,
    production: Any,
    notes: Optional[str] = "",
) -> TestStatusEntry:
    """Record one hardening day on ``entry`` and recompute its status."""
    number = validate_day_number(day_number)
    day = HardeningDay(
        date=parse_hardening_date(date_value),
        production=parse_production(production),
        notes=notes or "",
    )
    setattr(entry.hardening, f"day{number}", day)
    return refresh_status(entry)


def update_day(
    entry: TestStatusEntry,
    day_number: Any,
    production: Any,
    notes: Optional[str] = None,
) -> TestStatusEntry:
    """Change a day's production, keeping its date; notes change only when given."""
    number = validate_day_number(day_number)
    current = entry.hardening.day(number)
    day = HardeningDay(
        date=current.date,
        production=parse_production(production),
        notes=notes if notes else current.notes,
    )
    setattr(entry.hardening, f"day{number}", day)
    return refresh_status(entry)


def clear_day(entry: TestStatusEntry, day_number: Any) -> TestStatusEntry:
    """Reset one hardening day to empty and recompute the status."""
    number = validate_day_number(day_number)
    setattr(entry.hardening, f"day{number}", HardeningDay())
    return refresh_status(entry)


class CellHardening(BaseModel):
    """Hardening state of one physical cell."""

    site: str
    cell_type: str
    cell: str
    hardening_status: str = NOT_STARTED
    hardening: HardeningLog = Field(default_factory=HardeningLog)


class HardeningSummary(CellHardening):
    """Cell hardening state with production totals."""

    total_production: float = 0
    day_count: int = 0
    average_production: int = 0


def _first_per_cell(entries: Iterable[TestStatusEntry]) -> List[TestStatusEntry]:
    seen: Dict[Tuple[str, str, str], TestStatusEntry] = {}
    for entry in entries:
        seen.setdefault(entry.cell_key, entry)
    return list(seen.values())


def cell_hardening(entries: Iterable[TestStatusEntry]) -> List[CellHardening]:
    """One hardening record per physical cell, in first-seen order.

    Every row of a cell carries the same day fields, so the first row speaks
    for the cell.
    """
    return [
        CellHardening(
            site=entry.site,
            cell_type=entry.cell_type,
            cell=entry.cell,
            hardening_status=compute_status(*entry.hardening.days),
            hardening=entry.hardening.model_copy(deep=True),
        )
        for entry in _first_per_cell(entries)
    ]


def summarize(entries: Iterable[TestStatusEntry]) -> List[HardeningSummary]:
    """Per-cell hardening summary with total and average production."""
    summaries = []
    for record in cell_hardening(entries):
        productions = [day.production for day in record.hardening.days if day.production is not None]
        total = sum(productions)
        summaries.append(
            HardeningSummary(
                **record.model_dump(),
                total_production=total,
                day_count=len(productions),
                average_production=int(total / len(productions) + 0.5) if productions else 0,
            )
        )
    logger.debug(f"Summarized hardening for {len(summaries)} cells")
    return summaries
