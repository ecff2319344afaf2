"""Volume Test (VT) and Cell Hardening (CH) measurements on a status entry.

Each field is optional on an update: ``None`` keeps the stored value and an
empty string clears it.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Union

from .hardening import parse_hardening_date, parse_production
from ..entities.records import DATETIME_FMT, MatrixRow, TestStatusEntry
from ..utils.exceptions import ValidationError

logger = logging.getLogger(__name__)

_DATETIME_FORMATS = (DATETIME_FMT, "%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M")


def _is_clear(value: Any) -> bool:
    return isinstance(value, str) and not value.strip()


def format_volume(value: Any, field: str) -> str:
    """Volumes are non-negative numbers, stored without a trailing ``.0``."""
    try:
        number = parse_production(value)
    except ValidationError:
        raise ValidationError(f"{field} must be a non-negative number, got {value!r}", field=field)
    return str(int(number)) if number.is_integer() else str(number)


def parse_volume_datetime(value: Any, field: str) -> str:
    """Normalize a date and time to ``YYYY-MM-DD HH:MM:SS``."""
    if isinstance(value, datetime):
        return value.strftime(DATETIME_FMT)
    if isinstance(value, str):
        text = value.strip()
        for fmt in _DATETIME_FORMATS:
            try:
                return datetime.strptime(text, fmt).strftime(DATETIME_FMT)
            except ValueError:
                continue
        try:
            return datetime.fromisoformat(text).strftime(DATETIME_FMT)
        except ValueError:
            pass
    raise ValidationError(f"Invalid date and time for {field}: {value!r}", field=field)


def normalize_volume_update(
    vt_volume: Any = None,
    vt_start_datetime: Any = None,
    vt_end_datetime: Any = None,
    ch_volume: Any = None,
    ch_date: Any = None,
) -> Dict[str, str]:
    """
    Validate an update and return the fields it changes.

    Raises:
        ValidationError: If nothing is given or a value does not parse
    """
    raw = {
        "vt_volume": vt_volume,
        "vt_start_datetime": vt_start_datetime,
        "vt_end_datetime": vt_end_datetime,
        "ch_volume": ch_volume,
        "ch_date": ch_date,
    }
    given = {name: value for name, value in raw.items() if value is not None}
    if not given:
        raise ValidationError("At least one volume field is required", field="volumes")

    changes: Dict[str, str] = {}
    for name, value in given.items():
        if _is_clear(value):
            changes[name] = ""
        elif name in ("vt_volume", "ch_volume"):
            changes[name] = format_volume(value, name)
        elif name == "ch_date":
            try:
                changes[name] = parse_hardening_date(value)
            except ValidationError:
                raise ValidationError(f"Invalid date for ch_date: {value!r}", field="ch_date")
        else:
            changes[name] = parse_volume_datetime(value, name)
    return changes


def apply_volumes(entry: TestStatusEntry, changes: Dict[str, str]) -> TestStatusEntry:
    """
    Apply validated changes to an entry.

    Raises:
        ValidationError: If the resulting VT window ends before it starts
    """
    start = changes.get("vt_start_datetime", entry.vt_start_datetime)
    end = changes.get("vt_end_datetime", entry.vt_end_datetime)
    if start and end and end < start:
        raise ValidationError(
            f"VT end {end} is before VT start {start} on {entry.unique_key}",
            field="vt_end_datetime",
        )

    for name, value in changes.items():
        setattr(entry, name, value)
    logger.debug(f"Volumes updated on {entry.unique_key}: {sorted(changes)}")
    return entry


def volume_summary(entry: Union[TestStatusEntry, MatrixRow]) -> Optional[str]:
    """Short display text of the recorded volumes, or None when there are none."""
    parts = []
    if entry.vt_volume:
        window = f" ({entry.vt_start_datetime or '?'} to {entry.vt_end_datetime or '?'})"
        parts.append(f"VT {entry.vt_volume}{window if entry.vt_start_datetime or entry.vt_end_datetime else ''}")
    if entry.ch_volume:
        parts.append(f"CH {entry.ch_volume}" + (f" on {entry.ch_date}" if entry.ch_date else ""))
    return "; ".join(parts) or None
