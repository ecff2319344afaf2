"""Records of the test matrix: templates, site inventory and status rows."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from ..utils.exceptions import ValidationError


DATETIME_FMT = "%Y-%m-%d %H:%M:%S"
DATE_FMT = "%Y-%m-%d"

ALL_PHASES = "All"
GENERAL_CELL_TYPE = "General"
SYSTEM_CELL = "SYSTEM"
GENERAL_CELL = "GENERAL"

_WHITESPACE = re.compile(r"\s+")


class Coverage(str, Enum):
    """How many cells of a matching type a template is tracked against."""

    SYSTEM = "System"
    FIRST = "First"
    ALL = "All"


class TestStatus(str, Enum):
    """Allowed execution statuses."""

    NOT_RUN = "NOT RUN"
    PASS = "PASS"
    FAIL = "FAIL"
    BLOCKED = "BLOCKED"


def _text(value: object) -> str:
    """Coerce a workbook cell or user value into stripped text."""
    if value is None:
        return ""
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _coverage_text(value: object) -> str:
    text = _text(value)
    if not text:
        return Coverage.ALL.value
    for option in Coverage:
        if option.value.lower() == text.lower():
            return option.value
    return text


def _parse_datetime(value: object) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.strptime(value, DATETIME_FMT)
        except ValueError:
            return datetime.fromisoformat(value)
    raise ValueError("Datetime must be str or datetime instance")


class TemplateIdentity(NamedTuple):
    """Catalog identity of a template."""

    dc_type: str
    sub_type: str
    cell_type: str
    test_case: str
    test_id: str


class TestCaseTemplate(BaseModel):
    """Reusable test-case definition, independent of any site."""

    model_config = ConfigDict(
        use_enum_values=True,
        validate_default=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
        frozen=True,
    )

    dc_type: str = ""
    sub_type: str = ""
    cell_type: str
    test_case: str = ""
    test_id: str
    scope: str = ""
    phase: str = ALL_PHASES
    coverage: Coverage = Coverage.ALL
    driveway_type: str = ""
    combined_test: str = ""
    steps: str = ""
    expected_output: str = ""
    requirements: str = ""
    image: str = ""
    last_modified: Optional[datetime] = None
    modified_by: str = ""

    @field_validator(
        "dc_type", "sub_type", "cell_type", "test_case", "test_id", "scope",
        "driveway_type", "combined_test", "steps", "expected_output",
        "requirements", "image", "modified_by",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: object) -> str:
        return _text(value)

    @field_validator("cell_type", "test_id")
    @classmethod
    def _required(cls, value: str) -> str:
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("phase", mode="before")
    @classmethod
    def _default_phase(cls, value: object) -> str:
        return _text(value) or ALL_PHASES

    @field_validator("coverage", mode="before")
    @classmethod
    def _parse_coverage(cls, value: object) -> str:
        return _coverage_text(value)

    @field_validator("last_modified", mode="before")
    @classmethod
    def _parse_last_modified(cls, value: object) -> Optional[datetime]:
        return _parse_datetime(value)

    @field_serializer("last_modified")
    def _serialize_datetime(self, value: Optional[datetime]) -> Optional[str]:
        return value.strftime(DATETIME_FMT) if value else None

    @property
    def identity(self) -> TemplateIdentity:
        return TemplateIdentity(self.dc_type, self.sub_type, self.cell_type, self.test_case, self.test_id)

    @property
    def is_general(self) -> bool:
        """General templates have no cell dimension."""
        return self.cell_type.lower() == GENERAL_CELL_TYPE.lower()


class CellTypeConfig(BaseModel):
    """Driveway configuration of a cell type."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    cell_type: str
    dc_type: str = ""
    has_multiple_driveways: bool = False
    number_of_driveways: int = 1
    driveway_types: List[str] = Field(default_factory=list)

    @field_validator("cell_type", "dc_type", mode="before")
    @classmethod
    def _coerce_text(cls, value: object) -> str:
        return _text(value)

    @field_validator("has_multiple_driveways", mode="before")
    @classmethod
    def _parse_flag(cls, value: object) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in ("true", "yes", "y", "1")
        return bool(value)

    @field_validator("number_of_driveways", mode="before")
    @classmethod
    def _parse_count(cls, value: object) -> int:
        if value is None or value == "":
            return 1
        return int(value)

    @field_validator("driveway_types", mode="before")
    @classmethod
    def _split_types(cls, value: object) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return [_text(part) for part in value if _text(part)]


class SiteRecord(BaseModel):
    """A known site and its DC classification."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    network: str = ""
    dc_type: str = ""
    sub_type: str = ""
    dc_number: str
    city: str
    state: str = ""

    @field_validator("network", "dc_type", "sub_type", "dc_number", "city", "state", mode="before")
    @classmethod
    def _coerce_text(cls, value: object) -> str:
        return _text(value)

    @property
    def label(self) -> str:
        """Display label, e.g. ``CityA - DC1``."""
        number = self.dc_number
        if number.upper().startswith("DC"):
            number = number[2:].strip()
        return f"{self.city} - DC{number}"


@dataclass(frozen=True)
class CellInstance:
    """A named unit under test, built from a declared count."""

    cell_type: str
    index: int
    name: str


class CellTypeSelection(BaseModel):
    """User declaration of how many cells of a type a site/phase holds."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    cell_type: str
    quantity: int = Field(ge=1)
    cell_names: Optional[List[str]] = None
    # cell index -> driveway assignments for that cell
    driveway_config: Dict[int, Dict[str, str]] = Field(default_factory=dict)


@dataclass(frozen=True)
class UniqueKey:
    """Deterministic identifier of one (site, phase, cell, test) pairing."""

    value: str
    parts: Optional[Tuple[str, str, str, str]] = field(default=None, compare=False)

    @classmethod
    def build(cls, site: str, phase: str, cell: str, test_id: str) -> "UniqueKey":
        parts = (site, phase, cell, test_id)
        for name, part in zip(("site", "phase", "cell", "test_id"), parts):
            if not str(part or "").strip():
                raise ValidationError(f"Unique key part '{name}' must not be empty", field=name)
        normalized = tuple(_WHITESPACE.sub("_", str(part).strip()) for part in parts)
        return cls(value="_".join(normalized), parts=normalized)

    @classmethod
    def parse(cls, text: str) -> "UniqueKey":
        """Accept a stored key; components are not recoverable from the text."""
        value = (text or "").strip()
        if not value:
            raise ValidationError("Unique key must not be empty", field="unique_key")
        if _WHITESPACE.search(value):
            raise ValidationError(f"Malformed unique key: {text!r}", field="unique_key")
        return cls(value=value)

    def __str__(self) -> str:
        return self.value


class HardeningDay(BaseModel):
    """One dated production measurement."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    date: str = ""
    production: Optional[float] = None
    notes: str = ""

    @field_validator("date", mode="before")
    @classmethod
    def _format_date(cls, value: object) -> str:
        if isinstance(value, datetime):
            return value.strftime(DATE_FMT)
        if isinstance(value, date):
            return value.isoformat()
        return _text(value)

    @field_validator("production", mode="before")
    @classmethod
    def _blank_production(cls, value: object) -> Optional[float]:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return value

    @field_validator("notes", mode="before")
    @classmethod
    def _coerce_notes(cls, value: object) -> str:
        return _text(value)

    @property
    def is_complete(self) -> bool:
        return bool(self.date) and self.production is not None


class HardeningLog(BaseModel):
    """Up to three hardening days of one physical cell."""

    model_config = ConfigDict(extra="ignore")

    day1: HardeningDay = Field(default_factory=HardeningDay)
    day2: HardeningDay = Field(default_factory=HardeningDay)
    day3: HardeningDay = Field(default_factory=HardeningDay)

    def day(self, number: int) -> HardeningDay:
        return getattr(self, f"day{number}")

    @property
    def days(self) -> Tuple[HardeningDay, HardeningDay, HardeningDay]:
        return (self.day1, self.day2, self.day3)


class TestStatusEntry(BaseModel):
    """Persisted status of one template against one site/phase/cell."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True, extra="ignore", populate_by_name=True)

    unique_key: str
    dc_type: str = ""
    sub_type: str = ""
    site: str
    phase: str
    cell_type: str
    cell: str
    test_case: str
    test_id: str
    scope: str = ""
    coverage: Coverage = Coverage.ALL
    status: TestStatus = TestStatus.NOT_RUN
    driveway1_status: str = ""
    driveway2_status: str = ""
    driveway_config: str = ""
    hardening: HardeningLog = Field(default_factory=HardeningLog)
    hardening_status: str = "NOT STARTED"
    vt_volume: str = ""
    vt_start_datetime: str = ""
    vt_end_datetime: str = ""
    ch_volume: str = ""
    ch_date: str = ""
    last_modified: Optional[datetime] = None
    modified_user: str = ""
    notes: str = ""

    @field_validator(
        "unique_key", "dc_type", "sub_type", "site", "phase", "cell_type", "cell",
        "test_case", "test_id", "scope", "driveway1_status", "driveway2_status",
        "driveway_config", "vt_volume", "vt_start_datetime", "vt_end_datetime",
        "ch_volume", "ch_date", "modified_user", "notes",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: object) -> str:
        return _text(value)

    @field_validator("unique_key", "site", "phase", "cell_type", "cell", "test_id")
    @classmethod
    def _required(cls, value: str) -> str:
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("coverage", mode="before")
    @classmethod
    def _parse_coverage(cls, value: object) -> str:
        return _coverage_text(value)

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: object) -> str:
        return _text(value).upper() or TestStatus.NOT_RUN.value

    @field_validator("last_modified", mode="before")
    @classmethod
    def _parse_last_modified(cls, value: object) -> Optional[datetime]:
        return _parse_datetime(value)

    @field_serializer("last_modified")
    def _serialize_datetime(self, value: Optional[datetime]) -> Optional[str]:
        return value.strftime(DATETIME_FMT) if value else None

    @property
    def cell_key(self) -> Tuple[str, str, str]:
        """Physical cell this row belongs to."""
        return (self.site, self.cell_type, self.cell)

    def matches_template(self, identity: TemplateIdentity) -> bool:
        return (
            (not identity.dc_type or self.dc_type == identity.dc_type)
            and (not identity.sub_type or self.sub_type == identity.sub_type)
            and self.cell_type == identity.cell_type
            and self.test_case == identity.test_case
            and self.test_id == identity.test_id
        )


class MatrixRow(BaseModel):
    """Display row: persisted status merged with template descriptive fields."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True, extra="ignore")

    unique_key: str
    site: str
    phase: str
    cell_type: str
    cell: str
    test_case: str
    test_id: str
    scope: str = ""
    coverage: Coverage
    status: TestStatus
    driveway1_status: str = ""
    driveway2_status: str = ""
    driveway_config: str = ""
    hardening: HardeningLog = Field(default_factory=HardeningLog)
    hardening_status: str = "NOT STARTED"
    vt_volume: str = ""
    vt_start_datetime: str = ""
    vt_end_datetime: str = ""
    ch_volume: str = ""
    ch_date: str = ""
    last_modified: Optional[datetime] = None
    modified_user: str = ""
    notes: str = ""
    driveway_type: str = ""
    combined_test: str = ""
    steps: str = ""
    expected_output: str = ""
    requirements: str = ""
    image: str = ""

    @field_serializer("last_modified")
    def _serialize_datetime(self, value: Optional[datetime]) -> Optional[str]:
        return value.strftime(DATETIME_FMT) if value else None


class MatrixGroup(BaseModel):
    """Rows sharing a coverage class, cell type and phase."""

    coverage_class: str
    scope: str = ""
    cell_type: str
    phase: str
    rows: List[MatrixRow] = Field(default_factory=list)

    @property
    def label(self) -> str:
        if self.coverage_class == Coverage.ALL.value and self.scope:
            return f"{self.coverage_class} / {self.scope} - {self.cell_type} ({self.phase})"
        return f"{self.coverage_class} - {self.cell_type} ({self.phase})"
