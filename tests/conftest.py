"""Shared fixtures for unit and integration tests."""

from datetime import datetime

import pytest

from testmatrix.entities.records import CellTypeConfig, SiteRecord, TestCaseTemplate
from testmatrix.engine.expansion import ExpansionEngine
from testmatrix.services import TestMatrixService
from testmatrix.stores import (
    InMemoryCellConfigRegistry,
    InMemorySiteRegistry,
    InMemoryStatusStore,
    InMemoryTemplateCatalog,
)

SITE_A = "CityA - DC1"
SITE_B = "CityB - DC2"
FIXED_NOW = datetime(2024, 1, 1, 9, 30, 0)


def make_template(**fields) -> TestCaseTemplate:
    data = {"cell_type": "FLIB", "test_id": "T1", "test_case": "Pick cycle", "phase": "All", "coverage": "All"}
    data.update(fields)
    return TestCaseTemplate(**data)


@pytest.fixture
def sites():
    return [
        SiteRecord(network="North", dc_type="Regional", sub_type="Standard", dc_number="1", city="CityA"),
        SiteRecord(network="South", dc_type="Regional", sub_type="Compact", dc_number="DC2", city="CityB"),
    ]


@pytest.fixture
def cell_configs():
    return [
        CellTypeConfig(cell_type="FLIB", dc_type="Regional", has_multiple_driveways=False),
        CellTypeConfig(
            cell_type="ASRS",
            dc_type="Regional",
            has_multiple_driveways=True,
            number_of_driveways=2,
            driveway_types=["Inbound", "Outbound"],
        ),
    ]


@pytest.fixture
def templates():
    return [
        make_template(test_id="T1", test_case="Pick cycle", coverage="All", scope="Throughput"),
        make_template(test_id="T2", test_case="E-stop", coverage="System"),
        make_template(test_id="T3", test_case="Calibration", coverage="First"),
        make_template(cell_type="ASRS", test_id="A1", test_case="Shuttle run", coverage="All"),
        make_template(cell_type="General", test_id="G1", test_case="Network check", coverage="System"),
    ]


@pytest.fixture
def engine(sites, cell_configs):
    return ExpansionEngine(
        InMemorySiteRegistry(sites),
        InMemoryCellConfigRegistry(cell_configs),
        default_phases=["Phase 1", "Phase 2"],
        default_cell_count=1,
    )


@pytest.fixture
def service(sites, cell_configs, templates):
    site_registry = InMemorySiteRegistry(sites)
    config_registry = InMemoryCellConfigRegistry(cell_configs)
    engine = ExpansionEngine(
        site_registry, config_registry, default_phases=["Phase 1", "Phase 2"], default_cell_count=1
    )
    return TestMatrixService(
        InMemoryTemplateCatalog(templates),
        config_registry,
        site_registry,
        InMemoryStatusStore(),
        engine=engine,
    )
