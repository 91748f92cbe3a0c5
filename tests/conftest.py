"""Shared fixtures: in-memory services seeded with small datasets."""

from __future__ import annotations

from typing import Any

import pytest

from etlflow.core.config import Settings
from etlflow.services import Services, build_services


def pipeline_definition(**overrides: Any) -> dict[str, Any]:
    """A data_source → data_source pipeline reading `numbers` and writing `out`."""
    definition: dict[str, Any] = {
        "name": "numbers-copy",
        "source": {"type": "data_source", "config": {"dataSourceId": "numbers"}},
        "transformations": [],
        "destination": {"type": "data_source", "config": {"dataSourceId": "out"}, "mode": "append"},
    }
    definition.update(overrides)
    return definition


def filter_step(column: str, operator: str, value: Any, *, order: int = 1, name: str = "filter") -> dict[str, Any]:
    return {
        "name": name,
        "kind": "filter",
        "order": order,
        "config": {"conditions": [{"column": column, "operator": operator, "value": value}]},
    }


def map_step(mappings: dict[str, str], *, order: int = 2, name: str = "map") -> dict[str, Any]:
    return {"name": name, "kind": "map", "order": order, "config": {"mappings": mappings}}


@pytest.fixture
def numbers() -> list[dict[str, Any]]:
    return [
        {"id": 1, "value": 100},
        {"id": 2, "value": 200},
        {"id": 3, "value": 300},
    ]


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        STORAGE_BACKEND="memory",
        STATUS_WRITE_RETRIES=3,
        STATUS_WRITE_RETRY_DELAY=0,
        MAX_CONCURRENT_RUNS=4,
    )


@pytest.fixture
def services(test_settings: Settings, numbers) -> Services:
    return build_services(
        test_settings,
        datasets={
            "numbers": numbers,
            "customers": [
                {"id": 1, "name": "Ada"},
                {"id": 2, "name": "Grace"},
            ],
        },
    )
