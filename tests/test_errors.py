"""Exception hierarchy tests: errors survive pickling (Celery result backend)."""

from __future__ import annotations

import pickle

import pytest

from etlflow.pipeline.errors import (
    ConflictError,
    DestinationError,
    EtlError,
    MissingParameterError,
    NotFoundError,
    TransformationError,
    ValidationError,
)


def round_trip(exc: Exception) -> Exception:
    return pickle.loads(pickle.dumps(exc))


class TestPickling:
    @pytest.mark.parametrize(
        "exc",
        [
            NotFoundError("Pipeline", "p1"),
            ConflictError("p1", "e1"),
            MissingParameterError("simple_copy", "sourceDataSourceId"),
            ValidationError("bad operator", details={"operator": "between"}),
            DestinationError("offline"),
            TransformationError("stage broke", stage_name="filter", record={"id": 1}, details={"order": 1}),
        ],
        ids=lambda exc: type(exc).__name__,
    )
    def test_type_message_and_details_survive(self, exc):
        restored = round_trip(exc)
        assert type(restored) is type(exc)
        assert restored.message == exc.message
        assert restored.details == exc.details
        assert str(restored) == str(exc)

    def test_constructor_fields_survive(self):
        assert round_trip(NotFoundError("Pipeline", "p1")).entity_id == "p1"
        assert round_trip(ConflictError("p1", "e1")).running_execution_id == "e1"
        assert round_trip(MissingParameterError("t", "limit")).parameter == "limit"

        restored = round_trip(TransformationError("x", stage_name="map", record={"id": 2}))
        assert restored.stage_name == "map"
        assert restored.record == {"id": 2}

    def test_subclasses_are_still_etl_errors(self):
        assert isinstance(round_trip(NotFoundError("Template", "nope")), EtlError)
