"""Tests for observation/measurement retrieval."""

from datetime import datetime

import pytest
from sqlalchemy.dialects import postgresql

from cdm_wrangle.etl.events import (
    EVENT_COLUMNS,
    EVENT_DTYPES,
    fetch_events,
    measurement_query,
    observation_query,
)

START = datetime(2020, 1, 1)


@pytest.fixture
def populated(cdm):
    cdm.visit(1, START)
    cdm.visit(2, START)
    cdm.measurement(1, 10, datetime(2020, 1, 1, 2), value=80.0)
    cdm.measurement(1, 10, datetime(2020, 1, 1, 1), value=75.0)
    cdm.measurement(2, 20, datetime(2020, 1, 1, 1), value=120.0)
    cdm.measurement(1, 99, datetime(2020, 1, 1, 1), value=1.0)
    cdm.observation(1, 30, datetime(2020, 1, 1, 3), text="alert")
    cdm.observation(2, 40, datetime(2020, 1, 1, 4), value_concept=4275495)
    return cdm


class TestQueries:
    """Tests for the generated SQL."""

    def test_observation_query_columns(self) -> None:
        stmt = observation_query([10], [1])
        assert list(stmt.selected_columns.keys()) == [
            "person_id",
            "visit_occurrence_id",
            "datetime",
            "concept_id",
            "value_as_number",
            "value_as_string",
            "value_as_concept_id",
            "value_as_datetime",
        ]

    def test_measurement_query_filters(self) -> None:
        sql = str(measurement_query([10, 20], [1]).compile(dialect=postgresql.dialect()))
        assert "FROM measurement" in sql
        assert "measurement.measurement_concept_id IN" in sql
        assert "measurement.visit_occurrence_id IN" in sql


class TestFetchEvents:
    """Tests for fetch_events."""

    def test_filters_concepts_and_visits(self, engine, populated) -> None:
        with engine.connect() as conn:
            events = fetch_events(conn, [1], [10, 30])
        assert list(events.columns) == EVENT_COLUMNS
        assert sorted(events["concept_id"].tolist()) == [10, 10, 30]
        assert set(events["visit_occurrence_id"]) == {1}

    def test_observations_then_measurements(self, engine, populated) -> None:
        with engine.connect() as conn:
            events = fetch_events(conn, [1, 2], [10, 20, 30, 40])
        assert events["source"].tolist() == [
            "observation", "observation", "measurement", "measurement", "measurement",
        ]

    def test_ordered_by_datetime_within_visit(self, engine, populated) -> None:
        with engine.connect() as conn:
            events = fetch_events(conn, [1], [10])
        assert events["value_as_number"].tolist() == [75.0, 80.0]

    def test_value_columns(self, engine, populated) -> None:
        with engine.connect() as conn:
            events = fetch_events(conn, [1, 2], [30, 40, 20])
        by_concept = events.set_index("concept_id")
        assert by_concept.loc[30, "value_as_string"] == "alert"
        assert by_concept.loc[40, "value_as_concept_id"] == 4275495
        assert by_concept.loc[20, "value_as_number"] == 120.0
        assert events["datetime"].dtype == "datetime64[ns]"

    def test_single_source(self, engine, populated) -> None:
        """Only measurements match; observations contribute nothing."""
        with engine.connect() as conn:
            events = fetch_events(conn, [1, 2], [20])
        assert events["source"].tolist() == ["measurement"]

    def test_no_rows(self, engine, populated) -> None:
        with engine.connect() as conn:
            events = fetch_events(conn, [1, 2], [12345])
        assert events.empty
        assert events.dtypes.astype(str).to_dict() == EVENT_DTYPES

    def test_no_visits_skips_queries(self, engine) -> None:
        with engine.connect() as conn:
            events = fetch_events(conn, [], [10])
        assert events.empty
