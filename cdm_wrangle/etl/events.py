"""Event retrieval.

Each chunk of visits costs two queries: one against ``observation`` and one
against ``measurement``, both restricted to the requested concepts and the
chunk's visits. The two results are stacked into a single event frame with
canonical ``datetime`` and ``concept_id`` columns.

Equivalent SQL:
    SELECT person_id, visit_occurrence_id,
           observation_datetime AS datetime,
           observation_concept_id AS concept_id,
           value_as_number, value_as_string, value_as_concept_id, value_as_datetime
    FROM observation
    WHERE observation_concept_id IN (:concepts)
      AND visit_occurrence_id IN (:visits)
    ORDER BY visit_occurrence_id, observation_datetime, observation_id
"""

import logging
from collections.abc import Sequence

import pandas as pd
from sqlalchemy import Connection, Select, select

from cdm_wrangle.models.omop import Measurement, Observation

logger = logging.getLogger(__name__)

EVENT_DTYPES = {
    "person_id": "Int64",
    "visit_occurrence_id": "int64",
    "datetime": "datetime64[ns]",
    "concept_id": "int64",
    "value_as_number": "float64",
    "value_as_string": "object",
    "value_as_concept_id": "Int64",
    "value_as_datetime": "datetime64[ns]",
    "source": "object",
}

EVENT_COLUMNS = list(EVENT_DTYPES)

DATETIME_COLUMNS = [name for name, dtype in EVENT_DTYPES.items() if dtype.startswith("datetime")]


def observation_query(concepts: Sequence[int], visit_ids: Sequence[int]) -> Select:
    """Observation rows for ``concepts`` within ``visit_ids``."""
    return (
        select(
            Observation.person_id,
            Observation.visit_occurrence_id,
            Observation.observation_datetime.label("datetime"),
            Observation.observation_concept_id.label("concept_id"),
            Observation.value_as_number,
            Observation.value_as_string,
            Observation.value_as_concept_id,
            Observation.value_as_datetime,
        )
        .where(
            Observation.observation_concept_id.in_(concepts),
            Observation.visit_occurrence_id.in_(visit_ids),
        )
        .order_by(
            Observation.visit_occurrence_id,
            Observation.observation_datetime,
            Observation.observation_id,
        )
    )


def measurement_query(concepts: Sequence[int], visit_ids: Sequence[int]) -> Select:
    """Measurement rows for ``concepts`` within ``visit_ids``."""
    return (
        select(
            Measurement.person_id,
            Measurement.visit_occurrence_id,
            Measurement.measurement_datetime.label("datetime"),
            Measurement.measurement_concept_id.label("concept_id"),
            Measurement.value_as_number,
            Measurement.value_as_concept_id,
        )
        .where(
            Measurement.measurement_concept_id.in_(concepts),
            Measurement.visit_occurrence_id.in_(visit_ids),
        )
        .order_by(
            Measurement.visit_occurrence_id,
            Measurement.measurement_datetime,
            Measurement.measurement_id,
        )
    )


def empty_events() -> pd.DataFrame:
    """Typed, zero-row event frame."""
    return pd.DataFrame({name: pd.Series(dtype=dtype) for name, dtype in EVENT_DTYPES.items()})


def _to_datetime(values: pd.Series) -> pd.Series:
    converted = pd.to_datetime(values)
    if isinstance(converted.dtype, pd.DatetimeTZDtype):
        converted = converted.dt.tz_convert(None)
    return converted.astype("datetime64[ns]")


def coerce_events(frame: pd.DataFrame) -> pd.DataFrame:
    """Give a raw result frame the canonical event columns and dtypes.

    Columns a source does not have (e.g. ``value_as_string`` for
    measurements) are added as missing values.
    """
    events = frame.reindex(columns=EVENT_COLUMNS)
    for column in DATETIME_COLUMNS:
        events[column] = _to_datetime(events[column])
    other = {name: dtype for name, dtype in EVENT_DTYPES.items() if name not in DATETIME_COLUMNS}
    return events.astype(other)


def fetch_events(
    connection: Connection,
    visit_ids: Sequence[int],
    concepts: Sequence[int],
) -> pd.DataFrame:
    """Fetch and stack observation and measurement events.

    Args:
        connection: Open connection to the CDM.
        visit_ids: Visits of the current chunk.
        concepts: Requested concept ids.

    Returns:
        Event frame with ``EVENT_COLUMNS``; observations first, then
        measurements, each ordered by visit and datetime. A source without
        matching rows contributes nothing.
    """
    visit_ids = [int(visit_id) for visit_id in visit_ids]
    concepts = [int(concept) for concept in concepts]
    if not visit_ids or not concepts:
        return empty_events()

    frames = []
    for source, stmt in (
        ("observation", observation_query(concepts, visit_ids)),
        ("measurement", measurement_query(concepts, visit_ids)),
    ):
        result = connection.execute(stmt)
        columns = list(result.keys())
        rows = result.all()
        logger.debug(f"Fetched {len(rows)} {source} rows for {len(visit_ids)} visits")
        if not rows:
            continue
        frame = pd.DataFrame([tuple(row) for row in rows], columns=columns)
        frame["source"] = source
        frames.append(coerce_events(frame))

    if not frames:
        return empty_events()
    return pd.concat(frames, ignore_index=True)
