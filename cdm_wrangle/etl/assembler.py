"""Per-visit assembly of the wide table.

Each requested concept is reduced to a ``{bucket, value}`` series; the
series are then full-outer-joined on the bucket so a visit ends up with one
row per bucket in which any concept was observed. Buckets with no events
are not created here (see ``regularize``).
"""

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime

import pandas as pd

from cdm_wrangle.etl.parameters import ConceptParameter
from cdm_wrangle.etl.reducers import reduce_concept
from cdm_wrangle.etl.time_axis import assign_buckets, is_rounded

logger = logging.getLogger(__name__)


def time_dtype(use_timestamp: bool) -> str:
    """dtype of the ``time`` column for the selected axis."""
    return "datetime64[ns]" if use_timestamp else "float64"


def empty_series_frame(use_timestamp: bool) -> pd.DataFrame:
    """Typed seed for the per-visit join."""
    return pd.DataFrame({"bucket": pd.Series(dtype=time_dtype(use_timestamp))})


def empty_wide_table(concept_ids: Sequence[int], use_timestamp: bool) -> pd.DataFrame:
    """Typed, zero-row wide table keyed by concept id."""
    columns = {
        "visit_occurrence_id": pd.Series(dtype="int64"),
        "time": pd.Series(dtype=time_dtype(use_timestamp)),
    }
    for concept_id in concept_ids:
        columns[concept_id] = pd.Series(dtype="object")
    return pd.DataFrame(columns)


def assemble_visit(
    visit_id: int,
    series: Mapping[int, pd.DataFrame],
    use_timestamp: bool = False,
) -> pd.DataFrame:
    """Join per-concept series into one wide frame for a visit.

    Args:
        visit_id: Visit the series belong to.
        series: ``{concept_id: frame}`` with ``bucket`` and ``value`` columns.
        use_timestamp: Selects the dtype of the seed frame.

    Returns:
        Frame with ``visit_occurrence_id``, ``time`` and one column per
        concept id, sorted by ``time``.
    """
    wide = empty_series_frame(use_timestamp)
    for concept_id, frame in series.items():
        wide = wide.merge(
            frame.rename(columns={"value": concept_id}),
            on="bucket",
            how="outer",
        )

    wide = wide.rename(columns={"bucket": "time"})
    wide.insert(0, "visit_occurrence_id", pd.Series(visit_id, index=wide.index, dtype="int64"))
    return wide.sort_values("time", kind="stable").reset_index(drop=True)


def process_visit(
    visit_id: int,
    events: pd.DataFrame,
    start: datetime | pd.Timestamp | None,
    parameters: Sequence[ConceptParameter],
    cadence: float,
    use_timestamp: bool = False,
) -> pd.DataFrame:
    """Bucket, reduce and assemble the events of a single visit."""
    bucketed = assign_buckets(events, start, cadence, use_timestamp, visit_id=visit_id)
    rounded = is_rounded(cadence)

    series = {}
    for parameter in parameters:
        concept_events = bucketed[bucketed["concept_id"] == parameter.concept_id]
        series[parameter.concept_id] = reduce_concept(
            concept_events,
            parameter.value_column,
            rounded,
            parameter.reducer,
        )

    wide = assemble_visit(visit_id, series, use_timestamp)
    logger.debug(f"Visit {visit_id}: {len(events)} events -> {len(wide)} rows")
    return wide
