"""Per-concept reduction of events that share a time bucket.

A reducer is any callable that takes the ordered list of values that fell
into one bucket and returns exactly one value of the same kind. Callers may
pass their own callables (``min``, ``statistics.median``, a lambda...) or
one of the named reducers below.

When no rounding is in effect (cadence 0) reducers are not used; the first
record of each bucket is kept instead.
"""

import logging
from collections.abc import Callable, Sequence
from typing import Any

import numpy as np
import pandas as pd

from cdm_wrangle.core.exceptions import AggregationError, ConfigurationError

logger = logging.getLogger(__name__)

Reducer = Callable[[Sequence[Any]], Any]


def first(values: Sequence[Any]) -> Any:
    """Earliest value in the bucket."""
    return values[0]


def last(values: Sequence[Any]) -> Any:
    """Latest value in the bucket."""
    return values[-1]


def minimum(values: Sequence[Any]) -> Any:
    return pd.Series(values).min()


def maximum(values: Sequence[Any]) -> Any:
    return pd.Series(values).max()


def mean(values: Sequence[Any]) -> Any:
    return pd.Series(values).mean()


def median(values: Sequence[Any]) -> Any:
    return pd.Series(values).median()


def total(values: Sequence[Any]) -> Any:
    return pd.Series(values).sum()


NAMED_REDUCERS: dict[str, Reducer] = {
    "first": first,
    "last": last,
    "min": minimum,
    "max": maximum,
    "mean": mean,
    "median": median,
    "sum": total,
}


def get_reducer(reducer: str | Reducer | None) -> Reducer:
    """Resolve a reducer given by name or as a callable.

    ``None`` selects ``first``.

    Raises:
        ConfigurationError: If the name is unknown or the object is not callable.
    """
    if reducer is None:
        return first
    if isinstance(reducer, str):
        try:
            return NAMED_REDUCERS[reducer.lower()]
        except KeyError:
            raise ConfigurationError(
                f"Unknown aggregation {reducer!r}; expected a callable or one of "
                f"{', '.join(sorted(NAMED_REDUCERS))}"
            ) from None
    if not callable(reducer):
        raise ConfigurationError(f"Aggregation must be callable, got {type(reducer).__name__}")
    return reducer


def reducer_name(reducer: Reducer) -> str:
    """Readable name of a reducer for log messages."""
    return getattr(reducer, "__name__", None) or repr(reducer)


def apply_reducer(reducer: Reducer, values: list[Any]) -> Any:
    """Apply ``reducer`` and check it produced a single value.

    Zero-dimensional and single-element numpy arrays are unwrapped.

    Raises:
        AggregationError: If the result is a collection.
    """
    result = reducer(values)

    if isinstance(result, np.ndarray):
        if result.size != 1:
            raise AggregationError(
                f"Aggregation {reducer_name(reducer)} returned {result.size} values for one bucket"
            )
        return result.item()

    if isinstance(result, (pd.Series, pd.DataFrame, list, tuple, set, dict)):
        raise AggregationError(
            f"Aggregation {reducer_name(reducer)} returned a {type(result).__name__}; "
            "it must return exactly one value"
        )

    return result


def empty_reduction(events: pd.DataFrame, value_column: str) -> pd.DataFrame:
    """Typed, zero-row ``{bucket, value}`` frame."""
    return pd.DataFrame({
        "bucket": events["bucket"].iloc[:0],
        "value": events[value_column].iloc[:0],
    })


def reduce_concept(
    events: pd.DataFrame,
    value_column: str,
    rounded: bool,
    reducer: str | Reducer | None = first,
) -> pd.DataFrame:
    """Collapse one concept's events for one visit to one row per bucket.

    Args:
        events: Events of a single concept and visit, with a ``bucket`` column.
        value_column: Column that carries the concept's payload.
        rounded: True when buckets come from rounding (aggregate with
            ``reducer``); False to keep the first record per bucket.
        reducer: Aggregation applied to each bucket's values (callable or name).

    Returns:
        Frame with columns ``bucket`` and ``value``, one row per distinct
        bucket in ascending order. Empty (but typed) when ``events`` is empty.
    """
    if events.empty:
        return empty_reduction(events, value_column)

    # "first" means earliest; ties keep the order the store returned
    ordered = events.sort_values("datetime", kind="stable")

    if not rounded:
        deduped = ordered.drop_duplicates("bucket", keep="first").sort_values("bucket", kind="stable")
        return (
            deduped[["bucket", value_column]]
            .rename(columns={value_column: "value"})
            .reset_index(drop=True)
        )

    reducer = get_reducer(reducer)
    reduced = ordered.groupby("bucket", sort=True)[value_column].agg(
        lambda group: apply_reducer(reducer, group.tolist())
    )

    return pd.DataFrame({
        "bucket": pd.Series(reduced.index, dtype=ordered["bucket"].dtype),
        "value": pd.Series(reduced.tolist(), dtype=object).infer_objects(),
    })
