"""Time axis for extracted events.

Two modes:
    - elapsed: hours since the visit start, rounded to the nearest multiple
      of the cadence (half-up). Cadence 0 keeps the exact value.
    - timestamp: the event datetime, rounded half-up to the hour when the
      cadence is 1 and left untouched when it is 0.

Buckets depend only on the event datetime and the mode parameters.
"""

import logging
from datetime import datetime

import numpy as np
import pandas as pd

from cdm_wrangle.core.exceptions import DataIntegrityError

logger = logging.getLogger(__name__)

# Decimal places kept on rounded elapsed hours; removes float noise such as
# 0.30000000000000004 so buckets from different sources compare equal.
TIME_PRECISION = 9

HALF_HOUR = pd.Timedelta(minutes=30)


def round_to_multiple(values, cadence: float):
    """Round ``values`` half-up to the nearest multiple of ``cadence``.

    Works on scalars, numpy arrays and pandas Series. A cadence of 0
    returns the values unchanged.
    """
    if cadence == 0:
        return values
    # ties are decided on the cleaned quotient, so 0.15 / 0.1 counts as 1.5
    steps = np.round(values / cadence, TIME_PRECISION)
    rounded = np.floor(steps + 0.5) * cadence
    # + 0.0 turns -0.0 into 0.0
    return np.round(rounded, TIME_PRECISION) + 0.0


def elapsed_hours(datetimes: pd.Series, start: datetime | pd.Timestamp) -> pd.Series:
    """Hours between ``start`` and each datetime (negative before the start)."""
    return (datetimes - pd.Timestamp(start)).dt.total_seconds() / 3600


def round_to_hour(datetimes: pd.Series) -> pd.Series:
    """Round datetimes half-up to the nearest hour."""
    return (datetimes + HALF_HOUR).dt.floor("h")


def is_rounded(cadence: float) -> bool:
    """Whether buckets aggregate several timestamps (cadence > 0)."""
    return cadence > 0


def assign_buckets(
    events: pd.DataFrame,
    start: datetime | pd.Timestamp | None,
    cadence: float,
    use_timestamp: bool = False,
    visit_id: int | None = None,
) -> pd.DataFrame:
    """Return a copy of ``events`` with a ``bucket`` column.

    Args:
        events: Events of one visit; must have a ``datetime`` column.
        start: Visit start, the zero of the elapsed axis (unused in
            timestamp mode).
        cadence: Bucket width in hours (elapsed mode) or 0/1 (timestamp mode).
        use_timestamp: Select the timestamp axis instead of elapsed hours.
        visit_id: Only used in error messages.

    Raises:
        DataIntegrityError: If any event has no datetime, or the visit has
            no start datetime in elapsed mode.
    """
    missing = int(events["datetime"].isna().sum())
    if missing:
        raise DataIntegrityError(
            f"{missing} event(s) for visit {visit_id} have no datetime; "
            "refusing to extract from incomplete source rows"
        )

    bucketed = events.copy()

    if use_timestamp:
        if is_rounded(cadence):
            bucketed["bucket"] = round_to_hour(bucketed["datetime"])
        else:
            bucketed["bucket"] = bucketed["datetime"]
        return bucketed

    if events.empty:
        bucketed["bucket"] = pd.Series(dtype="float64")
        return bucketed

    if start is None or pd.isna(start):
        raise DataIntegrityError(
            f"Visit {visit_id} has no visit_start_datetime; elapsed time cannot be computed"
        )

    hours = elapsed_hours(bucketed["datetime"], start)
    bucketed["bucket"] = round_to_multiple(hours, cadence).astype("float64")
    return bucketed
