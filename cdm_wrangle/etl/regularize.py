"""Regularise an extracted table to a fixed cadence.

``extract`` returns a sparse table: buckets with nothing recorded for a
visit are simply absent. Most time-series tooling expects a regular grid,
so ``regularize`` expands each visit to every step between
``min(time, 0)`` and ``max(time, 0)`` and fills the new rows with NA.
"""

import logging
import math
import numbers

import numpy as np
import pandas as pd

from cdm_wrangle.core.exceptions import ConfigurationError
from cdm_wrangle.etl.time_axis import TIME_PRECISION

logger = logging.getLogger(__name__)

KEY_COLUMNS = ["visit_occurrence_id", "time"]


def time_grid(lower: float, upper: float, cadence: float) -> np.ndarray:
    """Every multiple of ``cadence`` from ``lower`` up to ``upper`` (inclusive).

    The first step is ``lower`` itself, unrounded, so a visit's earliest row
    always finds its grid point even when it holds an exact (cadence 0) time.
    """
    steps = int(math.floor(round((upper - lower) / cadence, TIME_PRECISION)))
    grid = np.round(lower + np.arange(steps + 1) * cadence, TIME_PRECISION) + 0.0
    grid[0] = lower + 0.0
    return grid


def regularize(table: pd.DataFrame, cadence: float = 1) -> pd.DataFrame:
    """Expand an elapsed-hours table to a gap-free time axis per visit.

    Args:
        table: Output of ``extract`` (elapsed-hour mode).
        cadence: Step of the output grid in hours; independent from the
            cadence used for extraction.

    Returns:
        Table with the same columns in which every visit has one row per
        grid step. Rows that were not in ``table`` hold NA in every data
        column. Rows of ``table`` whose time is not on the grid are dropped.

    Raises:
        ConfigurationError: If ``cadence`` is not a positive number, the key
            columns are missing, or ``time`` holds timestamps.
    """
    if isinstance(cadence, bool) or not isinstance(cadence, numbers.Real) or not math.isfinite(cadence) or cadence <= 0:
        raise ConfigurationError(f"`cadence` must be a positive number, got {cadence!r}")

    missing = [column for column in KEY_COLUMNS if column not in table.columns]
    if missing:
        raise ConfigurationError(f"Table is missing key columns: {missing}")

    if pd.api.types.is_datetime64_any_dtype(table["time"]):
        raise ConfigurationError(
            "regularize works on elapsed hours; extract with use_timestamp=False"
        )

    if table.empty:
        return table.copy()

    scaffolds = []
    for visit_id, times in table.groupby("visit_occurrence_id", sort=False)["time"]:
        lower = min(float(times.min()), 0.0)
        upper = max(float(times.max()), 0.0)
        scaffolds.append(pd.DataFrame({
            "visit_occurrence_id": visit_id,
            "time": time_grid(lower, upper, float(cadence)),
        }))

    scaffold = pd.concat(scaffolds, ignore_index=True)
    scaffold["visit_occurrence_id"] = scaffold["visit_occurrence_id"].astype(table["visit_occurrence_id"].dtype)
    scaffold["time"] = scaffold["time"].astype(table["time"].dtype)

    regular = scaffold.merge(table, on=KEY_COLUMNS, how="left")

    dropped = len(table) - len(table.merge(scaffold, on=KEY_COLUMNS, how="inner"))
    if dropped:
        logger.warning(
            f"{dropped} rows have times that are not multiples of the cadence "
            f"{cadence:g} from the grid start and were dropped"
        )

    logger.info(f"Regularized {len(table)} rows to {len(regular)} rows")
    return regular
