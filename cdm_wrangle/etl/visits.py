"""Visit population and batching.

Visits are read once from ``visit_occurrence`` (optionally restricted to a
set of ids) and then handed to the pipeline in contiguous chunks so that
each database round trip covers a bounded number of visits.
"""

import logging
import numbers
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import TypeVar

import pandas as pd
from sqlalchemy import Connection, select

from cdm_wrangle.core.exceptions import ConfigurationError
from cdm_wrangle.models.omop import VisitOccurrence

logger = logging.getLogger(__name__)

VISIT_DTYPES = {
    "visit_occurrence_id": "int64",
    "visit_start_datetime": "datetime64[ns]",
}

T = TypeVar("T", pd.DataFrame, Sequence)


@dataclass(frozen=True)
class VisitDescriptor:
    """A visit and the datetime its elapsed time is measured from."""

    visit_occurrence_id: int
    visit_start_datetime: datetime | None


def empty_visits() -> pd.DataFrame:
    """Typed, zero-row visit frame."""
    return pd.DataFrame({name: pd.Series(dtype=dtype) for name, dtype in VISIT_DTYPES.items()})


def fetch_visits(
    connection: Connection,
    visit_ids: Iterable[int] | None = None,
) -> pd.DataFrame:
    """Read visit ids and start datetimes, ordered by visit id.

    Args:
        connection: Open connection to the CDM.
        visit_ids: Restrict to these visits; ``None`` reads every visit.

    Returns:
        Frame with ``visit_occurrence_id`` and ``visit_start_datetime``.
    """
    stmt = select(
        VisitOccurrence.visit_occurrence_id,
        VisitOccurrence.visit_start_datetime,
    ).order_by(VisitOccurrence.visit_occurrence_id)

    requested: list[int] | None = None
    if visit_ids is not None:
        requested = sorted({int(visit_id) for visit_id in visit_ids})
        if not requested:
            logger.info("Empty visit selection; nothing to extract")
            return empty_visits()
        stmt = stmt.where(VisitOccurrence.visit_occurrence_id.in_(requested))

    rows = connection.execute(stmt).all()
    if not rows:
        visits = empty_visits()
    else:
        visits = pd.DataFrame([tuple(row) for row in rows], columns=list(VISIT_DTYPES))
        visits["visit_start_datetime"] = pd.to_datetime(visits["visit_start_datetime"])
        visits = visits.astype(VISIT_DTYPES)

    if requested is not None and len(visits) < len(requested):
        missing = len(requested) - len(visits)
        logger.warning(f"{missing} of {len(requested)} requested visits were not found")

    logger.info(f"Resolved {len(visits)} visits")
    return visits


def iter_visits(visits: pd.DataFrame) -> Iterator[VisitDescriptor]:
    """Yield a descriptor per row of a visit frame."""
    for visit_id, start in zip(visits["visit_occurrence_id"], visits["visit_start_datetime"]):
        yield VisitDescriptor(int(visit_id), None if pd.isna(start) else start)


def batch_visits(visits: T, chunk_size: int) -> Iterator[T]:
    """Split ``visits`` into contiguous chunks of at most ``chunk_size``.

    Works on DataFrames (sliced by position) and on plain sequences. The
    chunk size is checked immediately; chunks are produced lazily. Empty
    input yields no chunks.

    Raises:
        ConfigurationError: If ``chunk_size`` is not a positive integer.
    """
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, numbers.Integral) or chunk_size < 1:
        raise ConfigurationError(f"`chunk_size` must be a positive integer, got {chunk_size!r}")
    return _chunks(visits, int(chunk_size))


def _chunks(visits: T, chunk_size: int) -> Iterator[T]:
    for start in range(0, len(visits), chunk_size):
        if isinstance(visits, pd.DataFrame):
            yield visits.iloc[start:start + chunk_size]
        else:
            yield visits[start:start + chunk_size]


def count_chunks(total: int, chunk_size: int) -> int:
    """Number of chunks ``batch_visits`` produces for ``total`` visits."""
    return -(-total // chunk_size)
