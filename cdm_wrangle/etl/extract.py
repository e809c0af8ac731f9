"""Extraction pipeline: OMOP CDM events to a wide, time-bucketed table.

The default behaviour produces one row per hour per visit. When several
events of a concept fall into the same bucket, only the earliest is kept
unless an aggregation is supplied for that concept; any callable that takes
the bucket's values and returns one value of the same type will do.

All times are referenced to ``visit_start_datetime``. Events recorded
before the start of the visit keep their negative elapsed time; events are
only restricted by visit membership, not by the visit end.

Usage:
    from cdm_wrangle import extract, regularize

    table = extract(
        engine,
        "omop",
        concepts=[3027018, 3004249],
        labels=["heart_rate", "systolic_bp"],
        aggregations=[max, "min"],
        cadence=1,
    )
    hourly = regularize(table, cadence=1)
"""

import logging
import time
from collections.abc import Callable, Iterable, Sequence

import pandas as pd
from sqlalchemy import Connection, Engine

from cdm_wrangle.core.config import settings
from cdm_wrangle.core.database import connection_scope
from cdm_wrangle.etl.assembler import empty_wide_table, process_visit
from cdm_wrangle.etl.events import fetch_events
from cdm_wrangle.etl.parameters import ConceptParameter, ExtractionOptions, build_parameters
from cdm_wrangle.etl.visits import batch_visits, count_chunks, fetch_visits, iter_visits
from cdm_wrangle.services.concepts import ConceptResolver, get_concept_resolver

logger = logging.getLogger(__name__)


def extract(
    connection: Engine | Connection,
    schema: str | None = None,
    visit_ids: Iterable[int] | None = None,
    concepts: Sequence[int] | None = None,
    labels: Sequence[str] | None = None,
    aggregations: str | Callable | Sequence[str | Callable | None] | None = None,
    chunk_size: int | None = None,
    cadence: float | None = None,
    use_timestamp: bool = False,
    resolver: ConceptResolver | None = None,
) -> pd.DataFrame:
    """Extract concepts from observation and measurement into a wide table.

    Args:
        connection: SQLAlchemy engine (connected and released here) or an
            open connection (borrowed).
        schema: Schema holding the CDM tables, or None for the default.
        visit_ids: Visits to extract; None extracts every visit.
        concepts: OMOP concept ids, one output column each, in this order.
        labels: Output column names in the same order as ``concepts``;
            defaults to the concept ids as strings.
        aggregations: How to collapse several values in one bucket. A single
            callable or name ("first", "last", "min", "max", "mean",
            "median", "sum") for every concept, or one per concept. Defaults
            to "first".
        chunk_size: Visits per pair of queries (default ``settings.chunk_size``).
        cadence: Bucket width in hours, >= 0 (default ``settings.cadence``).
            0 keeps exact times and one row per distinct timestamp. With
            ``use_timestamp`` only 1 (round to the hour) and 0 are allowed.
        use_timestamp: Index rows by timestamp instead of hours since the
            visit start.
        resolver: Concept metadata; defaults to the shared resolver.

    Returns:
        DataFrame with ``visit_occurrence_id``, ``time`` and one column per
        concept. Sparse: only buckets with at least one event appear. The
        wall-clock duration is stored in ``attrs["elapsed_seconds"]``.

    Raises:
        ConfigurationError: Invalid options or concepts (before any query).
        DataIntegrityError: An event without a datetime was retrieved.
    """
    started = time.perf_counter()

    options = ExtractionOptions.create(
        chunk_size=settings.chunk_size if chunk_size is None else chunk_size,
        cadence=settings.cadence if cadence is None else cadence,
        use_timestamp=use_timestamp,
    )
    parameters = build_parameters(
        concepts,
        labels,
        aggregations,
        resolver or get_concept_resolver(),
    )
    concept_ids = [parameter.concept_id for parameter in parameters]

    logger.info(
        f"Extracting {len(parameters)} concepts with cadence {options.cadence:g} "
        f"({'timestamp' if options.use_timestamp else 'elapsed hours'})"
    )

    frames = []
    with connection_scope(connection, schema) as conn:
        visits = fetch_visits(conn, visit_ids)
        n_chunks = count_chunks(len(visits), options.chunk_size)

        for number, chunk in enumerate(batch_visits(visits, options.chunk_size), start=1):
            logger.info(f"Processing chunk {number}/{n_chunks} ({len(chunk)} visits)")
            frames.append(_process_chunk(conn, chunk, parameters, options))

    table = _combine(frames, concept_ids, options.use_timestamp)
    table = table.rename(columns={p.concept_id: p.label for p in parameters})

    elapsed = time.perf_counter() - started
    table.attrs["elapsed_seconds"] = elapsed
    logger.info(f"{elapsed / 3600:.2g} hours to process ({len(table)} rows)")

    return table


def _process_chunk(
    connection: Connection,
    chunk: pd.DataFrame,
    parameters: Sequence[ConceptParameter],
    options: ExtractionOptions,
) -> pd.DataFrame:
    """Fetch one chunk's events and assemble each of its visits."""
    events = fetch_events(
        connection,
        chunk["visit_occurrence_id"].tolist(),
        [parameter.concept_id for parameter in parameters],
    )
    by_visit = dict(tuple(events.groupby("visit_occurrence_id", sort=False)))

    frames = []
    for visit in iter_visits(chunk):
        visit_events = by_visit.get(visit.visit_occurrence_id)
        if visit_events is None:
            continue
        frames.append(
            process_visit(
                visit.visit_occurrence_id,
                visit_events,
                visit.visit_start_datetime,
                parameters,
                options.cadence,
                options.use_timestamp,
            )
        )

    return _combine(frames, [parameter.concept_id for parameter in parameters], options.use_timestamp)


def _combine(
    frames: Sequence[pd.DataFrame],
    concept_ids: Sequence[int],
    use_timestamp: bool,
) -> pd.DataFrame:
    """Stack per-visit (or per-chunk) tables into one with a fixed column layout."""
    columns = ["visit_occurrence_id", "time", *concept_ids]
    non_empty = [frame for frame in frames if not frame.empty]
    if not non_empty:
        return empty_wide_table(concept_ids, use_timestamp)
    table = pd.concat(non_empty, ignore_index=True)
    return table.reindex(columns=columns)
