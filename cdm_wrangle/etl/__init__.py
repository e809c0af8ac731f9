"""Extraction pipeline from the OMOP CDM to wide time-series tables.

Architecture:
    visit_occurrence → chunks → observation/measurement events
        → time axis → per-concept reduction → per-visit join → wide table

Modules:
    - parameters: validation of options, concepts, labels and aggregations
    - visits: visit population and batching
    - events: observation/measurement retrieval
    - time_axis: elapsed-hour or timestamp buckets
    - reducers: per-bucket aggregation strategies
    - assembler: per-visit outer join of concept series
    - extract: the pipeline driver
    - regularize: gap filling to a regular time grid

Usage:
    from cdm_wrangle.etl import extract, regularize

    table = extract(engine, "omop", concepts=[3027018], labels=["heart_rate"])
    hourly = regularize(table)
"""

from cdm_wrangle.etl.assembler import assemble_visit, process_visit
from cdm_wrangle.etl.events import EVENT_COLUMNS, fetch_events
from cdm_wrangle.etl.extract import extract
from cdm_wrangle.etl.parameters import ConceptParameter, ExtractionOptions, build_parameters
from cdm_wrangle.etl.reducers import NAMED_REDUCERS, get_reducer, reduce_concept
from cdm_wrangle.etl.regularize import regularize
from cdm_wrangle.etl.time_axis import assign_buckets, round_to_hour, round_to_multiple
from cdm_wrangle.etl.visits import VisitDescriptor, batch_visits, fetch_visits

__all__ = [
    # Driver
    "extract",
    "regularize",
    # Parameters
    "ConceptParameter",
    "ExtractionOptions",
    "build_parameters",
    # Visits and events
    "VisitDescriptor",
    "batch_visits",
    "fetch_visits",
    "EVENT_COLUMNS",
    "fetch_events",
    # Time axis and reduction
    "assign_buckets",
    "round_to_hour",
    "round_to_multiple",
    "NAMED_REDUCERS",
    "get_reducer",
    "reduce_concept",
    # Assembly
    "assemble_visit",
    "process_visit",
]
