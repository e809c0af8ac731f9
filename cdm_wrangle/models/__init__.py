"""SQLAlchemy models for the OMOP CDM tables read by the pipeline."""

from cdm_wrangle.models.omop import (
    VALUE_COLUMNS,
    ConceptMetadata,
    Measurement,
    Observation,
    Person,
    VisitOccurrence,
)

__all__ = [
    "VALUE_COLUMNS",
    "ConceptMetadata",
    "Measurement",
    "Observation",
    "Person",
    "VisitOccurrence",
]
