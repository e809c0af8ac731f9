"""cdm_wrangle: reshape OMOP CDM observations and measurements into wide tables."""

from cdm_wrangle.core.exceptions import (
    AggregationError,
    ConfigurationError,
    DataIntegrityError,
    UnknownConceptError,
    WrangleError,
)
from cdm_wrangle.etl import extract, regularize
from cdm_wrangle.services.concepts import ConceptInfo, ConceptResolver

__version__ = "0.1.0"

__all__ = [
    "extract",
    "regularize",
    "ConceptInfo",
    "ConceptResolver",
    "AggregationError",
    "ConfigurationError",
    "DataIntegrityError",
    "UnknownConceptError",
    "WrangleError",
]
