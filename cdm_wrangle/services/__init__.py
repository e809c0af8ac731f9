"""Reference data services."""

from cdm_wrangle.services.concepts import (
    ConceptInfo,
    ConceptResolver,
    get_concept_resolver,
    reset_concept_resolver,
)

__all__ = [
    "ConceptInfo",
    "ConceptResolver",
    "get_concept_resolver",
    "reset_concept_resolver",
]
