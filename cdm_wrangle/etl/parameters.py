"""Validation of extraction parameters.

Everything here runs before the first query so that a bad cadence, chunk
size or concept list never costs a round trip to the database.
"""

import logging
import math
import numbers
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from cdm_wrangle.core.exceptions import ConfigurationError
from cdm_wrangle.etl.reducers import Reducer, get_reducer, reducer_name
from cdm_wrangle.services.concepts import ConceptInfo, ConceptResolver

logger = logging.getLogger(__name__)

# Output columns that concept labels may not shadow
RESERVED_COLUMNS = frozenset({"visit_occurrence_id", "time"})


class ExtractionOptions(BaseModel):
    """Validated time-axis and batching options."""

    model_config = ConfigDict(frozen=True)

    chunk_size: int = Field(default=5000, ge=1, description="Visits per database round trip")
    cadence: float = Field(default=1.0, ge=0, description="Bucket width in hours; 0 disables bucketing")
    use_timestamp: bool = Field(default=False, description="Use absolute timestamps instead of elapsed hours")

    @field_validator("cadence", mode="before")
    @classmethod
    def cadence_is_number(cls, v: Any) -> float:
        """Reject non-numeric cadences (including booleans and NaN)."""
        if isinstance(v, bool) or not isinstance(v, numbers.Real) or not math.isfinite(v):
            raise ValueError("`cadence` must be given as a numeric scalar >= 0")
        return float(v)

    @field_validator("chunk_size", mode="before")
    @classmethod
    def chunk_size_is_integer(cls, v: Any) -> int:
        """Reject non-integer chunk sizes."""
        if isinstance(v, bool) or not isinstance(v, numbers.Integral):
            raise ValueError("`chunk_size` must be a positive integer")
        return int(v)

    @model_validator(mode="after")
    def timestamp_cadence(self) -> "ExtractionOptions":
        """Timestamp mode only knows hourly rounding or none."""
        if self.use_timestamp and self.cadence not in (0, 1):
            raise ValueError(
                "with use_timestamp=True `cadence` must be 1 (round to the nearest hour) "
                "or 0 (keep the exact timestamp)"
            )
        return self

    @classmethod
    def create(cls, **kwargs: Any) -> "ExtractionOptions":
        """Validate options, raising ConfigurationError on failure."""
        try:
            return cls(**kwargs)
        except ValidationError as exc:
            messages = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'options'}: {err['msg']}"
                for err in exc.errors()
            )
            raise ConfigurationError(f"Invalid extraction options: {messages}") from exc


@dataclass(frozen=True)
class ConceptParameter:
    """One requested concept: its output label and aggregation."""

    concept_id: int
    label: str
    reducer: Reducer
    info: ConceptInfo

    @property
    def value_column(self) -> str:
        return self.info.value_column


def _as_list(value: Any, name: str) -> list[Any]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise ConfigurationError(f"`{name}` must be an ordered sequence")
    return list(value)


def _concept_ids(concepts: Sequence[int] | None) -> list[int]:
    if concepts is None:
        raise ConfigurationError("At least one concept id must be requested")
    concepts = _as_list(concepts, "concepts")
    if not concepts:
        raise ConfigurationError("At least one concept id must be requested")

    concept_ids = []
    for concept in concepts:
        if isinstance(concept, bool) or not isinstance(concept, numbers.Integral):
            raise ConfigurationError(f"Concept ids must be integers, got {concept!r}")
        concept_ids.append(int(concept))

    duplicates = sorted({c for c in concept_ids if concept_ids.count(c) > 1})
    if duplicates:
        raise ConfigurationError(f"Duplicate concept ids requested: {duplicates}")
    return concept_ids


def _labels(labels: Sequence[str] | None, concept_ids: list[int]) -> list[str]:
    if labels is None:
        return [str(concept_id) for concept_id in concept_ids]

    labels = _as_list(labels, "labels")
    if len(labels) != len(concept_ids):
        raise ConfigurationError(
            f"Got {len(labels)} labels for {len(concept_ids)} concepts; "
            "labels must be given in the same order as concepts"
        )
    for label in labels:
        if not isinstance(label, str) or not label:
            raise ConfigurationError(f"Labels must be non-empty strings, got {label!r}")
        if label in RESERVED_COLUMNS:
            raise ConfigurationError(f"Label {label!r} clashes with an output column")

    duplicates = sorted({label for label in labels if labels.count(label) > 1})
    if duplicates:
        raise ConfigurationError(f"Duplicate labels requested: {duplicates}")
    return labels


def _reducers(
    aggregations: str | Callable | Sequence[str | Callable | None] | None,
    concept_ids: list[int],
) -> list[Reducer]:
    # A single aggregation applies to every concept
    if aggregations is None or isinstance(aggregations, str) or callable(aggregations):
        reducer = get_reducer(aggregations)
        return [reducer] * len(concept_ids)

    aggregations = _as_list(aggregations, "aggregations")
    if len(aggregations) != len(concept_ids):
        raise ConfigurationError(
            f"Got {len(aggregations)} aggregations for {len(concept_ids)} concepts; "
            "aggregations must be given in the same order as concepts"
        )
    return [get_reducer(aggregation) for aggregation in aggregations]


def build_parameters(
    concepts: Sequence[int] | None,
    labels: Sequence[str] | None = None,
    aggregations: str | Callable | Sequence[str | Callable | None] | None = None,
    resolver: ConceptResolver | None = None,
) -> list[ConceptParameter]:
    """Combine the parallel concept/label/aggregation inputs into one row per concept.

    Args:
        concepts: Concept ids to extract, in output column order.
        labels: Output column names, same order as ``concepts``. Defaults to
            the concept ids as strings.
        aggregations: A reducer (callable or name) for all concepts, or one
            per concept. Defaults to ``first``.
        resolver: Concept metadata used to find each concept's value column.

    Raises:
        ConfigurationError: On empty/duplicate concepts, length mismatches,
            bad labels or unknown aggregation names.
        UnknownConceptError: If a concept is missing from the metadata.
    """
    if resolver is None:
        raise ConfigurationError("A concept resolver is required")

    concept_ids = _concept_ids(concepts)
    output_labels = _labels(labels, concept_ids)
    reducers = _reducers(aggregations, concept_ids)
    infos = resolver.resolve_many(concept_ids)

    parameters = [
        ConceptParameter(concept_id, label, reducer, info)
        for concept_id, label, reducer, info in zip(concept_ids, output_labels, reducers, infos)
    ]
    for parameter in parameters:
        logger.debug(
            f"Concept {parameter.concept_id} ({parameter.info.label}) -> "
            f"{parameter.label} from {parameter.value_column}, "
            f"aggregated with {reducer_name(parameter.reducer)}"
        )
    return parameters
