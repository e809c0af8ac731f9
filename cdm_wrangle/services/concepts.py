"""Concept metadata service.

Maps an OMOP concept id to the event column that carries its payload
(``value_as_number``, ``value_as_string``, ``value_as_concept_id`` or
``value_as_datetime``) and to a display label.

The lookup is loaded once and indexed by concept id, so resolving is a
dictionary lookup regardless of how many events are processed. Sources:
    - the packaged fixture (fixtures/concept_metadata.json)
    - any JSON file with the same layout
    - a pandas DataFrame
    - the ``concept_metadata`` table of the target database

Usage:
    resolver = ConceptResolver.default()
    info = resolver.resolve(3027018)
    info.value_column  # "value_as_number"
    info.label         # "heart_rate"
"""

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, ClassVar

import pandas as pd
from sqlalchemy import Connection, select

from cdm_wrangle.core.config import settings
from cdm_wrangle.core.exceptions import ConfigurationError, UnknownConceptError
from cdm_wrangle.models.omop import VALUE_COLUMNS, ConceptMetadata

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConceptInfo:
    """Resolved metadata for one concept."""

    concept_id: int
    value_column: str
    label: str


class ConceptResolver:
    """Read-only concept id → (value column, label) lookup.

    Usage:
        resolver = ConceptResolver.from_records([
            {"concept_id": 3027018, "value_column": "value_as_number", "label": "heart_rate"},
        ])
        resolver.resolve(3027018).value_column
    """

    DEFAULT_FIXTURE_PATH: ClassVar[Path] = Path(__file__).resolve().parent.parent / "fixtures" / "concept_metadata.json"

    def __init__(self, concepts: Iterable[ConceptInfo]) -> None:
        self._index: dict[int, ConceptInfo] = {}
        for info in concepts:
            if info.value_column not in VALUE_COLUMNS:
                raise ConfigurationError(
                    f"Concept {info.concept_id} maps to unsupported value column "
                    f"{info.value_column!r}; expected one of {', '.join(VALUE_COLUMNS)}"
                )
            self._index[info.concept_id] = info

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "ConceptResolver":
        """Build a resolver from mappings with concept_id/value_column/label keys."""
        concepts = []
        for record in records:
            concept_id = int(record["concept_id"])
            label = record.get("label")
            if label is None or pd.isna(label) or label == "":
                label = str(concept_id)
            concepts.append(ConceptInfo(concept_id, str(record["value_column"]), str(label)))
        return cls(concepts)

    @classmethod
    def from_json(cls, path: str | Path) -> "ConceptResolver":
        """Load a resolver from a JSON file.

        Accepts either a bare list of records or an object with a
        ``concepts`` list (the fixture layout).
        """
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        records = data["concepts"] if isinstance(data, dict) else data
        resolver = cls.from_records(records)
        logger.info(f"Loaded {len(resolver)} concept metadata entries from {path}")
        return resolver

    @classmethod
    def from_frame(cls, frame: pd.DataFrame) -> "ConceptResolver":
        """Build a resolver from a DataFrame with concept_id/value_column/label columns."""
        missing = {"concept_id", "value_column"} - set(frame.columns)
        if missing:
            raise ConfigurationError(f"Concept metadata frame is missing columns: {sorted(missing)}")
        return cls.from_records(frame.to_dict("records"))

    @classmethod
    def from_database(cls, connection: Connection) -> "ConceptResolver":
        """Load the ``concept_metadata`` table through an open connection."""
        stmt = select(
            ConceptMetadata.concept_id,
            ConceptMetadata.value_column,
            ConceptMetadata.label,
        ).order_by(ConceptMetadata.concept_id)
        rows = connection.execute(stmt).mappings().all()
        return cls.from_records(rows)

    @classmethod
    def default(cls) -> "ConceptResolver":
        """Load the packaged fixture."""
        return cls.from_json(cls.DEFAULT_FIXTURE_PATH)

    def resolve(self, concept_id: int) -> ConceptInfo:
        """Return metadata for ``concept_id``.

        Raises:
            UnknownConceptError: If the concept is not in the metadata.
        """
        try:
            return self._index[int(concept_id)]
        except KeyError:
            raise UnknownConceptError(concept_id) from None

    def resolve_many(self, concept_ids: Iterable[int]) -> list[ConceptInfo]:
        """Resolve several concepts, failing on the first unknown one."""
        return [self.resolve(concept_id) for concept_id in concept_ids]

    def __contains__(self, concept_id: object) -> bool:
        return concept_id in self._index

    def __len__(self) -> int:
        return len(self._index)


# Singleton instance and lock
_concept_resolver: ConceptResolver | None = None
_concept_resolver_lock = Lock()


def get_concept_resolver() -> ConceptResolver:
    """Get the shared resolver.

    Loads ``settings.concept_metadata_path`` when set, the packaged fixture
    otherwise.
    """
    global _concept_resolver

    if _concept_resolver is None:
        with _concept_resolver_lock:
            if _concept_resolver is None:
                if settings.concept_metadata_path:
                    _concept_resolver = ConceptResolver.from_json(settings.concept_metadata_path)
                else:
                    _concept_resolver = ConceptResolver.default()

    return _concept_resolver


def reset_concept_resolver() -> None:
    """Reset the singleton instance (for testing)."""
    global _concept_resolver
    with _concept_resolver_lock:
        _concept_resolver = None
