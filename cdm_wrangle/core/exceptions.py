"""Exception hierarchy for the extraction pipeline.

Configuration errors are raised before any query is issued. Data integrity
errors abort the whole extraction. Failures of the underlying store
(``sqlalchemy.exc.SQLAlchemyError``) are not wrapped and reach the caller
unchanged.
"""


class WrangleError(Exception):
    """Base class for all cdm_wrangle errors."""


class ConfigurationError(WrangleError, ValueError):
    """Invalid extraction parameters (cadence, chunk size, concepts...)."""


class UnknownConceptError(ConfigurationError, KeyError):
    """A concept id is not present in the concept metadata."""

    def __init__(self, concept_id: int):
        self.concept_id = concept_id
        super().__init__(f"Unknown concept: {concept_id}")

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return f"Unknown concept: {self.concept_id}"


class DataIntegrityError(WrangleError):
    """Source rows violate a precondition of the time axis."""


class AggregationError(WrangleError):
    """A reducer did not collapse a bucket into exactly one value."""
