"""Core configuration, database access and error types."""

from cdm_wrangle.core.config import Settings, settings
from cdm_wrangle.core.database import Base, connection_scope, get_engine, reset_engine
from cdm_wrangle.core.exceptions import (
    AggregationError,
    ConfigurationError,
    DataIntegrityError,
    UnknownConceptError,
    WrangleError,
)

__all__ = [
    # Config
    "Settings",
    "settings",
    # Database
    "Base",
    "connection_scope",
    "get_engine",
    "reset_engine",
    # Errors
    "AggregationError",
    "ConfigurationError",
    "DataIntegrityError",
    "UnknownConceptError",
    "WrangleError",
]
