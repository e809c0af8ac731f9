"""Database configuration and connection management."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import Connection, Engine, create_engine
from sqlalchemy.orm import DeclarativeBase

from cdm_wrangle.core.config import settings

logger = logging.getLogger(__name__)

# Lazily initialized engine built from settings
_engine: Engine | None = None


class Base(DeclarativeBase):
    """Base class for the OMOP CDM models.

    OMOP tables carry their own integer primary keys, so no common columns
    are added here. Tables are declared without a schema; the target schema
    is applied per connection through ``schema_translate_map``.
    """


def get_engine() -> Engine:
    """Get or create the engine configured by ``settings.database_url``.

    Lazily creates the engine on first use so that importing the package
    does not require a database driver.
    """
    global _engine
    if _engine is None:
        _engine = create_engine(
            settings.database_url,
            echo=settings.debug,
        )
    return _engine


def reset_engine() -> None:
    """Dispose of the cached engine (for testing)."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


@contextmanager
def connection_scope(
    bind: Engine | Connection,
    schema: str | None = None,
) -> Iterator[Connection]:
    """Yield a read connection scoped to ``schema``.

    An ``Engine`` is connected here and the connection is closed on every
    exit path. A ``Connection`` passed in by the caller is borrowed and left
    open.

    Usage:
        with connection_scope(engine, "omop") as conn:
            conn.execute(select(VisitOccurrence.visit_occurrence_id))
    """
    options = {"schema_translate_map": {None: schema}} if schema else {}

    if isinstance(bind, Engine):
        with bind.connect() as conn:
            logger.debug("Opened database connection")
            yield conn.execution_options(**options)
        logger.debug("Closed connection")
    elif isinstance(bind, Connection):
        # execution_options() mutates a Connection in place; restore on exit
        previous = bind.get_execution_options().get("schema_translate_map")
        try:
            yield bind.execution_options(**options)
        finally:
            if options:
                bind.execution_options(schema_translate_map=previous)
    else:
        raise TypeError(
            f"Expected a SQLAlchemy Engine or Connection, got {type(bind).__name__}"
        )
