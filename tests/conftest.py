"""Pytest configuration and fixtures for cdm_wrangle tests.

Database tests run against an in-memory SQLite CDM built from the ORM
models. Concept ids used throughout the tests:
    10 - heart rate (measurement, value_as_number)
    20 - systolic BP (measurement, value_as_number)
    30 - free-text note (observation, value_as_string)
    40 - coded rhythm (observation, value_as_concept_id)
"""

from collections.abc import Generator
from datetime import datetime

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from cdm_wrangle.core.database import Base
from cdm_wrangle.models.omop import Measurement, Observation, Person, VisitOccurrence
from cdm_wrangle.services.concepts import ConceptResolver, reset_concept_resolver


class CDMBuilder:
    """Adds CDM rows with the NOT NULL columns filled in."""

    def __init__(self, session: Session):
        self.session = session
        self.session.add(
            Person(
                person_id=1,
                gender_concept_id=8507,
                year_of_birth=1970,
                race_concept_id=0,
                ethnicity_concept_id=0,
            )
        )
        self.session.commit()

    def visit(self, visit_id: int, start: datetime | None, person_id: int = 1) -> None:
        self.session.add(
            VisitOccurrence(
                visit_occurrence_id=visit_id,
                person_id=person_id,
                visit_concept_id=9201,
                visit_start_date=(start or datetime(2020, 1, 1)).date(),
                visit_start_datetime=start,
                visit_end_date=(start or datetime(2020, 1, 1)).date(),
                visit_type_concept_id=32817,
            )
        )
        self.session.commit()

    def measurement(
        self,
        visit_id: int,
        concept_id: int,
        when: datetime | None,
        value: float | None = None,
        value_concept: int | None = None,
    ) -> None:
        self.session.add(
            Measurement(
                person_id=1,
                visit_occurrence_id=visit_id,
                measurement_concept_id=concept_id,
                measurement_date=(when or datetime(2020, 1, 1)).date(),
                measurement_datetime=when,
                measurement_type_concept_id=32817,
                value_as_number=value,
                value_as_concept_id=value_concept,
            )
        )
        self.session.commit()

    def observation(
        self,
        visit_id: int,
        concept_id: int,
        when: datetime | None,
        text: str | None = None,
        value_concept: int | None = None,
        number: float | None = None,
    ) -> None:
        self.session.add(
            Observation(
                person_id=1,
                visit_occurrence_id=visit_id,
                observation_concept_id=concept_id,
                observation_date=(when or datetime(2020, 1, 1)).date(),
                observation_datetime=when,
                observation_type_concept_id=32817,
                value_as_string=text,
                value_as_concept_id=value_concept,
                value_as_number=number,
            )
        )
        self.session.commit()


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """In-memory SQLite database with the CDM tables created."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def cdm(engine: Engine) -> Generator[CDMBuilder, None, None]:
    """Row builder bound to the test database."""
    with Session(engine) as session:
        yield CDMBuilder(session)


@pytest.fixture
def resolver() -> ConceptResolver:
    """Concept metadata for the test concepts."""
    return ConceptResolver.from_records([
        {"concept_id": 10, "value_column": "value_as_number", "label": "heart_rate"},
        {"concept_id": 20, "value_column": "value_as_number", "label": "systolic_bp"},
        {"concept_id": 30, "value_column": "value_as_string", "label": "note"},
        {"concept_id": 40, "value_column": "value_as_concept_id", "label": "rhythm"},
    ])


@pytest.fixture(autouse=True)
def _reset_singletons() -> Generator[None, None, None]:
    yield
    reset_concept_resolver()
