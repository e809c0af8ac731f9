"""OMOP CDM v5.4 SQLAlchemy Models.

This module defines the subset of the OHDSI OMOP Common Data Model version
5.4 that the extraction pipeline reads: the visit population and the two
event tables it reshapes.

Reference: https://ohdsi.github.io/CommonDataModel/cdm54.html

Tables Implemented:
    Clinical Data:
        - person: Patient demographics
        - visit_occurrence: Healthcare encounters (time zero of each visit)
        - measurement: Lab results and vitals
        - observation: Clinical observations

    Reference Data:
        - concept_metadata: Value column and label for each extractable concept

Value columns are declared with ``asdecimal=False`` so numeric payloads come
back as floats and pivot cleanly into pandas.

Usage:
    from cdm_wrangle.models.omop import VisitOccurrence, Measurement

    visit = VisitOccurrence(
        visit_occurrence_id=1,
        person_id=1,
        visit_concept_id=9201,
        visit_start_date=date(2020, 1, 1),
        visit_start_datetime=datetime(2020, 1, 1),
        visit_end_date=date(2020, 1, 5),
        visit_type_concept_id=32817,
    )
"""

from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cdm_wrangle.core.database import Base

# Columns that may hold the payload of an event, in CDM order
VALUE_COLUMNS = (
    "value_as_number",
    "value_as_string",
    "value_as_concept_id",
    "value_as_datetime",
)

# SQLite only autoincrements INTEGER PRIMARY KEY columns
IdentifierType = BigInteger().with_variant(Integer, "sqlite")


# =============================================================================
# Clinical Data Tables
# =============================================================================


class Person(Base):
    """Patient demographics.

    Based on OMOP CDM v5.4 PERSON table.
    """

    __tablename__ = "person"

    person_id: Mapped[int] = mapped_column(IdentifierType, primary_key=True, autoincrement=True)
    gender_concept_id: Mapped[int] = mapped_column(Integer, nullable=False)
    year_of_birth: Mapped[int] = mapped_column(Integer, nullable=False)
    month_of_birth: Mapped[int | None] = mapped_column(Integer)
    day_of_birth: Mapped[int | None] = mapped_column(Integer)
    birth_datetime: Mapped[datetime | None] = mapped_column(DateTime)
    race_concept_id: Mapped[int] = mapped_column(Integer, nullable=False)
    ethnicity_concept_id: Mapped[int] = mapped_column(Integer, nullable=False)
    person_source_value: Mapped[str | None] = mapped_column(String(50))


class VisitOccurrence(Base):
    """Healthcare encounter.

    ``visit_start_datetime`` is the time-zero reference for elapsed-hour
    extraction. Based on OMOP CDM v5.4 VISIT_OCCURRENCE table.
    """

    __tablename__ = "visit_occurrence"

    visit_occurrence_id: Mapped[int] = mapped_column(IdentifierType, primary_key=True, autoincrement=True)
    person_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("person.person_id"), nullable=False)
    visit_concept_id: Mapped[int] = mapped_column(Integer, nullable=False)
    visit_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    visit_start_datetime: Mapped[datetime | None] = mapped_column(DateTime)
    visit_end_date: Mapped[date] = mapped_column(Date, nullable=False)
    visit_end_datetime: Mapped[datetime | None] = mapped_column(DateTime)
    visit_type_concept_id: Mapped[int] = mapped_column(Integer, nullable=False)
    visit_source_value: Mapped[str | None] = mapped_column(String(50))

    # Relationships
    person: Mapped["Person"] = relationship("Person")

    __table_args__ = (
        Index("idx_visit_person_date", "person_id", "visit_start_date"),
    )


class Measurement(Base):
    """Patient measurement information.

    Records lab results, vital signs, and other clinical measurements.
    Based on OMOP CDM v5.4 MEASUREMENT table.
    """

    __tablename__ = "measurement"

    measurement_id: Mapped[int] = mapped_column(IdentifierType, primary_key=True, autoincrement=True)
    person_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("person.person_id"), nullable=False)
    measurement_concept_id: Mapped[int] = mapped_column(Integer, nullable=False)
    measurement_date: Mapped[date] = mapped_column(Date, nullable=False)
    measurement_datetime: Mapped[datetime | None] = mapped_column(DateTime)
    measurement_type_concept_id: Mapped[int] = mapped_column(Integer, nullable=False)
    value_as_number: Mapped[float | None] = mapped_column(Numeric(precision=18, scale=6, asdecimal=False))
    value_as_concept_id: Mapped[int | None] = mapped_column(Integer)
    unit_concept_id: Mapped[int | None] = mapped_column(Integer)
    visit_occurrence_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey("visit_occurrence.visit_occurrence_id"))
    measurement_source_value: Mapped[str | None] = mapped_column(String(50))
    value_source_value: Mapped[str | None] = mapped_column(String(50))

    # Relationships
    person: Mapped["Person"] = relationship("Person")
    visit_occurrence: Mapped["VisitOccurrence | None"] = relationship("VisitOccurrence")

    __table_args__ = (
        Index("idx_measurement_concept", "measurement_concept_id"),
        Index("idx_measurement_visit", "visit_occurrence_id"),
    )


class Observation(Base):
    """Patient observation information.

    Records clinical observations not captured elsewhere (e.g., social
    history, clinical findings, coded assessments).
    Based on OMOP CDM v5.4 OBSERVATION table.
    """

    __tablename__ = "observation"

    observation_id: Mapped[int] = mapped_column(IdentifierType, primary_key=True, autoincrement=True)
    person_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("person.person_id"), nullable=False)
    observation_concept_id: Mapped[int] = mapped_column(Integer, nullable=False)
    observation_date: Mapped[date] = mapped_column(Date, nullable=False)
    observation_datetime: Mapped[datetime | None] = mapped_column(DateTime)
    observation_type_concept_id: Mapped[int] = mapped_column(Integer, nullable=False)
    value_as_number: Mapped[float | None] = mapped_column(Numeric(precision=18, scale=6, asdecimal=False))
    value_as_string: Mapped[str | None] = mapped_column(String(60))
    value_as_concept_id: Mapped[int | None] = mapped_column(Integer)
    value_as_datetime: Mapped[datetime | None] = mapped_column(DateTime)
    unit_concept_id: Mapped[int | None] = mapped_column(Integer)
    visit_occurrence_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey("visit_occurrence.visit_occurrence_id"))
    observation_source_value: Mapped[str | None] = mapped_column(String(50))
    value_source_value: Mapped[str | None] = mapped_column(String(50))

    # Relationships
    person: Mapped["Person"] = relationship("Person")
    visit_occurrence: Mapped["VisitOccurrence | None"] = relationship("VisitOccurrence")

    __table_args__ = (
        Index("idx_observation_concept", "observation_concept_id"),
        Index("idx_observation_visit", "visit_occurrence_id"),
    )


# =============================================================================
# Reference Data
# =============================================================================


class ConceptMetadata(Base):
    """Value column and display label for an extractable concept.

    Not part of the CDM. Sites that keep the lookup in the database create
    this table alongside the CDM; others use the packaged JSON fixture.
    """

    __tablename__ = "concept_metadata"

    concept_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    value_column: Mapped[str] = mapped_column(String(30), nullable=False)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
