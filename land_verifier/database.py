"""
Database tables and connection helpers.

Uses SQLAlchemy. The reconciliation result table keeps one nullable boolean
column per field: NULL is UNKNOWN, which keeps the tri-state queryable.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import declarative_base, sessionmaker

from .matching import ALL_FIELDS

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExtractedRecordRow(Base):
    """Fields extracted from a submission's documents."""

    __tablename__ = "extracted_records"

    submission_id = Column(String, primary_key=True)
    identity_name = Column(String)
    identity_number = Column(String)
    date_of_birth = Column(String)
    tax_name = Column(String)
    tax_number = Column(String)
    tax_date_of_birth = Column(String)
    survey_number = Column(String)
    measuring_area = Column(String)
    village = Column(String)
    hobli = Column(String)
    taluk = Column(String)
    district = Column(String)
    application_number = Column(String)
    applicant_name = Column(String)
    applicant_address = Column(String)


class CanonicalIdentityRow(Base):
    __tablename__ = "canonical_identity"

    id = Column(Integer, primary_key=True, autoincrement=True)
    number = Column(String, nullable=False, index=True)
    name = Column(String)
    date_of_birth = Column(String)
    created_at = Column(DateTime, nullable=False, default=_utcnow)


class CanonicalTaxRow(Base):
    __tablename__ = "canonical_tax"

    id = Column(Integer, primary_key=True, autoincrement=True)
    number = Column(String, nullable=False, index=True)
    name = Column(String)
    date_of_birth = Column(String)
    created_at = Column(DateTime, nullable=False, default=_utcnow)


class CanonicalLandRow(Base):
    __tablename__ = "canonical_land"

    id = Column(Integer, primary_key=True, autoincrement=True)
    survey_number = Column(String, nullable=False, index=True)
    measuring_area = Column(String)
    village = Column(String)
    hobli = Column(String)
    taluk = Column(String)
    district = Column(String)
    latitude = Column(Float)
    longitude = Column(Float)
    owner_name = Column(String)
    extent = Column(String)
    land_type = Column(String)
    ownership_type = Column(String)
    is_main_owner = Column(Boolean)
    is_govt_restricted = Column(Boolean)
    is_court_stay = Column(Boolean)
    is_alienated = Column(Boolean)
    any_transaction = Column(Boolean)
    created_at = Column(DateTime, nullable=False, default=_utcnow)


class ReconciliationResultRow(Base):
    """At most one row per submission (unique submission_id)."""

    __tablename__ = "reconciliation_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    submission_id = Column(String, nullable=False, unique=True)
    overall_match = Column(Boolean, nullable=False)
    match_percentage = Column(Float, nullable=False)
    risk_score = Column(Float, nullable=False)
    status = Column(String, nullable=False)
    verified_at = Column(DateTime(timezone=True), nullable=False)


# <field>_match columns, generated from the field table
for _field in ALL_FIELDS:
    setattr(ReconciliationResultRow, f"{_field}_match", Column(Boolean, nullable=True))


def init_database(database_url: str) -> Engine:
    """
    Create the engine and all tables.

    Args:
        database_url: SQLAlchemy URL, e.g. ``sqlite:///data/verification.db``

    Returns:
        SQLAlchemy engine
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(database_url)
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine) -> sessionmaker:
    """
    Get a session factory bound to the engine.

    Args:
        engine: Engine from init_database

    Returns:
        SQLAlchemy sessionmaker
    """
    return sessionmaker(bind=engine, expire_on_commit=False)
