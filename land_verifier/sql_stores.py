"""
SQLAlchemy-backed stores.

Every SQLAlchemyError is re-raised as StoreFailureError so callers can
tell an outage from a legitimate lookup miss. Lookups compare keys as
lower(trim(column)) against the trimmed, lower-cased input.
"""

from __future__ import annotations

import logging
from datetime import timezone
from typing import Any, Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .comparator import is_blank
from .database import (
    CanonicalIdentityRow,
    CanonicalLandRow,
    CanonicalTaxRow,
    ExtractedRecordRow,
    ReconciliationResultRow,
)
from .exceptions import StoreFailureError
from .matching import ALL_FIELDS
from .models import (
    CanonicalIdentityRecord,
    CanonicalLandRecord,
    CanonicalTaxRecord,
    ExtractedRecord,
    Outcome,
    ReconciliationResult,
    VerificationStatus,
)
from .stores import LAND_IDENTITY_FIELDS

logger = logging.getLogger(__name__)


def _key(value: str) -> str:
    return value.strip().lower()


def _matches(column: Any, value: str) -> Any:
    return func.lower(func.trim(column)) == _key(value)


def _row_dict(row: Any, names: Iterable[str]) -> dict[str, Any]:
    return {name: getattr(row, name) for name in names}


# ─── Extracted + Canonical Records ───────────────────────────────────


class SqlRecordStore:
    """Reads extracted and canonical records. Writes only for seeding."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get_extracted(self, submission_id: str) -> Optional[ExtractedRecord]:
        row = self._first(ExtractedRecordRow, ExtractedRecordRow.submission_id == submission_id)
        if row is None:
            return None
        return ExtractedRecord(**_row_dict(row, ExtractedRecord.model_fields))

    def find_identity(self, number: Optional[str]) -> Optional[CanonicalIdentityRecord]:
        if is_blank(number):
            return None
        assert number is not None
        row = self._first(CanonicalIdentityRow, _matches(CanonicalIdentityRow.number, number))
        return CanonicalIdentityRecord(**_row_dict(row, CanonicalIdentityRecord.model_fields)) if row else None

    def find_tax(self, number: Optional[str]) -> Optional[CanonicalTaxRecord]:
        if is_blank(number):
            return None
        assert number is not None
        row = self._first(CanonicalTaxRow, _matches(CanonicalTaxRow.number, number))
        return CanonicalTaxRecord(**_row_dict(row, CanonicalTaxRecord.model_fields)) if row else None

    def find_land(self, survey_number: Optional[str]) -> Optional[CanonicalLandRecord]:
        if is_blank(survey_number):
            return None
        assert survey_number is not None
        row = self._first(CanonicalLandRow, _matches(CanonicalLandRow.survey_number, survey_number))
        return CanonicalLandRecord(**_row_dict(row, CanonicalLandRecord.model_fields)) if row else None

    def find_land_exact(self, **land_identity: str) -> Optional[CanonicalLandRecord]:
        criteria = [
            _matches(getattr(CanonicalLandRow, name), land_identity[name])
            for name in LAND_IDENTITY_FIELDS
        ]
        row = self._first(CanonicalLandRow, *criteria)
        return CanonicalLandRecord(**_row_dict(row, CanonicalLandRecord.model_fields)) if row else None

    # Seeding helpers (the engine never calls these)

    def add_extracted(self, record: ExtractedRecord) -> None:
        self._add([ExtractedRecordRow(**record.model_dump())])

    def add_identity(self, *records: CanonicalIdentityRecord) -> None:
        self._add([CanonicalIdentityRow(**r.model_dump()) for r in records])

    def add_tax(self, *records: CanonicalTaxRecord) -> None:
        self._add([CanonicalTaxRow(**r.model_dump()) for r in records])

    def add_land(self, *records: CanonicalLandRecord) -> None:
        self._add([CanonicalLandRow(**r.model_dump()) for r in records])

    def _first(self, model: Any, *criteria: Any) -> Any:
        try:
            with self.session_factory() as session:
                return session.query(model).filter(*criteria).order_by(*model.__table__.primary_key.columns).first()
        except SQLAlchemyError as exc:
            raise StoreFailureError(
                f"Lookup in {model.__tablename__} failed: {exc}",
                {"table": model.__tablename__},
            ) from exc

    def _add(self, rows: list[Any]) -> None:
        try:
            with self.session_factory() as session, session.begin():
                session.add_all(rows)
        except SQLAlchemyError as exc:
            raise StoreFailureError(f"Insert failed: {exc}") from exc


# ─── Reconciliation Results ──────────────────────────────────────────


class SqlResultStore:
    """At most one row per submission; upsert is a single transaction."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def upsert(self, result: ReconciliationResult) -> ReconciliationResult:
        session = self.session_factory()
        try:
            row = (
                session.query(ReconciliationResultRow)
                .filter_by(submission_id=result.submission_id)
                .with_for_update()
                .first()
            )
            if row is None:
                row = ReconciliationResultRow(submission_id=result.submission_id)
                session.add(row)

            for name in ALL_FIELDS:
                outcome = result.outcomes.get(name, Outcome.UNKNOWN)
                setattr(row, f"{name}_match", outcome.as_bool())
            row.overall_match = result.overall_match
            row.match_percentage = result.match_percentage
            row.risk_score = result.risk_score
            row.status = result.status.value
            row.verified_at = result.verified_at

            session.commit()
            return _to_result(row)
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Failed to save verification result for %s: %s", result.submission_id, exc)
            raise StoreFailureError(
                f"Could not save verification result for submission '{result.submission_id}': {exc}",
                {"submission_id": result.submission_id},
            ) from exc
        finally:
            session.close()

    def get(self, submission_id: str) -> Optional[ReconciliationResult]:
        try:
            with self.session_factory() as session:
                row = session.query(ReconciliationResultRow).filter_by(submission_id=submission_id).first()
                return _to_result(row) if row else None
        except SQLAlchemyError as exc:
            raise StoreFailureError(
                f"Could not load verification result for submission '{submission_id}': {exc}",
                {"submission_id": submission_id},
            ) from exc

    def list_results(self) -> list[ReconciliationResult]:
        try:
            with self.session_factory() as session:
                rows = session.query(ReconciliationResultRow).order_by(ReconciliationResultRow.id).all()
                return [_to_result(row) for row in rows]
        except SQLAlchemyError as exc:
            raise StoreFailureError(f"Could not list verification results: {exc}") from exc


def _to_result(row: ReconciliationResultRow) -> ReconciliationResult:
    verified_at = row.verified_at
    if verified_at.tzinfo is None:  # SQLite drops the offset
        verified_at = verified_at.replace(tzinfo=timezone.utc)
    return ReconciliationResult(
        submission_id=row.submission_id,
        outcomes={name: Outcome.from_bool(getattr(row, f"{name}_match")) for name in ALL_FIELDS},
        overall_match=row.overall_match,
        match_percentage=row.match_percentage,
        risk_score=row.risk_score,
        status=VerificationStatus(row.status),
        verified_at=verified_at,
    )
