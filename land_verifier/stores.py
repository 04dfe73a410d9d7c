"""
Store interfaces and in-memory implementations.

The engine only reads extracted and canonical records, and writes one
reconciliation result per submission. The protocols below are everything
it needs from storage; `sql_stores` provides the SQLAlchemy-backed versions.

Canonical lookups match keys after trimming and case-folding, so a
canonical identity number stored as "1234 " is found for "1234".
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Iterable, Optional, Protocol

from .comparator import is_blank, normalize
from .models import (
    CanonicalIdentityRecord,
    CanonicalLandRecord,
    CanonicalTaxRecord,
    ExtractedRecord,
    ReconciliationResult,
)

LAND_IDENTITY_FIELDS: tuple[str, ...] = (
    "survey_number",
    "measuring_area",
    "village",
    "hobli",
    "taluk",
    "district",
)


# ─── Protocols ───────────────────────────────────────────────────────


class ExtractedRecordStore(Protocol):
    def get_extracted(self, submission_id: str) -> Optional[ExtractedRecord]: ...


class CanonicalRecordStore(Protocol):
    def find_identity(self, number: Optional[str]) -> Optional[CanonicalIdentityRecord]: ...

    def find_tax(self, number: Optional[str]) -> Optional[CanonicalTaxRecord]: ...

    def find_land(self, survey_number: Optional[str]) -> Optional[CanonicalLandRecord]: ...

    def find_land_exact(self, **land_identity: str) -> Optional[CanonicalLandRecord]:
        """Match on all six LAND_IDENTITY_FIELDS at once."""
        ...


class ReconciliationResultStore(Protocol):
    def upsert(self, result: ReconciliationResult) -> ReconciliationResult:
        """Create or replace the result for ``result.submission_id`` atomically."""
        ...

    def get(self, submission_id: str) -> Optional[ReconciliationResult]: ...

    def list_results(self) -> list[ReconciliationResult]: ...


# ─── In-Memory Implementations ───────────────────────────────────────


class InMemoryRecordStore:
    """Extracted and canonical records held in dicts."""

    def __init__(
        self,
        extracted: Iterable[ExtractedRecord] = (),
        identity: Iterable[CanonicalIdentityRecord] = (),
        tax: Iterable[CanonicalTaxRecord] = (),
        land: Iterable[CanonicalLandRecord] = (),
    ):
        self.extracted = {r.submission_id: r for r in extracted}
        self.identity = list(identity)
        self.tax = list(tax)
        self.land = list(land)

    def add_extracted(self, record: ExtractedRecord) -> None:
        self.extracted[record.submission_id] = record

    def get_extracted(self, submission_id: str) -> Optional[ExtractedRecord]:
        return self.extracted.get(submission_id)

    def find_identity(self, number: Optional[str]) -> Optional[CanonicalIdentityRecord]:
        return _first_by_key(self.identity, "number", number)

    def find_tax(self, number: Optional[str]) -> Optional[CanonicalTaxRecord]:
        return _first_by_key(self.tax, "number", number)

    def find_land(self, survey_number: Optional[str]) -> Optional[CanonicalLandRecord]:
        return _first_by_key(self.land, "survey_number", survey_number)

    def find_land_exact(self, **land_identity: str) -> Optional[CanonicalLandRecord]:
        wanted = {name: normalize(land_identity[name]) for name in LAND_IDENTITY_FIELDS}
        for record in self.land:
            if all(normalize(getattr(record, name)) == value for name, value in wanted.items()):
                return record
        return None


class InMemoryResultStore:
    """One result per submission id; upserts are serialized by a lock."""

    def __init__(self) -> None:
        self._results: dict[str, ReconciliationResult] = {}
        self._lock = threading.Lock()

    def upsert(self, result: ReconciliationResult) -> ReconciliationResult:
        stored = result.model_copy(deep=True)
        with self._lock:
            self._results[result.submission_id] = stored
        return stored.model_copy(deep=True)

    def get(self, submission_id: str) -> Optional[ReconciliationResult]:
        with self._lock:
            result = self._results.get(submission_id)
        return result.model_copy(deep=True) if result else None

    def list_results(self) -> list[ReconciliationResult]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._results.values()]


def _first_by_key(records: list[Any], attr: str, key: Optional[str]) -> Any:
    if is_blank(key):
        return None
    wanted = normalize(key)
    for record in records:
        if normalize(getattr(record, attr)) == wanted:
            return record
    return None


# ─── Reference Data Loader ───────────────────────────────────────────


def load_reference_data(path: str | Path) -> InMemoryRecordStore:
    """Build an in-memory store from a JSON document.

    Expected shape::

        {"identity": [...], "tax": [...], "land": [...], "extracted": [...]}

    Every key is optional. Records are validated against the pydantic
    models, so a malformed file fails here rather than mid-reconciliation.
    """
    with Path(path).open(encoding="utf-8") as f:
        data: dict[str, list[dict[str, Any]]] = json.load(f)

    return InMemoryRecordStore(
        extracted=[ExtractedRecord.model_validate(r) for r in data.get("extracted", [])],
        identity=[CanonicalIdentityRecord.model_validate(r) for r in data.get("identity", [])],
        tax=[CanonicalTaxRecord.model_validate(r) for r in data.get("tax", [])],
        land=[CanonicalLandRecord.model_validate(r) for r in data.get("land", [])],
    )
