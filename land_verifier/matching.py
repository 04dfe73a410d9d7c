"""
Matching engine — reconciles one submission against canonical records.

Flow:
  ┌──────────────────┐
  │ Extracted record │
  └────────┬─────────┘
           │  identity no. / tax no. / survey no.
  ┌────────▼─────────┐
  │ Canonical lookup │   ← three independent lookups
  └────────┬─────────┘
           │
  ┌────────▼─────────┐
  │  Field compare   │   ← fixed field table, tri-state outcomes
  └────────┬─────────┘
           │
  ┌────────▼─────────┐
  │   Risk scorer    │   ← only known outcomes count
  └────────┬─────────┘
           │
  ┌────────▼─────────┐
  │  Result upsert   │   ← one write, one row per submission
  └──────────────────┘

The field table is the single source of truth for what gets compared and
what gets scored, so the two can never drift apart.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from .comparator import check_presence, compare_dates, compare_text
from .exceptions import ExtractedRecordNotFound
from .models import (
    CanonicalIdentityRecord,
    CanonicalLandRecord,
    CanonicalTaxRecord,
    ExtractedRecord,
    FieldOutcome,
    MatchReport,
    Outcome,
    ReconciliationResult,
    Source,
)
from .scoring import RiskScorer
from .stores import CanonicalRecordStore, ExtractedRecordStore, ReconciliationResultStore

logger = logging.getLogger(__name__)


# ─── Field Table ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class FieldSpec:
    name: str  # Outcome key, also the ExtractedRecord attribute
    source: Source
    canonical_attr: str
    is_date: bool = False


FIELD_SPECS: tuple[FieldSpec, ...] = (
    FieldSpec("identity_name", Source.IDENTITY, "name"),
    FieldSpec("identity_number", Source.IDENTITY, "number"),
    FieldSpec("date_of_birth", Source.IDENTITY, "date_of_birth", is_date=True),
    FieldSpec("tax_name", Source.TAX, "name"),
    FieldSpec("tax_number", Source.TAX, "number"),
    FieldSpec("survey_number", Source.LAND, "survey_number"),
    FieldSpec("measuring_area", Source.LAND, "measuring_area"),
    FieldSpec("village", Source.LAND, "village"),
    FieldSpec("hobli", Source.LAND, "hobli"),
    FieldSpec("taluk", Source.LAND, "taluk"),
    FieldSpec("district", Source.LAND, "district"),
)

PRESENCE_FIELDS: tuple[str, ...] = (
    "application_number",
    "applicant_name",
    "applicant_address",
)

COMPARED_FIELDS: tuple[str, ...] = tuple(spec.name for spec in FIELD_SPECS)
ALL_FIELDS: tuple[str, ...] = COMPARED_FIELDS + PRESENCE_FIELDS


# ─── Engine ──────────────────────────────────────────────────────────


class MatchingEngine:
    """Compares an extracted record with canonical records and stores the result.

    Usage:
        engine = MatchingEngine(records, records, results)
        result = engine.reconcile("upload-42")
        print(result.status, result.risk_score)
    """

    def __init__(
        self,
        extracted_store: ExtractedRecordStore,
        canonical_store: CanonicalRecordStore,
        result_store: ReconciliationResultStore,
        scorer: RiskScorer | None = None,
        *,
        strict_date_equality: bool = False,
        date_formats: Iterable[str] = (),
        clock: Callable[[], datetime] | None = None,
    ):
        self.extracted_store = extracted_store
        self.canonical_store = canonical_store
        self.result_store = result_store
        self.scorer = scorer or RiskScorer()
        self.strict_date_equality = strict_date_equality
        self.date_formats = tuple(date_formats)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def reconcile(self, submission_id: str) -> ReconciliationResult:
        """Verify a submission and upsert its single result.

        Raises:
            ExtractedRecordNotFound: nothing has been extracted yet.
            StoreFailureError: any lookup or write failed; prior state is kept.
        """
        logger.info("Starting verification for submission %s", submission_id)

        extracted = self.extracted_store.get_extracted(submission_id)
        if extracted is None:
            logger.warning("No extracted data found for submission %s", submission_id)
            raise ExtractedRecordNotFound(submission_id)

        identity = self.canonical_store.find_identity(extracted.identity_number)
        tax = self.canonical_store.find_tax(extracted.tax_number)
        land = self.canonical_store.find_land(extracted.survey_number)
        for label, record in (("identity", identity), ("tax", tax), ("land", land)):
            if record is None:
                logger.info(
                    "No canonical %s record for submission %s; its fields are UNKNOWN",
                    label,
                    submission_id,
                )

        report = self.build_report(extracted, identity, tax, land)
        score = self.scorer.score(report.scored_fields())

        result = ReconciliationResult(
            submission_id=submission_id,
            outcomes=report.outcomes(),
            overall_match=score.overall_match,
            match_percentage=score.match_percentage,
            risk_score=score.risk_score,
            status=score.status,
            verified_at=self.clock(),
        )
        stored = self.result_store.upsert(result)

        logger.info(
            "Verification result saved for submission %s: %s (risk %.2f, %d/%d known fields matched)",
            submission_id,
            stored.status.value,
            stored.risk_score,
            score.matched,
            score.known,
        )
        return stored

    def build_report(
        self,
        extracted: ExtractedRecord,
        identity: Optional[CanonicalIdentityRecord],
        tax: Optional[CanonicalTaxRecord],
        land: Optional[CanonicalLandRecord],
    ) -> MatchReport:
        """Compare every field in the table. Pure: no lookups, no writes."""
        canonical = {Source.IDENTITY: identity, Source.TAX: tax, Source.LAND: land}
        fields: list[FieldOutcome] = []

        for spec in FIELD_SPECS:
            extracted_value = getattr(extracted, spec.name)
            record = canonical[spec.source]

            if record is None:
                fields.append(
                    FieldOutcome(
                        field=spec.name,
                        source=spec.source,
                        outcome=Outcome.UNKNOWN,
                        extracted_value=extracted_value,
                    )
                )
                continue

            canonical_value = getattr(record, spec.canonical_attr)
            if spec.is_date:
                outcome = compare_dates(
                    extracted_value,
                    canonical_value,
                    strict=self.strict_date_equality,
                    formats=self.date_formats,
                )
            else:
                outcome = compare_text(extracted_value, canonical_value)

            fields.append(
                FieldOutcome(
                    field=spec.name,
                    source=spec.source,
                    outcome=outcome,
                    extracted_value=extracted_value,
                    canonical_value=canonical_value,
                )
            )

        for name in PRESENCE_FIELDS:
            value = getattr(extracted, name)
            fields.append(
                FieldOutcome(
                    field=name,
                    source=Source.APPLICATION,
                    outcome=check_presence(value),
                    extracted_value=value,
                    scored=False,
                )
            )

        return MatchReport(submission_id=extracted.submission_id, fields=fields)
