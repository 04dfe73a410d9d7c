"""
Verification pipeline — the caller-facing facade.

Wires the stores, matching engine, risk scorer and geo correlator
together and adds the read-side views (per-submission summary, risk
distribution) the admin surface needs.

Design principles:
  - reconcile() is idempotent: re-running it overwrites the one stored
    result for the submission and changes nothing but the timestamp
    unless the underlying records changed.
  - resolve_geo() never writes.
  - Store failures propagate as StoreFailureError; nothing is retried.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from .config import Settings
from .exceptions import ExtractedRecordNotFound, ResultNotFound
from .geo import GeoCorrelator
from .matching import COMPARED_FIELDS, MatchingEngine
from .models import (
    FieldOutcome,
    GeoResolution,
    Outcome,
    ReconciliationResult,
    RiskDistribution,
    RiskTier,
    VerificationStatistics,
    VerificationStatus,
    VerificationSummary,
)
from .scoring import EqualWeights, FieldWeights, RiskScorer, WeightStrategy
from .stores import CanonicalRecordStore, ExtractedRecordStore, ReconciliationResultStore

logger = logging.getLogger(__name__)

RECENT_WINDOW = timedelta(days=30)


class VerificationPipeline:
    """Orchestrates reconciliation, geo-correlation and reporting.

    Usage:
        pipeline = VerificationPipeline(records, records, results)
        result = pipeline.reconcile("upload-42")
        if result.status is VerificationStatus.VERIFIED:
            location = pipeline.resolve_geo("upload-42")
    """

    def __init__(
        self,
        extracted_store: ExtractedRecordStore,
        canonical_store: CanonicalRecordStore,
        result_store: ReconciliationResultStore,
        scorer: RiskScorer | None = None,
        *,
        strict_date_equality: bool = False,
        date_formats: tuple[str, ...] | list[str] = (),
    ):
        self.extracted_store = extracted_store
        self.canonical_store = canonical_store
        self.result_store = result_store
        self.engine = MatchingEngine(
            extracted_store,
            canonical_store,
            result_store,
            scorer,
            strict_date_equality=strict_date_equality,
            date_formats=date_formats,
        )
        self.geo = GeoCorrelator(extracted_store, canonical_store)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        extracted_store: ExtractedRecordStore,
        canonical_store: CanonicalRecordStore,
        result_store: ReconciliationResultStore,
    ) -> "VerificationPipeline":
        """Build a pipeline whose scoring and date rules come from settings."""
        weights: WeightStrategy = (
            FieldWeights(settings.field_weights) if settings.field_weights else EqualWeights()
        )
        return cls(
            extracted_store,
            canonical_store,
            result_store,
            RiskScorer(weights, settings.pass_threshold),
            strict_date_equality=settings.strict_date_equality,
            date_formats=settings.date_formats,
        )

    @property
    def scorer(self) -> RiskScorer:
        return self.engine.scorer

    # ─── Write Side ──────────────────────────────────────────────────

    def reconcile(self, submission_id: str) -> ReconciliationResult:
        return self.engine.reconcile(submission_id)

    def resolve_geo(self, submission_id: str) -> GeoResolution:
        return self.geo.resolve(submission_id)

    # ─── Read Side ───────────────────────────────────────────────────

    def describe(self, submission_id: str) -> VerificationSummary:
        """Stored result joined with the extracted and current canonical values.

        Outcomes come from the stored result, not a fresh comparison, so
        the summary shows what was actually decided at verification time.
        """
        result = self.result_store.get(submission_id)
        if result is None:
            raise ResultNotFound(submission_id)
        extracted = self.extracted_store.get_extracted(submission_id)
        if extracted is None:
            raise ExtractedRecordNotFound(submission_id)

        land = self.canonical_store.find_land(extracted.survey_number)
        if land is None:
            logger.warning("No land record found for survey number %s", extracted.survey_number)

        report = self.engine.build_report(
            extracted,
            self.canonical_store.find_identity(extracted.identity_number),
            self.canonical_store.find_tax(extracted.tax_number),
            land,
        )
        fields: list[FieldOutcome] = [
            f.model_copy(update={"outcome": result.outcomes.get(f.field, Outcome.UNKNOWN)})
            for f in report.fields
        ]

        compared = [result.outcomes.get(name, Outcome.UNKNOWN) for name in COMPARED_FIELDS]
        known = sum(1 for o in compared if o is not Outcome.UNKNOWN)
        matched = sum(1 for o in compared if o is Outcome.MATCH)

        return VerificationSummary(
            submission_id=submission_id,
            status=result.status,
            overall_match=result.overall_match,
            risk_score=result.risk_score,
            risk_tier=result.risk_tier,
            verified_at=result.verified_at,
            fields=fields,
            statistics=VerificationStatistics(
                total_fields=len(COMPARED_FIELDS),
                known_fields=known,
                matched_fields=matched,
                mismatched_fields=known - matched,
                match_percentage=result.match_percentage,
            ),
            land_details=land,
        )

    def risk_distribution(self, now: datetime | None = None) -> RiskDistribution:
        """Count stored results per risk tier and per status.

        ``recent`` counts results verified within the last 30 days of ``now``
        (the engine clock when omitted).
        """
        since = (now or self.engine.clock()) - RECENT_WINDOW
        distribution = RiskDistribution()
        for result in self.result_store.list_results():
            distribution.total += 1
            if result.verified_at >= since:
                distribution.recent += 1
            tier = result.risk_tier
            if tier is RiskTier.HIGH:
                distribution.high += 1
            elif tier is RiskTier.MEDIUM:
                distribution.medium += 1
            else:
                distribution.low += 1

            if result.status is VerificationStatus.VERIFIED:
                distribution.verified += 1
            else:
                distribution.rejected += 1
        return distribution
