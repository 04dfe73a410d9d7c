"""
Tests for the matching engine, geo-correlation and the pipeline facade.

Uses the in-memory stores — deterministic, no database.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from land_verifier.config import Settings
from land_verifier.exceptions import (
    CoordinatesUnavailableError,
    ExtractedRecordNotFound,
    IncompleteInputError,
    LandRecordNotFound,
    NotFoundError,
    ResultNotFound,
    StoreFailureError,
)
from land_verifier.matching import ALL_FIELDS, COMPARED_FIELDS, PRESENCE_FIELDS, MatchingEngine
from land_verifier.models import (
    CanonicalIdentityRecord,
    CanonicalLandRecord,
    CanonicalTaxRecord,
    ExtractedRecord,
    Outcome,
    ReconciliationResult,
    RiskTier,
    VerificationStatus,
)
from land_verifier.pipeline import VerificationPipeline
from land_verifier.stores import InMemoryRecordStore, InMemoryResultStore, load_reference_data

SAMPLE_RECORDS = Path(__file__).parent.parent / "sample_records.json"

LAND_FIELDS = ("survey_number", "measuring_area", "village", "hobli", "taluk", "district")


# ─── Test Data ───────────────────────────────────────────────────────


def _make_extracted(**overrides: Any) -> ExtractedRecord:
    """Factory for an extracted record that matches the default canonical data."""
    kwargs: dict[str, Any] = {
        "submission_id": "42",
        "identity_name": "Ramesh Kumar",
        "identity_number": "1234",
        "date_of_birth": "14/03/1982",
        "tax_name": "Ramesh Kumar",
        "tax_number": "ABCPK1234F",
        "tax_date_of_birth": "14/03/1982",
        "survey_number": "112/3",
        "measuring_area": "2 Acres",
        "village": "Hosahalli",
        "hobli": "Kasaba",
        "taluk": "Doddaballapura",
        "district": "Bengaluru Rural",
        "application_number": "APP-1",
        "applicant_name": "Ramesh Kumar",
        "applicant_address": "Doddaballapura",
    }
    kwargs.update(overrides)
    return ExtractedRecord(**kwargs)


def _identity(**overrides: Any) -> CanonicalIdentityRecord:
    kwargs = {"number": "1234", "name": "Ramesh Kumar", "date_of_birth": "14/03/1982"}
    kwargs.update(overrides)
    return CanonicalIdentityRecord(**kwargs)


def _tax(**overrides: Any) -> CanonicalTaxRecord:
    kwargs = {"number": "ABCPK1234F", "name": "RAMESH KUMAR", "date_of_birth": "14/03/1982"}
    kwargs.update(overrides)
    return CanonicalTaxRecord(**kwargs)


def _land(**overrides: Any) -> CanonicalLandRecord:
    kwargs: dict[str, Any] = {
        "survey_number": "112/3",
        "measuring_area": "2 Acres",
        "village": "Hosahalli",
        "hobli": "Kasaba",
        "taluk": "Doddaballapura",
        "district": "Bengaluru Rural",
        "latitude": 13.2923,
        "longitude": 77.5376,
        "owner_name": "Ramesh Kumar",
        "is_court_stay": False,
    }
    kwargs.update(overrides)
    return CanonicalLandRecord(**kwargs)


def _pipeline(
    extracted: ExtractedRecord | None = None,
    identity: list[CanonicalIdentityRecord] | None = None,
    tax: list[CanonicalTaxRecord] | None = None,
    land: list[CanonicalLandRecord] | None = None,
    **kwargs: Any,
) -> VerificationPipeline:
    records = InMemoryRecordStore(
        extracted=[extracted or _make_extracted()],
        identity=[_identity()] if identity is None else identity,
        tax=[_tax()] if tax is None else tax,
        land=[_land()] if land is None else land,
    )
    return VerificationPipeline(records, records, InMemoryResultStore(), **kwargs)


class _FailingStore(InMemoryRecordStore):
    def find_tax(self, number):
        raise StoreFailureError("connection reset")


class _FailingResultStore(InMemoryResultStore):
    def upsert(self, result):
        raise StoreFailureError("disk full")


# ═══════════════════════════════════════════════════════════════════════
# MATCH REPORT
# ═══════════════════════════════════════════════════════════════════════


class TestBuildReport:
    def _engine(self, **kwargs: Any) -> MatchingEngine:
        store = InMemoryRecordStore()
        return MatchingEngine(store, store, InMemoryResultStore(), **kwargs)

    def test_fixed_ordered_fields(self):
        report = self._engine().build_report(_make_extracted(), _identity(), _tax(), _land())
        assert [f.field for f in report.fields] == list(ALL_FIELDS)
        assert len(report.scored_fields()) == 11

    def test_all_match(self):
        report = self._engine().build_report(_make_extracted(), _identity(), _tax(), _land())
        assert set(report.outcomes().values()) == {Outcome.MATCH}

    def test_trailing_space_identity_number_matches(self):
        report = self._engine().build_report(
            _make_extracted(identity_number="1234"),
            _identity(number="1234 "),
            _tax(),
            _land(),
        )
        assert report.outcome("identity_number") == Outcome.MATCH
        assert report.outcome("identity_name") == Outcome.MATCH

    def test_missing_identity_record_is_unknown(self):
        report = self._engine().build_report(_make_extracted(), None, _tax(), _land())
        for name in ("identity_name", "identity_number", "date_of_birth"):
            assert report.outcome(name) == Outcome.UNKNOWN
        assert report.outcome("tax_name") == Outcome.MATCH

    def test_blank_canonical_field_is_mismatch_not_unknown(self):
        report = self._engine().build_report(
            _make_extracted(), _identity(), _tax(), _land(hobli="")
        )
        assert report.outcome("hobli") == Outcome.MISMATCH

    def test_village_mismatch(self):
        report = self._engine().build_report(
            _make_extracted(village="Yelahanka"), _identity(), _tax(), _land()
        )
        assert report.outcome("survey_number") == Outcome.MATCH
        assert report.outcome("village") == Outcome.MISMATCH

    def test_presence_fields_not_scored_and_never_unknown(self):
        report = self._engine().build_report(
            _make_extracted(applicant_address=None), None, None, None
        )
        presence = [f for f in report.fields if f.field in PRESENCE_FIELDS]
        assert all(not f.scored for f in presence)
        assert report.outcome("application_number") == Outcome.MATCH
        assert report.outcome("applicant_address") == Outcome.MISMATCH

    def test_dob_legacy_vs_strict(self):
        extracted = _make_extracted(date_of_birth="1982-03-14")
        legacy = self._engine().build_report(extracted, _identity(), _tax(), _land())
        strict = self._engine(
            strict_date_equality=True, date_formats=["%d/%m/%Y", "%Y-%m-%d"]
        ).build_report(extracted, _identity(), _tax(), _land())
        assert legacy.outcome("date_of_birth") == Outcome.MISMATCH
        assert strict.outcome("date_of_birth") == Outcome.MATCH

    def test_dob_compared_against_identity_record(self):
        report = self._engine().build_report(
            _make_extracted(), _identity(date_of_birth="01/01/1990"), _tax(), _land()
        )
        assert report.outcome("date_of_birth") == Outcome.MISMATCH


# ═══════════════════════════════════════════════════════════════════════
# RECONCILE
# ═══════════════════════════════════════════════════════════════════════


class TestReconcile:
    def test_missing_extraction_raises_not_found(self):
        pipeline = _pipeline()
        with pytest.raises(ExtractedRecordNotFound) as exc_info:
            pipeline.reconcile("does-not-exist")
        assert isinstance(exc_info.value, NotFoundError)
        assert exc_info.value.code == "EXTRACTION_NOT_FOUND"

    def test_clean_submission_is_verified(self):
        result = _pipeline().reconcile("42")
        assert result.status == VerificationStatus.VERIFIED
        assert result.overall_match is True
        assert result.match_percentage == pytest.approx(100.0)
        assert result.risk_tier == RiskTier.LOW

    def test_no_canonical_data_is_rejected(self):
        result = _pipeline(identity=[], tax=[], land=[]).reconcile("42")
        assert all(result.outcomes[name] == Outcome.UNKNOWN for name in COMPARED_FIELDS)
        assert result.match_percentage == 0.0
        assert result.risk_score == pytest.approx(100.0)
        assert result.status == VerificationStatus.REJECTED

    def test_missing_land_shrinks_denominator(self):
        # 5 known (identity + tax), 4 matched
        result = _pipeline(
            extracted=_make_extracted(tax_name="R. Kumar"), land=[]
        ).reconcile("42")
        assert result.match_percentage == pytest.approx(80.0)
        assert result.status == VerificationStatus.VERIFIED

    def test_lookups_are_independent(self):
        result = _pipeline(identity=[], land=[]).reconcile("42")
        assert result.outcomes["tax_number"] == Outcome.MATCH
        assert result.outcomes["survey_number"] == Outcome.UNKNOWN

    def test_threshold_through_engine(self):
        # No tax record: identity (3) + land (6) = 9 known fields
        seven_of_nine = _pipeline(
            extracted=_make_extracted(identity_name="X", village="X"), tax=[]
        ).reconcile("42")
        assert seven_of_nine.match_percentage == pytest.approx(77.78)
        assert seven_of_nine.status == VerificationStatus.VERIFIED

        six_of_nine = _pipeline(
            extracted=_make_extracted(identity_name="X", village="X", hobli="X"), tax=[]
        ).reconcile("42")
        assert six_of_nine.match_percentage == pytest.approx(66.67)
        assert six_of_nine.status == VerificationStatus.REJECTED

    def test_idempotent_except_timestamp(self):
        times = iter([
            datetime(2025, 1, 1, tzinfo=timezone.utc),
            datetime(2025, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=5),
        ])
        records = InMemoryRecordStore(
            extracted=[_make_extracted(village="Elsewhere")],
            identity=[_identity()],
            tax=[],
            land=[_land()],
        )
        results = InMemoryResultStore()
        engine = MatchingEngine(records, records, results, clock=lambda: next(times))

        first = engine.reconcile("42")
        second = engine.reconcile("42")

        assert first.verified_at != second.verified_at
        assert first.model_dump(exclude={"verified_at"}) == second.model_dump(exclude={"verified_at"})
        assert len(results.list_results()) == 1

    def test_reverification_updates_in_place(self):
        records = InMemoryRecordStore(
            extracted=[_make_extracted()], identity=[], tax=[], land=[]
        )
        results = InMemoryResultStore()
        pipeline = VerificationPipeline(records, records, results)

        assert pipeline.reconcile("42").status == VerificationStatus.REJECTED
        records.identity.append(_identity())
        records.tax.append(_tax())
        assert pipeline.reconcile("42").status == VerificationStatus.VERIFIED
        assert len(results.list_results()) == 1
        assert results.get("42").status == VerificationStatus.VERIFIED

    def test_lookup_failure_propagates_and_writes_nothing(self):
        records = _FailingStore(extracted=[_make_extracted()], identity=[_identity()])
        results = InMemoryResultStore()
        pipeline = VerificationPipeline(records, records, results)
        with pytest.raises(StoreFailureError):
            pipeline.reconcile("42")
        assert results.get("42") is None

    def test_write_failure_keeps_prior_result(self):
        records = InMemoryRecordStore(
            extracted=[_make_extracted()], identity=[_identity()], tax=[_tax()], land=[_land()]
        )
        results = InMemoryResultStore()
        VerificationPipeline(records, records, results).reconcile("42")
        prior = results.get("42")

        records.land.clear()
        failing = _FailingResultStore()
        failing._results = results._results
        with pytest.raises(StoreFailureError):
            VerificationPipeline(records, records, failing).reconcile("42")
        assert results.get("42") == prior

    def test_weighted_settings(self):
        settings = Settings(field_weights={"village": 10.0})
        records = InMemoryRecordStore(
            extracted=[_make_extracted(village="Elsewhere")],
            identity=[_identity()],
            tax=[_tax()],
            land=[_land()],
        )
        pipeline = VerificationPipeline.from_settings(
            settings, records, records, InMemoryResultStore()
        )
        result = pipeline.reconcile("42")
        # matched 10 of 20
        assert result.match_percentage == pytest.approx(50.0)
        assert result.status == VerificationStatus.REJECTED


# ═══════════════════════════════════════════════════════════════════════
# GEO-CORRELATION
# ═══════════════════════════════════════════════════════════════════════


class TestGeoCorrelation:
    def test_resolves_coordinates(self):
        location = _pipeline().resolve_geo("42")
        assert location.latitude == pytest.approx(13.2923)
        assert location.longitude == pytest.approx(77.5376)
        assert location.survey_number == "112/3"

    def test_missing_extraction(self):
        with pytest.raises(ExtractedRecordNotFound):
            _pipeline().resolve_geo("nope")

    def test_survey_match_with_different_village_is_not_found(self):
        pipeline = _pipeline(land=[_land(village="Yelahanka")])
        with pytest.raises(LandRecordNotFound) as exc_info:
            pipeline.resolve_geo("42")
        assert exc_info.value.code == "LAND_RECORD_NOT_FOUND"

        # Per-field matching still reports survey MATCH and village MISMATCH
        result = pipeline.reconcile("42")
        assert result.outcomes["survey_number"] == Outcome.MATCH
        assert result.outcomes["village"] == Outcome.MISMATCH

    def test_all_land_fields_blank_is_incomplete_without_lookup(self):
        class _NoLookup(InMemoryRecordStore):
            def find_land_exact(self, **land_identity):
                raise AssertionError("store must not be queried")

        blank = {name: "  " for name in LAND_FIELDS}
        records = _NoLookup(extracted=[_make_extracted(**blank)], land=[_land()])
        pipeline = VerificationPipeline(records, records, InMemoryResultStore())
        with pytest.raises(IncompleteInputError) as exc_info:
            pipeline.resolve_geo("42")
        assert exc_info.value.details["missing_fields"] == list(LAND_FIELDS)

    @pytest.mark.parametrize("missing", LAND_FIELDS)
    def test_any_missing_field_is_incomplete(self, missing):
        pipeline = _pipeline(extracted=_make_extracted(**{missing: None}))
        with pytest.raises(IncompleteInputError) as exc_info:
            pipeline.resolve_geo("42")
        assert exc_info.value.details["missing_fields"] == [missing]

    def test_land_fields_trimmed_and_case_folded(self):
        pipeline = _pipeline(extracted=_make_extracted(village=" HOSAHALLI ", district="bengaluru rural"))
        location = pipeline.resolve_geo("42")
        assert location.latitude == pytest.approx(13.2923)

    def test_inner_whitespace_is_significant(self):
        pipeline = _pipeline(extracted=_make_extracted(village="Hosa halli"))
        with pytest.raises(LandRecordNotFound):
            pipeline.resolve_geo("42")

    def test_missing_coordinates(self):
        pipeline = _pipeline(land=[_land(latitude=None)])
        with pytest.raises(CoordinatesUnavailableError):
            pipeline.resolve_geo("42")

    def test_picks_full_tuple_match_among_candidates(self):
        pipeline = _pipeline(
            land=[
                _land(village="Yelahanka", latitude=1.0, longitude=1.0),
                _land(latitude=2.0, longitude=3.0),
            ]
        )
        location = pipeline.resolve_geo("42")
        assert (location.latitude, location.longitude) == (2.0, 3.0)

    def test_no_writes(self):
        pipeline = _pipeline()
        pipeline.resolve_geo("42")
        assert pipeline.result_store.list_results() == []


# ═══════════════════════════════════════════════════════════════════════
# SUMMARY AND ANALYTICS
# ═══════════════════════════════════════════════════════════════════════


class TestReporting:
    def test_describe_requires_result(self):
        with pytest.raises(ResultNotFound):
            _pipeline().describe("42")

    def test_describe_uses_stored_outcomes(self):
        pipeline = _pipeline(extracted=_make_extracted(village="Elsewhere"), identity=[])
        pipeline.reconcile("42")
        summary = pipeline.describe("42")

        by_name = {f.field: f for f in summary.fields}
        assert by_name["village"].outcome == Outcome.MISMATCH
        assert by_name["village"].canonical_value == "Hosahalli"
        assert by_name["identity_name"].outcome == Outcome.UNKNOWN
        assert by_name["identity_name"].canonical_value is None

        stats = summary.statistics
        assert stats.total_fields == 11
        assert stats.known_fields == 8
        assert stats.matched_fields == 7
        assert stats.mismatched_fields == 1
        assert summary.land_details is not None
        assert summary.land_details.owner_name == "Ramesh Kumar"

    def test_risk_distribution(self):
        records = InMemoryRecordStore(
            extracted=[
                _make_extracted(submission_id="a"),
                _make_extracted(submission_id="b", identity_number="9999", tax_number="NONE", survey_number="0/0"),
                _make_extracted(
                    submission_id="c",
                    identity_name="X",
                    tax_name="X",
                    measuring_area="X",
                    village="X",
                    hobli="X",
                    taluk="X",
                    district="X",
                ),
            ],
            identity=[_identity()],
            tax=[_tax()],
            land=[_land()],
        )
        pipeline = VerificationPipeline(records, records, InMemoryResultStore())
        for submission_id in ("a", "b", "c"):
            pipeline.reconcile(submission_id)

        distribution = pipeline.risk_distribution()
        assert distribution.total == 3
        assert distribution.low == 1  # a: 0 risk
        assert distribution.high == 1  # b: nothing known, 100 risk
        assert distribution.medium == 1  # c: 4/11 matched -> risk 63.64
        assert distribution.verified == 1
        assert distribution.rejected == 2
        assert distribution.recent == 3

    def test_recent_counts_last_thirty_days(self):
        now = datetime(2025, 6, 30, tzinfo=timezone.utc)
        results = InMemoryResultStore()
        for submission_id, age in (("old", 31), ("edge", 30), ("new", 1)):
            results.upsert(
                ReconciliationResult(
                    submission_id=submission_id,
                    outcomes={name: Outcome.MATCH for name in ALL_FIELDS},
                    overall_match=True,
                    match_percentage=100.0,
                    risk_score=0.0,
                    status=VerificationStatus.VERIFIED,
                    verified_at=now - timedelta(days=age),
                )
            )
        records = InMemoryRecordStore()
        distribution = VerificationPipeline(records, records, results).risk_distribution(now=now)
        assert distribution.total == 3
        assert distribution.recent == 2


# ═══════════════════════════════════════════════════════════════════════
# SAMPLE DATA
# ═══════════════════════════════════════════════════════════════════════


class TestSampleRecords:
    def test_sample_submissions(self):
        records = load_reference_data(SAMPLE_RECORDS)
        pipeline = VerificationPipeline(records, records, InMemoryResultStore())

        verified = pipeline.reconcile("1001")
        assert verified.status == VerificationStatus.VERIFIED
        assert verified.outcomes["identity_number"] == Outcome.MATCH  # canonical has trailing space

        rejected = pipeline.reconcile("1002")
        assert rejected.outcomes["tax_name"] == Outcome.UNKNOWN
        assert rejected.outcomes["village"] == Outcome.MISMATCH

        assert pipeline.resolve_geo("1001").survey_number == "112/3"
        with pytest.raises(LandRecordNotFound):
            pipeline.resolve_geo("1002")
