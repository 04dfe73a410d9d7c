"""
Pydantic models for submission verification.

Extracted fields are Optional throughout: `None` means the extraction step
did not produce a value, which is different from an empty string on a
canonical record. Nothing here talks to storage.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


# ─── Enumerations ────────────────────────────────────────────────────


class Outcome(str, Enum):
    """Tri-state result of a single field comparison."""

    MATCH = "MATCH"
    MISMATCH = "MISMATCH"
    UNKNOWN = "UNKNOWN"  # No canonical record to compare against

    @classmethod
    def from_bool(cls, value: Optional[bool]) -> "Outcome":
        if value is None:
            return cls.UNKNOWN
        return cls.MATCH if value else cls.MISMATCH

    def as_bool(self) -> Optional[bool]:
        if self is Outcome.UNKNOWN:
            return None
        return self is Outcome.MATCH


class Source(str, Enum):
    """Which canonical authority a field is checked against."""

    IDENTITY = "identity"
    TAX = "tax"
    LAND = "land"
    APPLICATION = "application"  # Presence-only, no canonical source


class VerificationStatus(str, Enum):
    VERIFIED = "Verified"
    REJECTED = "Rejected"


HIGH_RISK_THRESHOLD = 80.0
MEDIUM_RISK_THRESHOLD = 50.0


class RiskTier(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @classmethod
    def for_score(cls, risk_score: float) -> "RiskTier":
        """Bucket a risk score: >=80 High, 50-80 Medium, below 50 Low."""
        if risk_score >= HIGH_RISK_THRESHOLD:
            return cls.HIGH
        if risk_score >= MEDIUM_RISK_THRESHOLD:
            return cls.MEDIUM
        return cls.LOW


# ─── Extracted Data ──────────────────────────────────────────────────


class ExtractedRecord(BaseModel):
    """Fields parsed from the three uploaded documents of one submission."""

    submission_id: str

    # Identity card
    identity_name: Optional[str] = None
    identity_number: Optional[str] = None
    date_of_birth: Optional[str] = None

    # Tax card
    tax_name: Optional[str] = None
    tax_number: Optional[str] = None
    tax_date_of_birth: Optional[str] = None

    # Land encumbrance certificate
    survey_number: Optional[str] = None
    measuring_area: Optional[str] = None
    village: Optional[str] = None
    hobli: Optional[str] = None
    taluk: Optional[str] = None
    district: Optional[str] = None

    # Application form
    application_number: Optional[str] = None
    applicant_name: Optional[str] = None
    applicant_address: Optional[str] = None


# ─── Canonical Reference Data ────────────────────────────────────────


class CanonicalIdentityRecord(BaseModel):
    number: str
    name: Optional[str] = None
    date_of_birth: Optional[str] = None


class CanonicalTaxRecord(BaseModel):
    number: str
    name: Optional[str] = None
    date_of_birth: Optional[str] = None


class CanonicalLandRecord(BaseModel):
    """Land record with location and ownership/encumbrance attributes."""

    survey_number: str
    measuring_area: Optional[str] = None
    village: Optional[str] = None
    hobli: Optional[str] = None
    taluk: Optional[str] = None
    district: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    owner_name: Optional[str] = None
    extent: Optional[str] = None
    land_type: Optional[str] = None
    ownership_type: Optional[str] = None
    is_main_owner: Optional[bool] = None
    is_govt_restricted: Optional[bool] = None
    is_court_stay: Optional[bool] = None
    is_alienated: Optional[bool] = None
    any_transaction: Optional[bool] = None


# ─── Match Report ────────────────────────────────────────────────────


class FieldOutcome(BaseModel):
    """Outcome of one named field, with the values that produced it."""

    field: str
    source: Source
    outcome: Outcome
    extracted_value: Optional[str] = None
    canonical_value: Optional[str] = None
    scored: bool = True  # Presence checks are recorded but not scored


class MatchReport(BaseModel):
    """Ordered, fixed-size collection of field outcomes for one run."""

    submission_id: str
    fields: list[FieldOutcome] = Field(default_factory=list)

    def scored_fields(self) -> list[FieldOutcome]:
        return [f for f in self.fields if f.scored]

    def outcome(self, field: str) -> Outcome:
        for f in self.fields:
            if f.field == field:
                return f.outcome
        raise KeyError(field)

    def outcomes(self) -> dict[str, Outcome]:
        return {f.field: f.outcome for f in self.fields}


class ScoreResult(BaseModel):
    """Aggregate of a match report."""

    match_percentage: float
    risk_score: float
    overall_match: bool
    status: VerificationStatus
    risk_tier: RiskTier
    known: int
    matched: int


# ─── Persisted Result ────────────────────────────────────────────────


class ReconciliationResult(BaseModel):
    """The single stored verification result for a submission."""

    submission_id: str
    outcomes: dict[str, Outcome]
    overall_match: bool
    match_percentage: float
    risk_score: float
    status: VerificationStatus
    verified_at: datetime

    @property
    def risk_tier(self) -> RiskTier:
        return RiskTier.for_score(self.risk_score)


# ─── Geo Resolution ──────────────────────────────────────────────────


class GeoResolution(BaseModel):
    latitude: float
    longitude: float
    survey_number: str


# ─── Reporting ───────────────────────────────────────────────────────


class VerificationStatistics(BaseModel):
    total_fields: int
    known_fields: int
    matched_fields: int
    mismatched_fields: int
    match_percentage: float


class VerificationSummary(BaseModel):
    """Stored result joined with the values it was computed from."""

    submission_id: str
    status: VerificationStatus
    overall_match: bool
    risk_score: float
    risk_tier: RiskTier
    verified_at: datetime
    fields: list[FieldOutcome]
    statistics: VerificationStatistics
    land_details: Optional[CanonicalLandRecord] = None


class RiskDistribution(BaseModel):
    high: int = 0
    medium: int = 0
    low: int = 0
    verified: int = 0
    rejected: int = 0
    recent: int = 0
    total: int = 0
