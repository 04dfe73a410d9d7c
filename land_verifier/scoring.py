"""
Risk scoring — turns a set of field outcomes into a verdict.

Rules:
  - Only fields with a known outcome (MATCH or MISMATCH) count. UNKNOWN
    shrinks the denominator; it never counts as a mismatch.
  - percentage = matched / known * 100, or 0 when nothing is known.
  - The submission passes when percentage >= pass threshold (70 by default).
  - risk score = 100 - percentage.
  - Percentage and risk score are rounded to 2 decimals first; the verdict
    and the risk tier are read from the rounded values.

Every field weighs the same by default. A weight strategy can be injected
to make, say, an identity-number mismatch cost more than a hobli mismatch;
with EqualWeights the result is the plain unweighted rule.
"""

from __future__ import annotations

import math
from typing import Iterable, Mapping, Optional, Protocol, Union

from .models import (
    FieldOutcome,
    Outcome,
    RiskTier,
    ScoreResult,
    VerificationStatus,
)

DEFAULT_PASS_THRESHOLD = 70.0

ScorableItem = Union[FieldOutcome, Outcome]


# ─── Weight Strategies ───────────────────────────────────────────────


class WeightStrategy(Protocol):
    def weight(self, field: Optional[str]) -> float: ...


class EqualWeights:
    """Every field contributes 1."""

    def weight(self, field: Optional[str]) -> float:
        return 1.0


class FieldWeights:
    """Per-field weights; unlisted (or unnamed) fields get ``default``."""

    def __init__(self, weights: Mapping[str, float], default: float = 1.0):
        self.weights = dict(weights)
        self.default = default

    def weight(self, field: Optional[str]) -> float:
        if field is None:
            return self.default
        return self.weights.get(field, self.default)


# ─── Scorer ──────────────────────────────────────────────────────────


class RiskScorer:
    """Aggregates field outcomes into percentage, risk score and status."""

    def __init__(
        self,
        weights: WeightStrategy | None = None,
        pass_threshold: float = DEFAULT_PASS_THRESHOLD,
    ):
        self.weights = weights or EqualWeights()
        self.pass_threshold = pass_threshold

    def score(self, outcomes: Iterable[ScorableItem]) -> ScoreResult:
        """Score outcomes. The order of ``outcomes`` does not matter.

        Accepts bare ``Outcome`` values (weighted with the strategy's
        default) or ``FieldOutcome`` objects (weighted by field name).
        """
        known_weights: list[float] = []
        matched_weights: list[float] = []
        known = matched = 0

        for item in outcomes:
            field, outcome = _unpack(item)
            if outcome is Outcome.UNKNOWN:
                continue
            weight = self.weights.weight(field)
            known += 1
            known_weights.append(weight)
            if outcome is Outcome.MATCH:
                matched += 1
                matched_weights.append(weight)

        # fsum is exact, so summation order cannot change the result
        known_total = math.fsum(known_weights)
        matched_total = math.fsum(matched_weights)
        percentage = matched_total * 100 / known_total if known_total > 0 else 0.0

        # Verdict and tier read the stored, rounded figures
        percentage = round(percentage, 2)
        risk_score = round(100.0 - percentage, 2)
        overall_match = percentage >= self.pass_threshold
        return ScoreResult(
            match_percentage=percentage,
            risk_score=risk_score,
            overall_match=overall_match,
            status=VerificationStatus.VERIFIED if overall_match else VerificationStatus.REJECTED,
            risk_tier=RiskTier.for_score(risk_score),
            known=known,
            matched=matched,
        )


def _unpack(item: ScorableItem) -> tuple[Optional[str], Outcome]:
    if isinstance(item, FieldOutcome):
        return item.field, item.outcome
    return None, Outcome(item)
