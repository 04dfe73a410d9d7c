"""
Land Verifier — FastAPI Server
==============================

RESTful API over the verification pipeline.

Endpoints:
    POST /verify/{submission_id}                Reconcile a submission (idempotent)
    GET  /geolocation/{submission_id}           Resolve land coordinates
    GET  /verification-results/{submission_id}  Stored result with field details
    GET  /analytics                             Risk tier / status distribution
    GET  /health                                Health check / readiness probe

Run:
    uvicorn api:app --reload              # Dev (http://localhost:8000)
    uvicorn api:app --host 0.0.0.0        # Production

Docs:
    http://localhost:8000/docs             # Swagger UI (auto-generated)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from land_verifier import __version__
from land_verifier.config import get_settings
from land_verifier.database import get_session_factory, init_database
from land_verifier.exceptions import VerificationError
from land_verifier.models import (
    GeoResolution,
    Outcome,
    ReconciliationResult,
    RiskDistribution,
    RiskTier,
    VerificationStatus,
    VerificationSummary,
)
from land_verifier.pipeline import VerificationPipeline
from land_verifier.sql_stores import SqlRecordStore, SqlResultStore

load_dotenv()

logger = logging.getLogger(__name__)

# Error code → HTTP status
_STATUS_BY_CODE: dict[str, int] = {
    "EXTRACTION_NOT_FOUND": 404,
    "LAND_RECORD_NOT_FOUND": 404,
    "RESULT_NOT_FOUND": 404,
    "INCOMPLETE_INPUT": 400,
    "COORDINATES_UNAVAILABLE": 400,
    "STORE_FAILURE": 500,
}


# ─── Application Lifespan ───────────────────────────────────────────

_pipeline: VerificationPipeline | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database and build the pipeline on startup."""
    global _pipeline  # noqa: PLW0603
    settings = get_settings()
    engine = init_database(settings.database_url)
    session_factory = get_session_factory(engine)
    records = SqlRecordStore(session_factory)
    _pipeline = VerificationPipeline.from_settings(
        settings, records, records, SqlResultStore(session_factory)
    )
    yield
    _pipeline = None
    engine.dispose()


app = FastAPI(
    title="Land Verifier API",
    description=(
        "Reconciles extracted identity, tax and land-certificate fields against "
        "canonical records, scores the risk, and resolves land coordinates."
    ),
    version=__version__,
    lifespan=lifespan,
)


# ─── Response Schemas ───────────────────────────────────────────────


class VerifyResponse(BaseModel):
    submission_id: str
    status: VerificationStatus
    overall_match: bool
    match_percentage: float
    risk_score: float
    risk_tier: RiskTier
    verified_at: datetime
    outcomes: dict[str, Outcome]


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict


class HealthResponse(BaseModel):
    status: str
    version: str


# ─── Helpers ─────────────────────────────────────────────────────────


def _get_pipeline() -> VerificationPipeline:
    if _pipeline is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialised")
    return _pipeline


def _build_response(result: ReconciliationResult) -> VerifyResponse:
    return VerifyResponse(
        submission_id=result.submission_id,
        status=result.status,
        overall_match=result.overall_match,
        match_percentage=result.match_percentage,
        risk_score=result.risk_score,
        risk_tier=result.risk_tier,
        verified_at=result.verified_at,
        outcomes=result.outcomes,
    )


@app.exception_handler(VerificationError)
async def verification_error_handler(request: Request, exc: VerificationError) -> JSONResponse:
    status_code = _STATUS_BY_CODE.get(exc.code, 500)
    if status_code >= 500:
        logger.error("%s %s failed: [%s] %s", request.method, request.url.path, exc.code, exc.message)
    body = ErrorResponse(code=exc.code, message=exc.message, details=exc.details)
    return JSONResponse(status_code=status_code, content=body.model_dump())


# ─── Endpoints ───────────────────────────────────────────────────────


_ERRORS = {
    404: {"model": ErrorResponse, "description": "Extracted or canonical record not found"},
    500: {"model": ErrorResponse, "description": "Store failure"},
    503: {"description": "Pipeline not yet initialised"},
}


@app.post(
    "/verify/{submission_id}",
    summary="Verify a submission against canonical records",
    tags=["Verification"],
    responses=_ERRORS,
)
def verify_submission(submission_id: str) -> VerifyResponse:
    """Compare extracted fields with canonical records and store the result.

    Safe to call repeatedly: each call replaces the stored result for the
    submission.
    """
    result = _get_pipeline().reconcile(submission_id)
    return _build_response(result)


@app.get(
    "/geolocation/{submission_id}",
    summary="Resolve land coordinates",
    tags=["Verification"],
    responses={
        **_ERRORS,
        400: {"model": ErrorResponse, "description": "Incomplete input or coordinates unavailable"},
    },
)
def get_geolocation(submission_id: str) -> GeoResolution:
    """Look up coordinates by exact match on all six land-identity fields."""
    return _get_pipeline().resolve_geo(submission_id)


@app.get(
    "/verification-results/{submission_id}",
    summary="Stored verification result with field details",
    tags=["Verification"],
    responses=_ERRORS,
)
def get_verification_results(submission_id: str) -> VerificationSummary:
    return _get_pipeline().describe(submission_id)


@app.get(
    "/analytics",
    summary="Risk and status distribution",
    tags=["Reporting"],
    responses={500: _ERRORS[500], 503: _ERRORS[503]},
)
def get_analytics() -> RiskDistribution:
    return _get_pipeline().risk_distribution()


@app.get(
    "/health",
    summary="Health check",
    tags=["System"],
    responses={503: {"description": "Pipeline not yet initialised"}},
)
def health_check() -> HealthResponse:
    """Returns service status and version."""
    _get_pipeline()
    return HealthResponse(status="healthy", version=__version__)
