#!/usr/bin/env python3
"""
Land Verifier — Entry Point
===========================

Demonstrates reconciliation and geo-correlation on the bundled sample
records, using in-memory stores.

Usage:
    python main.py                       # Every submission in sample_records.json
    python main.py 1002                  # One submission
    LAND_VERIFIER_STRICT_DATE_EQUALITY=true python main.py
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from land_verifier.config import get_settings
from land_verifier.exceptions import VerificationError
from land_verifier.models import Outcome, VerificationStatus, VerificationSummary
from land_verifier.pipeline import VerificationPipeline
from land_verifier.stores import InMemoryResultStore, load_reference_data

load_dotenv()

DEFAULT_RECORDS = Path(__file__).parent / "sample_records.json"


# ─── ANSI Color Constants ───────────────────────────────────────────

_RED = "\033[91m"
_YELLOW = "\033[93m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"
_BOLD = "\033[1m"
_RESET = "\033[0m"
_WIDTH = 72

_OUTCOME_COLORS = {
    Outcome.MATCH: _GREEN,
    Outcome.MISMATCH: _RED,
    Outcome.UNKNOWN: _YELLOW,
}


# ─── Pretty Printer ─────────────────────────────────────────────────


def _print_fields(summary: VerificationSummary) -> None:
    for f in summary.fields:
        color = _OUTCOME_COLORS[f.outcome]
        canonical = f.canonical_value if f.canonical_value is not None else f"{_DIM}n/a{_RESET}"
        scored = "" if f.scored else f"  {_DIM}(presence){_RESET}"
        print(f"  {f.field:<20} {color}{f.outcome.value:<9}{_RESET}{f.extracted_value!s:<28} {canonical}{scored}")


def print_report(summary: VerificationSummary, geo_line: str) -> int:
    """Pretty-print one verification summary.

    Returns:
        0 if verified, 1 if rejected.
    """
    stats = summary.statistics
    print(f"\n{'=' * _WIDTH}")
    print(f"{_BOLD}{_CYAN}  SUBMISSION VERIFICATION REPORT{_RESET}")
    print(f"{'=' * _WIDTH}")
    print(f"  Submission:  {summary.submission_id}")
    print(f"  Verified at: {_DIM}{summary.verified_at.isoformat()}{_RESET}")
    print(f"{'─' * _WIDTH}")
    _print_fields(summary)
    print(f"{'─' * _WIDTH}")
    print(
        f"  Matched:     {stats.matched_fields}/{stats.known_fields} known fields "
        f"({stats.match_percentage:.2f}%), {stats.total_fields - stats.known_fields} unknown"
    )
    print(f"  Risk score:  {summary.risk_score:.2f} ({summary.risk_tier.value} risk)")
    print(f"  Location:    {geo_line}")

    if summary.land_details:
        land = summary.land_details
        print(f"  Owner:       {land.owner_name} ({land.ownership_type}, {land.land_type})")
        flags = [
            name for name in ("is_govt_restricted", "is_court_stay", "is_alienated")
            if getattr(land, name)
        ]
        if flags:
            print(f"  {_YELLOW}Encumbrance: {', '.join(flags)}{_RESET}")

    print(f"{'=' * _WIDTH}")
    if summary.status is VerificationStatus.VERIFIED:
        print(f"  {_GREEN}{_BOLD}SUBMISSION VERIFIED{_RESET}")
    else:
        print(f"  {_RED}{_BOLD}SUBMISSION REJECTED{_RESET}")
    print(f"{'=' * _WIDTH}\n")

    return 0 if summary.status is VerificationStatus.VERIFIED else 1


# ─── Main ────────────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> None:
    """Reconcile the requested submissions and print their reports."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    records = load_reference_data(settings.reference_data_path or DEFAULT_RECORDS)
    pipeline = VerificationPipeline.from_settings(settings, records, records, InMemoryResultStore())

    submission_ids = (argv if argv is not None else sys.argv[1:]) or sorted(records.extracted)
    exit_code = 0
    for submission_id in submission_ids:
        try:
            pipeline.reconcile(submission_id)
            summary = pipeline.describe(submission_id)
        except VerificationError as e:
            print(f"  {_RED}[{e.code}]{_RESET} {e.message}")
            exit_code = 1
            continue

        try:
            location = pipeline.resolve_geo(submission_id)
            geo_line = f"{location.latitude}, {location.longitude} (survey {location.survey_number})"
        except VerificationError as e:
            geo_line = f"{_DIM}[{e.code}]{_RESET}"

        exit_code = max(exit_code, print_report(summary, geo_line))

    distribution = pipeline.risk_distribution()
    print(
        f"  {_BOLD}Risk distribution:{_RESET} high={distribution.high} "
        f"medium={distribution.medium} low={distribution.low}\n"
    )
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
