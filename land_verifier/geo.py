"""
Geo-correlation — land record identity to coordinates.

Stricter than the matching engine: a canonical record is used only if ALL
six land-identity fields agree at once. A survey number that happens to
exist in another village must not leak that village's coordinates.
"""

from __future__ import annotations

import logging

from .comparator import is_blank
from .exceptions import (
    CoordinatesUnavailableError,
    ExtractedRecordNotFound,
    IncompleteInputError,
    LandRecordNotFound,
)
from .models import GeoResolution
from .stores import LAND_IDENTITY_FIELDS, CanonicalRecordStore, ExtractedRecordStore

logger = logging.getLogger(__name__)


class GeoCorrelator:
    def __init__(
        self,
        extracted_store: ExtractedRecordStore,
        canonical_store: CanonicalRecordStore,
    ):
        self.extracted_store = extracted_store
        self.canonical_store = canonical_store

    def resolve(self, submission_id: str) -> GeoResolution:
        """Resolve coordinates for a submission's land record. Read-only."""
        extracted = self.extracted_store.get_extracted(submission_id)
        if extracted is None:
            raise ExtractedRecordNotFound(submission_id)

        missing = [name for name in LAND_IDENTITY_FIELDS if is_blank(getattr(extracted, name))]
        if missing:
            raise IncompleteInputError(
                f"Land-identity fields missing from extracted data: {', '.join(missing)}",
                {"submission_id": submission_id, "missing_fields": missing},
            )

        land_identity = {name: getattr(extracted, name) for name in LAND_IDENTITY_FIELDS}
        record = self.canonical_store.find_land_exact(**land_identity)
        if record is None:
            logger.info("No canonical land record matches all fields for submission %s", submission_id)
            raise LandRecordNotFound(
                "No canonical land record matches the extracted survey number, "
                "measuring area, village, hobli, taluk and district.",
                {"submission_id": submission_id, **land_identity},
            )

        if record.latitude is None or record.longitude is None:
            raise CoordinatesUnavailableError(
                f"Latitude and longitude are not available for survey number '{record.survey_number}'.",
                {"submission_id": submission_id, "survey_number": record.survey_number},
            )

        return GeoResolution(
            latitude=record.latitude,
            longitude=record.longitude,
            survey_number=record.survey_number,
        )
