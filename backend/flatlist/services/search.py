"""
Natural-language listing search.

detect location phrase -> geocode phrase -> parse remaining filters ->
rank the user's enriched listings -> explanation text.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from flatlist.core.exceptions import InferenceError
from flatlist.models import EnrichmentStatus, Listing
from flatlist.services.extraction import ParsedQuery, parse_filters
from flatlist.services.geocoding_resolver import GeocodingResolver
from flatlist.services.inference import InferenceClient
from flatlist.services.location_detection import LocationDetectionResult, LocationDetector, no_location
from flatlist.services.ranking import RankedListing, ReferencePoint, generate_explanation, rank_listings

logger = logging.getLogger(__name__)


@dataclass
class SearchOutcome:
    query: str
    location: LocationDetectionResult
    parsed: ParsedQuery
    reference: Optional[ReferencePoint]
    results: list[RankedListing]
    explanation: str


def searchable_listings(db: Session, user_id: str) -> list[Listing]:
    return db.query(Listing).options(selectinload(Listing.listing_metadata)).filter(
        Listing.user_id == user_id,
        Listing.enrichment_status == EnrichmentStatus.DONE,
    ).all()


class SearchService:
    def __init__(self, inference: InferenceClient, detector: LocationDetector, resolver: GeocodingResolver):
        self.inference = inference
        self.detector = detector
        self.resolver = resolver

    async def detect_location(self, query: str) -> LocationDetectionResult:
        """Location detection that degrades to "no location" on upstream failure."""
        try:
            return await self.detector.detect(query)
        except InferenceError as e:
            logger.warning(f"Location detection failed for '{query}': {e}")
            return no_location(query)

    async def resolve_reference(
        self,
        location: LocationDetectionResult,
        distance_km: Optional[float] = None,
    ) -> Optional[ReferencePoint]:
        if not location.has_location or not location.detected_location:
            return None
        result = await self.resolver.resolve_phrase(location.detected_location)
        if result is None:
            logger.info(f"Distance filtering disabled: could not resolve '{location.detected_location}'")
            return None
        return ReferencePoint(
            latitude=result.latitude,
            longitude=result.longitude,
            max_distance_km=distance_km or location.default_distance,
            name=location.display_name or location.detected_location,
        )

    async def search(
        self,
        db: Session,
        user_id: str,
        query: str,
        distance_km: Optional[float] = None,
    ) -> SearchOutcome:
        query = (query or "").strip()
        location = await self.detect_location(query)
        reference = await self.resolve_reference(location, distance_km)

        filter_text = location.remaining_query if location.has_location else query
        parsed = await parse_filters(self.inference, filter_text)

        results = rank_listings(searchable_listings(db, user_id), parsed.filters, reference)
        explanation = generate_explanation(parsed.filters, len(results), reference)
        logger.info(f"Search '{query}' for user {user_id}: {len(results)} results")

        return SearchOutcome(
            query=query,
            location=location,
            parsed=parsed,
            reference=reference,
            results=results,
            explanation=explanation,
        )
