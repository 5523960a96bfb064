"""
Enrichment orchestrator.

Owns the listing status state machine:

    pending -> processing -> done | failed

``processing`` is written before any inference call, so a crash mid-run
leaves the listing visibly stuck rather than silently pending. ``failed`` is
terminal until something outside (the trigger endpoint, the retry script)
resets the listing to pending. There is no per-listing lock: two concurrent
runs for the same listing both write metadata and the last one wins.
"""

import logging
from typing import Callable, Optional

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from flatlist.core.config import settings
from flatlist.core.database import get_session_local
from flatlist.core.exceptions import FlatlistError, ListingNotFoundError
from flatlist.models import EnrichmentStatus, Listing, ListingMetadata
from flatlist.services import images
from flatlist.services.country_detector import detect_country
from flatlist.services.extraction import ExtractedMetadata, extract_metadata
from flatlist.services.geocoding_resolver import GeocodingResolver
from flatlist.services.inference import InferenceClient
from flatlist.utils.text import truncate_content

logger = logging.getLogger(__name__)


class EnrichmentOutcome(BaseModel):
    listing_id: str
    status: EnrichmentStatus
    geocoded: bool = False
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == EnrichmentStatus.DONE


def set_status(db: Session, listing: Listing, status: EnrichmentStatus) -> None:
    """Idempotent status write; commits immediately."""
    listing.enrichment_status = status
    db.commit()
    logger.info(f"Listing {listing.id} -> {status.value}")


def write_metadata(
    db: Session,
    listing: Listing,
    extracted: ExtractedMetadata,
    latitude: Optional[float],
    longitude: Optional[float],
) -> ListingMetadata:
    """Replace every metadata column; fields missing from this run become NULL/defaults."""
    metadata = listing.listing_metadata
    if metadata is None:
        metadata = ListingMetadata(listing_id=listing.id)
        db.add(metadata)
        listing.listing_metadata = metadata

    for field, value in extracted.model_dump().items():
        setattr(metadata, field, value)
    metadata.latitude = latitude
    metadata.longitude = longitude
    return metadata


class EnrichmentOrchestrator:
    def __init__(
        self,
        inference: InferenceClient,
        resolver: GeocodingResolver,
        session_factory: Optional[Callable[[], Session]] = None,
        content_limit: Optional[int] = None,
    ):
        self.inference = inference
        self.resolver = resolver
        self.session_factory = session_factory or get_session_local()
        self.content_limit = content_limit or settings.ENRICHMENT_CONTENT_LIMIT

    async def enrich(self, listing_id: str) -> EnrichmentOutcome:
        """
        Run one enrichment pass for a listing.

        Any failure after the listing is marked processing is recorded as
        status=failed and reported in the outcome rather than raised. Errors
        before that point (e.g. the database is unreachable) propagate so the
        task queue can re-deliver.
        """
        db = self.session_factory()
        try:
            return await self._enrich(db, listing_id)
        finally:
            db.close()

    async def _enrich(self, db: Session, listing_id: str) -> EnrichmentOutcome:
        listing = db.get(Listing, listing_id)
        if listing is None:
            error = ListingNotFoundError(listing_id)
            logger.error(str(error))
            return EnrichmentOutcome(listing_id=listing_id, status=EnrichmentStatus.FAILED, error=str(error))

        set_status(db, listing, EnrichmentStatus.PROCESSING)

        try:
            content = truncate_content(listing.raw_content or "", self.content_limit)
            logger.info(f"Enriching listing {listing_id}: {len(content)} chars, {len(listing.images or [])} images")
            payloads = await images.fetch_images(listing.images)
            extracted = await extract_metadata(self.inference, content, payloads)

            latitude = longitude = None
            if extracted.address:
                latitude, longitude = await self._geocode(extracted.address)

            write_metadata(db, listing, extracted, latitude, longitude)
            set_status(db, listing, EnrichmentStatus.DONE)
            return EnrichmentOutcome(
                listing_id=listing_id,
                status=EnrichmentStatus.DONE,
                geocoded=latitude is not None,
            )
        except (FlatlistError, SQLAlchemyError) as e:
            logger.error(f"Enrichment failed for listing {listing_id}: {e}")
            error = str(e)
        except Exception as e:
            logger.error(f"Unexpected error enriching listing {listing_id}: {type(e).__name__}: {e}")
            error = f"{type(e).__name__}: {e}"

        # Once failed is committed the run is over; only an explicit reset re-runs it
        db.rollback()
        set_status(db, listing, EnrichmentStatus.FAILED)
        return EnrichmentOutcome(listing_id=listing_id, status=EnrichmentStatus.FAILED, error=error)

    async def _geocode(self, address: str) -> tuple[Optional[float], Optional[float]]:
        """Best-effort: any failure leaves the coordinates empty."""
        country = detect_country(address)
        try:
            result = await self.resolver.resolve_address(address, country)
        except Exception as e:
            logger.warning(f"Geocoding failed for '{address}' (non-critical): {e}")
            return None, None
        if result is None:
            return None, None
        return result.latitude, result.longitude
