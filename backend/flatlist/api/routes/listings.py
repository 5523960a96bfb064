"""
Listing API endpoints.

Saving a listing, following its enrichment status and (re)triggering
enrichment. The save step only enqueues work; terminal status is reported
through the listing record, never through the save response.
"""

import logging
from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flatlist.api.deps import get_pipeline, get_user_id, http_error
from flatlist.core.database import get_db
from flatlist.core.exceptions import InvalidRequestError, ListingAlreadyExistsError, ListingNotFoundError
from flatlist.models import EnrichmentStatus, Listing
from flatlist.services.pipeline import Pipeline
from flatlist.services.task_queue import TaskReceipt
from flatlist.utils.formatting import format_price, format_size, is_rental, normalize_images

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/listings", tags=["listings"])


# =============================================================================
# Request/Response Models
# =============================================================================

class ListingCreate(BaseModel):
    """Request model for saving a scraped listing."""
    url: str
    content: str
    title: Optional[str] = None
    catalog_id: Optional[str] = None
    images: Optional[Any] = None  # list of URLs or a JSON-encoded list


class TaskReceiptResponse(BaseModel):
    task_id: str
    queue: str
    submitted_at: datetime


class ListingSavedResponse(BaseModel):
    listing_id: str
    enrichment_status: EnrichmentStatus
    task: TaskReceiptResponse


class ListingMetadataResponse(BaseModel):
    price: Optional[float]
    currency: Optional[str]
    address: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]
    size_sqm: Optional[float]
    size_unit: Optional[str]
    rooms: Optional[int]
    bedrooms: Optional[int]
    bathrooms: Optional[int]
    beds_single: Optional[int]
    beds_double: Optional[int]
    furnishing: Optional[str]
    condo_fees: Optional[float]
    listing_type: Optional[str]
    student_friendly: Optional[bool]
    floor_type: Optional[str]
    natural_light: Optional[str]
    noise_level: Optional[str]
    renovation_state: Optional[str]
    pet_friendly: Optional[bool]
    balcony: Optional[bool]
    vibe_tags: Optional[List[str]]
    evidence: Optional[dict]

    class Config:
        from_attributes = True


class ListingStatusResponse(BaseModel):
    listing_id: str
    enrichment_status: EnrichmentStatus
    has_metadata: bool
    display_price: Optional[str] = None
    display_size: Optional[str] = None
    metadata: Optional[ListingMetadataResponse] = None


class EnrichmentResultResponse(BaseModel):
    listing_id: str
    enrichment_status: EnrichmentStatus
    geocoded: bool = False
    error: Optional[str] = None


def receipt_response(receipt: TaskReceipt) -> TaskReceiptResponse:
    return TaskReceiptResponse(task_id=receipt.task_id, queue=receipt.queue, submitted_at=receipt.submitted_at)


def get_user_listing(db: Session, user_id: str, listing_id: str) -> Listing:
    listing = db.get(Listing, listing_id)
    if listing is None or listing.user_id != user_id:
        raise http_error(ListingNotFoundError(listing_id))
    return listing


def create_listing(db: Session, user_id: str, data: ListingCreate) -> Listing:
    """
    Insert a new pending listing.

    Raises:
        InvalidRequestError: url or content missing.
        ListingAlreadyExistsError: the user already saved this url.
    """
    url = (data.url or "").strip()
    content = (data.content or "").strip()
    if not url or not content:
        raise InvalidRequestError("Missing required fields: url and content")

    existing = db.query(Listing).filter(Listing.user_id == user_id, Listing.source_url == url).first()
    if existing:
        raise ListingAlreadyExistsError(existing.id, url)

    listing = Listing(
        user_id=user_id,
        catalog_id=data.catalog_id,
        source_url=url,
        title=data.title,
        raw_content=content,
        images=normalize_images(data.images),
        enrichment_status=EnrichmentStatus.PENDING,
    )
    db.add(listing)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent save of the same url
        db.rollback()
        existing = db.query(Listing).filter(Listing.user_id == user_id, Listing.source_url == url).first()
        if existing is None:
            raise
        raise ListingAlreadyExistsError(existing.id, url)
    db.refresh(listing)
    return listing


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/", response_model=ListingSavedResponse, status_code=202)
def save_listing(
    data: ListingCreate,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """
    Save a scraped listing and queue it for enrichment.

    Returns 409 with the existing listing id if this url was already saved.
    """
    try:
        listing = create_listing(db, user_id, data)
    except (InvalidRequestError, ListingAlreadyExistsError) as e:
        raise http_error(e)

    receipt = pipeline.submit_enrichment(listing.id)
    logger.info(f"Saved listing {listing.id} for user {user_id}")

    return ListingSavedResponse(
        listing_id=listing.id,
        enrichment_status=listing.enrichment_status,
        task=receipt_response(receipt),
    )


@router.get("/{listing_id}/status", response_model=ListingStatusResponse)
def get_listing_status(
    listing_id: str,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    """Get the enrichment status of a listing, with its metadata once done."""
    listing = get_user_listing(db, user_id, listing_id)
    metadata = listing.listing_metadata

    response = ListingStatusResponse(
        listing_id=listing.id,
        enrichment_status=listing.enrichment_status,
        has_metadata=metadata is not None,
    )
    if metadata is not None:
        rent = is_rental(listing.raw_content, listing.title, metadata.listing_type)
        response.metadata = ListingMetadataResponse.model_validate(metadata)
        response.display_price = format_price(metadata.price, rent, metadata.currency)
        response.display_size = format_size(metadata.size_sqm, metadata.size_unit)
    return response


@router.post("/{listing_id}/enrich", response_model=ListingSavedResponse, status_code=202)
def trigger_enrichment(
    listing_id: str,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """
    Reset a listing to pending and queue it for enrichment.

    This is how failed listings are retried; failure is never self-healing.
    """
    listing = get_user_listing(db, user_id, listing_id)
    listing.enrichment_status = EnrichmentStatus.PENDING
    db.commit()

    receipt = pipeline.submit_enrichment(listing.id)
    return ListingSavedResponse(
        listing_id=listing.id,
        enrichment_status=EnrichmentStatus.PENDING,
        task=receipt_response(receipt),
    )


@router.post("/{listing_id}/enrich/sync", response_model=EnrichmentResultResponse)
async def enrich_listing_now(
    listing_id: str,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Run enrichment inline; 502 when the listing ends up failed."""
    get_user_listing(db, user_id, listing_id)

    outcome = await pipeline.enrichment.enrich(listing_id)
    if not outcome.succeeded:
        raise HTTPException(
            status_code=502,
            detail={"error": "Enrichment failed", "listing_id": listing_id, "details": outcome.error},
        )

    return EnrichmentResultResponse(
        listing_id=outcome.listing_id,
        enrichment_status=outcome.status,
        geocoded=outcome.geocoded,
    )
