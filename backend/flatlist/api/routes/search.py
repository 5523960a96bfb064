"""
Search API endpoints.

Natural-language search over a user's enriched listings, plus the
individual steps (location detection, filter parsing, phrase geocoding)
for clients that drive the pipeline themselves.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from flatlist.api.deps import get_pipeline, get_user_id, http_error
from flatlist.core.database import get_db
from flatlist.core.exceptions import InferenceError
from flatlist.services.extraction import parse_filters
from flatlist.services.location_detection import LocationDetectionResult
from flatlist.services.pipeline import Pipeline
from flatlist.utils.formatting import format_price, format_size, is_rental

router = APIRouter(prefix="/search", tags=["search"])


# =============================================================================
# Request/Response Models
# =============================================================================

class QueryRequest(BaseModel):
    query: str


class SearchRequest(BaseModel):
    query: str
    distance_km: Optional[float] = None


class ParsedQueryResponse(BaseModel):
    filters: dict
    explanation: str


class GeocodeResponse(BaseModel):
    query: str
    latitude: float
    longitude: float
    display_name: str


class ReferencePointResponse(BaseModel):
    name: Optional[str]
    latitude: float
    longitude: float
    max_distance_km: float


class SearchResultItem(BaseModel):
    listing_id: str
    title: Optional[str]
    source_url: str
    address: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]
    display_price: Optional[str]
    display_size: Optional[str]
    match_count: int
    distance_km: Optional[float]


class SearchResponse(BaseModel):
    query: str
    location: LocationDetectionResult
    filters: dict
    reference: Optional[ReferencePointResponse]
    explanation: str
    total: int
    results: List[SearchResultItem]


def require_query(query: str) -> str:
    if not query or not query.strip():
        raise HTTPException(status_code=400, detail="Query is required")
    return query.strip()


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/detect-location", response_model=LocationDetectionResult)
async def detect_location(request: QueryRequest, pipeline: Pipeline = Depends(get_pipeline)):
    """Split a query into a location phrase and the remaining filter text."""
    query = require_query(request.query)
    try:
        return await pipeline.detector.detect(query)
    except InferenceError as e:
        raise http_error(e)


@router.post("/parse-query", response_model=ParsedQueryResponse)
async def parse_query(request: QueryRequest, pipeline: Pipeline = Depends(get_pipeline)):
    """Parse free text into sparse structured filters."""
    parsed = await parse_filters(pipeline.inference, require_query(request.query))
    return ParsedQueryResponse(filters=parsed.filters.sparse(), explanation=parsed.explanation)


@router.get("/geocode", response_model=GeocodeResponse)
async def geocode_phrase(
    q: str = Query(..., description="Location phrase, e.g. 'Susa metro station Milan'"),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Resolve a colloquial location phrase to coordinates (cached per process)."""
    query = require_query(q)
    result = await pipeline.resolver.resolve_phrase(query)
    if result is None:
        raise HTTPException(status_code=404, detail="Location not found")
    return GeocodeResponse(
        query=query,
        latitude=result.latitude,
        longitude=result.longitude,
        display_name=result.display_name,
    )


@router.get("/geocode/cache")
def geocode_cache_stats(pipeline: Pipeline = Depends(get_pipeline)):
    """Statistics of the in-process geocode cache."""
    return pipeline.cache.stats()


@router.post("/", response_model=SearchResponse)
async def search_listings(
    request: SearchRequest,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """
    Full search: detect location, geocode it, parse filters, rank the
    user's enriched listings and explain the result.
    """
    outcome = await pipeline.search.search(db, user_id, require_query(request.query), request.distance_km)

    items = []
    for ranked in outcome.results:
        listing, metadata = ranked.listing, ranked.metadata
        rent = is_rental(listing.raw_content, listing.title, metadata.listing_type)
        items.append(SearchResultItem(
            listing_id=listing.id,
            title=listing.title,
            source_url=listing.source_url,
            address=metadata.address,
            latitude=metadata.latitude,
            longitude=metadata.longitude,
            display_price=format_price(metadata.price, rent, metadata.currency),
            display_size=format_size(metadata.size_sqm, metadata.size_unit),
            match_count=ranked.match_count,
            distance_km=ranked.distance_km,
        ))

    reference = None
    if outcome.reference is not None:
        reference = ReferencePointResponse(
            name=outcome.reference.name,
            latitude=outcome.reference.latitude,
            longitude=outcome.reference.longitude,
            max_distance_km=outcome.reference.max_distance_km,
        )

    return SearchResponse(
        query=outcome.query,
        location=outcome.location,
        filters=outcome.parsed.filters.sparse(),
        reference=reference,
        explanation=outcome.explanation,
        total=len(items),
        results=items,
    )
