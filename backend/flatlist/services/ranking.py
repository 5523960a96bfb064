"""
Distance and filter ranking.

Filters a candidate set of enriched listings by structured filters, location
keywords and an optional distance radius, then orders survivors by how many
requested filters they satisfy, most recently saved first on ties.
"""

from dataclasses import dataclass
from typing import Optional

from flatlist.models import Listing, ListingMetadata
from flatlist.services.extraction import SearchFilters
from flatlist.utils.geo import haversine_km

EQUALITY_FILTERS = {
    "noise_level": "noise_level",
    "student_friendly": "student_friendly",
    "natural_light": "natural_light",
    "floor_type": "floor_type",
    "renovation_state": "renovation_state",
}
# filter name -> (metadata column, comparison)
THRESHOLD_FILTERS = {
    "price_max": ("price", "lte"),
    "price_min": ("price", "gte"),
    "size_sqm_min": ("size_sqm", "gte"),
    "rooms_min": ("rooms", "gte"),
    "bedrooms_min": ("bedrooms", "gte"),
    "bathrooms_min": ("bathrooms", "gte"),
}


@dataclass
class ReferencePoint:
    latitude: float
    longitude: float
    max_distance_km: float
    name: Optional[str] = None


@dataclass
class RankedListing:
    listing: Listing
    metadata: ListingMetadata
    match_count: int
    distance_km: Optional[float] = None


def satisfies(metadata: ListingMetadata, name: str, expected) -> bool:
    """Whether one structured filter holds; an unknown value never satisfies."""
    if name in EQUALITY_FILTERS:
        return getattr(metadata, EQUALITY_FILTERS[name]) == expected
    column, op = THRESHOLD_FILTERS[name]
    actual = getattr(metadata, column)
    if actual is None:
        return False
    return actual <= expected if op == "lte" else actual >= expected


def matches_keywords(metadata: ListingMetadata, keywords: list[str]) -> bool:
    address = (metadata.address or "").lower()
    return any(keyword.lower() in address for keyword in keywords)


def distance_to(metadata: ListingMetadata, reference: ReferencePoint) -> Optional[float]:
    if metadata.latitude is None or metadata.longitude is None:
        return None
    return haversine_km(metadata.latitude, metadata.longitude, reference.latitude, reference.longitude)


def rank_listings(
    candidates: list[Listing],
    filters: Optional[SearchFilters] = None,
    reference: Optional[ReferencePoint] = None,
) -> list[RankedListing]:
    """
    Filter and order candidate listings.

    Args:
        candidates: Listings already in status done; those without metadata
            are excluded.
        filters: Sparse structured filters.
        reference: Resolved location and radius; listings farther away, or
            without coordinates, are dropped.

    Returns:
        Ranked listings, match count descending then saved_at descending.
    """
    requested = (filters or SearchFilters()).sparse()
    keywords = requested.pop("location_keywords", None)

    ranked = []
    for listing in candidates:
        metadata = listing.listing_metadata
        if metadata is None:
            continue

        if not all(satisfies(metadata, name, value) for name, value in requested.items()):
            continue
        match_count = len(requested)

        if keywords:
            if not matches_keywords(metadata, keywords):
                continue
            match_count += 1

        distance = None
        if reference is not None:
            distance = distance_to(metadata, reference)
            if distance is None or distance > reference.max_distance_km:
                continue
            match_count += 1

        ranked.append(RankedListing(
            listing=listing,
            metadata=metadata,
            match_count=match_count,
            distance_km=round(distance, 3) if distance is not None else None,
        ))

    # Stable sorts: recency first (unsaved last), then match count on top
    ranked.sort(key=lambda r: (r.listing.saved_at is not None, r.listing.saved_at), reverse=True)
    ranked.sort(key=lambda r: r.match_count, reverse=True)
    return ranked


def generate_explanation(
    filters: Optional[SearchFilters],
    matched_count: int,
    reference: Optional[ReferencePoint] = None,
) -> str:
    """Human-readable summary of the applied filters and result count."""
    filters = filters or SearchFilters()
    parts = []

    if filters.noise_level:
        parts.append(f"noise level: {filters.noise_level}")
    if filters.student_friendly is True:
        parts.append("student-friendly")
    if filters.natural_light:
        parts.append(f"natural light: {filters.natural_light}")
    if filters.floor_type:
        parts.append(f"{filters.floor_type} floors")
    if filters.renovation_state:
        parts.append(f"renovation: {filters.renovation_state}")
    if filters.price_max:
        parts.append(f"under {filters.price_max:g}")
    if filters.price_min:
        parts.append(f"over {filters.price_min:g}")
    if filters.size_sqm_min:
        parts.append(f"{filters.size_sqm_min:g}+ m²")
    if filters.rooms_min:
        parts.append(f"{filters.rooms_min}+ rooms")
    if filters.bedrooms_min:
        parts.append(f"{filters.bedrooms_min}+ bedrooms")
    if filters.bathrooms_min:
        parts.append(f"{filters.bathrooms_min}+ bathrooms")
    if filters.location_keywords:
        parts.append(f"near {', '.join(filters.location_keywords)}")
    if reference is not None and reference.name:
        parts.append(f"within {reference.max_distance_km:g}km from {reference.name}")

    plural = "" if matched_count == 1 else "s"
    if not parts:
        return f"Found {matched_count} listing{plural}"
    return f"Matches: {', '.join(parts)} ({matched_count} result{plural})"
