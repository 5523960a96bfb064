"""
Preference match scoring.

Scores one enriched listing against a user's dream apartment description
and upserts the result into listing_comparisons, keyed by (listing, user).
"""

import logging
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from flatlist.core.config import settings
from flatlist.models import Listing, ListingComparison
from flatlist.services import images
from flatlist.services.extraction import to_number
from flatlist.services.inference import InferenceClient
from flatlist.utils.text import truncate_content

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an expert real estate assistant evaluating how well an apartment listing matches a user's dream apartment description.

Your task is to:
1. Carefully analyze the user's dream apartment description to understand what they're looking for
2. Compare the listing details, images, and location against those preferences
3. Provide a match score from 0 to 100 where:
   - 0-20: Poor match, very few preferences satisfied
   - 21-40: Below average, some basic criteria met
   - 41-60: Average match, several preferences met but key ones missing
   - 61-80: Good match, most preferences satisfied
   - 81-100: Excellent match, nearly all preferences satisfied
4. Write a 2-3 sentence summary explaining HOW this listing compares to the user's vision

Consider location, size and layout, style and condition, amenities, price range and any deal-breakers the user mentions.

Return ONLY valid JSON in this exact format:
{
  "score": 75,
  "summary": "This apartment offers the bright, modern feel you want. It is slightly above budget and lacks a balcony, but the location near the metro fits well."
}"""


class ComparisonResult(BaseModel):
    listing_id: str
    success: bool
    score: Optional[int] = None
    error: Optional[str] = None


def clamp_score(value) -> int:
    number = to_number(value)
    return max(0, min(100, round(number or 0)))


def location_summary(listing: Listing) -> str:
    metadata = listing.listing_metadata
    if not metadata or not metadata.address:
        return ""
    summary = f"Address: {metadata.address}"
    if metadata.latitude is not None and metadata.longitude is not None:
        summary += f" (Coordinates: {metadata.latitude}, {metadata.longitude})"
    return summary


def facts_summary(listing: Listing) -> str:
    metadata = listing.listing_metadata
    if not metadata:
        return ""
    lines = []
    if metadata.price:
        lines.append(f"Price: {metadata.price}{' ' + metadata.currency if metadata.currency else ''}")
    if metadata.size_sqm:
        lines.append(f"Size: {metadata.size_sqm} sqm")
    if metadata.rooms:
        lines.append(f"Rooms: {metadata.rooms}")
    if metadata.bedrooms:
        lines.append(f"Bedrooms: {metadata.bedrooms}")
    if metadata.bathrooms:
        lines.append(f"Bathrooms: {metadata.bathrooms}")
    return "\n".join(lines)


def build_prompt(listing: Listing, description: str, content_limit: int) -> str:
    return (
        f"## User's Dream Apartment Description:\n{description}\n\n"
        f"## Listing Details:\n{facts_summary(listing)}\n{location_summary(listing)}\n\n"
        f"## Full Listing Content:\n{truncate_content(listing.raw_content or '', content_limit)}"
    )


class MatchScorer:
    def __init__(self, inference: InferenceClient, content_limit: Optional[int] = None):
        self.inference = inference
        self.content_limit = content_limit or settings.COMPARISON_CONTENT_LIMIT

    async def score(self, db: Session, listing: Listing, user_id: str, description: str) -> ListingComparison:
        """
        Score a listing and upsert the comparison row.

        Raises:
            InferenceError: if the inference call fails or returns bad JSON.
        """
        payloads = await images.fetch_images(listing.images)
        data = await self.inference.complete_json(
            system=SYSTEM_PROMPT,
            prompt=build_prompt(listing, description, self.content_limit),
            images=payloads,
            max_tokens=300,
        )

        score = clamp_score(data.get("score"))
        summary = str(data.get("summary") or "").strip()

        comparison = db.query(ListingComparison).filter(
            ListingComparison.listing_id == listing.id,
            ListingComparison.user_id == user_id,
        ).first()
        if comparison is None:
            comparison = ListingComparison(listing_id=listing.id, user_id=user_id)
            db.add(comparison)
        comparison.match_score = score
        comparison.comparison_summary = summary
        db.commit()

        logger.info(f"Scored listing {listing.id} for user {user_id}: {score}")
        return comparison
