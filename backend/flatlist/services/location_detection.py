"""
Location phrase extraction for search queries.

Decides whether a free-text query embeds a location ("near Susa metro",
"within 2km of central station") and splits it into a geocodable phrase and
the remaining filter text. Cheap checks run first so most queries never
reach the inference service.
"""

import logging
import re
from typing import Optional

from pydantic import BaseModel

from flatlist.core.config import settings
from flatlist.services.extraction import to_bool
from flatlist.services.inference import InferenceClient

logger = logging.getLogger(__name__)

LOCATION_KEYWORDS = [
    "near", "close to", "by ", "next to", "around", "within", "from ",
    "metro", "station", "university", "università", "politecnico",
    "bocconi", "cattolica", "bicocca", "central", "centrale",
]
METRO_LINE_RE = re.compile(r"\bm[1-5]\b")

SYSTEM_PROMPT = """You are a location extractor for apartment search queries. Your ONLY job is to detect if the query mentions a specific location (metro station, university, landmark, neighborhood, address) and extract it.

RESPOND ONLY WITH JSON in this exact format:
{
  "hasLocation": true/false,
  "detectedLocation": "Full geocodable string with city/country" or null,
  "displayName": "Location name with city" or null,
  "city": "City name" or null,
  "remainingQuery": "Query with location phrase removed",
  "defaultDistance": 1.5
}

EXAMPLES:

Query: "flat near susa metro 2 beds"
Response: {"hasLocation": true, "detectedLocation": "Susa Metro Station Milan Italy", "displayName": "Susa Metro Station, Milan", "city": "Milan", "remainingQuery": "flat 2 beds", "defaultDistance": 1.5}

Query: "apartment close to bocconi university under 900"
Response: {"hasLocation": true, "detectedLocation": "Bocconi University Milan Italy", "displayName": "Bocconi University, Milan", "city": "Milan", "remainingQuery": "apartment under 900", "defaultDistance": 1.5}

Query: "quiet studio within 2km of central station in rome"
Response: {"hasLocation": true, "detectedLocation": "Central Station Rome Italy", "displayName": "Central Station, Rome", "city": "Rome", "remainingQuery": "quiet studio", "defaultDistance": 2}

Query: "2 bedroom apartment under 1000"
Response: {"hasLocation": false, "detectedLocation": null, "displayName": null, "city": null, "remainingQuery": "2 bedroom apartment under 1000", "defaultDistance": 1.5}

Query: "near m4 line bright apartment in milano"
Response: {"hasLocation": true, "detectedLocation": "M4 Metro Line Milan Italy", "displayName": "M4 Metro Line, Milan", "city": "Milan", "remainingQuery": "bright apartment", "defaultDistance": 1.5}

RULES:
- Location phrases include: "near X", "close to X", "within X km of Y", "by X", "next to X", "around X", "in X"
- Metro lines (M1, M2, M3, M4, M5), stations, universities, landmarks are locations
- If distance is mentioned (e.g., "within 2km"), use that as defaultDistance
- If no distance mentioned, defaultDistance is 1.5
- ALWAYS include city context in detectedLocation for geocoding accuracy
- displayName MUST include the city separated by comma (e.g., "Susa Metro Station, Milan")
- Remove the ENTIRE location phrase from remainingQuery, including "near", "close to", "in [city]", etc."""


class LocationDetectionResult(BaseModel):
    has_location: bool = False
    detected_location: Optional[str] = None
    display_name: Optional[str] = None
    remaining_query: str = ""
    default_distance: float = 1.5
    city: Optional[str] = None


def no_location(query: str) -> LocationDetectionResult:
    return LocationDetectionResult(
        remaining_query=query,
        default_distance=settings.DEFAULT_SEARCH_DISTANCE_KM,
    )


def has_location_keyword(query: str) -> bool:
    lowered = query.lower()
    return any(keyword in lowered for keyword in LOCATION_KEYWORDS) or bool(METRO_LINE_RE.search(lowered))


class LocationDetector:
    def __init__(self, inference: InferenceClient, min_query_length: Optional[int] = None):
        self.inference = inference
        self.min_query_length = min_query_length if min_query_length is not None else settings.LOCATION_MIN_QUERY_LENGTH

    async def detect(self, query: str) -> LocationDetectionResult:
        """
        Split a search query into a location phrase and the remaining text.

        Raises:
            InferenceError: if the inference call fails.
        """
        query = (query or "").strip()
        if len(query) < self.min_query_length:
            return no_location(query)
        if not has_location_keyword(query):
            logger.debug(f"No location keywords in '{query}', skipping inference")
            return no_location(query)

        data = await self.inference.complete_json(
            system=SYSTEM_PROMPT,
            prompt=f'Extract location from: "{query}"',
            max_tokens=200,
        )

        has_location = to_bool(data.get("hasLocation")) is True and bool(data.get("detectedLocation"))
        if not has_location:
            return no_location(query)

        try:
            distance = float(data.get("defaultDistance") or settings.DEFAULT_SEARCH_DISTANCE_KM)
        except (TypeError, ValueError):
            distance = settings.DEFAULT_SEARCH_DISTANCE_KM
        if distance <= 0:
            distance = settings.DEFAULT_SEARCH_DISTANCE_KM

        result = LocationDetectionResult(
            has_location=True,
            detected_location=str(data["detectedLocation"]),
            display_name=data.get("displayName") or str(data["detectedLocation"]),
            remaining_query=(data.get("remainingQuery") or "").strip(),
            default_distance=distance,
            city=data.get("city") or None,
        )
        logger.info(f"Detected location '{result.detected_location}' in '{query}' ({result.default_distance} km)")
        return result
