"""
Structured extraction over the inference service.

Two modes share the same shape (prompt -> JSON reply -> validated fields):

- enrichment: listing text and images -> full ListingMetadata field set
- filter parsing: a search query -> sparse SearchFilters
"""

import logging
import re
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from flatlist.core.exceptions import InferenceError, MalformedResponseError
from flatlist.services.images import ImagePayload
from flatlist.services.inference import InferenceClient
from flatlist.utils.formatting import SQFT_TO_SQM, is_rental

logger = logging.getLogger(__name__)

Level = Literal["low", "medium", "high"]
FloorType = Literal["wood", "tile", "unknown"]
RenovationState = Literal["new", "ok", "old"]

CURRENCY_SIGNS = {"€": "EUR", "£": "GBP", "$": "USD"}
FALSE_WORDS = {"false", "no", "0", "n"}
TRUE_WORDS = {"true", "yes", "1", "y"}


def to_number(value: Any) -> Optional[float]:
    """Parse 850, "850", "€ 1.200,50" or "1,200" into a float."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return None

    cleaned = re.sub(r"[^\d.,-]", "", value)
    if not cleaned or not re.search(r"\d", cleaned):
        return None
    if "," in cleaned and "." in cleaned:
        # Whichever separator comes last is the decimal one
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif "," in cleaned:
        cleaned = cleaned.replace(",", "") if re.fullmatch(r"-?\d{1,3}(,\d{3})+", cleaned) else cleaned.replace(",", ".")
    elif re.fullmatch(r"-?\d{1,3}(\.\d{3})+", cleaned):
        cleaned = cleaned.replace(".", "")

    try:
        return float(cleaned)
    except ValueError:
        return None


def to_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_WORDS:
            return True
        if lowered in FALSE_WORDS:
            return False
    return None


def _choice(value: Any, allowed: set[str]) -> Optional[str]:
    if isinstance(value, str) and value.strip().lower() in allowed:
        return value.strip().lower()
    return None


def currency_from_text(text: str) -> Optional[str]:
    for sign, code in CURRENCY_SIGNS.items():
        if sign in text:
            return code
    if re.search(r"\beur(?:o|os)?\b", text, re.IGNORECASE):
        return "EUR"
    return None


# =============================================================================
# Enrichment mode
# =============================================================================

ENRICHMENT_SYSTEM_PROMPT = """You are an expert at analyzing apartment listings. Extract structured metadata from the listing content and images.

Extract the following information:
- Hard facts: price (numeric), currency (ISO 4217 code such as "EUR", "GBP", "USD"), address, size (numeric, as written in the listing), size_unit ("sqm" or "sqft", the unit the size is written in), rooms (integer), bedrooms (integer), bathrooms (integer), beds_single (integer), beds_double (integer), furnishing (text), condo_fees (numeric, optional - monthly condo fees if mentioned), listing_type ("rent" or "sale" - from keywords like "affitto"/"rent" or "vendita"/"sale")
- Inferred attributes:
  * student_friendly (boolean): ALWAYS DEFAULT TO TRUE. Only set to false if the listing contains an EXPLICIT statement like "no students" or "studenti non ammessi". High price or a professional target audience does NOT mean students are not allowed.
  * floor_type ("wood", "tile", or "unknown"): from text or visible flooring in images
  * natural_light ("low", "medium", or "high"): from text (e.g. "large windows", "bright", "basement") and, if images are provided, from their visual brightness
  * noise_level ("low", "medium", or "high"): from text (e.g. "quiet area", "main street", "courtyard")
  * renovation_state ("new", "ok", or "old"): from text or visible condition in images
  * pet_friendly (boolean): true if pets are explicitly allowed, false if explicitly refused, null if not mentioned
  * balcony (boolean): true if a balcony or terrace is mentioned, false if explicitly absent, null if not mentioned
- Vibe tags: array of descriptive tags like "modern", "cozy", "minimal"
- Evidence: for each inferred attribute, a short text snippet from the listing OR a description of what you see in the images that supports it

Return ONLY valid JSON in this exact format:
{
  "price": 850.00,
  "currency": "EUR",
  "address": "Via Example 123, Milan",
  "size": 45,
  "size_unit": "sqm",
  "rooms": 2,
  "bedrooms": 1,
  "bathrooms": 1,
  "beds_single": 0,
  "beds_double": 1,
  "furnishing": "Furnished",
  "condo_fees": 150.00,
  "listing_type": "rent",
  "student_friendly": true,
  "floor_type": "wood",
  "natural_light": "high",
  "noise_level": "low",
  "renovation_state": "ok",
  "pet_friendly": null,
  "balcony": true,
  "vibe_tags": ["modern", "bright"],
  "evidence": {
    "student_friendly": "No explicit 'no students' statement found - defaulting to true",
    "floor_type": "Parquet flooring throughout",
    "natural_light": "Large windows facing south",
    "balcony": "Listing mentions 'balcone'"
  }
}"""

METADATA_KEYS = {
    "price", "address", "size", "size_sqm", "rooms", "bedrooms", "bathrooms", "listing_type",
    "student_friendly", "floor_type", "natural_light", "noise_level", "renovation_state",
    "vibe_tags", "evidence",
}


class ExtractedMetadata(BaseModel):
    """Validated enrichment output; field names match the listing_metadata columns."""

    price: Optional[float] = None
    currency: Optional[str] = None
    address: Optional[str] = None
    size_sqm: Optional[float] = None
    size_unit: Literal["sqm", "sqft"] = "sqm"
    rooms: Optional[int] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    beds_single: Optional[int] = None
    beds_double: Optional[int] = None
    furnishing: Optional[str] = None
    condo_fees: Optional[float] = None
    listing_type: Optional[Literal["rent", "sale"]] = None

    student_friendly: bool = True
    floor_type: FloorType = "unknown"
    natural_light: Level = "medium"
    noise_level: Level = "medium"
    renovation_state: RenovationState = "ok"
    pet_friendly: Optional[bool] = None
    balcony: Optional[bool] = None

    vibe_tags: list[str] = Field(default_factory=list)
    evidence: dict[str, str] = Field(default_factory=dict)

    @field_validator("price", "size_sqm", "condo_fees", mode="before")
    @classmethod
    def _numbers(cls, v: Any) -> Optional[float]:
        number = to_number(v)
        return number if number and number > 0 else None

    @field_validator("rooms", "bedrooms", "bathrooms", "beds_single", "beds_double", mode="before")
    @classmethod
    def _counts(cls, v: Any) -> Optional[int]:
        number = to_number(v)
        return int(round(number)) if number is not None and number >= 0 else None

    @field_validator("currency", mode="before")
    @classmethod
    def _currency(cls, v: Any) -> Optional[str]:
        if not isinstance(v, str) or not v.strip():
            return None
        v = v.strip()
        return CURRENCY_SIGNS.get(v, v.upper()[:3])

    @field_validator("address", "furnishing", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("size_unit", mode="before")
    @classmethod
    def _size_unit(cls, v: Any) -> str:
        if isinstance(v, str) and v.strip().lower().replace(" ", "").replace(".", "") in ("sqft", "ft2", "ft²", "squarefeet"):
            return "sqft"
        return "sqm"

    @field_validator("listing_type", mode="before")
    @classmethod
    def _listing_type(cls, v: Any) -> Optional[str]:
        return _choice(v, {"rent", "sale"})

    @field_validator("student_friendly", mode="before")
    @classmethod
    def _student_friendly(cls, v: Any) -> bool:
        # Only an explicit false rejects students
        return to_bool(v) is not False

    @field_validator("pet_friendly", "balcony", mode="before")
    @classmethod
    def _optional_bool(cls, v: Any) -> Optional[bool]:
        return to_bool(v)

    @field_validator("floor_type", mode="before")
    @classmethod
    def _floor_type(cls, v: Any) -> str:
        return _choice(v, {"wood", "tile", "unknown"}) or "unknown"

    @field_validator("natural_light", "noise_level", mode="before")
    @classmethod
    def _level(cls, v: Any) -> str:
        return _choice(v, {"low", "medium", "high"}) or "medium"

    @field_validator("renovation_state", mode="before")
    @classmethod
    def _renovation_state(cls, v: Any) -> str:
        return _choice(v, {"new", "ok", "old"}) or "ok"

    @field_validator("vibe_tags", mode="before")
    @classmethod
    def _vibe_tags(cls, v: Any) -> list[str]:
        if isinstance(v, str):
            v = [v]
        if not isinstance(v, list):
            return []
        tags = []
        for tag in v:
            tag = str(tag).strip().lower()
            if tag and tag not in tags:
                tags.append(tag)
        return tags

    @field_validator("evidence", mode="before")
    @classmethod
    def _evidence(cls, v: Any) -> dict[str, str]:
        if not isinstance(v, dict):
            return {}
        return {str(k): str(val) for k, val in v.items() if val not in (None, "")}


def normalize_metadata(data: dict, content: str = "") -> ExtractedMetadata:
    """
    Validate a raw enrichment reply into ExtractedMetadata.

    The reported size is converted to square meters when the listing used
    square feet; ``size_unit`` keeps the original unit for display.

    Raises:
        MalformedResponseError: if the reply does not look like listing metadata.
    """
    if isinstance(data.get("metadata"), dict):
        data = data["metadata"]
    if not METADATA_KEYS & set(data):
        raise MalformedResponseError(f"Unrecognized metadata shape: keys {sorted(data)[:10]}")

    fields = dict(data)
    size = to_number(fields.pop("size", None))
    if size is None:
        size = to_number(fields.get("size_sqm"))
    fields["size_sqm"] = size

    try:
        metadata = ExtractedMetadata.model_validate(fields)
    except ValidationError as e:
        raise MalformedResponseError(f"Invalid metadata fields: {e}") from e

    if metadata.size_sqm and metadata.size_unit == "sqft":
        metadata.size_sqm = float(round(metadata.size_sqm * SQFT_TO_SQM))
    if not metadata.currency and metadata.price:
        metadata.currency = currency_from_text(content)
    if not metadata.listing_type and is_rental(content, None, None):
        metadata.listing_type = "rent"
    return metadata


async def extract_metadata(
    inference: InferenceClient,
    content: str,
    images: Optional[list[ImagePayload]] = None,
) -> ExtractedMetadata:
    """
    Run enrichment-mode extraction on already truncated listing text.

    Raises:
        InferenceError: on upstream failure or a malformed reply.
    """
    data = await inference.complete_json(
        system=ENRICHMENT_SYSTEM_PROMPT,
        prompt=f"Analyze this apartment listing:\n\n{content}",
        images=images,
        max_tokens=1024,
    )
    return normalize_metadata(data, content)


# =============================================================================
# Filter-parsing mode
# =============================================================================

FILTER_SYSTEM_PROMPT = """You are a search query parser for apartment listings worldwide. Convert natural language queries into structured filters.

Extract the following filters from the query:
- noise_level: "low", "medium", or "high" (for quiet/noisy mentions)
- student_friendly: true/false (for student mentions)
- natural_light: "low", "medium", or "high" (for light/bright/dark mentions)
- floor_type: "wood" or "tile" (for floor type mentions)
- renovation_state: "new", "ok", or "old" (for renovation mentions)
- price_max: maximum price in the local currency (for "under X", "less than X")
- price_min: minimum price in the local currency (for "over X", "more than X")
- size_sqm_min: minimum size in square meters
- rooms_min: minimum number of rooms (total rooms including living room, kitchen, etc.)
- bedrooms_min: minimum number of bedrooms (sleeping rooms only)
- bathrooms_min: minimum number of bathrooms
- location_keywords: array of neighborhood or area names ONLY - never metro lines, stations, landmarks or universities

Return ONLY valid JSON in this format:
{
  "filters": {
    "noise_level": "low",
    "student_friendly": true,
    "price_max": 900
  },
  "explanation": "Quiet apartments for students under 900"
}

If a filter is not mentioned, omit it from the filters object."""


class SearchFilters(BaseModel):
    """Sparse search filters; unset fields are omitted, never defaulted."""

    noise_level: Optional[Level] = None
    student_friendly: Optional[bool] = None
    natural_light: Optional[Level] = None
    floor_type: Optional[FloorType] = None
    renovation_state: Optional[RenovationState] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    size_sqm_min: Optional[float] = None
    rooms_min: Optional[int] = None
    bedrooms_min: Optional[int] = None
    bathrooms_min: Optional[int] = None
    location_keywords: Optional[list[str]] = None

    @field_validator("noise_level", "natural_light", mode="before")
    @classmethod
    def _level(cls, v: Any) -> Optional[str]:
        return _choice(v, {"low", "medium", "high"})

    @field_validator("floor_type", mode="before")
    @classmethod
    def _floor_type(cls, v: Any) -> Optional[str]:
        return _choice(v, {"wood", "tile", "unknown"})

    @field_validator("renovation_state", mode="before")
    @classmethod
    def _renovation_state(cls, v: Any) -> Optional[str]:
        return _choice(v, {"new", "ok", "old"})

    @field_validator("student_friendly", mode="before")
    @classmethod
    def _bool(cls, v: Any) -> Optional[bool]:
        return to_bool(v)

    @field_validator("price_min", "price_max", "size_sqm_min", mode="before")
    @classmethod
    def _number(cls, v: Any) -> Optional[float]:
        return to_number(v)

    @field_validator("rooms_min", "bedrooms_min", "bathrooms_min", mode="before")
    @classmethod
    def _count(cls, v: Any) -> Optional[int]:
        number = to_number(v)
        return int(number) if number is not None else None

    @field_validator("location_keywords", mode="before")
    @classmethod
    def _keywords(cls, v: Any) -> Optional[list[str]]:
        if isinstance(v, str):
            v = [v]
        if not isinstance(v, list):
            return None
        keywords = [str(k).strip() for k in v if str(k).strip()]
        return keywords or None

    def sparse(self) -> dict:
        return self.model_dump(exclude_none=True)

    def requested(self) -> list[str]:
        return list(self.sparse())


class ParsedQuery(BaseModel):
    filters: SearchFilters = Field(default_factory=SearchFilters)
    explanation: str = ""


async def parse_filters(inference: InferenceClient, query: str) -> ParsedQuery:
    """
    Parse a free-text query (location phrase already removed) into filters.

    Upstream failures degrade to empty filters with the query as explanation.
    """
    query = (query or "").strip()
    if not query:
        return ParsedQuery(explanation=query)

    try:
        data = await inference.complete_json(
            system=FILTER_SYSTEM_PROMPT,
            prompt=f'Parse this search query: "{query}"',
            max_tokens=500,
        )
    except InferenceError as e:
        logger.warning(f"Filter parsing failed for '{query}': {e}")
        return ParsedQuery(explanation=query)

    raw_filters = data.get("filters") if isinstance(data.get("filters"), dict) else data
    try:
        filters = SearchFilters.model_validate(raw_filters)
    except ValidationError as e:
        logger.warning(f"Discarding invalid filters for '{query}': {e}")
        filters = SearchFilters()

    explanation = data.get("explanation")
    return ParsedQuery(
        filters=filters,
        explanation=explanation if isinstance(explanation, str) and explanation else query,
    )
