"""
Error taxonomy for the enrichment, geocoding and matching pipeline.

Orchestrators catch these at their boundary and translate them into listing
status updates; the HTTP layer maps them to status codes.
"""

from typing import Optional


class FlatlistError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(FlatlistError):
    """Required configuration (e.g. inference credentials) is missing."""


class InvalidRequestError(FlatlistError):
    """Request rejected before any state was touched."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class InferenceError(FlatlistError):
    """Inference service failed: timeout, non-2xx, connection error."""


class MalformedResponseError(InferenceError):
    """Inference service answered, but not with a usable JSON object."""


class ListingNotFoundError(FlatlistError):
    def __init__(self, listing_id: str):
        super().__init__(f"Listing not found: {listing_id}")
        self.listing_id = listing_id


class ListingAlreadyExistsError(FlatlistError):
    """The user already saved a listing for this source URL."""

    def __init__(self, listing_id: str, source_url: str):
        super().__init__(f"Listing already saved: {source_url}")
        self.listing_id = listing_id
        self.source_url = source_url
