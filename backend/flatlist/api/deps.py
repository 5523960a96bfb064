"""
Shared FastAPI dependencies and error mapping for the API routes.
"""

from typing import Optional

from fastapi import Header, HTTPException, Request

from flatlist.core.exceptions import (
    ConfigurationError,
    FlatlistError,
    InferenceError,
    InvalidRequestError,
    ListingAlreadyExistsError,
    ListingNotFoundError,
)
from flatlist.services.pipeline import Pipeline


def get_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller identity, supplied by the auth layer in front of this service."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=400, detail="Missing X-User-Id header")
    return x_user_id.strip()


def get_pipeline(request: Request) -> Pipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return pipeline


def http_error(error: FlatlistError) -> HTTPException:
    """Map a pipeline error to its HTTP status."""
    if isinstance(error, InvalidRequestError):
        detail = {"error": str(error)}
        if error.code:
            detail["code"] = error.code
        return HTTPException(status_code=400, detail=detail)
    if isinstance(error, ListingNotFoundError):
        return HTTPException(status_code=404, detail={"error": "Listing not found", "listing_id": error.listing_id})
    if isinstance(error, ListingAlreadyExistsError):
        return HTTPException(status_code=409, detail={"error": "Listing already saved", "listing_id": error.listing_id})
    if isinstance(error, InferenceError):
        return HTTPException(status_code=502, detail={"error": "Inference service error", "details": str(error)})
    if isinstance(error, ConfigurationError):
        return HTTPException(status_code=500, detail={"error": "Server configuration error", "details": str(error)})
    return HTTPException(status_code=500, detail={"error": str(error)})
