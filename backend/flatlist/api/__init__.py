from fastapi import APIRouter
from flatlist.api.routes import (
    listings,
    preferences,
    comparisons,
    search,
)

api_router = APIRouter()

api_router.include_router(listings.router)
api_router.include_router(preferences.router)
api_router.include_router(comparisons.router)
api_router.include_router(search.router)
