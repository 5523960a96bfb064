from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from flatlist.api.deps import get_pipeline, get_user_id, http_error
from flatlist.core.exceptions import InvalidRequestError
from flatlist.services.comparison import ComparisonRun
from flatlist.services.pipeline import Pipeline

router = APIRouter(prefix="/comparisons", tags=["comparisons"])


class ComparisonRequest(BaseModel):
    listing_id: Optional[str] = None
    compare_all: bool = False


@router.post("/", response_model=ComparisonRun)
async def compare_listings(
    request: ComparisonRequest,
    user_id: str = Depends(get_user_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """
    Score one listing, or all of the user's enriched listings, against the
    user's dream apartment description.
    """
    try:
        return await pipeline.comparisons.compare(
            user_id,
            listing_id=request.listing_id,
            compare_all=request.compare_all,
        )
    except InvalidRequestError as e:
        raise http_error(e)
