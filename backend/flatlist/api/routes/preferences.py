"""
Dream apartment preference endpoints.

Setting a description queues a compare-all run; clearing it disables
matching and deletes the user's existing comparisons.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from flatlist.api.deps import get_pipeline, get_user_id
from flatlist.api.routes.listings import TaskReceiptResponse, receipt_response
from flatlist.core.database import get_db
from flatlist.models import ListingComparison, UserPreference
from flatlist.services.pipeline import Pipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/preferences", tags=["preferences"])


class PreferenceUpdate(BaseModel):
    dream_apartment_description: Optional[str] = None
    trigger_comparison: bool = True


class PreferenceResponse(BaseModel):
    user_id: str
    dream_apartment_description: Optional[str] = None
    updated_at: Optional[datetime] = None
    comparisons_deleted: int = 0
    comparison_task: Optional[TaskReceiptResponse] = None


@router.get("/", response_model=PreferenceResponse)
def get_preferences(
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    preference = db.get(UserPreference, user_id)
    if preference is None:
        return PreferenceResponse(user_id=user_id)
    return PreferenceResponse(
        user_id=user_id,
        dream_apartment_description=preference.dream_apartment_description,
        updated_at=preference.updated_at,
    )


@router.put("/", response_model=PreferenceResponse)
def update_preferences(
    data: PreferenceUpdate,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """
    Upsert the dream apartment description.

    A blank description clears it and deletes every comparison of this user.
    """
    description = (data.dream_apartment_description or "").strip() or None

    preference = db.get(UserPreference, user_id)
    if preference is None:
        preference = UserPreference(user_id=user_id)
        db.add(preference)
    preference.dream_apartment_description = description

    deleted = 0
    if description is None:
        deleted = db.query(ListingComparison).filter(
            ListingComparison.user_id == user_id
        ).delete(synchronize_session=False)
        logger.info(f"Cleared preference for user {user_id}, deleted {deleted} comparisons")
    db.commit()
    db.refresh(preference)

    task = None
    if description and data.trigger_comparison:
        task = receipt_response(pipeline.submit_comparison(user_id, compare_all=True))

    return PreferenceResponse(
        user_id=user_id,
        dream_apartment_description=preference.dream_apartment_description,
        updated_at=preference.updated_at,
        comparisons_deleted=deleted,
        comparison_task=task,
    )
