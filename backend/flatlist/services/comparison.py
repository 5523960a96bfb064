"""
Batch comparison orchestrator.

Runs the match scorer over one listing or all of a user's enriched
listings in fixed-size concurrent batches with a pause between batches,
bounding burst load on the inference service. Every listing succeeds or
fails on its own; one failure never aborts the run.
"""

import asyncio
import logging
from typing import Callable, Optional

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from flatlist.core.config import settings
from flatlist.core.database import get_session_local
from flatlist.core.exceptions import FlatlistError, InvalidRequestError
from flatlist.models import EnrichmentStatus, Listing, UserPreference
from flatlist.services.match_scoring import ComparisonResult, MatchScorer

logger = logging.getLogger(__name__)


class ComparisonRun(BaseModel):
    compared: int
    total: int
    results: list[ComparisonResult]


def get_dream_description(db: Session, user_id: str) -> Optional[str]:
    preference = db.get(UserPreference, user_id)
    if not preference or not (preference.dream_apartment_description or "").strip():
        return None
    return preference.dream_apartment_description


def comparable_listing_ids(db: Session, user_id: str) -> list[str]:
    """The user's listings that finished enrichment, most recent first."""
    rows = db.query(Listing.id).filter(
        Listing.user_id == user_id,
        Listing.enrichment_status == EnrichmentStatus.DONE,
    ).order_by(Listing.saved_at.desc()).all()
    return [row.id for row in rows]


class BatchComparisonOrchestrator:
    def __init__(
        self,
        scorer: MatchScorer,
        session_factory: Optional[Callable[[], Session]] = None,
        batch_size: Optional[int] = None,
        pause_seconds: Optional[float] = None,
    ):
        self.scorer = scorer
        self.session_factory = session_factory or get_session_local()
        self.batch_size = batch_size or settings.COMPARISON_BATCH_SIZE
        self.pause_seconds = pause_seconds if pause_seconds is not None else settings.COMPARISON_BATCH_PAUSE_SECONDS

    async def compare(
        self,
        user_id: str,
        listing_id: Optional[str] = None,
        compare_all: bool = False,
    ) -> ComparisonRun:
        """
        Score one listing or every done listing of the user.

        Raises:
            InvalidRequestError: no dream description (code NO_DESCRIPTION),
                or neither a listing id nor compare_all was given.
        """
        if not user_id:
            raise InvalidRequestError("Missing user id")

        db = self.session_factory()
        try:
            description = get_dream_description(db, user_id)
            if description is None:
                raise InvalidRequestError("No dream apartment description set", code="NO_DESCRIPTION")

            if compare_all:
                listing_ids = comparable_listing_ids(db, user_id)
            elif listing_id:
                listing_ids = [listing_id]
            else:
                raise InvalidRequestError("Must provide listing_id or set compare_all to true")

            results = await self._run_batches(db, user_id, description, listing_ids)
        finally:
            db.close()

        compared = sum(1 for r in results if r.success)
        logger.info(f"Compared {compared}/{len(listing_ids)} listings for user {user_id}")
        return ComparisonRun(compared=compared, total=len(listing_ids), results=results)

    async def _run_batches(
        self,
        db: Session,
        user_id: str,
        description: str,
        listing_ids: list[str],
    ) -> list[ComparisonResult]:
        results: list[ComparisonResult] = []
        batches = [listing_ids[i:i + self.batch_size] for i in range(0, len(listing_ids), self.batch_size)]

        for index, batch in enumerate(batches):
            logger.info(f"Comparison batch {index + 1}/{len(batches)} ({len(batch)} listings)")
            results.extend(await asyncio.gather(
                *(self._compare_one(db, lid, user_id, description) for lid in batch)
            ))
            if index < len(batches) - 1 and self.pause_seconds:
                await asyncio.sleep(self.pause_seconds)

        return results

    async def _compare_one(self, db: Session, listing_id: str, user_id: str, description: str) -> ComparisonResult:
        listing = db.get(Listing, listing_id)
        if listing is None or listing.user_id != user_id:
            return ComparisonResult(listing_id=listing_id, success=False, error="Listing not found")

        try:
            comparison = await self.scorer.score(db, listing, user_id, description)
        except (FlatlistError, SQLAlchemyError) as e:
            db.rollback()
            logger.warning(f"Comparison failed for listing {listing_id}: {e}")
            return ComparisonResult(listing_id=listing_id, success=False, error=str(e))

        return ComparisonResult(listing_id=listing_id, success=True, score=comparison.match_score)
