"""
Application-wide wiring of the enrichment, matching and search services.

Built once in the application lifespan and stored on ``app.state``; routes
reach it through ``flatlist.api.deps``. The geocode cache lives here too, so
there is exactly one per process and no module-level mutable state.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.orm import Session

from flatlist.core.config import settings
from flatlist.core.database import get_session_local
from flatlist.core.exceptions import InvalidRequestError
from flatlist.models import EnrichmentStatus, Listing
from flatlist.services.comparison import BatchComparisonOrchestrator
from flatlist.services.enrichment import EnrichmentOrchestrator
from flatlist.services.geocode_cache import GeocodeCache, build_geocode_cache
from flatlist.services.geocoding import GeocodingLookup, GeocodingService
from flatlist.services.geocoding_resolver import GeocodingResolver
from flatlist.services.inference import InferenceClient
from flatlist.services.location_detection import LocationDetector
from flatlist.services.match_scoring import MatchScorer
from flatlist.services.search import SearchService
from flatlist.services.task_queue import TaskQueue, TaskReceipt

logger = logging.getLogger(__name__)


@dataclass
class Pipeline:
    inference: InferenceClient
    cache: GeocodeCache
    resolver: GeocodingResolver
    detector: LocationDetector
    search: SearchService
    enrichment: EnrichmentOrchestrator
    comparisons: BatchComparisonOrchestrator
    enrichment_queue: TaskQueue
    comparison_queue: TaskQueue
    session_factory: Callable[[], Session]

    async def start(self) -> None:
        await self.enrichment_queue.start()
        await self.comparison_queue.start()

    async def stop(self) -> None:
        await self.enrichment_queue.stop()
        await self.comparison_queue.stop()

    def submit_enrichment(self, listing_id: str) -> TaskReceipt:
        return self.enrichment_queue.submit(listing_id)

    def submit_comparison(
        self,
        user_id: str,
        listing_id: Optional[str] = None,
        compare_all: bool = False,
    ) -> TaskReceipt:
        return self.comparison_queue.submit({
            "user_id": user_id,
            "listing_id": listing_id,
            "compare_all": compare_all,
        })

    def recover_pending(self) -> int:
        """Re-submit every listing still pending in storage."""
        db = self.session_factory()
        try:
            pending_ids = [
                row.id for row in db.query(Listing.id).filter(
                    Listing.enrichment_status == EnrichmentStatus.PENDING
                ).all()
            ]
        finally:
            db.close()

        for listing_id in pending_ids:
            self.submit_enrichment(listing_id)
        if pending_ids:
            logger.info(f"Re-submitted {len(pending_ids)} pending listings for enrichment")
        return len(pending_ids)


def build_pipeline(
    inference: Optional[InferenceClient] = None,
    lookup: Optional[GeocodingLookup] = None,
    session_factory: Optional[Callable[[], Session]] = None,
) -> Pipeline:
    """
    Construct every service from settings.

    Raises:
        ConfigurationError: if no inference credentials are configured.
    """
    inference = inference or InferenceClient()
    session_factory = session_factory or get_session_local()

    cache = build_geocode_cache(settings.GEOCODE_CACHE_MAX_ENTRIES)
    resolver = GeocodingResolver(
        lookup=lookup or GeocodingService(),
        cache=cache,
        address_pacing_seconds=settings.GEOCODING_ADDRESS_PACING_SECONDS,
    )
    detector = LocationDetector(inference)
    enrichment = EnrichmentOrchestrator(inference, resolver, session_factory=session_factory)
    comparisons = BatchComparisonOrchestrator(MatchScorer(inference), session_factory=session_factory)

    async def run_enrichment(listing_id: str) -> None:
        await enrichment.enrich(listing_id)

    async def run_comparison(payload: dict) -> None:
        try:
            await comparisons.compare(**payload)
        except InvalidRequestError as e:
            # Preference cleared or never set between submit and run
            logger.info(f"Skipping comparison for user {payload.get('user_id')}: {e}")

    return Pipeline(
        inference=inference,
        cache=cache,
        resolver=resolver,
        detector=detector,
        search=SearchService(inference, detector, resolver),
        enrichment=enrichment,
        comparisons=comparisons,
        enrichment_queue=TaskQueue("enrichment", run_enrichment),
        comparison_queue=TaskQueue("comparison", run_comparison),
        session_factory=session_factory,
    )
