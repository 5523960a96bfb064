"""
Cascading geocoding resolution.

Turns a structured address (enrichment path) or a colloquial location phrase
(search path) into coordinates by trying an ordered list of query variants
against the lookup, stopping at the first match. Results, including misses,
are memoized in the injected GeocodeCache under the original query.
"""

import asyncio
import logging
from typing import Optional

from flatlist.services.country_detector import Country
from flatlist.services.geocode_cache import GeocodeCache, GeocodeResult
from flatlist.services.geocoding import GeocodingLookup
from flatlist.services.query_variants import address_variants, phrase_variants

logger = logging.getLogger(__name__)


class GeocodingResolver:
    def __init__(
        self,
        lookup: GeocodingLookup,
        cache: GeocodeCache,
        address_pacing_seconds: float = 0.5,
    ):
        self.lookup = lookup
        self.cache = cache
        self.address_pacing_seconds = address_pacing_seconds

    async def resolve_address(self, address: str, country: Optional[Country] = None) -> Optional[GeocodeResult]:
        """Resolve a listing address, pacing attempts to respect provider limits."""
        return await self._resolve(address, address_variants(address, country), self.address_pacing_seconds)

    async def resolve_phrase(self, phrase: str) -> Optional[GeocodeResult]:
        """Resolve a search-query location phrase such as "Susa metro station Milan"."""
        return await self._resolve(phrase, phrase_variants(phrase), 0)

    async def _resolve(self, original: str, variants: list[str], pacing: float) -> Optional[GeocodeResult]:
        if not original or not original.strip():
            return None

        cached = self.cache.lookup(original)
        if cached.hit:
            return cached.result

        for attempt, variant in enumerate(variants):
            if attempt and pacing:
                await asyncio.sleep(pacing)
            logger.info(f"Geocoding attempt {attempt + 1}/{len(variants)}: '{variant}'")
            result = await asyncio.to_thread(self.lookup.search, variant)
            if result:
                logger.info(f"Resolved '{original}' via '{variant}' -> ({result.latitude}, {result.longitude})")
                self.cache.store(original, result)
                return result

        logger.warning(f"Could not geocode '{original}' after {len(variants)} attempts")
        self.cache.store(original, None)
        return None
