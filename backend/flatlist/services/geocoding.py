import logging
from typing import Optional, Protocol

from geopy.geocoders import Nominatim
from geopy.exc import GeocoderTimedOut, GeocoderServiceError, GeopyError

from flatlist.core.config import settings
from flatlist.services.geocode_cache import GeocodeResult

logger = logging.getLogger(__name__)


class GeocodingLookup(Protocol):
    """Single-query geocoder: best match for a query string, or None."""

    def search(self, query: str) -> Optional[GeocodeResult]:
        ...


class GeocodingService:
    """Nominatim-backed lookup. One request per call, no retries."""

    def __init__(self, user_agent: Optional[str] = None, timeout: Optional[float] = None):
        self.geolocator = Nominatim(user_agent=user_agent or settings.GEOCODING_USER_AGENT)
        self.timeout = timeout if timeout is not None else settings.GEOCODING_TIMEOUT_SECONDS

    def search(self, query: str) -> Optional[GeocodeResult]:
        """
        Geocode a free-form query to its best single match.

        Returns:
            GeocodeResult, or None if nothing matched or the provider failed.
        """
        if not query or not query.strip():
            return None

        try:
            location = self.geolocator.geocode(
                query,
                exactly_one=True,
                timeout=self.timeout,
                language="en",
            )
        except GeocoderTimedOut:
            logger.warning(f"Geocoding timeout for '{query}'")
            return None
        except GeocoderServiceError as e:
            logger.error(f"Geocoding service error for '{query}': {e}")
            return None
        except GeopyError as e:
            logger.error(f"Unexpected geocoding error for '{query}': {e}")
            return None

        if not location:
            logger.debug(f"No geocoding match for '{query}'")
            return None

        logger.debug(f"Geocoded '{query}' -> ({location.latitude}, {location.longitude})")
        return GeocodeResult(
            latitude=float(location.latitude),
            longitude=float(location.longitude),
            display_name=location.address or query,
        )
