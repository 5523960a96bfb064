from flatlist.services.geocode_cache import GeocodeCache, GeocodeResult, build_geocode_cache
from flatlist.services.geocoding import GeocodingService
from flatlist.services.geocoding_resolver import GeocodingResolver
from flatlist.services.inference import InferenceClient
from flatlist.services.pipeline import Pipeline, build_pipeline

__all__ = [
    "GeocodeCache",
    "GeocodeResult",
    "build_geocode_cache",
    "GeocodingService",
    "GeocodingResolver",
    "InferenceClient",
    "Pipeline",
    "build_pipeline",
]
