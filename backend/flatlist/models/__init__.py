from flatlist.models.listing import Listing, EnrichmentStatus
from flatlist.models.listing_metadata import ListingMetadata
from flatlist.models.listing_comparison import ListingComparison
from flatlist.models.user_preference import UserPreference

__all__ = ["Listing", "EnrichmentStatus", "ListingMetadata", "ListingComparison", "UserPreference"]
