from datetime import datetime, timezone

from flatlist.models import Listing, ListingMetadata
from flatlist.services.extraction import SearchFilters
from flatlist.services.ranking import ReferencePoint, generate_explanation, rank_listings

DUOMO = ReferencePoint(latitude=45.4642, longitude=9.1900, max_distance_km=1.5, name="Duomo, Milan")


def listing(name, hour, **metadata):
    item = Listing(
        id=name,
        user_id="user-1",
        source_url=f"https://example.com/{name}",
        raw_content="Flat for rent",
        saved_at=datetime(2025, 3, 1, hour),
    )
    if metadata:
        item.listing_metadata = ListingMetadata(listing_id=name, **metadata)
    return item


def ids(ranked):
    return [r.listing.id for r in ranked]


def quiet_two_bed_under_900():
    return SearchFilters(noise_level="low", bedrooms_min=2, price_max=900)


def test_all_filters_must_hold():
    candidates = [
        listing("a", 10, noise_level="low", bedrooms=2, price=850),
        listing("b", 12, noise_level="low", bedrooms=3, price=900),
        listing("c", 11, noise_level="low", bedrooms=2, price=700),
        listing("noisy", 13, noise_level="high", bedrooms=2, price=800),
        listing("pricey", 14, noise_level="low", bedrooms=2, price=950),
        listing("small", 15, noise_level="low", bedrooms=1, price=600),
    ]

    ranked = rank_listings(candidates, quiet_two_bed_under_900())

    assert ids(ranked) == ["b", "c", "a"]
    assert all(r.match_count == 3 for r in ranked)


def test_unknown_values_never_satisfy_a_filter():
    candidates = [
        listing("no-price", 10, noise_level="low", bedrooms=2, price=None),
        listing("no-bedrooms", 11, noise_level="low", bedrooms=None, price=800),
        listing("no-metadata", 12),
    ]

    assert rank_listings(candidates, quiet_two_bed_under_900()) == []


def test_no_filters_keeps_every_listing_with_metadata_newest_first():
    candidates = [
        listing("old", 9, price=500),
        listing("bare", 20),
        listing("new", 11, price=600),
    ]

    ranked = rank_listings(candidates)

    assert ids(ranked) == ["new", "old"]
    assert all(r.match_count == 0 for r in ranked)
    assert all(r.distance_km is None for r in ranked)


def test_unsaved_listing_sorts_after_saved_ones_on_ties():
    unsaved = listing("unsaved", 10, price=700)
    unsaved.saved_at = None
    candidates = [
        listing("old", 9, price=500),
        unsaved,
        listing("new", 11, price=600),
    ]

    assert ids(rank_listings(candidates)) == ["new", "old", "unsaved"]


def test_missing_saved_at_sorts_alongside_timezone_aware_values():
    aware = listing("aware", 10, price=700)
    aware.saved_at = datetime(2025, 3, 1, 10, tzinfo=timezone.utc)
    unsaved = listing("unsaved", 11, price=600)
    unsaved.saved_at = None

    assert ids(rank_listings([unsaved, aware])) == ["aware", "unsaved"]

def test_location_keywords_match_address_case_insensitively():
    candidates = [
        listing("navigli", 10, address="Ripa di Porta Ticinese 5, Navigli, Milano"),
        listing("isola", 11, address="Via Borsieri 3, Isola, Milano"),
        listing("no-address", 12, price=800),
    ]

    ranked = rank_listings(candidates, SearchFilters(location_keywords=["NAVIGLI", "Brera"]))

    assert ids(ranked) == ["navigli"]
    assert ranked[0].match_count == 1


def test_reference_point_limits_distance():
    candidates = [
        listing("near", 10, latitude=45.4650, longitude=9.1900),
        listing("far", 11, latitude=45.5000, longitude=9.1900),
        listing("unknown", 12, price=800),
    ]

    ranked = rank_listings(candidates, reference=DUOMO)

    assert ids(ranked) == ["near"]
    assert ranked[0].match_count == 1
    assert 0.05 < ranked[0].distance_km < 0.15
    assert ranked[0].distance_km == round(ranked[0].distance_km, 3)


def test_explanation_lists_filters_in_order():
    explanation = generate_explanation(quiet_two_bed_under_900(), 3)
    assert explanation == "Matches: noise level: low, under 900, 2+ bedrooms (3 results)"


def test_explanation_with_reference_and_single_result():
    explanation = generate_explanation(SearchFilters(student_friendly=True), 1, DUOMO)
    assert explanation == "Matches: student-friendly, within 1.5km from Duomo, Milan (1 result)"


def test_explanation_without_filters():
    assert generate_explanation(SearchFilters(), 1) == "Found 1 listing"
    assert generate_explanation(None, 0) == "Found 0 listings"
