import asyncio

import pytest

from conftest import FakeInference
from flatlist.core.exceptions import InferenceError
from flatlist.models import ListingComparison
from flatlist.services.match_scoring import MatchScorer, build_prompt, clamp_score

DESCRIPTION = "Bright two-bedroom near a metro stop, quiet street, under 1000 a month"


@pytest.mark.parametrize("raw,expected", [
    (75, 75),
    ("87", 87),
    (72.6, 73),
    (150, 100),
    (-5, 0),
    (None, 0),
    ("great", 0),
])
def test_clamp_score(raw, expected):
    assert clamp_score(raw) == expected


def test_prompt_carries_description_facts_and_location(make_listing):
    listing = make_listing(price=850, currency="EUR", bedrooms=2, address="Via Roma 12, Milano",
                           latitude=45.46, longitude=9.19)

    prompt = build_prompt(listing, DESCRIPTION, 6000)

    assert "## User's Dream Apartment Description:\n" + DESCRIPTION in prompt
    assert "Price: 850.0 EUR" in prompt
    assert "Bedrooms: 2" in prompt
    assert "Address: Via Roma 12, Milano (Coordinates: 45.46, 9.19)" in prompt
    assert "## Full Listing Content:" in prompt


def test_score_upserts_one_row_per_listing_and_user(db_session, session_factory, make_listing):
    listing = make_listing(price=850)
    inference = FakeInference(
        {"score": 40, "summary": "Too dark."},
        {"score": 140, "summary": "Now a great match."},
    )
    scorer = MatchScorer(inference)

    asyncio.run(scorer.score(db_session, listing, "user-1", DESCRIPTION))
    asyncio.run(scorer.score(db_session, listing, "user-1", DESCRIPTION))

    with session_factory() as session:
        rows = session.query(ListingComparison).filter(ListingComparison.listing_id == listing.id).all()
    assert len(rows) == 1
    assert rows[0].match_score == 100
    assert rows[0].comparison_summary == "Now a great match."


def test_score_failure_writes_nothing(db_session, session_factory, make_listing):
    listing = make_listing(price=850)
    scorer = MatchScorer(FakeInference(InferenceError("429 rate limited")))

    with pytest.raises(InferenceError):
        asyncio.run(scorer.score(db_session, listing, "user-1", DESCRIPTION))

    with session_factory() as session:
        assert session.query(ListingComparison).count() == 0
