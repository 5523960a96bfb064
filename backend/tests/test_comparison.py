import asyncio

import pytest

from conftest import FakeInference
from flatlist.core.exceptions import InferenceError, InvalidRequestError
from flatlist.models import EnrichmentStatus, ListingComparison, UserPreference
from flatlist.services import comparison
from flatlist.services.comparison import BatchComparisonOrchestrator, comparable_listing_ids
from flatlist.services.match_scoring import MatchScorer

DESCRIPTION = "Quiet bright flat with a balcony, close to Bocconi"


@pytest.fixture
def with_description(db_session):
    db_session.add(UserPreference(user_id="user-1", dream_apartment_description=DESCRIPTION))
    db_session.commit()


@pytest.fixture
def events(monkeypatch):
    recorded = []

    async def fake_sleep(seconds):
        recorded.append(("pause", seconds))

    monkeypatch.setattr(comparison.asyncio, "sleep", fake_sleep)
    return recorded


def scoring_reply(events, score=70):
    def reply(system, prompt, images):
        events.append("call")
        return {"score": score, "summary": "Decent match."}
    return reply


def build_orchestrator(session_factory, inference):
    return BatchComparisonOrchestrator(
        MatchScorer(inference),
        session_factory=session_factory,
        batch_size=3,
        pause_seconds=1.0,
    )


def test_compare_all_runs_in_paced_batches(session_factory, make_listing, with_description, events):
    for _ in range(7):
        make_listing(price=850)
    inference = FakeInference(default=scoring_reply(events))

    run = asyncio.run(build_orchestrator(session_factory, inference).compare("user-1", compare_all=True))

    assert run.compared == 7
    assert run.total == 7
    assert events == [
        "call", "call", "call", ("pause", 1.0),
        "call", "call", "call", ("pause", 1.0),
        "call",
    ]
    with session_factory() as session:
        assert session.query(ListingComparison).filter(ListingComparison.user_id == "user-1").count() == 7


def test_one_failure_does_not_abort_the_run(session_factory, make_listing, with_description, events):
    for _ in range(7):
        make_listing(price=850)
    inference = FakeInference(InferenceError("upstream timeout"), default=scoring_reply(events))

    run = asyncio.run(build_orchestrator(session_factory, inference).compare("user-1", compare_all=True))

    assert run.compared == 6
    assert run.total == 7
    failed = [r for r in run.results if not r.success]
    assert len(failed) == 1
    assert "upstream timeout" in failed[0].error


def test_compare_all_only_includes_done_listings_of_the_user(db_session, make_listing, with_description):
    newer = make_listing()
    older = make_listing(saved_at=newer.saved_at.replace(year=2024))
    make_listing(status=EnrichmentStatus.PENDING)
    make_listing(status=EnrichmentStatus.FAILED)
    make_listing(user_id="user-2")

    assert comparable_listing_ids(db_session, "user-1") == [newer.id, older.id]


def test_single_listing_comparison(session_factory, make_listing, with_description, events):
    listing = make_listing(price=850)
    inference = FakeInference(default=scoring_reply(events, score=91))

    run = asyncio.run(build_orchestrator(session_factory, inference).compare("user-1", listing_id=listing.id))

    assert run.total == 1
    assert run.results[0].score == 91
    assert DESCRIPTION in inference.calls[0]["prompt"]


def test_other_users_listing_is_not_found(session_factory, make_listing, with_description, events):
    foreign = make_listing(user_id="user-2")
    inference = FakeInference(default=scoring_reply(events))

    run = asyncio.run(build_orchestrator(session_factory, inference).compare("user-1", listing_id=foreign.id))

    assert run.compared == 0
    assert run.results[0].error == "Listing not found"
    assert inference.calls == []


def test_missing_description_is_rejected(session_factory, make_listing):
    make_listing()
    orchestrator = build_orchestrator(session_factory, FakeInference())

    with pytest.raises(InvalidRequestError) as exc_info:
        asyncio.run(orchestrator.compare("user-1", compare_all=True))

    assert exc_info.value.code == "NO_DESCRIPTION"


def test_listing_id_or_compare_all_is_required(session_factory, with_description):
    orchestrator = build_orchestrator(session_factory, FakeInference())

    with pytest.raises(InvalidRequestError, match="listing_id or set compare_all"):
        asyncio.run(orchestrator.compare("user-1"))
