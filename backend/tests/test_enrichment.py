import asyncio

import pytest

from conftest import MILAN_DUOMO, FakeInference, FakeLookup, image_server, mock_http_client
from flatlist.core.exceptions import InferenceError
from flatlist.models import EnrichmentStatus, Listing
from flatlist.services import images
from flatlist.services.enrichment import EnrichmentOrchestrator
from flatlist.services.geocode_cache import GeocodeCache
from flatlist.services.geocoding_resolver import GeocodingResolver
from flatlist.services.pipeline import build_pipeline

CONTENT = "Bilocale in affitto, Via Roma 12, Milano. €850 al mese, 45 mq, parquet, molto luminoso."

REPLY = {
    "price": 850,
    "address": "Via Roma 12, Milano",
    "size": 45,
    "rooms": 2,
    "bedrooms": 1,
    "floor_type": "wood",
    "natural_light": "high",
    "vibe_tags": ["bright"],
}


class FailingLookup:
    def search(self, query):
        raise RuntimeError("provider exploded")


def build_orchestrator(session_factory, inference, lookup=None):
    resolver = GeocodingResolver(lookup or FakeLookup(), GeocodeCache(), address_pacing_seconds=0)
    return EnrichmentOrchestrator(inference, resolver, session_factory=session_factory)


def load(session_factory, listing_id):
    session = session_factory()
    listing = session.get(Listing, listing_id)
    return session, listing


def test_successful_enrichment(session_factory, make_listing):
    listing = make_listing(status=EnrichmentStatus.PENDING, content=CONTENT)
    seen_status = []

    def reply(system, prompt, images):
        with session_factory() as session:
            seen_status.append(session.get(Listing, listing.id).enrichment_status)
        return REPLY

    lookup = FakeLookup({"Via Roma 12, Milano": MILAN_DUOMO})
    orchestrator = build_orchestrator(session_factory, FakeInference(reply), lookup)

    outcome = asyncio.run(orchestrator.enrich(listing.id))

    assert outcome.succeeded
    assert outcome.geocoded is True
    assert seen_status == [EnrichmentStatus.PROCESSING]

    session, stored = load(session_factory, listing.id)
    try:
        assert stored.enrichment_status == EnrichmentStatus.DONE
        metadata = stored.listing_metadata
        assert metadata.price == 850.0
        assert metadata.currency == "EUR"
        assert metadata.listing_type == "rent"
        assert metadata.size_sqm == 45.0
        assert metadata.latitude == MILAN_DUOMO.latitude
        assert metadata.longitude == MILAN_DUOMO.longitude
        assert metadata.student_friendly is True
        assert metadata.vibe_tags == ["bright"]
    finally:
        session.close()


def test_inference_failure_marks_listing_failed(session_factory, make_listing):
    listing = make_listing(status=EnrichmentStatus.PENDING, content=CONTENT)
    orchestrator = build_orchestrator(session_factory, FakeInference(InferenceError("upstream timeout")))

    outcome = asyncio.run(orchestrator.enrich(listing.id))

    assert outcome.status == EnrichmentStatus.FAILED
    assert "upstream timeout" in outcome.error

    session, stored = load(session_factory, listing.id)
    try:
        assert stored.enrichment_status == EnrichmentStatus.FAILED
        assert stored.listing_metadata is None
    finally:
        session.close()


def test_failed_rerun_keeps_previous_metadata(session_factory, make_listing):
    listing = make_listing(content=CONTENT, price=700.0, address="Via Roma 12, Milano")
    orchestrator = build_orchestrator(session_factory, FakeInference(InferenceError("503")))

    asyncio.run(orchestrator.enrich(listing.id))

    session, stored = load(session_factory, listing.id)
    try:
        assert stored.enrichment_status == EnrichmentStatus.FAILED
        assert stored.listing_metadata.price == 700.0
    finally:
        session.close()


def test_malformed_reply_marks_listing_failed(session_factory, make_listing):
    listing = make_listing(status=EnrichmentStatus.PENDING, content=CONTENT)
    orchestrator = build_orchestrator(session_factory, FakeInference({"answer": "no idea"}))

    outcome = asyncio.run(orchestrator.enrich(listing.id))

    assert outcome.status == EnrichmentStatus.FAILED


def test_geocoding_miss_still_completes(session_factory, make_listing):
    listing = make_listing(status=EnrichmentStatus.PENDING, content=CONTENT)
    lookup = FakeLookup()
    orchestrator = build_orchestrator(session_factory, FakeInference(REPLY), lookup)

    outcome = asyncio.run(orchestrator.enrich(listing.id))

    assert outcome.succeeded
    assert outcome.geocoded is False
    assert lookup.queries == ["Via Roma 12, Milano", "Via Roma 12, Milano, Italy"]

    session, stored = load(session_factory, listing.id)
    try:
        assert stored.enrichment_status == EnrichmentStatus.DONE
        assert stored.listing_metadata.latitude is None
        assert stored.listing_metadata.longitude is None
    finally:
        session.close()


def test_geocoding_error_is_not_fatal(session_factory, make_listing):
    listing = make_listing(status=EnrichmentStatus.PENDING, content=CONTENT)
    orchestrator = build_orchestrator(session_factory, FakeInference(REPLY), FailingLookup())

    outcome = asyncio.run(orchestrator.enrich(listing.id))

    assert outcome.succeeded
    assert outcome.geocoded is False


def test_no_address_skips_geocoding(session_factory, make_listing):
    listing = make_listing(status=EnrichmentStatus.PENDING, content=CONTENT)
    lookup = FakeLookup()
    orchestrator = build_orchestrator(session_factory, FakeInference({"price": 850}), lookup)

    outcome = asyncio.run(orchestrator.enrich(listing.id))

    assert outcome.succeeded
    assert lookup.queries == []


def test_rerun_overwrites_metadata_wholesale(session_factory, make_listing):
    listing = make_listing(content=CONTENT, price=700.0, balcony=True, pet_friendly=True, noise_level="low")
    orchestrator = build_orchestrator(session_factory, FakeInference({"price": 900}))

    asyncio.run(orchestrator.enrich(listing.id))

    session, stored = load(session_factory, listing.id)
    try:
        metadata = stored.listing_metadata
        assert metadata.price == 900.0
        assert metadata.balcony is None
        assert metadata.pet_friendly is None
        assert metadata.noise_level == "medium"
    finally:
        session.close()


def test_missing_listing_reports_failure(session_factory):
    inference = FakeInference()
    orchestrator = build_orchestrator(session_factory, inference)

    outcome = asyncio.run(orchestrator.enrich("does-not-exist"))

    assert outcome.status == EnrichmentStatus.FAILED
    assert "does-not-exist" in outcome.error
    assert inference.calls == []


def test_content_is_truncated_before_inference(session_factory, make_listing):
    listing = make_listing(status=EnrichmentStatus.PENDING, content="x" * 500)
    inference = FakeInference({"price": 850})
    orchestrator = build_orchestrator(session_factory, inference)
    orchestrator.content_limit = 60

    asyncio.run(orchestrator.enrich(listing.id))

    prompt = inference.calls[0]["prompt"]
    assert prompt.count("x") == 60
    assert "[... middle section ...]" in prompt


def test_plain_rental_listing_scenario(session_factory, make_listing):
    content = "Beautiful apartment, €850/mo, Via Roma 12, Milano"
    listing = make_listing(status=EnrichmentStatus.PENDING, content=content, images=[])
    inference = FakeInference({"price": "850", "address": "Via Roma 12, Milano"})
    orchestrator = build_orchestrator(session_factory, inference, FakeLookup({"Via Roma 12, Milano": MILAN_DUOMO}))

    outcome = asyncio.run(orchestrator.enrich(listing.id))

    assert outcome.succeeded
    assert inference.calls[0]["images"] == []
    session, stored = load(session_factory, listing.id)
    try:
        metadata = stored.listing_metadata
        assert metadata.listing_type == "rent"
        assert metadata.currency == "EUR"
        assert metadata.price == 850.0
        assert "Via Roma 12" in metadata.address
        assert metadata.student_friendly is True
    finally:
        session.close()


def test_image_fetch_failure_still_completes(monkeypatch, session_factory, make_listing):
    photos = ["https://cdn.example.com/missing.jpg", "https://cdn.example.com/bedroom.png"]
    listing = make_listing(status=EnrichmentStatus.PENDING, content=CONTENT, images=photos)
    monkeypatch.setattr(images.httpx, "AsyncClient", mock_http_client(image_server))
    inference = FakeInference(REPLY)
    orchestrator = build_orchestrator(session_factory, inference)

    outcome = asyncio.run(orchestrator.enrich(listing.id))

    assert outcome.succeeded
    assert [image.media_type for image in inference.calls[0]["images"]] == ["image/png"]


def test_unexpected_error_marks_failed_without_raising(session_factory, make_listing):
    listing = make_listing(status=EnrichmentStatus.PENDING, content=CONTENT)
    orchestrator = build_orchestrator(session_factory, FakeInference(RuntimeError("boom")))

    outcome = asyncio.run(orchestrator.enrich(listing.id))

    assert outcome.status == EnrichmentStatus.FAILED
    assert "RuntimeError: boom" in outcome.error


def test_failed_listing_is_not_retried_by_the_queue(session_factory, make_listing):
    listing = make_listing(status=EnrichmentStatus.PENDING, content=CONTENT)
    inference = FakeInference(RuntimeError("boom"), {"price": 900})
    pipeline = build_pipeline(inference=inference, lookup=FakeLookup(), session_factory=session_factory)
    queue = pipeline.enrichment_queue
    queue.max_attempts = 3

    async def scenario():
        await queue.start()
        queue.submit(listing.id)
        await queue.join()
        await queue.stop()
        return queue.stats()

    stats = asyncio.run(scenario())

    assert len(inference.calls) == 1
    assert stats["completed"] == 1
    assert stats["retried"] == 0
    session, stored = load(session_factory, listing.id)
    try:
        assert stored.enrichment_status == EnrichmentStatus.FAILED
    finally:
        session.close()


def test_error_before_processing_propagates(session_factory):
    def unreachable():
        raise RuntimeError("database unreachable")

    orchestrator = build_orchestrator(unreachable, FakeInference())

    with pytest.raises(RuntimeError, match="unreachable"):
        asyncio.run(orchestrator.enrich("listing-1"))
