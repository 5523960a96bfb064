import os

# Must be set before flatlist.core.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ANTHROPIC_API_KEY"] = "test-key"

from datetime import datetime, timedelta  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402

from flatlist import models  # noqa: E402,F401
from flatlist.core.database import Base, get_engine, get_session_local  # noqa: E402
from flatlist.models import EnrichmentStatus, Listing, ListingMetadata  # noqa: E402
from flatlist.services.geocode_cache import GeocodeResult  # noqa: E402


class FakeInference:
    """
    Stand-in for InferenceClient.

    Replies are consumed in order; once exhausted ``default`` is used. A reply
    may be a dict, an exception to raise, or a callable taking
    (system, prompt, images) and returning either.
    """

    def __init__(self, *replies, default=None):
        self.replies = list(replies)
        self.default = default if default is not None else {}
        self.calls = []

    async def complete_json(self, system, prompt, images=None, max_tokens=2048):
        self.calls.append({"system": system, "prompt": prompt, "images": images or []})
        reply = self.replies.pop(0) if self.replies else self.default
        if callable(reply):
            reply = reply(system, prompt, images)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeLookup:
    """Stand-in for the Nominatim lookup: exact (case-insensitive) query matches only."""

    def __init__(self, known=None):
        self.known = {query.lower(): result for query, result in (known or {}).items()}
        self.queries = []

    def search(self, query):
        self.queries.append(query)
        return self.known.get(query.lower())


MILAN_DUOMO = GeocodeResult(latitude=45.4642, longitude=9.1900, display_name="Duomo, Milano")


REAL_ASYNC_CLIENT = httpx.AsyncClient


def mock_http_client(handler):
    """AsyncClient factory routing every request to ``handler`` via httpx.MockTransport."""

    def factory(**kwargs):
        return REAL_ASYNC_CLIENT(transport=httpx.MockTransport(handler), **kwargs)

    return factory


def image_server(request):
    """Serves PNG bytes, except 404 for paths containing "missing" and HTML for "page"."""
    if "missing" in request.url.path:
        return httpx.Response(404)
    if "page" in request.url.path:
        return httpx.Response(200, headers={"content-type": "text/html; charset=utf-8"}, content=b"<html></html>")
    return httpx.Response(200, headers={"content-type": "image/png"}, content=b"png-bytes")


@pytest.fixture
def session_factory():
    engine = get_engine()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    return get_session_local()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_listing(db_session):
    counter = {"n": 0}
    base_time = datetime(2025, 1, 1, 12, 0, 0)

    def _make(
        user_id="user-1",
        status=EnrichmentStatus.DONE,
        content="Bright two-room flat, €900/mo, Via Roma 12, Milano",
        images=None,
        saved_at=None,
        **metadata,
    ) -> Listing:
        counter["n"] += 1
        listing = Listing(
            user_id=user_id,
            source_url=f"https://example.com/listing/{counter['n']}",
            title=f"Listing {counter['n']}",
            raw_content=content,
            images=images,
            enrichment_status=status,
            saved_at=saved_at or base_time + timedelta(hours=counter["n"]),
        )
        db_session.add(listing)
        db_session.flush()
        if metadata:
            db_session.add(ListingMetadata(listing_id=listing.id, **metadata))
        db_session.commit()
        db_session.refresh(listing)
        return listing

    return _make
