from datetime import datetime

import requests

import retry_failed_enrichments as script
from flatlist.models import EnrichmentStatus


class FakeResponse:
    def __init__(self, status_code=202, body=None):
        self.status_code = status_code
        self.body = body or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.body


def test_find_listings_returns_failed_oldest_first(make_listing):
    newer = make_listing(status=EnrichmentStatus.FAILED, saved_at=datetime(2025, 2, 1))
    older = make_listing(status=EnrichmentStatus.FAILED, user_id="user-2", saved_at=datetime(2025, 1, 1))
    stuck = make_listing(status=EnrichmentStatus.PROCESSING, saved_at=datetime(2025, 3, 1))
    make_listing(status=EnrichmentStatus.DONE)

    assert script.find_listings() == [(older.id, "user-2"), (newer.id, "user-1")]
    assert script.find_listings(user_id="user-1") == [(newer.id, "user-1")]
    assert script.find_listings(include_stuck=True, limit=3)[-1] == (stuck.id, "user-1")


def test_trigger_enrichment_posts_with_user_header(monkeypatch):
    calls = []

    def fake_post(url, headers=None, timeout=None):
        calls.append((url, headers))
        return FakeResponse(body={"task": {"task_id": "task-1"}})

    monkeypatch.setattr(script.requests, "post", fake_post)

    assert script.trigger_enrichment("http://localhost:8000/", "listing-1", "user-1") is True
    assert calls == [("http://localhost:8000/api/v1/listings/listing-1/enrich", {"X-User-Id": "user-1"})]


def test_trigger_enrichment_reports_http_errors(monkeypatch):
    monkeypatch.setattr(script.requests, "post", lambda url, headers=None, timeout=None: FakeResponse(404))
    assert script.trigger_enrichment("http://localhost:8000", "listing-1", "user-1") is False
