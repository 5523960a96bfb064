#!/usr/bin/env python3
"""
Retry listings whose enrichment failed.

Failed listings never heal on their own. This script finds them in the
database and re-triggers each through the service's enrich endpoint, which
resets the listing to pending and queues it again.

Usage:
    python backend/scripts/retry_failed_enrichments.py --dry-run
    python backend/scripts/retry_failed_enrichments.py --api-url http://localhost:8000 --limit 50
    python backend/scripts/retry_failed_enrichments.py --user-id 1234 --include-stuck
"""

import argparse
import logging
import sys
import time

import requests

from flatlist.core.database import get_session_local
from flatlist.models import EnrichmentStatus, Listing

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:8000"

# Be gentle with the inference service when retrying many listings
REQUEST_DELAY_SECONDS = 0.5


def find_listings(user_id: str = None, include_stuck: bool = False, limit: int = None) -> list[tuple[str, str]]:
    """Return (listing_id, user_id) pairs to retry, oldest first."""
    statuses = [EnrichmentStatus.FAILED]
    if include_stuck:
        # A crash mid-run leaves listings in processing
        statuses.append(EnrichmentStatus.PROCESSING)

    db = get_session_local()()
    try:
        query = db.query(Listing.id, Listing.user_id).filter(Listing.enrichment_status.in_(statuses))
        if user_id:
            query = query.filter(Listing.user_id == user_id)
        query = query.order_by(Listing.saved_at.asc())
        if limit:
            query = query.limit(limit)
        return [(row.id, row.user_id) for row in query.all()]
    finally:
        db.close()


def trigger_enrichment(api_url: str, listing_id: str, user_id: str) -> bool:
    """Reset one listing to pending through the API and queue it."""
    url = f"{api_url.rstrip('/')}/api/v1/listings/{listing_id}/enrich"
    try:
        response = requests.post(url, headers={"X-User-Id": user_id}, timeout=30)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"Failed to trigger enrichment for {listing_id}: {e}")
        return False

    task = response.json().get("task", {})
    logger.info(f"Re-queued listing {listing_id} (task {task.get('task_id')})")
    return True


def main():
    parser = argparse.ArgumentParser(
        description='Re-trigger enrichment for failed listings'
    )
    parser.add_argument(
        '--api-url',
        default=DEFAULT_API_URL,
        help=f'Base URL of the running service (default: {DEFAULT_API_URL})'
    )
    parser.add_argument(
        '--user-id',
        help='Only retry listings of this user'
    )
    parser.add_argument(
        '--limit',
        type=int,
        help='Maximum number of listings to retry'
    )
    parser.add_argument(
        '--include-stuck',
        action='store_true',
        help='Also retry listings stuck in processing'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='List the listings without triggering anything'
    )

    args = parser.parse_args()

    listings = find_listings(args.user_id, args.include_stuck, args.limit)
    if not listings:
        logger.info("No failed listings to retry")
        return

    logger.info(f"Found {len(listings)} listings to retry")
    if args.dry_run:
        for listing_id, user_id in listings:
            print(f"{listing_id}\t{user_id}")
        return

    triggered = 0
    for listing_id, user_id in listings:
        if trigger_enrichment(args.api_url, listing_id, user_id):
            triggered += 1
        time.sleep(REQUEST_DELAY_SECONDS)

    logger.info(f"Re-triggered {triggered}/{len(listings)} listings")
    if triggered < len(listings):
        sys.exit(1)


if __name__ == '__main__':
    main()
