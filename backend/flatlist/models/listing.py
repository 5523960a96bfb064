"""
Listing model for saved real-estate ads.

A listing is created by the save step with status ``pending``; only the
enrichment orchestrator moves it through ``processing`` to ``done``/``failed``.
"""
import uuid
from enum import Enum

from sqlalchemy import Column, String, Text, DateTime, JSON, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from flatlist.core.database import Base


class EnrichmentStatus(str, Enum):
    """Enrichment lifecycle states."""
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


def _new_id() -> str:
    return str(uuid.uuid4())


class Listing(Base):
    """
    One saved listing with its raw scraped text.

    ``source_url`` is unique per user; saving the same URL twice is a conflict.
    """
    __tablename__ = "listings"
    __table_args__ = (
        UniqueConstraint("user_id", "source_url", name="uq_listings_user_source_url"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)

    # Ownership
    user_id = Column(String(64), nullable=False, index=True)
    catalog_id = Column(String(64), nullable=True, index=True)

    # Scraped content
    source_url = Column(String(2048), nullable=False)
    title = Column(String(500))
    raw_content = Column(Text, nullable=False)
    images = Column(JSON)  # Ordered list of image URLs, or NULL

    # Lifecycle
    enrichment_status = Column(
        SQLEnum(EnrichmentStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=EnrichmentStatus.PENDING,
        index=True,
    )

    # Timestamps
    saved_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    listing_metadata = relationship(
        "ListingMetadata",
        back_populates="listing",
        uselist=False,
        cascade="all, delete-orphan",
    )
    comparisons = relationship(
        "ListingComparison",
        back_populates="listing",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Listing {self.id}: {self.enrichment_status} - {self.source_url}>"
