"""
Structured metadata derived from a listing by the enrichment pipeline.

At most one row per listing. Rows are overwritten wholesale on every
enrichment run, never patched field by field.
"""
import uuid

from sqlalchemy import Column, String, Integer, Float, Boolean, DateTime, JSON, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from flatlist.core.database import Base


class ListingMetadata(Base):
    __tablename__ = "listing_metadata"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    listing_id = Column(
        String(36),
        ForeignKey("listings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    # Hard facts
    price = Column(Float)
    currency = Column(String(3))  # ISO 4217, e.g. "EUR"
    address = Column(String(500))
    latitude = Column(Float)  # NULL when geocoding found nothing
    longitude = Column(Float)
    size_sqm = Column(Float)  # Always square meters
    size_unit = Column(String(10))  # Unit the listing used: "sqm" or "sqft"
    rooms = Column(Integer)
    bedrooms = Column(Integer)
    bathrooms = Column(Integer)
    beds_single = Column(Integer)
    beds_double = Column(Integer)
    furnishing = Column(String(100))
    condo_fees = Column(Float)
    listing_type = Column(String(10))  # "rent" or "sale"

    # Inferred attributes (closed domains)
    student_friendly = Column(Boolean)
    floor_type = Column(String(10))  # wood, tile, unknown
    natural_light = Column(String(10))  # low, medium, high
    noise_level = Column(String(10))  # low, medium, high
    renovation_state = Column(String(10))  # new, ok, old
    pet_friendly = Column(Boolean)
    balcony = Column(Boolean)

    vibe_tags = Column(JSON)  # list[str]
    evidence = Column(JSON)  # attribute name -> supporting snippet

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    listing = relationship("Listing", back_populates="listing_metadata")

    def __repr__(self):
        return f"<ListingMetadata {self.listing_id}: {self.address}>"
