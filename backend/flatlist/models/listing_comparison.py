"""
Per-user match score of a listing against the user's dream apartment description.
"""
import uuid

from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from flatlist.core.database import Base


class ListingComparison(Base):
    __tablename__ = "listing_comparisons"
    __table_args__ = (
        UniqueConstraint("listing_id", "user_id", name="uq_listing_comparisons_listing_user"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    listing_id = Column(
        String(36),
        ForeignKey("listings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(String(64), nullable=False, index=True)

    match_score = Column(Integer, nullable=False)  # 0-100
    comparison_summary = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    listing = relationship("Listing", back_populates="comparisons")

    def __repr__(self):
        return f"<ListingComparison {self.listing_id}/{self.user_id}: {self.match_score}>"
