from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.sql import func

from flatlist.core.database import Base


class UserPreference(Base):
    """A user's free-text dream apartment description. NULL disables matching."""
    __tablename__ = "user_preferences"

    user_id = Column(String(64), primary_key=True)
    dream_apartment_description = Column(Text)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<UserPreference {self.user_id}>"
