from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, func
from sqlalchemy.orm import relationship
from eventhub.db.base import Base
from eventhub.db.types import JSON_PAYLOAD


class UserCalendarPreference(Base):
    __tablename__ = "user_calendar_preferences"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    include_all_sources = Column(Boolean, nullable=False, default=True)
    selected_sources = Column(JSON_PAYLOAD, nullable=False, default=list)  # list[int]
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    user = relationship("User", back_populates="calendar_preference")
