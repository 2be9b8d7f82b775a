from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import relationship
from eventhub.db.base import Base


class User(Base):
    """Hub account. Only what the source and preference endpoints need lives here."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    sources = relationship("EventSource", back_populates="owner", passive_deletes=True)
    calendar_preference = relationship(
        "UserCalendarPreference", back_populates="user", uselist=False, passive_deletes=True
    )

    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
    )
