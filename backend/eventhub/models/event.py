from __future__ import annotations

from enum import Enum

from sqlalchemy import (
    Column, Integer, String, Text, Date, Time, DateTime, ForeignKey,
    UniqueConstraint, Index, func,
)
from sqlalchemy.orm import relationship
from eventhub.db.base import Base


class EventKind(str, Enum):
    VIRTUAL = "virtual"
    IN_PERSON = "in_person"
    HYBRID = "hybrid"


class EventOrigin(str, Enum):
    INTERNAL = "internal"
    IMPORTED = "imported"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Event(Base):
    """
    Canonical event row shared by internally authored and imported events.

    Imported rows carry (source_id, external_id); internal rows leave both NULL.
    approval_status belongs to the approval workflow and is never rewritten by a sync.
    """

    __tablename__ = "events"

    id = Column(Integer, primary_key=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    event_date = Column(Date, nullable=False)
    event_time = Column(Time, nullable=True)
    location = Column(String(1000), nullable=True)
    event_kind = Column(String(16), nullable=False, default=EventKind.IN_PERSON.value)
    max_attendees = Column(Integer, nullable=True)
    current_attendees = Column(Integer, nullable=False, default=0)
    registration_url = Column(String(2048), nullable=True)

    origin = Column(String(16), nullable=False, default=EventOrigin.INTERNAL.value)
    approval_status = Column(String(16), nullable=False, default=ApprovalStatus.PENDING.value)
    source_id = Column(Integer, ForeignKey("event_sources.id", ondelete="CASCADE"), nullable=True)
    external_id = Column(String(512), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    source = relationship("EventSource", back_populates="events")

    __table_args__ = (
        UniqueConstraint("source_id", "external_id", name="uq_events_source_external"),
        Index("ix_events_event_date", "event_date"),
        Index("ix_events_source_id", "source_id"),
        Index("ix_events_approval_date", "approval_status", "event_date"),
    )
