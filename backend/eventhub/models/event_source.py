from __future__ import annotations

from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship
from eventhub.db.base import Base


class SourceKind(str, Enum):
    GROUP_PLATFORM = "group_platform"
    REGISTRATION_PLATFORM = "registration_platform"
    GENERIC_FEED = "generic_feed"


class SyncStatus(str, Enum):
    NEVER_SYNCED = "never_synced"
    FAILING = "failing"
    HEALTHY = "healthy"


class EventSource(Base):
    """
    A configured external origin of events (group page, registration calendar, ICS feed).

    The sync columns (last_synced_at, last_sync_error, events_imported) are written
    only by the sync orchestrator. source_kind never changes after creation.
    """

    __tablename__ = "event_sources"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    source_kind = Column(String(32), nullable=False)
    url = Column(String(2048), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    last_sync_error = Column(Text, nullable=True)
    events_imported = Column(Integer, nullable=False, default=0)

    owner_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    events = relationship("Event", back_populates="source", cascade="all, delete-orphan")
    owner = relationship("User", back_populates="sources")

    __table_args__ = (
        CheckConstraint(
            "source_kind IN ('group_platform', 'registration_platform', 'generic_feed')",
            name="ck_event_sources_kind",
        ),
    )

    @property
    def sync_status(self) -> SyncStatus:
        if self.last_synced_at is None:
            return SyncStatus.NEVER_SYNCED
        if self.last_sync_error:
            return SyncStatus.FAILING
        return SyncStatus.HEALTHY
