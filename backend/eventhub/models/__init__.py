from .user import User
from .event_source import EventSource, SourceKind, SyncStatus
from .event import Event, EventKind, EventOrigin, ApprovalStatus
from .calendar_preference import UserCalendarPreference


__all__ = [
    "User",
    "EventSource",
    "SourceKind",
    "SyncStatus",
    "Event",
    "EventKind",
    "EventOrigin",
    "ApprovalStatus",
    "UserCalendarPreference",
]
