from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from typing import Optional
import re

from eventhub.core.errors import ValidationError
from eventhub.models.event import EventKind
from eventhub.models.event_source import SourceKind
from eventhub.services.adapters.base import RawItem

DESCRIPTION_MAX_LEN = 5000
TITLE_MAX_LEN = 500

_MEETING_URL = re.compile(
    r"(zoom\.us|meet\.google\.com|teams\.microsoft\.com|teams\.live\.com|webex\.com|"
    r"whereby\.com|jitsi|discord\.(gg|com)|youtube\.com/live|twitch\.tv|^https?://)",
    re.I,
)
_WS = re.compile(r"[ \t]+")


@dataclass
class EventDraft:
    """Canonical field values for one upstream item, ready for dedup."""

    native_id: Optional[str]
    title: str
    description: str
    event_date: Optional[date]
    event_time: Optional[time]
    location: Optional[str]
    event_kind: EventKind
    max_attendees: Optional[int]
    registration_url: Optional[str]
    invalid_reason: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.invalid_reason is None

    def imported_fields(self) -> dict:
        """The columns a sync owns; these are overwritten on every update."""
        return {
            "title": self.title,
            "description": self.description,
            "event_date": self.event_date,
            "event_time": self.event_time,
            "location": self.location,
            "event_kind": self.event_kind.value,
            "max_attendees": self.max_attendees,
            "registration_url": self.registration_url,
        }


def looks_like_meeting_url(location: Optional[str]) -> bool:
    return bool(location) and bool(_MEETING_URL.search(location.strip()))


def _clean(text: Optional[str]) -> str:
    if not text:
        return ""
    lines = [_WS.sub(" ", ln).strip() for ln in str(text).replace("\r\n", "\n").split("\n")]
    return "\n".join(lines).strip()


def infer_event_kind(raw: RawItem, kind: SourceKind, location: Optional[str]) -> EventKind:
    if raw.attendance_mode == "online":
        return EventKind.VIRTUAL
    if raw.attendance_mode == "mixed":
        return EventKind.HYBRID
    if raw.attendance_mode == "offline":
        return EventKind.IN_PERSON
    if looks_like_meeting_url(location):
        return EventKind.VIRTUAL
    if kind == SourceKind.REGISTRATION_PLATFORM:
        return EventKind.IN_PERSON
    return EventKind.IN_PERSON if location else EventKind.VIRTUAL


def _validate(draft: EventDraft) -> None:
    if not draft.title:
        raise ValidationError("missing title")
    if draft.event_date is None:
        raise ValidationError("missing start date")


def normalize(raw: RawItem, kind) -> EventDraft:
    """
    Map a RawItem onto canonical field values.

    Never raises: a draft missing a required field comes back with
    `invalid_reason` set and is skipped by the merge step.
    """
    kind = SourceKind(kind)
    location = _clean(raw.location) or None
    draft = EventDraft(
        native_id=(raw.native_id or "").strip() or None,
        title=_clean(raw.title).replace("\n", " ")[:TITLE_MAX_LEN],
        description=_clean(raw.description)[:DESCRIPTION_MAX_LEN],
        event_date=raw.start_date,
        event_time=raw.start_time if raw.start_date is not None else None,
        location=location,
        event_kind=infer_event_kind(raw, kind, location),
        max_attendees=raw.capacity,
        registration_url=(raw.registration_url or "").strip() or None,
    )
    try:
        _validate(draft)
    except ValidationError as exc:
        draft.invalid_reason = str(exc)
    return draft
