"""
Calendar feed composer.

Resolves which events a subscriber asked for, reads them from the canonical store
and serializes one VCALENDAR. The output is always a complete calendar, including
when nothing matches.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import FrozenSet, Iterable, List, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit
import re

import pytz
import structlog
from icalendar import Calendar, Event as VEvent
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from eventhub.config import Settings, get_settings
from eventhub.models.event import ApprovalStatus, Event, EventKind
from eventhub.models.event_source import EventSource
from eventhub.services.preferences import get_preference

logger = structlog.get_logger(__name__)

VIRTUAL_LOCATION = "Virtual event"
FEED_PATH = "/api/calendar/feed.ics"

# ASCII digits only; str.isdigit() also accepts superscripts and other scripts that int() rejects.
_ID = re.compile(r"[0-9]{1,19}")
_MAX_ID = 2**63 - 1


@dataclass(frozen=True)
class FeedSelection:
    source_ids: FrozenSet[int] = field(default_factory=frozenset)
    include_all: bool = True
    include_internal: bool = True
    user_id: Optional[int] = None


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def parse_id(raw: Optional[str]) -> Optional[int]:
    """A positive integer row id, or None when `raw` is anything else."""
    token = (raw or "").strip()
    if not _ID.fullmatch(token):
        return None
    value = int(token)
    return value if 0 < value <= _MAX_ID else None


def parse_source_ids(raw: Optional[str]) -> Optional[FrozenSet[int]]:
    """
    Parse the comma separated `sources` parameter.

    None or blank means "not given". Tokens that are not positive integers are
    dropped, so `sources=abc` selects nothing rather than everything.
    """
    if raw is None or not raw.strip():
        return None
    ids = set()
    for token in raw.split(","):
        value = parse_id(token)
        if value is not None:
            ids.add(value)
    return frozenset(ids)


def parse_include_internal(raw: Optional[str]) -> bool:
    return (raw or "").strip().lower() != "false"


def resolve_selection(
    db: Session,
    *,
    sources: Optional[str] = None,
    user: Optional[str] = None,
    internal: Optional[str] = None,
) -> FeedSelection:
    """Explicit `sources` wins, then the saved preference of `user`, then everything."""
    include_internal = parse_include_internal(internal)
    explicit = parse_source_ids(sources)
    if explicit is not None:
        return FeedSelection(source_ids=explicit, include_all=False, include_internal=include_internal)

    user_id = parse_id(user)
    if user_id is not None:
        pref = get_preference(db, user_id)
        if pref is not None and not pref.include_all_sources:
            return FeedSelection(
                source_ids=frozenset(int(s) for s in (pref.selected_sources or [])),
                include_all=False,
                include_internal=include_internal,
                user_id=user_id,
            )
    return FeedSelection(include_all=True, include_internal=include_internal, user_id=user_id)


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------

def local_today(settings: Settings) -> date:
    return datetime.now(pytz.timezone(settings.EVENT_TIMEZONE)).date()


def eligible_events(db: Session, selection: FeedSelection, *, today: date, lookback_days: int = 0) -> List[Event]:
    scopes = []
    if selection.include_all:
        active = select(EventSource.id).where(EventSource.is_active.is_(True))
        scopes.append(Event.source_id.in_(active))
    elif selection.source_ids:
        scopes.append(Event.source_id.in_(sorted(selection.source_ids)))
    if selection.include_internal:
        scopes.append(Event.source_id.is_(None))
    if not scopes:
        return []

    stmt = (
        select(Event)
        .where(
            Event.approval_status == ApprovalStatus.APPROVED.value,
            Event.event_date >= today - timedelta(days=lookback_days),
            or_(*scopes),
        )
        .order_by(Event.event_date, Event.event_time, Event.id)
    )
    return list(db.execute(stmt).scalars())


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        # SQLite hands back naive timestamps; they were written as UTC.
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _vevent(row: Event, settings: Settings, tz, stamp: datetime) -> VEvent:
    ev = VEvent()
    ev.add("uid", f"{row.id}@{settings.FEED_UID_DOMAIN}")
    ev.add("dtstamp", stamp)

    if row.event_time is not None:
        start = tz.localize(datetime.combine(row.event_date, row.event_time)).astimezone(timezone.utc)
        ev.add("dtstart", start)
        ev.add("dtend", start + timedelta(hours=settings.FEED_DEFAULT_DURATION_HOURS))
    else:
        ev.add("dtstart", row.event_date)
        ev.add("dtend", row.event_date + timedelta(days=1))

    created = _as_utc(row.created_at)
    if created is not None:
        ev.add("created", created)
    modified = _as_utc(row.updated_at) or created
    if modified is not None:
        ev.add("last-modified", modified)

    ev.add("summary", row.title)
    ev.add("description", row.description or "")
    location = row.location
    if not location and row.event_kind == EventKind.VIRTUAL.value:
        location = VIRTUAL_LOCATION
    if location:
        ev.add("location", location)
    if row.registration_url:
        ev.add("url", row.registration_url)
    ev.add("status", "CONFIRMED")
    return ev


def render_calendar(rows: Iterable[Event], settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    tz = pytz.timezone(settings.EVENT_TIMEZONE)

    cal = Calendar()
    cal.add("prodid", settings.FEED_PRODID)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("method", "PUBLISH")
    cal.add("x-wr-calname", settings.FEED_CALENDAR_NAME)
    cal.add("x-wr-timezone", settings.EVENT_TIMEZONE)

    stamp = datetime.now(timezone.utc).replace(microsecond=0)
    for row in rows:
        cal.add_component(_vevent(row, settings, tz, stamp))
    return cal.to_ical().decode("utf-8")


def compose(db: Session, selection: FeedSelection, *, today: Optional[date] = None) -> str:
    """Query the events `selection` covers and return them as iCalendar text."""
    settings = get_settings()
    today = today or local_today(settings)
    rows = eligible_events(db, selection, today=today, lookback_days=settings.FEED_LOOKBACK_DAYS)
    body = render_calendar(rows, settings)
    logger.info(
        "feed.composed",
        events=len(rows),
        include_all=selection.include_all,
        sources=sorted(selection.source_ids),
        include_internal=selection.include_internal,
    )
    return body


# ---------------------------------------------------------------------------
# Subscription links
# ---------------------------------------------------------------------------

def feed_query(selection: FeedSelection) -> str:
    params = {}
    # A user link follows later preference changes; a sources link is frozen.
    if selection.user_id is not None:
        params["user"] = str(selection.user_id)
    elif not selection.include_all:
        params["sources"] = ",".join(str(s) for s in sorted(selection.source_ids))
    if not selection.include_internal:
        params["internal"] = "false"
    return urlencode(params, safe=",")


def feed_links(base_url: str, selection: FeedSelection) -> dict:
    """Both subscription URLs for one selection; they hit the same handler."""
    parts = urlsplit(base_url)
    query = feed_query(selection)
    https = urlunsplit(("https", parts.netloc, FEED_PATH, query, ""))
    webcal = urlunsplit(("webcal", parts.netloc, FEED_PATH, query, ""))
    return {"https": https, "webcal": webcal}
