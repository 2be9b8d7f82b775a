"""Generic iCalendar feed adapter (any public .ics export)."""
from __future__ import annotations

from datetime import date, datetime
from typing import Optional

import httpx
import structlog
from icalendar import Calendar

from eventhub.core.errors import FetchError, FetchErrorKind, ParseError
from eventhub.models.event_source import SourceKind
from eventhub.services.adapters.base import FetchResult, RawItem, SourceAdapter, per_item, to_local

logger = structlog.get_logger(__name__)


def _prop_text(component, name: str) -> str:
    value = component.get(name)
    if value is None:
        return ""
    return str(value).strip()


def _native_id(component) -> Optional[str]:
    uid = _prop_text(component, "UID")
    if not uid:
        return None
    # Overrides of a recurring series share the UID; RECURRENCE-ID tells them apart.
    rid = component.get("RECURRENCE-ID")
    rid_dt = getattr(rid, "dt", None)
    if isinstance(rid_dt, (date, datetime)):
        return f"{uid}@{rid_dt.isoformat()}"
    return uid


@per_item
def item_from_vevent(component, tz) -> RawItem:
    """Map one VEVENT onto a RawItem. Raises ParseError for a malformed component."""
    broken = {name for name, _msg in getattr(component, "errors", []) or []}
    if "DTSTART" in broken:
        raise ParseError("malformed DTSTART")

    dtstart = component.get("DTSTART")
    if dtstart is None:
        raise ParseError("VEVENT without DTSTART")
    start = getattr(dtstart, "dt", None)
    if not isinstance(start, (date, datetime)):
        raise ParseError(f"unparsable DTSTART: {dtstart!r}")
    start_date, start_time = to_local(start, tz)

    return RawItem(
        native_id=_native_id(component),
        title=_prop_text(component, "SUMMARY"),
        description=_prop_text(component, "DESCRIPTION"),
        start_date=start_date,
        start_time=start_time,
        location=_prop_text(component, "LOCATION") or None,
        registration_url=_prop_text(component, "URL") or None,
    )


def parse_calendar(text: str, tz, result: FetchResult) -> None:
    """
    Parse an iCalendar document into `result`.

    Only a document that is not iCalendar at all raises FetchError; each VEVENT that
    cannot be read is skipped and counted.
    """
    if "BEGIN:VCALENDAR" not in text:
        raise FetchError(FetchErrorKind.PARSE_FAILURE, "payload is not an iCalendar document")
    try:
        cal = Calendar.from_ical(text)
    except ValueError as exc:
        raise FetchError(FetchErrorKind.PARSE_FAILURE, f"unparsable iCalendar document: {exc}") from exc

    for component in cal.walk("VEVENT"):
        try:
            result.add(item_from_vevent(component, tz))
        except ParseError as exc:
            uid = _prop_text(component, "UID") or "?"
            logger.warning("ics.component_skipped", uid=uid, error=str(exc))
            result.skip(f"VEVENT {uid}: {exc}")


class GenericFeedAdapter(SourceAdapter):
    kind = SourceKind.GENERIC_FEED

    def _collect(self, client: httpx.Client, url: str, result: FetchResult) -> None:
        if url.lower().startswith("webcal://"):
            url = "https://" + url[len("webcal://"):]
        resp = self._get(client, url, accept="text/calendar, */*;q=0.5")
        parse_calendar(resp.text, self.tz, result)
