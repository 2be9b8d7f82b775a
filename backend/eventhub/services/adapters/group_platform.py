"""
Group-platform adapter (Meetup-style group pages).

The public group page carries its upcoming events either as schema.org JSON-LD or
inside the Next.js `__NEXT_DATA__` state. A page with neither is treated as an
unrecognized structure and fails the fetch.
"""
from __future__ import annotations

from typing import Any, Dict, Optional
from urllib.parse import urljoin
import re

import httpx

from eventhub.core.errors import FetchError, FetchErrorKind, ParseError
from eventhub.models.event_source import SourceKind
from eventhub.services.adapters.base import FetchResult, RawItem, SourceAdapter, per_item, to_local
from eventhub.services.adapters import structured
from eventhub.utils.numeric import coerce_capacity

_EVENT_ID = re.compile(r"/events/(\d+)")
BASE_URL = "https://www.meetup.com"


def native_event_id(url: Optional[str]) -> Optional[str]:
    """Meetup event URLs end in /events/<numeric id>/; that id is stable across page layouts."""
    if not url:
        return None
    m = _EVENT_ID.search(url)
    return m.group(1) if m else None


def _venue(node: Dict[str, Any]) -> Optional[str]:
    venue = node.get("venue")
    if isinstance(venue, dict):
        parts = [venue.get("name"), venue.get("address"), venue.get("city")]
        text = ", ".join(str(p) for p in parts if p)
        return text or None
    if isinstance(venue, str):
        return venue or None
    return None


def _attendance(node: Dict[str, Any]) -> Optional[str]:
    kind = str(node.get("eventType") or "").upper()
    if kind == "ONLINE" or node.get("isOnline") is True:
        return "online"
    if kind == "PHYSICAL":
        return "offline"
    if kind == "HYBRID":
        return "mixed"
    return None


@per_item
def item_from_state_node(node: Dict[str, Any], tz) -> RawItem:
    start_date, start_time = to_local(node.get("dateTime"), tz)
    event_url = str(node.get("eventUrl"))
    if not event_url.startswith("http"):
        event_url = urljoin(BASE_URL, event_url)
    native = str(node["id"]) if node.get("id") else native_event_id(event_url) or event_url
    return RawItem(
        native_id=native,
        title=str(node.get("title") or "").strip(),
        description=str(node.get("description") or ""),
        start_date=start_date,
        start_time=start_time,
        location=_venue(node),
        capacity=coerce_capacity(node.get("maxTickets") or node.get("rsvpLimit")),
        registration_url=event_url,
        attendance_mode=_attendance(node),
    )


class GroupPlatformAdapter(SourceAdapter):
    kind = SourceKind.GROUP_PLATFORM

    def _collect(self, client: httpx.Client, url: str, result: FetchResult) -> None:
        resp = self._get(client, url)
        soup = structured.soup_of(resp.text)
        recognized = False

        json_ld = list(structured.iter_json_ld(soup))
        if json_ld:
            recognized = True
            for obj in json_ld:
                if not structured.is_event(obj):
                    continue
                try:
                    item = structured.event_from_json_ld(
                        obj, url, self.tz, native_id=native_event_id(obj.get("url"))
                    )
                except ParseError as exc:
                    result.skip(f"{obj.get('name') or 'event'}: {exc}")
                    continue
                result.add(item)

        if not result.items:
            state = structured.next_data(soup)
            if state is not None:
                recognized = True
                for node in structured.walk(state):
                    if not (node.get("title") and node.get("dateTime") and node.get("eventUrl")):
                        continue
                    try:
                        result.add(item_from_state_node(node, self.tz))
                    except ParseError as exc:
                        result.skip(f"{node.get('title')}: {exc}")

        if not recognized:
            raise FetchError(FetchErrorKind.PARSE_FAILURE, f"unrecognized group page structure at {url}")
