"""
Registration-platform adapter (Eventbrite / Luma style pages).

Handles both single-event URLs and calendar/collection URLs. Strategies, first hit wins:

1. schema.org JSON-LD Event objects (including ItemList members)
2. an advertised iCalendar alternate link, parsed like a generic feed
3. embedded application state (`__NEXT_DATA__`, `window.__SERVER_DATA__`)
4. enumerating member event links on a collection page and reading each one
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import urljoin, urlparse
import re

import httpx
import structlog

from eventhub.core.errors import FetchError, FetchErrorKind, ParseError
from eventhub.models.event_source import SourceKind
from eventhub.services.adapters.base import FetchResult, RawItem, SourceAdapter, per_item, to_local
from eventhub.services.adapters import structured
from eventhub.services.adapters.generic_feed import parse_calendar
from eventhub.utils.numeric import coerce_capacity

logger = structlog.get_logger(__name__)

MAX_MEMBER_PAGES = 20

# Paths that identify a single event page on the supported platforms.
_EVENT_LINK = re.compile(r"(/e/[^/?#]+)|(^https?://(www\.)?(lu\.ma|luma\.com)/(?!calendar|discover|explore|home|user|signin|pricing)[A-Za-z0-9_-]+/?$)")

_START_KEYS = ("start_at", "startDate", "start_date")
_TITLE_KEYS = ("name", "title")


def _start_value(node: Dict[str, Any]) -> Any:
    start = node.get("start")
    if isinstance(start, dict):
        return start.get("utc") or start.get("local")
    return structured.first_value(node, *_START_KEYS)


def _state_location(node: Dict[str, Any]) -> Optional[str]:
    geo = node.get("geo_address_info")
    if isinstance(geo, dict) and geo.get("full_address"):
        return str(geo["full_address"])
    venue = node.get("venue")
    if isinstance(venue, dict):
        addr = venue.get("address")
        if isinstance(addr, dict) and addr.get("localized_address_display"):
            return str(addr["localized_address_display"])
        if venue.get("name"):
            return str(venue["name"])
    loc = node.get("location") or node.get("address")
    return str(loc) if isinstance(loc, str) and loc else None


def _state_title(node: Dict[str, Any]) -> str:
    value = structured.first_value(node, *_TITLE_KEYS)
    if isinstance(value, dict):
        value = value.get("text")
    return str(value or "").strip()


@per_item
def item_from_state_node(node: Dict[str, Any], page_url: str, tz) -> RawItem:
    start_date, start_time = to_local(_start_value(node), tz)
    link = node.get("url")
    if isinstance(link, str) and link:
        link = link if link.startswith("http") else urljoin(_site_root(page_url), link)
    else:
        link = page_url
    description = node.get("description") or node.get("summary") or ""
    if isinstance(description, dict):
        description = description.get("text") or ""
    online = node.get("online_event")
    if online is None and node.get("location_type") in ("online", "offline"):
        online = node.get("location_type") == "online"
    return RawItem(
        native_id=str(node.get("api_id") or node.get("id") or link),
        title=_state_title(node),
        description=str(description),
        start_date=start_date,
        start_time=start_time,
        location=_state_location(node),
        capacity=coerce_capacity(node.get("capacity")),
        registration_url=link,
        attendance_mode=None if online is None else ("online" if online else "offline"),
    )


def _looks_like_state_event(node: Dict[str, Any]) -> bool:
    return bool(_state_title(node)) and _start_value(node) is not None


def _site_root(url: str) -> str:
    p = urlparse(url)
    return f"{p.scheme}://{p.netloc}/"


class RegistrationPlatformAdapter(SourceAdapter):
    kind = SourceKind.REGISTRATION_PLATFORM

    def _collect(self, client: httpx.Client, url: str, result: FetchResult) -> None:
        resp = self._get(client, url)
        html = resp.text
        soup = structured.soup_of(html)

        member_urls: List[str] = []
        for obj in structured.iter_json_ld(soup):
            if structured.is_event(obj):
                self._add_json_ld(obj, url, result)
            elif structured.is_item_list(obj):
                events, urls = structured.item_list_members(obj)
                for ev in events:
                    self._add_json_ld(ev, url, result)
                member_urls.extend(urljoin(url, u) for u in urls)
        if result.items or (result.skipped and not member_urls):
            return

        ics_link = soup.find("link", attrs={"type": "text/calendar"})
        if ics_link is not None and ics_link.get("href"):
            ics_url = urljoin(url, ics_link["href"])
            logger.info("registration.ics_alternate", url=ics_url)
            feed = self._get(client, ics_url, accept="text/calendar, */*;q=0.5")
            parse_calendar(feed.text, self.tz, result)
            return

        state = structured.next_data(soup) or structured.server_data(html)
        if state is not None:
            for node in structured.walk(state):
                if not _looks_like_state_event(node):
                    continue
                try:
                    result.add(item_from_state_node(node, url, self.tz))
                except ParseError as exc:
                    result.skip(f"{_state_title(node)}: {exc}")
            if result.items:
                return

        if not member_urls:
            member_urls = self._event_links(soup, url)
        if member_urls:
            self._collect_members(client, member_urls[:MAX_MEMBER_PAGES], result)
            return

        if state is None:
            raise FetchError(FetchErrorKind.PARSE_FAILURE, f"unrecognized registration page structure at {url}")

    def _add_json_ld(self, obj: Dict[str, Any], page_url: str, result: FetchResult) -> None:
        try:
            result.add(structured.event_from_json_ld(obj, page_url, self.tz))
        except ParseError as exc:
            result.skip(f"{obj.get('name') or 'event'}: {exc}")

    def _event_links(self, soup, page_url: str) -> List[str]:
        seen: List[str] = []
        page = page_url.rstrip("/")
        for a in soup.find_all("a", href=True):
            href = urljoin(page_url, a["href"]).split("?")[0].split("#")[0]
            if href.rstrip("/") == page or href in seen:
                continue
            if _EVENT_LINK.search(href):
                seen.append(href)
        return seen

    def _collect_members(self, client: httpx.Client, urls: List[str], result: FetchResult) -> None:
        """Read each member event page; a member that fails counts as one skipped item."""
        for n, member in enumerate(urls):
            if self.time_left() <= 0:
                for rest in urls[n:]:
                    result.skip(f"{rest}: run budget of {self.run_budget:g}s used up")
                logger.warning("registration.members.budget_exhausted", remaining=len(urls) - n)
                return
            try:
                resp = self._get(client, member)
            except FetchError as exc:
                result.skip(f"{member}: {exc}")
                continue
            soup = structured.soup_of(resp.text)
            event = next((o for o in structured.iter_json_ld(soup) if structured.is_event(o)), None)
            if event is None:
                result.skip(f"{member}: no event data on page")
                continue
            try:
                result.add(structured.event_from_json_ld(event, member, self.tz))
            except ParseError as exc:
                result.skip(f"{member}: {exc}")
