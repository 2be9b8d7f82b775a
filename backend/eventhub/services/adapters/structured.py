"""Helpers for pulling event data out of HTML pages (schema.org JSON-LD, embedded app state)."""
from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional, Tuple
from urllib.parse import urljoin
import json
import re

import structlog
from bs4 import BeautifulSoup

from eventhub.services.adapters.base import RawItem, per_item, to_local
from eventhub.utils.numeric import coerce_capacity

logger = structlog.get_logger(__name__)

_ATTENDANCE_MODES = {
    "onlineeventattendancemode": "online",
    "offlineeventattendancemode": "offline",
    "mixedeventattendancemode": "mixed",
}

_SERVER_DATA = re.compile(r"window\.__SERVER_DATA__\s*=\s*(\{.*?\});?\s*</script>", re.S | re.I)


def soup_of(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


# ---------------------------------------------------------------------------
# JSON-LD
# ---------------------------------------------------------------------------

def iter_json_ld(soup: BeautifulSoup) -> Iterator[Dict[str, Any]]:
    """Yield every JSON-LD object on the page, flattening arrays and @graph blocks."""
    for tag in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = tag.string or tag.get_text() or ""
        if not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except ValueError as exc:
            logger.debug("json_ld.parse_failed", error=str(exc))
            continue
        stack = data if isinstance(data, list) else [data]
        for obj in stack:
            if not isinstance(obj, dict):
                continue
            graph = obj.get("@graph")
            if isinstance(graph, list):
                yield from (g for g in graph if isinstance(g, dict))
            else:
                yield obj


def _types(obj: Dict[str, Any]) -> List[str]:
    t = obj.get("@type")
    if isinstance(t, list):
        return [str(x) for x in t]
    return [str(t)] if t else []


def is_event(obj: Dict[str, Any]) -> bool:
    # Event, SocialEvent, EducationEvent, BusinessEvent, ...
    return any(t.endswith("Event") for t in _types(obj))


def is_item_list(obj: Dict[str, Any]) -> bool:
    return "ItemList" in _types(obj)


def item_list_members(obj: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], List[str]]:
    """Split an ItemList into embedded Event objects and bare member URLs."""
    events: List[Dict[str, Any]] = []
    urls: List[str] = []
    for el in obj.get("itemListElement") or []:
        if not isinstance(el, dict):
            continue
        item = el.get("item") if isinstance(el.get("item"), dict) else el
        if is_event(item):
            events.append(item)
        elif isinstance(item.get("url"), str):
            urls.append(item["url"])
    return events, urls


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        # Eventbrite-style {"text": ..., "html": ...}
        return str(value.get("text") or value.get("name") or "")
    return str(value)


def json_ld_location(location: Any) -> str:
    if not location:
        return ""
    if isinstance(location, list):
        parts = [json_ld_location(loc) for loc in location]
        return "; ".join(p for p in parts if p)
    if isinstance(location, str):
        return location
    if not isinstance(location, dict):
        return ""
    if "VirtualLocation" in _types(location):
        return str(location.get("url") or "")

    addr = location.get("address")
    addr_parts: List[str] = []
    if isinstance(addr, dict):
        addr_parts = [
            str(addr[k]) for k in ("streetAddress", "addressLocality", "addressRegion") if addr.get(k)
        ]
    elif isinstance(addr, str) and addr:
        addr_parts = [addr]

    name = location.get("name")
    if name:
        return ", ".join([str(name)] + addr_parts)
    return ", ".join(addr_parts)


def attendance_mode(obj: Dict[str, Any]) -> Optional[str]:
    mode = obj.get("eventAttendanceMode")
    if not isinstance(mode, str):
        return None
    return _ATTENDANCE_MODES.get(mode.rsplit("/", 1)[-1].lower())


@per_item
def event_from_json_ld(obj: Dict[str, Any], page_url: str, tz, native_id: Optional[str] = None) -> RawItem:
    """Build a RawItem from a schema.org Event. Raises ParseError when the start is unusable."""
    start_date, start_time = to_local(obj.get("startDate"), tz)
    url = obj.get("url") if isinstance(obj.get("url"), str) else None
    offers = obj.get("offers")
    if not url and isinstance(offers, dict) and isinstance(offers.get("url"), str):
        url = offers["url"]
    url = urljoin(page_url, url) if url else page_url

    return RawItem(
        native_id=native_id or (str(obj["@id"]) if obj.get("@id") else None) or url,
        title=_text(obj.get("name") or obj.get("headline")).strip(),
        description=_text(obj.get("description")),
        start_date=start_date,
        start_time=start_time,
        location=json_ld_location(obj.get("location")) or None,
        capacity=coerce_capacity(obj.get("maximumAttendeeCapacity")),
        registration_url=url,
        attendance_mode=attendance_mode(obj),
    )


# ---------------------------------------------------------------------------
# Embedded application state
# ---------------------------------------------------------------------------

def next_data(soup: BeautifulSoup) -> Optional[Dict[str, Any]]:
    tag = soup.find("script", attrs={"id": "__NEXT_DATA__"})
    if tag is None:
        return None
    try:
        data = json.loads(tag.string or tag.get_text() or "")
    except ValueError as exc:
        logger.debug("next_data.parse_failed", error=str(exc))
        return None
    return data if isinstance(data, dict) else None


def server_data(html: str) -> Optional[Dict[str, Any]]:
    m = _SERVER_DATA.search(html)
    if not m:
        return None
    try:
        data = json.loads(m.group(1))
    except ValueError as exc:
        logger.debug("server_data.parse_failed", error=str(exc))
        return None
    return data if isinstance(data, dict) else None


def walk(obj: Any, max_depth: int = 25) -> Iterator[Dict[str, Any]]:
    """Depth-first iteration over every dict nested inside a JSON value."""
    stack: List[Tuple[Any, int]] = [(obj, 0)]
    while stack:
        node, depth = stack.pop()
        if depth > max_depth:
            continue
        if isinstance(node, dict):
            yield node
            children = list(node.values())
        elif isinstance(node, list):
            children = node
        else:
            continue
        for child in reversed(children):
            if isinstance(child, (dict, list)):
                stack.append((child, depth + 1))


def first_value(node: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = node.get(key)
        if value not in (None, ""):
            return value
    return None


__all__ = [
    "soup_of",
    "iter_json_ld",
    "is_event",
    "is_item_list",
    "item_list_members",
    "json_ld_location",
    "attendance_mode",
    "event_from_json_ld",
    "next_data",
    "server_data",
    "walk",
    "first_value",
]
