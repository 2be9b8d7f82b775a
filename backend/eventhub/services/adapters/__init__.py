"""
Source adapters, one per SourceKind.

Callers go through `get_adapter(kind)`; nothing outside this package branches on the kind.
"""
from __future__ import annotations

from typing import Dict, Optional, Type
from urllib.parse import urlsplit

import httpx

from eventhub.models.event_source import SourceKind
from .base import FetchResult, RawItem, SourceAdapter
from .generic_feed import GenericFeedAdapter
from .group_platform import GroupPlatformAdapter
from .registration_platform import RegistrationPlatformAdapter

ADAPTERS: Dict[SourceKind, Type[SourceAdapter]] = {
    SourceKind.GROUP_PLATFORM: GroupPlatformAdapter,
    SourceKind.REGISTRATION_PLATFORM: RegistrationPlatformAdapter,
    SourceKind.GENERIC_FEED: GenericFeedAdapter,
}


def get_adapter(kind, *, client: Optional[httpx.Client] = None) -> SourceAdapter:
    """Instantiate the adapter registered for `kind` (enum member or its string value)."""
    adapter_cls = ADAPTERS[SourceKind(kind)]
    return adapter_cls(client=client)


def detect_source_kind(url: str) -> SourceKind:
    """Guess the kind from a URL when the caller did not say."""
    host = (urlsplit(url.strip()).hostname or "").lower()
    if host == "meetup.com" or host.endswith(".meetup.com"):
        return SourceKind.GROUP_PLATFORM
    if host in ("lu.ma", "luma.com", "www.luma.com") or ".eventbrite." in f".{host}":
        return SourceKind.REGISTRATION_PLATFORM
    return SourceKind.GENERIC_FEED


__all__ = [
    "ADAPTERS",
    "FetchResult",
    "RawItem",
    "SourceAdapter",
    "detect_source_kind",
    "get_adapter",
]
