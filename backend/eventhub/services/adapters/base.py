"""
Base source adapter.

An adapter turns one configured source URL into a list of RawItems. Whatever goes
wrong inside, `fetch()` hands back a FetchResult: source-level failures land in
`result.error`, item-level failures bump `result.skipped`.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, time
from functools import wraps
from time import monotonic
from typing import ClassVar, List, Optional, Set, Tuple
import re

import httpx
import pandas as pd
import pytz
import structlog

from eventhub.config import get_settings
from eventhub.core.errors import FetchError, FetchErrorKind, ParseError
from eventhub.models.event_source import SourceKind

logger = structlog.get_logger(__name__)

MAX_ITEM_ERRORS = 50

# What a malformed field inside one upstream item can raise while it is being read.
ITEM_FAULTS = (TypeError, ValueError, OverflowError, AttributeError, KeyError)


def per_item(builder):
    """Report any ITEM_FAULTS escaping an item builder as ParseError, so only that item is skipped."""

    @wraps(builder)
    def wrapper(*args, **kwargs):
        try:
            return builder(*args, **kwargs)
        except ITEM_FAULTS as exc:
            raise ParseError(f"malformed item ({type(exc).__name__}: {exc})") from exc

    return wrapper


@dataclass
class RawItem:
    """One event as read from an upstream source, before normalization."""

    native_id: Optional[str]
    title: str
    description: str = ""
    start_date: Optional[date] = None
    start_time: Optional[time] = None
    location: Optional[str] = None
    capacity: Optional[int] = None
    registration_url: Optional[str] = None
    attendance_mode: Optional[str] = None  # online | offline | mixed


@dataclass
class FetchResult:
    items: List[RawItem] = field(default_factory=list)
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    error: Optional[FetchError] = None
    _seen: Set[str] = field(default_factory=set, repr=False)

    @property
    def ok(self) -> bool:
        return self.error is None

    def add(self, item: RawItem) -> None:
        # The same upstream event often shows up more than once in one payload.
        if item.native_id:
            if item.native_id in self._seen:
                return
            self._seen.add(item.native_id)
        self.items.append(item)

    def skip(self, reason: str) -> None:
        self.skipped += 1
        if len(self.errors) < MAX_ITEM_ERRORS:
            self.errors.append(reason)


# ---------------------------------------------------------------------------
# Start-instant handling
# ---------------------------------------------------------------------------

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def to_local(value, tz) -> Tuple[date, Optional[time]]:
    """
    Split an upstream start value into (date, time) in the hub timezone.

    Dates (and date-only strings) are all-day and keep time=None. Naive datetimes are
    taken as already local; aware ones are converted.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ParseError("missing start")

    if isinstance(value, datetime):
        ts = pd.Timestamp(value)
    elif isinstance(value, date):
        return value, None
    else:
        s = str(value).strip()
        if _DATE_ONLY.match(s):
            try:
                return date.fromisoformat(s), None
            except ValueError as exc:
                raise ParseError(f"unparsable start: {s!r}") from exc
        ts = pd.to_datetime(s, errors="coerce")
        if pd.isna(ts):
            raise ParseError(f"unparsable start: {s!r}")

    if ts.tzinfo is None:
        ts = ts.tz_localize(tz, ambiguous=False, nonexistent="shift_forward")
    else:
        ts = ts.tz_convert(tz)
    local = ts.to_pydatetime()
    return local.date(), local.time().replace(microsecond=0)


# ---------------------------------------------------------------------------
# Adapter base
# ---------------------------------------------------------------------------

class SourceAdapter(ABC):
    """
    Strategy base for the per-kind adapters.

    Subclasses implement `_collect(client, url, result)`, raising FetchError for
    source-level failures and calling `result.skip(...)` for bad items.
    """

    kind: ClassVar[SourceKind]
    _clock = staticmethod(monotonic)

    def __init__(
        self,
        *,
        client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
        timezone: Optional[str] = None,
        user_agent: Optional[str] = None,
        run_budget: Optional[float] = None,
    ):
        settings = get_settings()
        self._client = client
        self.timeout = timeout or settings.FETCH_TIMEOUT_SECONDS
        self.run_budget = run_budget or settings.FETCH_RUN_BUDGET_SECONDS
        self._deadline: Optional[float] = None
        self.tz = pytz.timezone(timezone or settings.EVENT_TIMEZONE)
        self.user_agent = user_agent or settings.FETCH_USER_AGENT

    def fetch(self, url: str) -> FetchResult:
        result = FetchResult()
        self._deadline = self._clock() + self.run_budget
        owns_client = self._client is None
        client = self._client or httpx.Client(follow_redirects=True)
        try:
            self._collect(client, url, result)
        except FetchError as exc:
            result = FetchResult(error=exc)
        except Exception as exc:  # noqa: BLE001 - nothing escapes the adapter boundary
            logger.exception("adapter.unexpected_error", kind=self.kind.value, url=url)
            result = FetchResult(error=FetchError(FetchErrorKind.PARSE_FAILURE, f"unexpected error: {exc}"))
        finally:
            if owns_client:
                client.close()

        logger.info(
            "adapter.fetched",
            kind=self.kind.value,
            url=url,
            items=len(result.items),
            skipped=result.skipped,
            error=str(result.error) if result.error else None,
        )
        return result

    def time_left(self) -> float:
        """Seconds remaining in the current run budget."""
        if self._deadline is None:
            return self.run_budget
        return self._deadline - self._clock()

    @abstractmethod
    def _collect(self, client: httpx.Client, url: str, result: FetchResult) -> None:
        ...

    def _get(self, client: httpx.Client, url: str, accept: str = "text/html,application/xhtml+xml,*/*;q=0.8") -> httpx.Response:
        """GET within the per-request timeout and the run budget, mapping transport problems onto FetchError."""
        left = self.time_left()
        if left <= 0:
            raise FetchError(FetchErrorKind.TIMEOUT, f"run budget of {self.run_budget:g}s used up before fetching {url}")
        timeout = min(self.timeout, left)
        headers = {"User-Agent": self.user_agent, "Accept": accept}
        try:
            resp = client.get(url, headers=headers, timeout=timeout, follow_redirects=True)
        except httpx.TimeoutException as exc:
            raise FetchError(FetchErrorKind.TIMEOUT, f"timed out after {timeout:g}s fetching {url}") from exc
        except httpx.HTTPError as exc:
            raise FetchError(FetchErrorKind.UPSTREAM_UNREACHABLE, f"could not reach {url}: {exc}") from exc

        if not resp.is_success:
            raise FetchError(FetchErrorKind.UPSTREAM_STATUS, f"{url} answered HTTP {resp.status_code}")
        return resp
