from __future__ import annotations

from datetime import date, time

import httpx

from eventhub.core.errors import FetchErrorKind
from eventhub.services.adapters.registration_platform import RegistrationPlatformAdapter

from _samples import (
    EVENTBRITE_EVENT_PAGE,
    EVENTBRITE_EVENT_URL,
    FEED_5_GOOD,
    LUMA_CALENDAR_PAGE,
    LUMA_CALENDAR_URL,
    LUMA_MEMBER_PAGE,
    LUMA_SERVER_DATA_PAGE,
    REGISTRATION_ICS_LINK_PAGE,
    page,
)


def _fetch(upstream, url):
    return RegistrationPlatformAdapter(client=upstream.client()).fetch(url)


def test_single_event_page_json_ld(upstream):
    upstream.add(EVENTBRITE_EVENT_URL, EVENTBRITE_EVENT_PAGE)
    result = _fetch(upstream, EVENTBRITE_EVENT_URL)

    assert result.ok
    (item,) = result.items
    assert item.title == "Data Summit 2030"
    assert item.capacity == 1200
    assert item.registration_url == EVENTBRITE_EVENT_URL
    assert (item.start_date, item.start_time) == (date(2030, 5, 20), time(9, 0))


def test_collection_page_reads_member_pages_and_counts_failures(upstream):
    upstream.add(LUMA_CALENDAR_URL, LUMA_CALENDAR_PAGE)
    upstream.add("https://lu.ma/ai-breakfast", LUMA_MEMBER_PAGE)
    # https://lu.ma/gone-event is not routed and answers 404

    result = _fetch(upstream, LUMA_CALENDAR_URL)

    assert result.ok
    assert [i.native_id for i in result.items] == ["evt-luma-ai-breakfast"]
    assert result.skipped == 1
    assert "gone-event" in result.errors[0]


def test_member_enumeration_is_capped(upstream):
    links = "".join(f'<a href="/e/event-{n}-tickets-{n}">Event {n}</a>' for n in range(30))
    upstream.add(EVENTBRITE_EVENT_URL, page(body=links))

    result = _fetch(upstream, EVENTBRITE_EVENT_URL)

    member_calls = [c for c in upstream.calls if "/e/event-" in c]
    assert len(member_calls) == 20
    # none of the member pages exist, each one counts as a skipped item
    assert result.skipped == 20


def test_ics_alternate_link_is_parsed_like_a_feed(upstream):
    upstream.add(LUMA_CALENDAR_URL, REGISTRATION_ICS_LINK_PAGE)
    upstream.add("https://lu.ma/cdmx-tech/calendar.ics", FEED_5_GOOD, content_type="text/calendar")

    result = _fetch(upstream, LUMA_CALENDAR_URL)

    assert result.ok
    assert len(result.items) == 5


def test_server_data_state_is_walked(upstream):
    url = "https://lu.ma/founders"
    upstream.add(url, LUMA_SERVER_DATA_PAGE)

    result = _fetch(upstream, url)

    assert result.ok
    (item,) = result.items
    assert item.native_id == "evt-XyZ123"
    assert item.title == "Founders Dinner"
    assert item.registration_url == "https://lu.ma/founders-dinner"
    assert item.location == "Polanco, CDMX"
    assert item.attendance_mode == "offline"
    # 02:00Z on June 1st is 20:00 on May 31st in Mexico City
    assert (item.start_date, item.start_time) == (date(2030, 5, 31), time(20, 0))


def test_nothing_recognized_is_parse_failure(upstream):
    upstream.add(EVENTBRITE_EVENT_URL, page(body="<p>Sold out</p>"))
    result = _fetch(upstream, EVENTBRITE_EVENT_URL)

    assert result.error.kind == FetchErrorKind.PARSE_FAILURE


def test_member_pages_stop_when_the_run_budget_is_used_up(upstream):
    upstream.add(LUMA_CALENDAR_URL, LUMA_CALENDAR_PAGE)
    upstream.add("https://lu.ma/ai-breakfast", LUMA_MEMBER_PAGE)
    upstream.add("https://lu.ma/gone-event", LUMA_MEMBER_PAGE)

    adapter = RegistrationPlatformAdapter(client=upstream.client(), run_budget=45)
    # every upstream request costs 30 seconds of wall clock
    adapter._clock = lambda: 30.0 * len(upstream.calls)
    result = adapter.fetch(LUMA_CALENDAR_URL)

    assert result.ok
    assert [i.native_id for i in result.items] == ["evt-luma-ai-breakfast"]
    assert "https://lu.ma/gone-event" not in upstream.calls
    assert result.skipped == 1
    assert "run budget of 45s" in result.errors[0]


def test_request_timeout_shrinks_to_what_is_left_of_the_budget():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["timeout"] = request.extensions.get("timeout")
        return httpx.Response(200, text=EVENTBRITE_EVENT_PAGE)

    adapter = RegistrationPlatformAdapter(
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        timeout=20,
        run_budget=5,
    )
    result = adapter.fetch(EVENTBRITE_EVENT_URL)

    assert result.ok
    assert 0 < seen["timeout"]["read"] <= 5
