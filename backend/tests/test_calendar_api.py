from __future__ import annotations

from datetime import date, timedelta

from icalendar import Calendar
from sqlalchemy.exc import OperationalError

from eventhub.models.event import Event
from eventhub.models.event_source import EventSource

from _helpers import error_of, unwrap


def _upcoming(days=30):
    return date.today() + timedelta(days=days)


def _seed(db):
    a = EventSource(name="a", source_kind="generic_feed", url="https://a.example/f.ics")
    b = EventSource(name="b", source_kind="generic_feed", url="https://b.example/f.ics")
    db.add_all([a, b])
    db.commit()
    db.add_all([
        Event(title="From A", event_date=_upcoming(), source_id=a.id, external_id="a1", origin="imported", approval_status="approved"),
        Event(title="From B", event_date=_upcoming(), source_id=b.id, external_id="b1", origin="imported", approval_status="approved"),
        Event(title="Internal", event_date=_upcoming(), approval_status="approved"),
        Event(title="Pending", event_date=_upcoming(), approval_status="pending"),
    ])
    db.commit()
    return a, b


def _titles(resp):
    return sorted(str(v["SUMMARY"]) for v in Calendar.from_ical(resp.text).walk("VEVENT"))


def test_feed_is_public_icalendar(anon_client, db):
    _seed(db)

    r = anon_client.get("/api/calendar/feed")

    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/calendar")
    assert "events.ics" in r.headers["content-disposition"]
    assert r.headers["access-control-allow-origin"] == "*"
    assert r.headers["cache-control"].startswith("public")
    assert _titles(r) == ["From A", "From B", "Internal"]


def test_ics_alias_serves_the_same_feed(anon_client, db):
    a, _ = _seed(db)

    r = anon_client.get(f"/api/calendar/feed.ics?sources={a.id}&internal=false")

    assert r.status_code == 200
    assert _titles(r) == ["From A"]


def test_empty_feed_is_a_valid_calendar(anon_client, db):
    r = anon_client.get("/api/calendar/feed?sources=abc")

    assert r.status_code == 200
    assert "BEGIN:VCALENDAR" in r.text
    assert Calendar.from_ical(r.text).walk("VEVENT") == []


def test_non_ascii_digits_in_query_are_not_ids(anon_client, db):
    _seed(db)
    for params in ({"sources": "²"}, {"user": "²"}, {"sources": "1,٣"}):
        r = anon_client.get("/api/calendar/feed", params=params)
        assert r.status_code == 200, params
        assert "BEGIN:VCALENDAR" in r.text

    r = anon_client.get("/api/calendar/feed", params={"sources": "²", "internal": "false"})
    assert _titles(r) == []


def test_feed_honours_saved_user_preference(client, anon_client, db):
    _, b = _seed(db)
    r = client.put("/api/calendar/preferences", json={"include_all_sources": False, "selected_sources": [b.id]})
    assert r.status_code == 200

    feed = anon_client.get("/api/calendar/feed?user=1&internal=false")

    assert _titles(feed) == ["From B"]


def test_head_request_is_supported(anon_client, db):
    r = anon_client.head("/api/calendar/feed.ics")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/calendar")


def test_store_failure_is_503(anon_client, db, monkeypatch):
    import eventhub.routers.calendar as calendar_router

    def broken(*_args, **_kwargs):
        raise OperationalError("SELECT", {}, Exception("db down"))

    monkeypatch.setattr(calendar_router, "compose", broken)

    r = anon_client.get("/api/calendar/feed")

    assert r.status_code == 503
    assert error_of(r)["code"] == "FEED_UNAVAILABLE"


def test_links_for_explicit_sources(anon_client, db):
    r = anon_client.get("/api/calendar/links?sources=2,1&internal=false")

    assert r.status_code == 200
    links = unwrap(r.json())
    assert links["https"] == "https://testserver/api/calendar/feed.ics?sources=1,2&internal=false"
    assert links["webcal"] == "webcal://testserver/api/calendar/feed.ics?sources=1,2&internal=false"


def test_links_for_signed_in_user_point_at_their_preference(client):
    links = unwrap(client.get("/api/calendar/links").json())
    assert links["https"] == "https://testserver/api/calendar/feed.ics?user=1"


def test_links_for_anonymous_caller_cover_everything(anon_client, db):
    links = unwrap(anon_client.get("/api/calendar/links").json())
    assert links["webcal"] == "webcal://testserver/api/calendar/feed.ics"


def test_preferences_default_then_saved(client):
    first = unwrap(client.get("/api/calendar/preferences").json())
    assert first["include_all_sources"] is True
    assert first["selected_sources"] == []

    r = client.put("/api/calendar/preferences", json={"include_all_sources": False, "selected_sources": [3, 1, 3]})
    assert r.status_code == 200
    assert unwrap(r.json())["selected_sources"] == [1, 3]

    again = unwrap(client.get("/api/calendar/preferences").json())
    assert again["include_all_sources"] is False
    assert again["selected_sources"] == [1, 3]


def test_preferences_reject_non_positive_ids(client):
    r = client.put("/api/calendar/preferences", json={"include_all_sources": False, "selected_sources": [0]})
    assert r.status_code == 422


def test_preferences_require_auth(anon_client):
    from eventhub.core.security import get_current_user

    anon_client.app.dependency_overrides.pop(get_current_user, None)
    assert anon_client.get("/api/calendar/preferences").status_code in (401, 403)
