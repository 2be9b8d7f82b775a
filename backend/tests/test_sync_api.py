from __future__ import annotations

import httpx
import pytest

from eventhub.models.event_source import EventSource
from eventhub.services import sync as sync_module

from _helpers import error_of, route_adapters_through, unwrap
from _samples import FEED_5_GOOD, FEED_5_GOOD_1_BAD

FEED_URL = "https://calendar.example.org/community.ics"


@pytest.fixture
def wired(upstream, monkeypatch):
    return route_adapters_through(monkeypatch, upstream)


def _source(db, url=FEED_URL, active=True):
    src = EventSource(name="feed", source_kind="generic_feed", url=url, is_active=active)
    db.add(src)
    db.commit()
    return src


def test_sync_one_returns_counters(client, db, wired):
    src = _source(db)
    wired.add(FEED_URL, FEED_5_GOOD_1_BAD, content_type="text/calendar")

    r = client.post(f"/api/sources/{src.id}/sync")

    assert r.status_code == 200
    data = unwrap(r.json())
    assert (data["inserted"], data["updated"], data["skipped"]) == (5, 0, 1)
    assert len(data["errors"]) == 1

    listed = unwrap(client.get(f"/api/sources/{src.id}").json())
    assert listed["sync_status"] == "healthy"
    assert listed["events_imported"] == 5


def test_sync_one_upstream_failure_is_502(client, db, wired):
    src = _source(db)
    wired.fail(FEED_URL, httpx.ReadTimeout("slow"))

    r = client.post(f"/api/sources/{src.id}/sync")

    assert r.status_code == 502
    err = error_of(r)
    assert err["code"] == "UPSTREAM_FAILED"
    assert err["message"].startswith("timeout")
    assert err["details"]["inserted"] == 0

    listed = unwrap(client.get(f"/api/sources/{src.id}").json())
    assert listed["sync_status"] == "failing"
    assert listed["last_sync_error"] == err["message"]


def test_sync_one_unknown_is_404(client, wired):
    assert client.post("/api/sources/4242/sync").status_code == 404


def test_sync_one_while_running_is_409(client, db, wired):
    src = _source(db)
    with sync_module._claim(src.id):
        r = client.post(f"/api/sources/{src.id}/sync")
    assert r.status_code == 409
    assert error_of(r)["code"] == "SYNC_IN_PROGRESS"


def test_sync_one_runs_for_inactive_source(client, db, wired):
    src = _source(db, active=False)
    wired.add(FEED_URL, FEED_5_GOOD, content_type="text/calendar")

    r = client.post(f"/api/sources/{src.id}/sync")

    assert r.status_code == 200
    assert unwrap(r.json())["inserted"] == 5


def test_sync_all_reports_each_source(client, db, wired):
    good = _source(db)
    bad = _source(db, url="https://down.example/feed.ics")
    wired.add(FEED_URL, FEED_5_GOOD, content_type="text/calendar")
    wired.add("https://down.example/feed.ics", "oops", status=500)

    r = client.post("/api/sources/sync")

    assert r.status_code == 200
    data = unwrap(r.json())
    assert [x["source_id"] for x in data["results"]] == [good.id, bad.id]
    assert data["results"][0]["state"] == "succeeded"
    assert data["results"][1]["error"].startswith("upstream_status")
    assert data["summary"]["total_inserted"] == 5
    assert data["summary"]["failed_sources"] == 1
