from __future__ import annotations

import httpx
from sqlalchemy import select

from eventhub.models.event import Event
from eventhub.models.event_source import EventSource, SourceKind
from eventhub.services.sync import SyncState, summarize, sync_all_sources

from _samples import FEED_5_GOOD, FEED_5_GOOD_1_BAD, MEETUP_GROUP_URL, MEETUP_JSON_LD_PAGE


def _add(db, name, url, kind, active=True):
    src = EventSource(name=name, url=url, source_kind=kind.value, is_active=active)
    db.add(src)
    db.commit()
    return src


def test_one_failing_source_does_not_block_the_others(db, upstream):
    feed = _add(db, "feed", "https://a.example/feed.ics", SourceKind.GENERIC_FEED)
    broken = _add(db, "broken", "https://b.example/feed.ics", SourceKind.GENERIC_FEED)
    group = _add(db, "group", MEETUP_GROUP_URL, SourceKind.GROUP_PLATFORM)
    upstream.add("https://a.example/feed.ics", FEED_5_GOOD, content_type="text/calendar")
    upstream.fail("https://b.example/feed.ics", httpx.ConnectError("refused"))
    upstream.add(MEETUP_GROUP_URL, MEETUP_JSON_LD_PAGE)

    results = sync_all_sources(db, client=upstream.client())

    assert [r.source_id for r in results] == [feed.id, broken.id, group.id]
    by_id = {r.source_id: r for r in results}
    assert by_id[feed.id].inserted == 5
    assert by_id[group.id].inserted == 2
    assert by_id[broken.id].state == SyncState.FAILED
    assert by_id[broken.id].error.startswith("upstream_unreachable")

    summary = summarize(results)
    assert summary["total_inserted"] == 7
    assert summary["failed_sources"] == 1

    db.refresh(broken)
    assert broken.last_sync_error is not None
    assert broken.events_imported == 0


def test_inactive_sources_are_not_synced(db, upstream):
    _add(db, "off", "https://off.example/feed.ics", SourceKind.GENERIC_FEED, active=False)
    on = _add(db, "on", "https://on.example/feed.ics", SourceKind.GENERIC_FEED)
    upstream.add("https://on.example/feed.ics", FEED_5_GOOD, content_type="text/calendar")

    results = sync_all_sources(db, client=upstream.client())

    assert [r.source_id for r in results] == [on.id]
    assert upstream.calls == ["https://on.example/feed.ics"]


def test_crash_inside_one_source_is_isolated(db, upstream, monkeypatch):
    a = _add(db, "a", "https://a.example/feed.ics", SourceKind.GENERIC_FEED)
    b = _add(db, "b", "https://b.example/feed.ics", SourceKind.GENERIC_FEED)
    upstream.add("https://a.example/feed.ics", FEED_5_GOOD_1_BAD, content_type="text/calendar")
    upstream.add("https://b.example/feed.ics", FEED_5_GOOD, content_type="text/calendar")

    import eventhub.services.sync as sync_module

    real_normalize = sync_module.normalize

    def exploding(item, kind):
        if item.title == "Intro to Pandas" and exploding.calls == 0:
            exploding.calls += 1
            raise RuntimeError("boom")
        return real_normalize(item, kind)

    exploding.calls = 0
    monkeypatch.setattr(sync_module, "normalize", exploding)

    results = sync_all_sources(db, client=upstream.client())

    assert results[0].source_id == a.id and "boom" in results[0].error
    # the malformed item counted before the crash is not reported for a rolled back run
    assert (results[0].inserted, results[0].skipped, results[0].errors) == (0, 0, [])
    assert results[1].source_id == b.id and results[1].inserted == 5
    assert db.execute(select(Event).where(Event.source_id == a.id)).first() is None
    db.refresh(a)
    assert a.last_sync_error.startswith("internal error")
    assert a.events_imported == 0
