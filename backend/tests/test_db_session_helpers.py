from __future__ import annotations

from sqlalchemy import text

import eventhub.db.session as session


class DummySettings:
    def __init__(self, env="dev", runtime=None, test=None):
        self.ENV = env
        self.DATABASE_URL = runtime
        self.TEST_DATABASE_URL = test


def test_select_database_prefers_test_url(monkeypatch):
    monkeypatch.setattr(session, "settings", DummySettings(env="test", runtime="runtime-db", test="sqlite:///memory"))
    url = session._select_database_url()
    assert url == "sqlite:///memory"


def test_select_database_falls_back_to_runtime(monkeypatch):
    monkeypatch.delenv("PYTEST_CURRENT_TEST", raising=False)
    monkeypatch.delenv("TEST_DATABASE_URL", raising=False)
    monkeypatch.setattr(session, "settings", DummySettings(env="dev", runtime="postgresql://example", test=None))
    url = session._select_database_url()
    assert url == "postgresql://example"


def test_build_engine_sqlite_memory():
    engine = session._build_engine("sqlite:///:memory:")
    try:
        with engine.connect() as conn:
            result = conn.execute(text("SELECT 1")).scalar_one()
            assert result == 1
    finally:
        engine.dispose()


def test_cascade_delete_reaches_events(db):
    db.execute(text(
        "INSERT INTO event_sources (id, name, source_kind, url, is_active, events_imported) "
        "VALUES (10, 's', 'generic_feed', 'https://s.example/f.ics', 1, 0)"
    ))
    db.execute(text(
        "INSERT INTO events (title, event_date, event_kind, current_attendees, origin, approval_status, source_id, external_id) "
        "VALUES ('e', '2030-01-01', 'in_person', 0, 'imported', 'pending', 10, '10:e')"
    ))
    db.commit()

    db.execute(text("DELETE FROM event_sources WHERE id = 10"))
    db.commit()

    assert db.execute(text("SELECT COUNT(*) FROM events")).scalar_one() == 0


def test_session_scope_sees_the_event_tables(db):
    from eventhub.db import session_scope

    with session_scope() as s:
        tables = {
            row[0]
            for row in s.execute(text("SELECT name FROM sqlite_master WHERE type = 'table'"))
        }
    assert {"event_sources", "events", "user_calendar_preferences"} <= tables
