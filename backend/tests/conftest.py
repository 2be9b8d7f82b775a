import os
import sys
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure backend/ is importable as the top-level "eventhub" package even when pytest runs from repo root
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

# Ensure the application runs in test/sqlite mode *before* importing any eventhub modules
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test_secret")
os.environ.setdefault("JWT_ALG", "HS256")
os.environ.setdefault("JWT_ACCESS_MIN", "30")
os.environ.setdefault("JWT_REFRESH_DAYS", "7")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("DB_REQUIRE_SSL", "false")

# Import the DB session module first so we can patch it before the app is imported
import eventhub.db.session as app_db_session  # type: ignore

# --- Use a single in-memory SQLite DB for the whole test session ---
ENGINE = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    future=True,
)
event.listen(ENGINE, "connect", app_db_session.enable_sqlite_foreign_keys)
SessionTesting = sessionmaker(bind=ENGINE, autocommit=False, autoflush=False, future=True)

# --- Ensure tests and app code share the SAME in-memory engine/sessionmaker ---
setattr(app_db_session, "ENGINE", ENGINE)
setattr(app_db_session, "engine", ENGINE)
app_db_session.SessionLocal = SessionTesting
app_db_session.get_engine = lambda: ENGINE            # type: ignore
app_db_session.get_sessionmaker = lambda: SessionTesting  # type: ignore

# Also patch the package-level eventhub.db for modules that import there
import eventhub.db as app_db_pkg  # type: ignore

setattr(app_db_pkg, "ENGINE", ENGINE)
setattr(app_db_pkg, "engine", ENGINE)
app_db_pkg.SessionLocal = SessionTesting

from eventhub.core.security import create_access, get_current_user, hash_password
from eventhub.db.base import Base
from eventhub.db.session import get_db
from eventhub.main import app
from eventhub.models.user import User

PYTEST_USER_ID = 1
PYTEST_EMAIL = "pytest@example.com"
OTHER_USER_ID = 2
DEMO_EMAIL = "demo@example.com"
DEMO_PASSWORD = "demo1234"


# bcrypt is slow on purpose; hash once per session.
_SEED_USERS = [
    (PYTEST_USER_ID, PYTEST_EMAIL, hash_password("pytest-pass")),
    (OTHER_USER_ID, "other@example.com", hash_password("other-pass")),
    (3, DEMO_EMAIL, hash_password(DEMO_PASSWORD)),
]


def _create_schema():
    Base.metadata.create_all(bind=ENGINE)
    with SessionTesting() as s:
        s.add_all([User(id=uid, email=email, password_hash=pw) for uid, email, pw in _SEED_USERS])
        s.commit()


def _drop_schema():
    Base.metadata.drop_all(bind=ENGINE)


# Ensure schema exists even for modules that instantiate TestClient at import time
_drop_schema()
_create_schema()


def _override_get_current_user():
    return User(id=PYTEST_USER_ID, email=PYTEST_EMAIL, password_hash="", is_active=True)


@pytest.fixture(autouse=True)
def _toggle_auth_override(request):
    """Bypass JWT for most API tests while allowing auth-specific suites to exercise it."""
    test_path = str(getattr(request.node, "fspath", ""))
    needs_real_auth = "test_auth_api.py" in test_path
    if needs_real_auth:
        app.dependency_overrides.pop(get_current_user, None)
        yield
        app.dependency_overrides.pop(get_current_user, None)
    else:
        app.dependency_overrides[get_current_user] = _override_get_current_user
        try:
            yield
        finally:
            app.dependency_overrides.pop(get_current_user, None)


@pytest.fixture(scope="function")
def reset_db():
    _drop_schema()
    _create_schema()
    yield


@pytest.fixture(scope="function")
def db(reset_db):
    session = SessionTesting()

    def _override_get_db():
        try:
            yield session
        finally:
            pass

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture(scope="function")
def client(db):
    token = create_access(PYTEST_EMAIL)
    with TestClient(app, headers={"Authorization": f"Bearer {token}"}) as c:
        yield c


@pytest.fixture(scope="function")
def anon_client(db):
    with TestClient(app) as c:
        yield c


# ---------------------------------------------------------------------------
# Upstream HTTP
# ---------------------------------------------------------------------------

class Upstream:
    """Routes upstream URLs to canned responses for httpx.MockTransport."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, url, body="", status=200, content_type="text/html; charset=utf-8"):
        self.routes[url] = (status, body, content_type)

    def fail(self, url, exc):
        self.routes[url] = exc

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            return httpx.Response(404, text="not found")
        if isinstance(route, Exception):
            raise route
        status, body, content_type = route
        return httpx.Response(status, text=body, headers={"Content-Type": content_type})

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def upstream():
    up = Upstream()
    yield up
