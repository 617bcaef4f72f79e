import sys
from pathlib import Path as _Path
sys.path.insert(0, str(_Path(__file__).resolve().parents[1] / "src"))

import re
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from snippetbox.app import create_app
from snippetbox.auth.session import MemoryStore, SessionManager
from snippetbox.auth.users import UserStore
from snippetbox.core.config import Settings
from snippetbox.infra.db import get_engine, init_db
from snippetbox.infra.snippet_repo import SnippetStore

CSRF_RX = re.compile(r'<input type="hidden" name="csrf_token" value="([^"]+)">')


class FakeClock:
    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def extract_csrf(html: str) -> str:
    m = CSRF_RX.search(html)
    assert m, "no csrf_token field in page"
    return m.group(1)


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        secret_key="test-secret-key",
        database_url=f"sqlite:///{tmp_path / 'snippetbox.db'}",
        session_lifetime=3600,
    )


@pytest.fixture()
def engine(settings):
    eng = get_engine(settings.database_url, timeout=settings.store_timeout)
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def users(engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture()
def snippets(engine, clock) -> SnippetStore:
    return SnippetStore(engine, clock=clock)


@pytest.fixture()
def manager(clock) -> SessionManager:
    return SessionManager(MemoryStore(), lifetime=3600, clock=clock)


@pytest.fixture()
def app(settings, engine):
    return create_app(settings, engine=engine)


@pytest.fixture()
def client(app):
    with TestClient(app, follow_redirects=False) as c:
        yield c


@pytest.fixture()
def alice(users) -> int:
    return users.insert("Alice", "alice@example.com", "password123")


def login(client: TestClient, email: str = "alice@example.com", password: str = "password123"):
    page = client.get("/user/login")
    token = extract_csrf(page.text)
    return client.post("/user/login", data={"email": email, "password": password, "csrf_token": token})
