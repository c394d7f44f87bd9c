"""
pytest configuration – builds the app on an in-memory database and drives
the login guard with a controllable millisecond clock.
"""
import pytest

from app import create_app
from config import TestConfig
from models import db
from security.attempt_store import MemoryAttemptStore, SqlAttemptStore
from security.login_guard import LoginAttemptGuard, RateLimitConfig

START_MS = 1_760_000_000_000


class FakeClock:
    def __init__(self, now=START_MS):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms=0, seconds=0, minutes=0):
        self.now += ms + seconds * 1000 + minutes * 60 * 1000


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app(clock):
    app = create_app(TestConfig, clock=clock)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture(params=["sql", "memory"])
def store(request, app):
    if request.param == "sql":
        return SqlAttemptStore()
    return MemoryAttemptStore()


@pytest.fixture
def guard(store, clock):
    return LoginAttemptGuard(store, RateLimitConfig(), clock=clock)
