"""Pytest fixtures: test client, test DB (in-memory SQLite), fake AI gateway."""
import os
import tempfile
import uuid
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

# Must be set before the app (and its settings) are imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("AI_API_KEY", "sk-test-dummy")
os.environ.setdefault("ADMIN_SECRET", "test-admin-secret")
os.environ.setdefault("STORAGE_DIR", tempfile.mkdtemp(prefix="careconnect-docs-"))
# IP limits are exercised explicitly in test_rate_limit.py
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_REGISTER_PER_MINUTE", "100")

from careconnect.main import app
from careconnect.services import diagnosis as diagnosis_service

ADMIN_HEADERS = {"X-Admin-Secret": "test-admin-secret"}

DEFAULT_REPLY = """**ASSESSMENT:** Likely a tension headache (MILD).

1. Drink water
2. Rest in a dark room

SPECIALTY: Neurologist
PHARMACY_NEEDED: YES
URGENCY: week"""


@pytest.fixture(scope="function")
def client():
    """TestClient; the lifespan creates the tables in the in-memory DB."""
    with TestClient(app) as c:
        yield c


def _register_and_login(client: TestClient, **profile) -> dict:
    email = f"user-{uuid.uuid4().hex[:10]}@example.com"
    r = client.post(
        "/auth/register",
        data={"email": email, "password": "test123456", "full_name": "Test User"},
    )
    assert r.status_code == 200, f"Register failed: {r.status_code} {r.text}"
    r = client.post("/auth/login", data={"email": email, "password": "test123456"})
    assert r.status_code == 200, f"Login failed: {r.status_code} {r.text}"
    headers = {"Authorization": f"Bearer {r.json()['access_token']}"}
    if profile:
        r = client.patch("/auth/me", json=profile, headers=headers)
        assert r.status_code == 200, r.text
    return headers


@pytest.fixture
def new_user(client: TestClient):
    """Factory: a fresh user (own quota, own session) per call; returns auth headers."""

    def make(**profile) -> dict:
        return _register_and_login(client, **profile)

    return make


@pytest.fixture
def auth_headers(new_user):
    return new_user()


class FakeCompletions:
    def __init__(self, reply=DEFAULT_REPLY, error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.calls: list[dict] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeAIClient:
    def __init__(self, reply=DEFAULT_REPLY, error: Exception | None = None):
        self.completions = FakeCompletions(reply, error)
        self.chat = SimpleNamespace(completions=self.completions)

    @property
    def calls(self) -> list[dict]:
        return self.completions.calls


@pytest.fixture
def fake_ai(monkeypatch):
    """Replaces the gateway client; set .completions.reply / .completions.error per test."""
    fake = FakeAIClient()
    monkeypatch.setattr(diagnosis_service, "get_ai_client", lambda: fake)
    return fake
