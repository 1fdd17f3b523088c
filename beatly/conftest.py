# beatly/conftest.py
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from beatly.core.config import settings
from beatly.core.database import init_engine, create_all_tables, drop_all_tables
from beatly.features.plans.service import seed_plans
from beatly.tests.mocks import FakeGateway, TEST_ADMIN_PASSWORD, TEST_JWT_SECRET, make_token


@pytest.fixture(scope="function", autouse=True)
def test_settings(monkeypatch):
    """Pin settings for every test; nothing reads a real .env."""
    monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setattr(settings, "SUPABASE_JWT_AUDIENCE", "authenticated")
    monkeypatch.setattr(settings, "SUPABASE_URL", "https://beatly-test.supabase.co")
    monkeypatch.setattr(settings, "SUPABASE_SERVICE_ROLE_KEY", "service-role-test")
    monkeypatch.setattr(settings, "MIDTRANS_SERVER_KEY", "SB-Mid-server-test")
    monkeypatch.setattr(settings, "MIDTRANS_CLIENT_KEY", "SB-Mid-client-test")
    monkeypatch.setattr(settings, "ADMIN_PASSWORD", TEST_ADMIN_PASSWORD)
    monkeypatch.setattr(settings, "USAGE_TIMEZONE", "UTC")
    monkeypatch.setattr(settings, "DEFAULT_PLAN_ID", "free")
    monkeypatch.setattr(settings, "APP_URL", "http://localhost:3000")
    yield settings


@pytest.fixture(scope="function")
def db():
    """
    Fresh in-memory SQLite database per test, with the default plans seeded.

    Set TEST_DATABASE_URL to run the same tests against Postgres.
    """
    engine = init_engine(settings.TEST_DATABASE_URL or "sqlite+pysqlite:///:memory:")
    drop_all_tables()
    create_all_tables()
    seed_plans()
    yield engine
    drop_all_tables()
    engine.dispose()


@pytest.fixture
def auth_headers():
    def _headers(user_id: str = "user_alice", **kwargs):
        return {"Authorization": f"Bearer {make_token(user_id, **kwargs)}"}

    return _headers


@pytest.fixture
def gateway():
    fake = FakeGateway()
    with patch("beatly.features.billing.service.get_provider", return_value=fake):
        yield fake


@pytest.fixture
def client(db):
    from beatly.main import app

    return TestClient(app)
