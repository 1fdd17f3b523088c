from unittest.mock import patch

from beatly.core.database import get_engine, transactions


def test_healthz(client):
    resp = client.get("/healthz")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_readyz_ok(client):
    resp = client.get("/readyz")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_readyz_reports_missing_tables(client):
    transactions.drop(get_engine())

    resp = client.get("/readyz")

    assert resp.status_code == 503
    assert resp.json()["detail"] == "missing tables: transactions"


def test_readyz_database_unreachable(client):
    with patch("beatly.api.health.check_connection", return_value=False):
        resp = client.get("/readyz")

    assert resp.status_code == 503
    assert resp.json()["detail"] == "database unreachable"
