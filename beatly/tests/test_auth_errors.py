"""Bearer authentication and the normalized error envelope."""
import pytest

from beatly.core.auth import verify_supabase_jwt
from beatly.core.errors import UnauthorizedError
from beatly.tests.mocks import make_token


def test_verify_token_extracts_identity():
    user = verify_supabase_jwt(make_token("user_alice", user_metadata={"name": "Alice A."}))

    assert user.user_id == "user_alice"
    assert user.email == "alice@example.com"
    assert user.full_name == "Alice A."
    assert user.avatar_url is None
    assert user.issued_at is not None


@pytest.mark.parametrize(
    "token_kwargs",
    [
        {"expires_in": -60},
        {"secret": "another-secret-that-is-long-enough-for-hs256"},
        {"audience": "anon"},
    ],
)
def test_invalid_tokens_are_rejected(token_kwargs):
    with pytest.raises(UnauthorizedError):
        verify_supabase_jwt(make_token("user_alice", **token_kwargs))


def test_rejects_when_secret_missing(monkeypatch):
    from beatly.core.config import settings

    monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", None)

    with pytest.raises(UnauthorizedError):
        verify_supabase_jwt(make_token())


def test_garbage_token_rejected():
    with pytest.raises(UnauthorizedError):
        verify_supabase_jwt("not-a-jwt")


def test_missing_header_has_standard_shape(client):
    resp = client.get("/api/subscription/current")

    assert resp.status_code == 401
    body = resp.json()
    rid = resp.headers.get("x-request-id")
    assert body["error"]["code"] == "unauthorized"
    assert body["error"]["request_id"] == rid
    assert body["detail"] == body["error"]["message"]


def test_non_bearer_scheme_rejected(client):
    resp = client.get("/api/subscription/current", headers={"Authorization": "Basic dXNlcjpwYXNz"})

    assert resp.status_code == 401


def test_expired_token_message(client):
    resp = client.get(
        "/api/subscription/current",
        headers={"Authorization": f"Bearer {make_token(expires_in=-60)}"},
    )

    assert resp.status_code == 401
    assert resp.json()["error"]["message"] == "Token expired"


def test_validation_error_has_standard_shape(client, auth_headers):
    resp = client.post("/api/midtrans/verify", json={}, headers=auth_headers())

    assert resp.status_code == 400
    body = resp.json()
    assert body["error"]["code"] == "validation_error"
    assert body["error"]["request_id"] == resp.headers.get("x-request-id")


def test_unknown_route_not_found(client):
    resp = client.get("/api/does-not-exist")

    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"
