"""Profile edits through the Supabase Auth admin API (HTTP mocked with httpx.MockTransport)."""
import json

import httpx
import pytest

from beatly.core.auth import AuthenticatedUser
from beatly.core.errors import UpstreamError, ValidationError
from beatly.features.profile.service import MAX_FULL_NAME_LENGTH, update_profile
from beatly.features.profile.supabase_admin import SupabaseAdminClient, SupabaseAdminError

REAL_HTTPX_CLIENT = httpx.Client


@pytest.fixture
def supabase(monkeypatch):
    """Route the admin client's HTTP calls to an in-process handler; records requests."""
    state = {"requests": [], "status_code": 200, "raise_error": None}

    def handler(request: httpx.Request) -> httpx.Response:
        state["requests"].append(request)
        if state["raise_error"]:
            raise state["raise_error"]
        return httpx.Response(state["status_code"], json={"id": "user_alice", "user_metadata": {}})

    def client_factory(**kwargs):
        return REAL_HTTPX_CLIENT(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr("beatly.features.profile.supabase_admin.httpx.Client", client_factory)
    return state


def _alice():
    return AuthenticatedUser(
        user_id="user_alice",
        email="alice@example.com",
        user_metadata={"avatar_url": "https://example.com/a.png", "full_name": "Alice"},
    )


def test_update_full_name_merges_metadata(supabase):
    updates = update_profile(_alice(), full_name="  Alice Wonder  ")

    assert updates == {"full_name": "Alice Wonder"}
    [request] = supabase["requests"]
    assert request.method == "PUT"
    assert str(request.url) == "https://beatly-test.supabase.co/auth/v1/admin/users/user_alice"
    assert request.headers["apikey"] == "service-role-test"
    assert request.headers["authorization"] == "Bearer service-role-test"
    assert json.loads(request.content) == {
        "user_metadata": {"avatar_url": "https://example.com/a.png", "full_name": "Alice Wonder"}
    }


@pytest.mark.parametrize("full_name", [None, "", "   "])
def test_blank_name_is_not_an_edit(supabase, full_name):
    assert update_profile(_alice(), full_name=full_name) == {}
    assert supabase["requests"] == []


def test_overlong_name_is_rejected(supabase):
    with pytest.raises(ValidationError):
        update_profile(_alice(), full_name="x" * (MAX_FULL_NAME_LENGTH + 1))
    assert supabase["requests"] == []


def test_supabase_rejection_is_upstream_error(supabase):
    supabase["status_code"] = 422

    with pytest.raises(UpstreamError):
        update_profile(_alice(), full_name="Alice Wonder")


def test_supabase_unreachable_is_upstream_error(supabase):
    supabase["raise_error"] = httpx.ConnectError("connection refused")

    with pytest.raises(UpstreamError):
        update_profile(_alice(), full_name="Alice Wonder")


def test_admin_client_requires_service_role_key(monkeypatch):
    from beatly.core.config import settings

    monkeypatch.setattr(settings, "SUPABASE_SERVICE_ROLE_KEY", None)

    with pytest.raises(SupabaseAdminError):
        SupabaseAdminClient()


def test_missing_service_role_key_fails_update(supabase, monkeypatch):
    from beatly.core.config import settings

    monkeypatch.setattr(settings, "SUPABASE_SERVICE_ROLE_KEY", None)

    with pytest.raises(UpstreamError):
        update_profile(_alice(), full_name="Alice Wonder")
    assert supabase["requests"] == []


def test_profile_put_route(client, auth_headers, supabase):
    headers = auth_headers("user_alice", user_metadata={"avatar_url": "https://example.com/a.png"})

    resp = client.put("/api/profile", json={"full_name": "Alice Wonder"}, headers=headers)

    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "updates": {"full_name": "Alice Wonder"},
        "message": "Profile updated successfully",
    }
    [request] = supabase["requests"]
    assert json.loads(request.content)["user_metadata"] == {
        "avatar_url": "https://example.com/a.png",
        "full_name": "Alice Wonder",
    }


def test_profile_put_route_supabase_down(client, auth_headers, supabase):
    supabase["status_code"] = 500

    resp = client.put("/api/profile", json={"full_name": "Alice Wonder"}, headers=auth_headers())

    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "upstream_error"
    assert resp.json()["error"]["message"] == "Failed to update profile"


def test_profile_put_route_requires_auth(client, supabase):
    resp = client.put("/api/profile", json={"full_name": "Alice Wonder"})

    assert resp.status_code == 401
    assert supabase["requests"] == []
