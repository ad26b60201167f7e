# Tests for the OAuth callback router.
# Created: 2026-10-19

import urllib.parse

import pytest
from conftest import make_token
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tokenward.api import build_callback_uri, router
from tokenward.errors import IdentityProviderError
from tokenward.manager import AuthorizationManager
from tokenward.registry import get_client, list_clients, register_client, reset_clients


@pytest.fixture
def registered(manager):
    reset_clients()
    register_client(manager)
    yield manager
    reset_clients()


@pytest.fixture
def client(registered):
    app = FastAPI()
    app.include_router(router, prefix="/api")
    return TestClient(app, follow_redirects=False)


class TestRegistry:
    def test_register_and_get(self, registered):
        assert get_client("generic", "Acme") is registered
        assert get_client("generic", "Other") is None
        assert list_clients() == [("generic", "Acme")]

    def test_reset(self, registered):
        reset_clients()
        assert get_client("generic", "Acme") is None


def test_build_callback_uri():
    assert build_callback_uri("https://app.test/api/", "generic", "Acme") == (
        "https://app.test/api/oauth/finish/generic/Acme"
    )


class TestStartRoute:
    def test_redirects_to_authorize_url(self, client, state_cache):
        resp = client.get(
            "/api/oauth/start/generic/Acme",
            params={
                "client_id": "abc",
                "client_secret": "s3cret",
                "return_to": "https://app/done",
                "scope": "read write",
            },
        )
        assert resp.status_code == 302
        location = resp.headers["location"]
        assert location.startswith("https://api.acme.test/oauth/token/authorize?state=state-1")
        assert "scope=read%20write" in location

    def test_unknown_service(self, client):
        resp = client.get(
            "/api/oauth/start/generic/Nope",
            params={"client_id": "abc", "return_to": "https://app/done"},
        )
        assert resp.status_code == 404


class TestFinishRoute:
    def test_round_trip(self, client, registered, fake_provider, repository):
        client.get(
            "/api/oauth/start/generic/Acme",
            params={"client_id": "abc", "client_secret": "s3cret",
                    "return_to": "https://app/done?tab=1"},
        )
        fake_provider.responses.append(make_token("ac-1"))

        resp = client.get(
            "/api/oauth/finish/generic/Acme",
            params={"code": "xyz", "state": "state-1", "scope": "read"},
        )

        assert resp.status_code == 302
        location = urllib.parse.urlsplit(resp.headers["location"])
        assert location.path == "/done"
        assert urllib.parse.parse_qs(location.query) == {
            "tab": ["1"],
            "flownative_oauth2_state": ["state-1"],
        }

    def test_unknown_state(self, client):
        resp = client.get(
            "/api/oauth/finish/generic/Acme", params={"code": "xyz", "state": "S1"}
        )
        assert resp.status_code == 400
        assert "could not be retrieved" in resp.json()["detail"]

    def test_server_error_param(self, client, fake_provider):
        resp = client.get(
            "/api/oauth/finish/generic/Acme",
            params={"error": "access_denied", "error_description": "User said no"},
        )
        assert resp.status_code == 400
        assert resp.json() == {"detail": "User said no"}
        assert fake_provider.exchanges == []

    def test_missing_code(self, client):
        resp = client.get("/api/oauth/finish/generic/Acme", params={"state": "S1"})
        assert resp.status_code == 400

    def test_exchange_rejected(self, client, fake_provider):
        client.get(
            "/api/oauth/start/generic/Acme",
            params={"client_id": "abc", "return_to": "https://app/done"},
        )
        fake_provider.responses.append(IdentityProviderError("invalid_grant"))
        resp = client.get(
            "/api/oauth/finish/generic/Acme", params={"code": "bad", "state": "state-1"}
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "invalid_grant"


def test_callback_route_matches_manager_redirect(repository, state_cache, settings, fake_provider):
    callback = build_callback_uri("https://app.test/api", "generic", "Acme")
    manager = AuthorizationManager(
        "Acme", "https://api.acme.test", repository, state_cache, callback,
        provider_factory=fake_provider, settings=settings,
    )
    manager.create_provider("abc", "s3cret")
    path = urllib.parse.urlsplit(fake_provider.configs[0].redirect_uri).path
    assert path == "/api/oauth/finish/generic/Acme"
