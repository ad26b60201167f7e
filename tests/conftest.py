# Shared fixtures for tokenward tests.
# Created: 2026-10-19

import asyncio
import time

import httpx
import pytest

from tokenward.config import Settings
from tokenward.manager import AuthorizationManager
from tokenward.models import AccessToken, GrantType
from tokenward.repository import InMemoryAuthorizationRepository
from tokenward.state_cache import InMemoryStateCache


def make_token(token="access-1", refresh="refresh-1", lifetime=3600, **raw):
    expires = int(time.time()) + lifetime if lifetime is not None else None
    return AccessToken(token=token, refresh_token=refresh, expires_at_epoch=expires, raw_values=raw)


class FakeProvider:
    """Provider factory and adapter in one; records every exchange."""

    def __init__(self):
        self.configs = []
        self.exchanges = []
        self.responses = []
        self.delay = 0.0
        self._counter = 0

    def __call__(self, config):
        self.configs.append(config)
        return _BoundFakeProvider(self, config)


class _BoundFakeProvider:
    def __init__(self, parent, config):
        self.parent = parent
        self.config = config

    def build_authorization_url(self, scopes=()):
        self.parent._counter += 1
        state = f"state-{self.parent._counter}"
        return f"{self.config.authorize_uri}?state={state}&scope={'%20'.join(scopes)}", state

    async def exchange_token(self, grant_type, **params):
        self.parent.exchanges.append(
            (GrantType(grant_type), params, self.config.client_id, self.config.client_secret)
        )
        if self.parent.delay:
            await asyncio.sleep(self.parent.delay)
        result = self.parent.responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def sign_request(self, method, url, access_token, headers=None, body=""):
        headers = dict(headers or {})
        headers["Authorization"] = f"Bearer {access_token}"
        return httpx.Request(method, url, headers=headers, content=body.encode() or None)


@pytest.fixture
def settings(tmp_path):
    return Settings(config_dir=tmp_path, state_ttl_seconds=600)


@pytest.fixture
def repository():
    return InMemoryAuthorizationRepository()


@pytest.fixture
def state_cache():
    return InMemoryStateCache()


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def manager(repository, state_cache, fake_provider, settings):
    return AuthorizationManager(
        service_name="Acme",
        base_uri="https://api.acme.test",
        repository=repository,
        state_cache=state_cache,
        callback_uri="https://app.test/oauth/finish/generic/Acme",
        provider_factory=fake_provider,
        settings=settings,
    )
