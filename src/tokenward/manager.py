# Authorization Manager — OAuth2 grant lifecycle, refresh and request signing.
# Created: 2026-10-19
#
# Authorization code flow:
#   start_authorization -> (browser redirect to the OAuth server) -> finish_authorization
# Client credentials flow:
#   add_client_credentials
# Every API call goes through get_authenticated_request, which refreshes
# an expired token before signing.

from __future__ import annotations

import asyncio
import json
import logging
import urllib.parse
import weakref
from collections.abc import Callable, Iterable
from typing import Any

import httpx

from tokenward.config import Settings, get_settings
from tokenward.errors import IdentityProviderError, OAuthClientError, StateCacheError
from tokenward.models import Authorization, GrantType, PendingAuthorization
from tokenward.provider import OAuthProvider, ProviderConfig, ProviderProtocol
from tokenward.repository import AuthorizationRepositoryProtocol
from tokenward.state_cache import StateCacheProtocol

logger = logging.getLogger(__name__)

STATE_QUERY_PARAMETER_NAME = "flownative_oauth2_state"

CallbackUri = str | Callable[[], str]
ProviderFactory = Callable[[ProviderConfig], ProviderProtocol]


def append_state_to_uri(uri: str, state_identifier: str) -> str:
    """Append the state query parameter to *uri*, keeping its existing query."""
    parts = urllib.parse.urlsplit(uri)
    extra = urllib.parse.urlencode({STATE_QUERY_PARAMETER_NAME: state_identifier})
    query = "&".join(q for q in (parts.query.strip("&"), extra) if q)
    return urllib.parse.urlunsplit(parts._replace(query=query))


class AuthorizationManager:
    """Drives OAuth2 grants for one configured service and keeps tokens fresh.

    Subclasses set ``service_type`` and may override the endpoint getters
    when a server does not follow the ``{base_uri}/oauth/token`` layout.

    Args:
        service_name: Instance name of the integration, e.g. "Github".
        base_uri: OAuth server / API base URI, without trailing slash.
        repository: Durable authorization store.
        state_cache: TTL store for pending authorizations.
        callback_uri: Redirect URI registered with the server, or a callable
            returning it (resolved each time a provider is built).
        authorization_id: Authorization used by get_authenticated_request
            when none is passed explicitly.
        provider_factory: Builds a provider adapter from a ProviderConfig.
        http_client: Transport for send_authenticated_request. Created on
            first use when omitted, and then owned by this manager.
    """

    service_type: str = "generic"

    def __init__(
        self,
        service_name: str,
        base_uri: str,
        repository: AuthorizationRepositoryProtocol,
        state_cache: StateCacheProtocol,
        callback_uri: CallbackUri = "",
        *,
        authorization_id: str | None = None,
        provider_factory: ProviderFactory | None = None,
        http_client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
        authorize_uri: str | None = None,
        token_uri: str | None = None,
        resource_owner_uri: str | None = None,
    ):
        self.service_name = service_name
        self.base_uri = base_uri.rstrip("/")
        self.repository = repository
        self.state_cache = state_cache
        self.authorization_id = authorization_id
        self.settings = settings or get_settings()
        self._callback_uri = callback_uri
        self._provider_factory = provider_factory
        self._http_client = http_client
        self._owns_http_client = False
        self._authorize_uri = authorize_uri
        self._token_uri = token_uri
        self._resource_owner_uri = resource_owner_uri
        # Locks disappear once no task holds or awaits them
        self._refresh_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    # =========================================================================
    # Endpoints and provider wiring
    # =========================================================================

    def get_access_token_uri(self) -> str:
        return self._token_uri or f"{self.base_uri}/oauth/token"

    def get_authorize_token_uri(self) -> str:
        return self._authorize_uri or f"{self.base_uri}/oauth/token/authorize"

    def get_resource_owner_uri(self) -> str:
        return self._resource_owner_uri or f"{self.base_uri}/oauth/token/resource"

    def render_finish_authorization_uri(self) -> str:
        """Return the callback URI the OAuth server redirects back to."""
        if callable(self._callback_uri):
            return self._callback_uri()
        return self._callback_uri

    def create_provider(self, client_id: str, client_secret: str) -> ProviderProtocol:
        config = ProviderConfig(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=self.render_finish_authorization_uri(),
            authorize_uri=self.get_authorize_token_uri(),
            token_uri=self.get_access_token_uri(),
            resource_owner_uri=self.get_resource_owner_uri(),
        )
        if self._provider_factory is not None:
            return self._provider_factory(config)
        return OAuthProvider(
            config,
            timeout=self.settings.http_timeout,
            refresh_sends_client_secret=self.settings.refresh_sends_client_secret,
        )

    def client_credentials_authorization_id(self, client_id: str) -> str:
        return f"{self.service_name}-{client_id}"

    def _lock_for(self, authorization_id: str) -> asyncio.Lock:
        lock = self._refresh_locks.get(authorization_id)
        if lock is None:
            lock = self._refresh_locks[authorization_id] = asyncio.Lock()
        return lock

    # =========================================================================
    # Grant flows
    # =========================================================================

    async def add_client_credentials(
        self, client_id: str, client_secret: str, scope: str = ""
    ) -> Authorization:
        """Obtain a client credentials grant and store it as ``{service_name}-{client_id}``.

        Any previous authorization under that id is replaced once the new
        token has been issued. IdentityProviderError propagates unchanged.
        """
        provider = self.create_provider(client_id, client_secret)
        authorization_id = self.client_credentials_authorization_id(client_id)
        logger.info(
            "%s: Setting client credentials for client %r using a %d bytes long secret",
            self.service_type,
            client_id,
            len(client_secret),
        )

        access_token = await provider.exchange_token(GrantType.CLIENT_CREDENTIALS)
        authorization = Authorization.from_access_token(
            authorization_id,
            client_id,
            client_secret,
            self.service_name,
            GrantType.CLIENT_CREDENTIALS,
            access_token,
            scope,
        )

        async with self._lock_for(authorization_id):
            old = await self.repository.replace(authorization)
        if old is not None:
            logger.info(
                "%s: Removed old OAuth2 authorization for client %r",
                self.service_type,
                client_id,
            )
        logger.info(
            "%s: Persisted new OAuth2 authorization %s for client %r with expiry time %s",
            self.service_type,
            authorization_id,
            client_id,
            access_token.expires_at_epoch,
        )
        return authorization

    async def start_authorization(
        self,
        client_id: str,
        client_secret: str,
        return_to_uri: str,
        scopes: Iterable[str] = (),
    ) -> str:
        """Begin an authorization code flow.

        Returns:
            The authorize URL the browser should be redirected to.
        """
        if not return_to_uri:
            raise OAuthClientError("Cannot start authorization without a return URI")

        provider = self.create_provider(client_id, client_secret)
        authorization_uri, state_identifier = provider.build_authorization_url(scopes)
        pending = PendingAuthorization(state_identifier, client_id, client_secret, str(return_to_uri))

        try:
            await self.state_cache.set(
                state_identifier, pending.to_dict(), self.settings.state_ttl_seconds
            )
        except StateCacheError as exc:
            raise OAuthClientError(
                f"Failed setting cache entry for OAuth2 authorization: {exc}"
            ) from exc

        logger.info(
            "%s: Starting authorization %s using client id %r and a %d bytes long secret, "
            "returning to %s",
            self.service_type,
            state_identifier,
            client_id,
            len(client_secret),
            return_to_uri,
        )
        return authorization_uri

    async def finish_authorization(self, code: str, state_identifier: str, scope: str = "") -> str:
        """Complete an authorization code flow after the server redirected back.

        Returns:
            The original return URI with ``flownative_oauth2_state`` appended.

        Raises:
            OAuthClientError: If the state is unknown or expired, or the
                code exchange is rejected.
        """
        if not code:
            raise OAuthClientError(
                f"Finishing authorization {state_identifier} failed because no authorization "
                "code was given."
            )
        cached = await self.state_cache.get(state_identifier) if state_identifier else None
        if not cached:
            raise OAuthClientError(
                f"Finishing authorization failed because OAuth state {state_identifier} "
                "could not be retrieved from the state cache."
            )
        pending = PendingAuthorization.from_dict(state_identifier, cached)
        # Consume the state so the same redirect cannot complete twice
        await self.state_cache.delete(state_identifier)

        logger.info(
            "%s: Finishing authorization for client %r, state %s, using a %d bytes long secret",
            self.service_type,
            pending.client_id,
            state_identifier,
            len(pending.client_secret),
        )

        provider = self.create_provider(pending.client_id, pending.client_secret)
        try:
            access_token = await provider.exchange_token(GrantType.AUTHORIZATION_CODE, code=code)
        except IdentityProviderError as exc:
            raise OAuthClientError(str(exc)) from exc

        authorization = Authorization.from_access_token(
            state_identifier,
            pending.client_id,
            pending.client_secret,
            self.service_name,
            GrantType.AUTHORIZATION_CODE,
            access_token,
            scope,
        )
        async with self._lock_for(state_identifier):
            old = await self.repository.replace(authorization)
        if old is not None:
            logger.info("%s: Removed old OAuth token %s", self.service_type, state_identifier)
        logger.info(
            "%s: Persisted new OAuth token for authorization %s with expiry time %s",
            self.service_type,
            state_identifier,
            access_token.expires_at_epoch,
        )
        return append_state_to_uri(pending.return_to_uri, state_identifier)

    async def refresh_authorization(
        self, authorization_id: str, client_id: str = "", return_to_uri: str = ""
    ) -> str:
        """Exchange the stored refresh token for a new access token.

        The record is updated in place. On failure the stored record is left
        untouched.

        Returns:
            *return_to_uri*, unchanged.
        """
        async with self._lock_for(authorization_id):
            await self._refresh(authorization_id, client_id)
        return return_to_uri

    async def _refresh(self, authorization_id: str, client_id: str = "") -> Authorization:
        authorization = await self.repository.find(authorization_id)
        if authorization is None:
            raise OAuthClientError(
                f"Could not refresh OAuth2 token because authorization {authorization_id} "
                "was not found."
            )
        if not authorization.refresh_token:
            raise OAuthClientError(
                f"Could not refresh OAuth2 token because authorization {authorization_id} "
                "has no refresh token."
            )

        client_id = client_id or authorization.client_id
        provider = self.create_provider(client_id, authorization.client_secret)
        logger.info(
            "%s: Refreshing authorization %s for client %r",
            self.service_type,
            authorization_id,
            client_id,
        )

        try:
            access_token = await provider.exchange_token(
                GrantType.REFRESH_TOKEN, refresh_token=authorization.refresh_token
            )
        except IdentityProviderError as exc:
            raise OAuthClientError(str(exc)) from exc

        authorization.apply_token(access_token)
        await self.repository.save(authorization)
        logger.debug(
            "%s: Refreshed authorization %s, new expiry %s",
            self.service_type,
            authorization_id,
            authorization.expires,
        )
        return authorization

    async def _renew_client_credentials(self, authorization: Authorization) -> Authorization:
        provider = self.create_provider(authorization.client_id, authorization.client_secret)
        try:
            access_token = await provider.exchange_token(GrantType.CLIENT_CREDENTIALS)
        except IdentityProviderError as exc:
            logger.error(
                "%s: Failed retrieving new OAuth access token for client %r "
                "(client credentials grant): %s",
                self.service_type,
                authorization.client_id,
                exc,
            )
            raise

        authorization.apply_token(access_token)
        await self.repository.save(authorization)
        logger.info(
            "%s: Persisted new OAuth token for client %r with expiry time %s",
            self.service_type,
            authorization.client_id,
            access_token.expires_at_epoch,
        )
        return authorization

    async def _renew_expired(self, authorization_id: str) -> Authorization:
        async with self._lock_for(authorization_id):
            # Another task may have renewed while we waited for the lock
            current = await self.repository.find(authorization_id)
            if current is None:
                raise OAuthClientError(f"No OAuth token found for authorization {authorization_id}")
            if not current.is_expired(leeway=self.settings.expiry_leeway_seconds):
                return current

            if current.grant_type is GrantType.CLIENT_CREDENTIALS:
                return await self._renew_client_credentials(current)

            await self._refresh(authorization_id, current.client_id)
            reloaded = await self.repository.find(authorization_id)
            if reloaded is None:
                raise OAuthClientError(
                    f"Authorization {authorization_id} disappeared while refreshing"
                )
            return reloaded

    # =========================================================================
    # Reads and authenticated requests
    # =========================================================================

    async def get_authorization(self, authorization_id: str) -> Authorization | None:
        return await self.repository.find(authorization_id)

    async def get_authenticated_request(
        self,
        relative_uri: str,
        method: str = "GET",
        body_fields: dict[str, Any] | None = None,
        authorization_id: str | None = None,
    ) -> httpx.Request:
        """Return a request against ``base_uri + relative_uri`` carrying a valid bearer token.

        An expired token is refreshed (authorization code) or re-issued
        (client credentials) first. If that fails, the error propagates and
        no request is built.
        """
        authorization_id = authorization_id or self.authorization_id
        if not authorization_id:
            raise OAuthClientError("No authorization id given for the authenticated request")

        authorization = await self.repository.find(authorization_id)
        if authorization is None:
            raise OAuthClientError(f"No OAuth token found for authorization {authorization_id}")

        if authorization.is_expired(leeway=self.settings.expiry_leeway_seconds):
            authorization = await self._renew_expired(authorization_id)

        provider = self.create_provider(authorization.client_id, authorization.client_secret)
        body = json.dumps(body_fields) if body_fields else ""
        return provider.sign_request(
            method,
            f"{self.base_uri}{relative_uri}",
            authorization.access_token,
            headers={"Content-Type": "application/json"},
            body=body,
        )

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.settings.http_timeout)
            self._owns_http_client = True
        return self._http_client

    async def send_authenticated_request(
        self,
        relative_uri: str,
        method: str = "GET",
        body_fields: dict[str, Any] | None = None,
        authorization_id: str | None = None,
    ) -> httpx.Response:
        """Build an authenticated request and send it over the shared transport."""
        request = await self.get_authenticated_request(
            relative_uri, method, body_fields, authorization_id
        )
        return await self._get_http_client().send(request)

    async def aclose(self) -> None:
        """Close the transport if this manager created it."""
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None
            self._owns_http_client = False

    async def __aenter__(self) -> AuthorizationManager:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
