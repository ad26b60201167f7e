# Provider Adapter — OAuth2 wire operations against one configured server.
# Created: 2026-10-19

from __future__ import annotations

import logging
import secrets
import time
import urllib.parse
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import httpx

from tokenward.errors import IdentityProviderError
from tokenward.models import AccessToken, GrantType

logger = logging.getLogger(__name__)

# Token response fields that are mapped onto AccessToken attributes
_RESERVED_FIELDS = ("access_token", "refresh_token", "expires_in", "expires")

# "expires" values above this (2012-10-01) are Unix timestamps, below it lifetimes
_EXPIRES_TIMESTAMP_CUTOFF = 1349067600


@dataclass
class ProviderConfig:
    """Client registration and endpoints of one OAuth2 server."""

    client_id: str
    client_secret: str
    redirect_uri: str
    authorize_uri: str
    token_uri: str
    resource_owner_uri: str = ""


@runtime_checkable
class ProviderProtocol(Protocol):
    """What the authorization manager needs from a provider adapter."""

    def build_authorization_url(self, scopes: Iterable[str] = ()) -> tuple[str, str]:
        """Return ``(authorize_url, state_identifier)`` with a fresh state."""
        ...

    async def exchange_token(self, grant_type: GrantType | str, **params: str) -> AccessToken:
        """Exchange a grant at the token endpoint."""
        ...

    def sign_request(
        self,
        method: str,
        url: str,
        access_token: str,
        headers: dict[str, str] | None = None,
        body: str | bytes = "",
    ) -> httpx.Request:
        """Build (but do not send) a request carrying the bearer credential."""
        ...


class OAuthProvider:
    """Generic OAuth2 provider adapter over httpx.

    Supports:
    - Authorization URL generation with a random state
    - authorization_code, client_credentials and refresh_token exchanges
    - Bearer request signing
    - Resource owner lookup
    """

    def __init__(
        self,
        config: ProviderConfig,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
        refresh_sends_client_secret: bool = False,
    ):
        self.config = config
        self._http_client = http_client
        self._timeout = timeout
        self._refresh_sends_client_secret = refresh_sends_client_secret

    @staticmethod
    def generate_state() -> str:
        return secrets.token_urlsafe(32)

    def build_authorization_url(self, scopes: Iterable[str] = ()) -> tuple[str, str]:
        """Generate an authorization URL and the state identifier embedded in it.

        Args:
            scopes: Scopes to request; duplicates are dropped, order is kept.

        Returns:
            ``(url, state_identifier)``. The state is fresh on every call.
        """
        state = self.generate_state()
        params = {
            "state": state,
            "scope": " ".join(dict.fromkeys(scopes)),
            "response_type": "code",
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
        }
        query = urllib.parse.urlencode(params, quote_via=urllib.parse.quote)
        separator = "&" if "?" in self.config.authorize_uri else "?"
        return f"{self.config.authorize_uri}{separator}{query}", state

    def _token_request_data(self, grant_type: GrantType, params: dict[str, str]) -> dict[str, str]:
        data = {"grant_type": grant_type.value, "client_id": self.config.client_id}
        if grant_type is not GrantType.REFRESH_TOKEN or self._refresh_sends_client_secret:
            if self.config.client_secret:
                data["client_secret"] = self.config.client_secret
        if grant_type is GrantType.AUTHORIZATION_CODE:
            if not params.get("code"):
                raise ValueError("authorization_code exchange requires a code")
            data["redirect_uri"] = self.config.redirect_uri
        elif grant_type is GrantType.REFRESH_TOKEN and not params.get("refresh_token"):
            raise ValueError("refresh_token exchange requires a refresh_token")
        data.update(params)
        return data

    async def _post(self, url: str, data: dict[str, str]) -> httpx.Response:
        headers = {"Accept": "application/json"}
        if self._http_client is not None:
            return await self._http_client.post(url, data=data, headers=headers)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(url, data=data, headers=headers)

    async def exchange_token(self, grant_type: GrantType | str, **params: str) -> AccessToken:
        """Exchange a grant for an access token.

        Args:
            grant_type: ``authorization_code`` (pass ``code``),
                ``client_credentials`` or ``refresh_token`` (pass ``refresh_token``).
            **params: Extra form fields for the token request.

        Returns:
            The parsed AccessToken.

        Raises:
            IdentityProviderError: On a non-2xx or malformed response.
        """
        grant_type = GrantType(grant_type)
        data = self._token_request_data(grant_type, params)
        resp = await self._post(self.config.token_uri, data)
        payload = self._parse_response(resp)
        token = self._create_access_token(payload)
        logger.debug(
            "Token endpoint %s answered %s grant (expires %s)",
            self.config.token_uri,
            grant_type.value,
            token.expires_at_epoch,
        )
        return token

    @staticmethod
    def _parse_response(resp: httpx.Response) -> dict[str, Any]:
        try:
            payload = resp.json()
        except ValueError:
            payload = resp.text

        if resp.status_code >= 400 or not isinstance(payload, dict) or "error" in payload:
            message = f"Token endpoint returned HTTP {resp.status_code}"
            if isinstance(payload, dict) and payload.get("error"):
                message = str(payload.get("error_description") or payload["error"])
            raise IdentityProviderError(message, payload=payload, status_code=resp.status_code)
        return payload

    @staticmethod
    def _create_access_token(payload: dict[str, Any]) -> AccessToken:
        token = payload.get("access_token")
        if not token or not isinstance(token, str):
            raise IdentityProviderError(
                "Token response is missing access_token", payload=payload, status_code=200
            )

        now = int(time.time())
        expires_at: int | None = None
        try:
            if payload.get("expires_in") is not None:
                expires_at = now + int(payload["expires_in"])
            elif payload.get("expires") is not None:
                expires_at = int(payload["expires"])
                if expires_at < _EXPIRES_TIMESTAMP_CUTOFF:
                    expires_at += now
        except (TypeError, ValueError) as exc:
            raise IdentityProviderError(
                "Token response has an invalid expiry", payload=payload, status_code=200
            ) from exc

        return AccessToken(
            token=token,
            refresh_token=payload.get("refresh_token") or None,
            expires_at_epoch=expires_at,
            raw_values={k: v for k, v in payload.items() if k not in _RESERVED_FIELDS},
        )

    def sign_request(
        self,
        method: str,
        url: str,
        access_token: str,
        headers: dict[str, str] | None = None,
        body: str | bytes = "",
    ) -> httpx.Request:
        """Build a request with ``Authorization: Bearer <token>``. Does not send it."""
        all_headers = dict(headers or {})
        all_headers["Authorization"] = f"Bearer {access_token}"
        content = body.encode("utf-8") if isinstance(body, str) else body
        return httpx.Request(method.upper(), url, headers=all_headers, content=content or None)

    async def get_resource_owner(self, access_token: str) -> dict[str, Any]:
        """Fetch the resource owner details for *access_token*."""
        if not self.config.resource_owner_uri:
            raise ValueError("No resource owner URI configured")

        request = self.sign_request("GET", self.config.resource_owner_uri, access_token)
        if self._http_client is not None:
            resp = await self._http_client.send(request)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.send(request)
        resp.raise_for_status()
        return resp.json()
