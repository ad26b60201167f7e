# Tokenward data models — authorization records, pending state, access tokens.
# Created: 2026-10-19

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any


class GrantType(str, Enum):
    AUTHORIZATION_CODE = "authorization_code"
    CLIENT_CREDENTIALS = "client_credentials"
    REFRESH_TOKEN = "refresh_token"


@dataclass
class AccessToken:
    """Result of one token-endpoint exchange."""

    token: str
    refresh_token: str | None = None
    expires_at_epoch: int | None = None  # Unix timestamp
    raw_values: dict[str, Any] = field(default_factory=dict)

    @property
    def expires(self) -> datetime | None:
        if self.expires_at_epoch is None:
            return None
        return datetime.fromtimestamp(self.expires_at_epoch, tz=UTC)


@dataclass
class PendingAuthorization:
    """Context carried across the authorize redirect. Lives only in the state cache."""

    state_identifier: str
    client_id: str
    client_secret: str
    return_to_uri: str

    def to_dict(self) -> dict[str, str]:
        return {
            "clientId": self.client_id,
            "clientSecret": self.client_secret,
            "returnToUri": self.return_to_uri,
        }

    @classmethod
    def from_dict(cls, state_identifier: str, data: dict[str, Any]) -> PendingAuthorization:
        return cls(
            state_identifier=state_identifier,
            client_id=data["clientId"],
            client_secret=data["clientSecret"],
            return_to_uri=data["returnToUri"],
        )


@dataclass
class Authorization:
    """A persisted OAuth2 grant, keyed by ``authorization_id``.

    ``expires`` of ``None`` means the server returned no expiry and the
    token is treated as never expiring.
    """

    authorization_id: str
    client_id: str
    client_secret: str
    service_name: str
    grant_type: GrantType
    access_token: str
    refresh_token: str | None = None
    expires: datetime | None = None
    scope: str = ""
    token_values: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.access_token:
            raise ValueError(f"Authorization {self.authorization_id} has an empty access token")
        self.grant_type = GrantType(self.grant_type)

    @classmethod
    def from_access_token(
        cls,
        authorization_id: str,
        client_id: str,
        client_secret: str,
        service_name: str,
        grant_type: GrantType,
        access_token: AccessToken,
        scope: str = "",
    ) -> Authorization:
        return cls(
            authorization_id=authorization_id,
            client_id=client_id,
            client_secret=client_secret,
            service_name=service_name,
            grant_type=grant_type,
            access_token=access_token.token,
            refresh_token=access_token.refresh_token,
            expires=access_token.expires,
            scope=scope,
            token_values=dict(access_token.raw_values),
        )

    def is_expired(self, now: datetime | None = None, leeway: int = 0) -> bool:
        """True if ``expires`` is set and lies in the past (minus *leeway* seconds)."""
        if self.expires is None:
            return False
        now = now or datetime.now(UTC)
        return self.expires <= now + timedelta(seconds=leeway)

    def apply_token(self, access_token: AccessToken) -> None:
        """Update this record in place from a refreshed or re-issued token."""
        if not access_token.token:
            raise ValueError("Refusing to store an empty access token")
        self.access_token = access_token.token
        self.expires = access_token.expires
        # Servers that rotate refresh tokens return a new one
        if access_token.refresh_token:
            self.refresh_token = access_token.refresh_token

    def to_dict(self) -> dict[str, Any]:
        return {
            "authorization_id": self.authorization_id,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "service_name": self.service_name,
            "grant_type": self.grant_type.value,
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires": self.expires.isoformat() if self.expires else None,
            "scope": self.scope,
            "token_values": self.token_values,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Authorization:
        return cls(
            authorization_id=data["authorization_id"],
            client_id=data["client_id"],
            client_secret=data["client_secret"],
            service_name=data["service_name"],
            grant_type=GrantType(data["grant_type"]),
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires=datetime.fromisoformat(data["expires"]) if data.get("expires") else None,
            scope=data.get("scope", ""),
            token_values=data.get("token_values") or {},
        )
