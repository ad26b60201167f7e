# Tokenward errors — usage, provider and cache failures.
# Created: 2026-10-19

from __future__ import annotations

from typing import Any

__all__ = [
    "TokenwardError",
    "OAuthClientError",
    "IdentityProviderError",
    "StateCacheError",
]


class TokenwardError(Exception):
    """Base class for all tokenward errors."""


class OAuthClientError(TokenwardError):
    """Usage or flow error: missing state, missing authorization, bad return URI.

    Also raised on the authorization-code and refresh paths to wrap an
    :class:`IdentityProviderError`; the original is kept as ``__cause__``.
    """


class IdentityProviderError(TokenwardError):
    """The OAuth server's token endpoint rejected an exchange."""

    def __init__(
        self,
        message: str,
        payload: dict[str, Any] | str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.payload = payload
        self.status_code = status_code

    @property
    def error_code(self) -> str | None:
        """The OAuth2 ``error`` field of the payload, e.g. ``invalid_grant``."""
        if isinstance(self.payload, dict):
            code = self.payload.get("error")
            return str(code) if code is not None else None
        return None


class StateCacheError(TokenwardError):
    """A state cache write would overwrite a different live value."""
