"""Tokenward - OAuth2 client authorization manager.

Created: 2026-10-19

Drives authorization code and client credentials grants against an OAuth2
server, keeps the resulting tokens in a repository, refreshes them when
they expire and signs outbound API requests with a valid bearer token.

Usage:
    from tokenward import (
        AuthorizationManager,
        FileAuthorizationRepository,
        InMemoryStateCache,
    )

    manager = AuthorizationManager(
        service_name="Github",
        base_uri="https://api.example.com",
        repository=FileAuthorizationRepository(),
        state_cache=InMemoryStateCache(),
        callback_uri="https://app.example.com/oauth/finish/generic/Github",
    )

    # Machine-to-machine
    authorization = await manager.add_client_credentials("my-client", "my-secret")
    manager.authorization_id = authorization.authorization_id
    response = await manager.send_authenticated_request("/v1/things")

    # Interactive
    url = await manager.start_authorization("my-client", "my-secret", "https://app/done", ["read"])
    # ... redirect, then in the callback:
    return_to = await manager.finish_authorization(code, state, scope)
"""

from tokenward.errors import (
    IdentityProviderError,
    OAuthClientError,
    StateCacheError,
    TokenwardError,
)
from tokenward.manager import (
    STATE_QUERY_PARAMETER_NAME,
    AuthorizationManager,
    append_state_to_uri,
)
from tokenward.models import AccessToken, Authorization, GrantType, PendingAuthorization
from tokenward.provider import OAuthProvider, ProviderConfig, ProviderProtocol
from tokenward.repository import (
    AuthorizationRepositoryProtocol,
    FileAuthorizationRepository,
    InMemoryAuthorizationRepository,
)
from tokenward.state_cache import InMemoryStateCache, StateCacheProtocol

__all__ = [
    # Errors
    "TokenwardError",
    "OAuthClientError",
    "IdentityProviderError",
    "StateCacheError",
    # Models
    "AccessToken",
    "Authorization",
    "GrantType",
    "PendingAuthorization",
    # Provider
    "OAuthProvider",
    "ProviderConfig",
    "ProviderProtocol",
    # Stores
    "AuthorizationRepositoryProtocol",
    "FileAuthorizationRepository",
    "InMemoryAuthorizationRepository",
    "StateCacheProtocol",
    "InMemoryStateCache",
    # Manager
    "AuthorizationManager",
    "STATE_QUERY_PARAMETER_NAME",
    "append_state_to_uri",
]
