# Manager registry — look up configured integrations by service type and name.
# Created: 2026-10-19

from __future__ import annotations

import logging

from tokenward.manager import AuthorizationManager

logger = logging.getLogger(__name__)

_clients: dict[tuple[str, str], AuthorizationManager] = {}


def register_client(manager: AuthorizationManager) -> None:
    """Register *manager* under its ``(service_type, service_name)``."""
    key = (manager.service_type, manager.service_name)
    if key in _clients and _clients[key] is not manager:
        logger.warning("Replacing registered OAuth client %s/%s", *key)
    _clients[key] = manager


def get_client(service_type: str, service_name: str) -> AuthorizationManager | None:
    return _clients.get((service_type, service_name))


def list_clients() -> list[tuple[str, str]]:
    return list(_clients)


def reset_clients() -> None:
    """Forget all registered clients (for testing)."""
    _clients.clear()
