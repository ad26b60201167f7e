# OAuth callback router — start and finish authorization code flows over HTTP.
# Created: 2026-10-19

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse, RedirectResponse

from tokenward.errors import OAuthClientError
from tokenward.manager import AuthorizationManager
from tokenward.registry import get_client

logger = logging.getLogger(__name__)

router = APIRouter(tags=["OAuth2 Client"])

FINISH_ROUTE = "/oauth/finish/{service_type}/{service_name}"
START_ROUTE = "/oauth/start/{service_type}/{service_name}"


def build_callback_uri(app_base_uri: str, service_type: str, service_name: str) -> str:
    """Render the absolute finish-authorization URI for one integration."""
    path = FINISH_ROUTE.format(service_type=service_type, service_name=service_name)
    return f"{app_base_uri.rstrip('/')}{path}"


def _require_client(service_type: str, service_name: str) -> AuthorizationManager:
    manager = get_client(service_type, service_name)
    if manager is None:
        raise HTTPException(
            status_code=404, detail=f"Unknown OAuth service {service_type}/{service_name}"
        )
    return manager


@router.get(START_ROUTE)
async def start_authorization(
    service_type: str,
    service_name: str,
    client_id: str = Query(...),
    client_secret: str = Query(""),
    return_to: str = Query(...),
    scope: str = Query(""),
):
    """Redirect the browser to the OAuth server's consent page."""
    manager = _require_client(service_type, service_name)
    try:
        url = await manager.start_authorization(client_id, client_secret, return_to, scope.split())
    except OAuthClientError as exc:
        return JSONResponse(status_code=400, content={"detail": str(exc)})
    return RedirectResponse(url, status_code=302)


@router.get(FINISH_ROUTE)
async def finish_authorization(
    service_type: str,
    service_name: str,
    code: str = Query(""),
    state: str = Query(""),
    scope: str = Query(""),
    error: str = Query(""),
    error_description: str = Query(""),
):
    """Handle the OAuth server's redirect back and return to the app."""
    manager = _require_client(service_type, service_name)
    if error:
        logger.warning(
            "%s/%s: Authorization server returned error %s: %s",
            service_type,
            service_name,
            error,
            error_description,
        )
        return JSONResponse(status_code=400, content={"detail": error_description or error})
    if not code:
        return JSONResponse(status_code=400, content={"detail": "Missing authorization code"})

    try:
        return_uri = await manager.finish_authorization(code, state, scope)
    except OAuthClientError as exc:
        logger.warning("%s/%s: %s", service_type, service_name, exc)
        return JSONResponse(status_code=400, content={"detail": str(exc)})
    return RedirectResponse(return_uri, status_code=302)
