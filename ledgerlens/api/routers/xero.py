"""Xero connection management: status, OAuth handshake and disconnect."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from authlib.common.errors import AuthlibBaseError
from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlmodel import Session, select

from ...core import FRONTEND_ORIGIN, get_session, isoformat
from ...core.errors import ApiError, CredentialMissing, Unauthorized, ValidationError
from ...models import Account, User
from ...services.credentials import get_connection, upsert_account
from ...services.oauth import OAuthProvider
from ...services.xero import NO_TENANT_MESSAGE, list_tenants
from ..deps import get_current_user, get_xero_provider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/xero", tags=["xero"])

STATE_KEY = "xero_state"
USER_KEY = "xero_user_id"


@router.get("/connection")
def connection_status(
    session: Session = Depends(get_session),
    caller: User = Depends(get_current_user),
) -> Dict[str, Any]:
    account = get_connection(session, caller.id, "xero")
    if account is None:
        return {"connected": False, "connectionDetails": None}
    return {
        "connected": True,
        "connectionDetails": {
            "connectedAt": isoformat(account.created_at),
            "tenantId": account.tenant_id,
        },
    }


@router.get("/auth")
def start_auth(
    request: Request,
    caller: User = Depends(get_current_user),
    provider: OAuthProvider = Depends(get_xero_provider),
) -> Dict[str, str]:
    """Return the Xero consent URL; state and caller are kept in the session."""

    auth_url, state = provider.build_auth_url()
    request.session[STATE_KEY] = state
    request.session[USER_KEY] = caller.id
    return {"authUrl": auth_url}


async def _provider_account_id(
    provider: OAuthProvider, access_token: str, user_id: int, tenant_id: str
) -> str:
    try:
        profile = await provider.fetch_profile(access_token)
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Could not read Xero profile, using tenant-scoped id: %s", exc)
        return f"{user_id}:{tenant_id}"
    return profile.provider_account_id


@router.get("/callback")
async def callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    session: Session = Depends(get_session),
    provider: OAuthProvider = Depends(get_xero_provider),
) -> RedirectResponse:
    expected = request.session.get(STATE_KEY)
    if not state or state != expected:
        raise ValidationError("Invalid state parameter")

    raw_user_id = request.session.get(USER_KEY)
    if raw_user_id is None:
        raise Unauthorized("Unauthorized")
    try:
        user_id = int(raw_user_id)
    except (TypeError, ValueError):
        raise ValidationError("Invalid user ID") from None
    if not code:
        raise ValidationError("Authorization code is required")

    try:
        token = await provider.exchange_code(code)
    except (AuthlibBaseError, httpx.HTTPError) as exc:
        logger.error("Xero code exchange failed: %s", exc)
        raise ApiError("Failed to connect Xero account") from exc

    access_token = token["access_token"]
    try:
        tenants = await list_tenants(access_token, transport=provider.transport)
    except httpx.HTTPError as exc:
        logger.error("Listing Xero tenants failed: %s", exc)
        raise CredentialMissing(NO_TENANT_MESSAGE) from exc
    if not tenants:
        raise CredentialMissing(NO_TENANT_MESSAGE)
    tenant_id = tenants[0]["tenantId"]

    account_id = await _provider_account_id(provider, access_token, user_id, tenant_id)
    upsert_account(
        session,
        user_id=user_id,
        provider="xero",
        provider_account_id=account_id,
        token=token,
        tenant_id=tenant_id,
    )

    request.session.pop(STATE_KEY, None)
    request.session.pop(USER_KEY, None)
    return RedirectResponse(f"{FRONTEND_ORIGIN}/dashboard?xero=connected", status_code=302)


@router.delete("/disconnect")
def disconnect(
    session: Session = Depends(get_session),
    caller: User = Depends(get_current_user),
) -> Dict[str, str]:
    accounts = session.exec(
        select(Account).where(Account.user_id == caller.id, Account.provider == "xero")
    ).all()
    for account in accounts:
        session.delete(account)
    session.commit()
    logger.info("Removed %d Xero connection(s) for user %s", len(accounts), caller.id)
    return {"message": "Xero disconnected successfully"}


__all__ = ["router"]
