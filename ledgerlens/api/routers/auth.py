"""Email/password and OAuth (Google, Microsoft) authentication routes."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from authlib.common.errors import AuthlibBaseError
from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlmodel import Session

from ...core import FRONTEND_ORIGIN, get_session
from ...core.errors import ApiError, NotFound
from ...models import User
from ...services.credentials import upsert_account
from ...services.oauth import OAuthProvider, get_oauth_providers
from ...services.users import authenticate, register_user, upsert_oauth_user, user_to_dict
from ..deps import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

SIGN_IN_PROVIDERS = ("google", "microsoft")
STATE_KEY = "oauth_state"
NEXT_KEY = "next"


def _sign_in(request: Request, user: User) -> None:
    request.session["uid"] = user.id
    request.session["email"] = user.email


def _login_error_redirect() -> RedirectResponse:
    return RedirectResponse(
        f"{FRONTEND_ORIGIN}/auth/login?error={quote('Authentication failed')}", status_code=302
    )


def _sign_in_provider(
    provider: str, providers: Dict[str, OAuthProvider] = Depends(get_oauth_providers)
) -> OAuthProvider:
    if provider not in SIGN_IN_PROVIDERS:
        raise NotFound(f"Unknown sign-in provider: {provider}")
    oauth_provider = providers[provider]
    if not oauth_provider.config.configured:
        raise ApiError(f"{provider.capitalize()} OAuth is not configured.")
    return oauth_provider


@router.post("/register", status_code=201)
def register(
    request: Request,
    body: Dict[str, Any] = Body(...),
    session: Session = Depends(get_session),
):
    user = register_user(
        session, email=body.get("email"), password=body.get("password"), name=body.get("name")
    )
    _sign_in(request, user)
    return {"user": user_to_dict(user)}


@router.post("/login")
def login(
    request: Request,
    body: Dict[str, Any] = Body(...),
    session: Session = Depends(get_session),
):
    user = authenticate(session, email=body.get("email"), password=body.get("password"))
    _sign_in(request, user)
    return {"user": user_to_dict(user)}


@router.get("/{provider}/start")
def oauth_start(
    request: Request,
    next: Optional[str] = None,
    oauth_provider: OAuthProvider = Depends(_sign_in_provider),
) -> RedirectResponse:
    auth_url, state = oauth_provider.build_auth_url()
    request.session[STATE_KEY] = state
    if next:
        request.session[NEXT_KEY] = next
    return RedirectResponse(auth_url, status_code=302)


@router.get("/{provider}/callback")
async def oauth_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    session: Session = Depends(get_session),
    oauth_provider: OAuthProvider = Depends(_sign_in_provider),
) -> RedirectResponse:
    expected = request.session.pop(STATE_KEY, None)
    if not code or not state or state != expected:
        logger.warning("%s callback with missing code or mismatched state", oauth_provider.name)
        return _login_error_redirect()

    try:
        token = await oauth_provider.exchange_code(code)
        profile = await oauth_provider.fetch_profile(token["access_token"])
    except (AuthlibBaseError, httpx.HTTPError, KeyError, ValueError) as exc:
        logger.error("%s sign-in failed: %s", oauth_provider.name, exc)
        return _login_error_redirect()
    if not profile.email:
        logger.error("%s profile has no email address", oauth_provider.name)
        return _login_error_redirect()

    user = upsert_oauth_user(session, email=profile.email, name=profile.name, picture=profile.picture)
    upsert_account(
        session,
        user_id=user.id,
        provider=oauth_provider.name,
        provider_account_id=profile.provider_account_id,
        token=token,
    )
    _sign_in(request, user)

    next_url = request.session.pop(NEXT_KEY, None) or f"{FRONTEND_ORIGIN}/auth/callback"
    if not str(next_url).startswith(FRONTEND_ORIGIN):
        next_url = FRONTEND_ORIGIN
    return RedirectResponse(next_url, status_code=302)


@router.post("/logout")
def logout(request: Request):
    request.session.clear()
    return JSONResponse({"ok": True})


@router.get("/me")
def me(caller: User = Depends(get_current_user)) -> Dict[str, Any]:
    return {"user": user_to_dict(caller)}


__all__ = ["router"]
