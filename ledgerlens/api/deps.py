"""Shared FastAPI dependencies for the routers."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import Depends, Request
from sqlmodel import Session

from ..core import get_session
from ..core.errors import ApiError, Forbidden, Unauthorized, ValidationError
from ..models import User
from ..services.oauth import OAuthProvider, get_oauth_providers
from ..services.sandbox import execute_async


def get_current_user(request: Request, session: Session = Depends(get_session)) -> User:
    """Resolve the signed-in user from the session cookie."""

    uid = request.session.get("uid")
    if uid is None:
        raise Unauthorized()
    try:
        user = session.get(User, int(uid))
    except (TypeError, ValueError):
        user = None
    if not user:
        request.session.clear()
        raise Unauthorized("Invalid session")
    return user


def get_executor():
    return execute_async


def get_xero_provider(
    providers: Dict[str, OAuthProvider] = Depends(get_oauth_providers),
) -> OAuthProvider:
    provider = providers["xero"]
    if not provider.config.configured:
        raise ApiError("Xero OAuth is not configured. Check XERO_CLIENT_ID and XERO_CLIENT_SECRET.")
    return provider


def parse_report_id(report_id: str) -> int:
    try:
        return int(report_id)
    except (TypeError, ValueError):
        raise ValidationError("Invalid report ID") from None


def require_body_user(body: Dict[str, Any], caller: User) -> int:
    """Return the body's ``userId`` after checking it names the caller."""

    raw = body.get("userId")
    if raw is None or raw == "":
        raise ValidationError("User ID is required")
    if isinstance(raw, bool):
        raise ValidationError("Invalid user ID")
    try:
        user_id = int(raw)
    except (TypeError, ValueError):
        raise ValidationError("Invalid user ID") from None
    if user_id != caller.id:
        raise Forbidden("You can only act on your own reports")
    return user_id


__all__ = [
    "get_current_user",
    "get_executor",
    "get_xero_provider",
    "parse_report_id",
    "require_body_user",
]
