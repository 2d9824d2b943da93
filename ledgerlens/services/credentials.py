"""Stored OAuth credentials: lookup and single-attempt token refresh."""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from authlib.common.errors import AuthlibBaseError
from sqlalchemy import update
from sqlmodel import Session, select

from ..core.errors import CredentialExpired
from ..core.time import epoch_seconds, utcnow
from ..models import Account
from .oauth import OAuthProvider

logger = logging.getLogger(__name__)

EXPIRED_MESSAGE = "Xero authentication expired. Please reconnect your Xero account."

# Assumed lifetime when a token response carries no expiry; matches Xero access tokens.
DEFAULT_TOKEN_LIFETIME_SECONDS = 1800

_refresh_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()


@dataclass
class FreshToken:
    access_token: str
    refreshed: bool


def _lock_for(account_id: int) -> asyncio.Lock:
    lock = _refresh_locks.get(account_id)
    if lock is None:
        lock = asyncio.Lock()
        _refresh_locks[account_id] = lock
    return lock


def _token_expires_at(token: Dict[str, Any]) -> int:
    expires_at = token.get("expires_at")
    if expires_at is None:
        return epoch_seconds() + DEFAULT_TOKEN_LIFETIME_SECONDS
    return int(expires_at)


def get_connection(session: Session, user_id: int, provider: str) -> Optional[Account]:
    """Return the user's most recently updated account for ``provider``."""

    return session.exec(
        select(Account)
        .where(Account.user_id == user_id, Account.provider == provider)
        .order_by(Account.updated_at.desc())
    ).first()


def is_expired(account: Account, now: Optional[int] = None) -> bool:
    if account.expires_at is None:
        return False
    now = epoch_seconds() if now is None else now
    return int(account.expires_at) <= now


async def ensure_fresh_token(
    session: Session, account: Account, provider: OAuthProvider
) -> FreshToken:
    """Refresh ``account`` once if its access token has expired.

    Concurrent callers for the same account serialise on a per-account lock;
    whoever gets the lock second sees the already refreshed row and skips the
    provider call. The write itself only applies if the refresh token is still
    the one that was exchanged.
    """

    if not is_expired(account):
        return FreshToken(access_token=account.access_token or "", refreshed=False)

    async with _lock_for(account.id):
        session.refresh(account)
        if not is_expired(account):
            return FreshToken(access_token=account.access_token or "", refreshed=False)

        old_refresh_token = account.refresh_token
        if not old_refresh_token:
            logger.warning("Account %s has no refresh token", account.id)
            raise CredentialExpired(EXPIRED_MESSAGE)

        logger.info("Refreshing %s token for account %s", account.provider, account.id)
        try:
            token = await provider.refresh_token(old_refresh_token)
        except (AuthlibBaseError, httpx.HTTPError, ValueError, KeyError) as exc:
            logger.warning("Token refresh failed for account %s: %s", account.id, exc)
            raise CredentialExpired(EXPIRED_MESSAGE) from exc

        access_token = token.get("access_token")
        if not access_token:
            raise CredentialExpired(EXPIRED_MESSAGE)

        result = session.execute(
            update(Account)
            .where(Account.id == account.id, Account.refresh_token == old_refresh_token)
            .values(
                access_token=access_token,
                refresh_token=token.get("refresh_token") or old_refresh_token,
                expires_at=_token_expires_at(token),
                updated_at=utcnow(),
            )
        )
        session.commit()
        session.refresh(account)

        if result.rowcount == 0:
            logger.info("Account %s was refreshed by another worker", account.id)
            return FreshToken(access_token=account.access_token or "", refreshed=False)
        return FreshToken(access_token=account.access_token or "", refreshed=True)


def upsert_account(
    session: Session,
    *,
    user_id: int,
    provider: str,
    provider_account_id: str,
    token: Dict[str, Any],
    tenant_id: Optional[str] = None,
) -> Account:
    """Insert or update the account keyed on (provider, provider_account_id).

    An existing row is reassigned to ``user_id``; the latest consent wins.
    """

    account = session.exec(
        select(Account).where(
            Account.provider == provider,
            Account.provider_account_id == provider_account_id,
        )
    ).first()
    if account is None:
        account = Account(
            user_id=user_id, provider=provider, provider_account_id=provider_account_id
        )
    else:
        account.user_id = user_id
        account.updated_at = utcnow()

    account.access_token = token.get("access_token")
    account.refresh_token = token.get("refresh_token") or account.refresh_token
    account.token_type = token.get("token_type")
    account.scope = token.get("scope")
    account.expires_at = _token_expires_at(token)
    account.id_token = token.get("id_token")
    if tenant_id:
        account.tenant_id = tenant_id

    session.add(account)
    session.commit()
    session.refresh(account)
    logger.info("Stored %s account %s for user %s", provider, account.id, user_id)
    return account


__all__ = [
    "DEFAULT_TOKEN_LIFETIME_SECONDS",
    "EXPIRED_MESSAGE",
    "FreshToken",
    "ensure_fresh_token",
    "get_connection",
    "is_expired",
    "upsert_account",
]
