"""Xero API helpers: tenant discovery for a connected account."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from sqlmodel import Session

from ..core.errors import CredentialMissing
from ..core.time import utcnow
from ..models import Account

logger = logging.getLogger(__name__)

API_BASE = "https://api.xero.com"
CONNECTIONS_URL = f"{API_BASE}/connections"

NO_CONNECTION_MESSAGE = "No Xero connection found. Please connect your Xero account first."
NO_TENANT_MESSAGE = "No Xero organizations found"


async def api_get(
    access_token: str,
    url: str,
    params: Optional[Dict[str, Any]] = None,
    tenant_id: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.Response:
    headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}
    if tenant_id:
        headers["Xero-Tenant-Id"] = tenant_id
    async with httpx.AsyncClient(timeout=30, transport=transport) as client:
        return await client.get(url, headers=headers, params=params or {})


async def list_tenants(
    access_token: str, transport: Optional[httpx.AsyncBaseTransport] = None
) -> List[Dict[str, Any]]:
    """Return the organisations authorised for this token."""

    response = await api_get(access_token, CONNECTIONS_URL, transport=transport)
    response.raise_for_status()
    return response.json() or []


async def resolve_tenant_id(
    session: Session,
    account: Account,
    access_token: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """Return the account's tenant, discovering and storing the first one if unset."""

    if account.tenant_id:
        return account.tenant_id

    try:
        tenants = await list_tenants(access_token, transport=transport)
    except httpx.HTTPError as exc:
        logger.warning("Listing Xero tenants failed for account %s: %s", account.id, exc)
        raise CredentialMissing(NO_TENANT_MESSAGE) from exc
    if not tenants:
        raise CredentialMissing(NO_TENANT_MESSAGE)

    account.tenant_id = tenants[0]["tenantId"]
    account.updated_at = utcnow()
    session.add(account)
    session.commit()
    session.refresh(account)
    logger.info("Using Xero tenant %s for account %s", account.tenant_id, account.id)
    return account.tenant_id


__all__ = [
    "API_BASE",
    "CONNECTIONS_URL",
    "NO_CONNECTION_MESSAGE",
    "NO_TENANT_MESSAGE",
    "api_get",
    "list_tenants",
    "resolve_tenant_id",
]
