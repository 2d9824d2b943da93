"""Execute a stored report against the caller's live Xero connection."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from sqlmodel import Session

from ..core.errors import CredentialMissing, SandboxExecutionError, SandboxTimeout
from ..models import User
from .credentials import ensure_fresh_token, get_connection
from .oauth import OAuthProvider
from .reports import load_owned_report
from .sandbox import ExecutionResult, execute_async
from .sandbox_worker import KIND_TIMEOUT
from .xero import NO_CONNECTION_MESSAGE, resolve_tenant_id

logger = logging.getLogger(__name__)

Executor = Callable[[str, Dict[str, Any]], Awaitable[ExecutionResult]]

XERO = "xero"
NO_PERMISSION_MESSAGE = "You do not have permission to access this report"


def build_context(access_token: str, tenant_id: str, caller: User) -> Dict[str, Any]:
    return {
        "auth": {"token": access_token},
        "tenantId": tenant_id,
        "userInfo": {"id": caller.id, "email": caller.email},
    }


async def run_report(
    session: Session,
    report_id: int,
    caller: User,
    provider: OAuthProvider,
    *,
    executor: Executor = execute_async,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """Load, authorise and execute a report, returning its data and render code."""

    report = load_owned_report(session, report_id, caller.id, NO_PERMISSION_MESSAGE)

    account = get_connection(session, caller.id, XERO)
    if account is None:
        raise CredentialMissing(NO_CONNECTION_MESSAGE)

    fresh = await ensure_fresh_token(session, account, provider)
    tenant_id = await resolve_tenant_id(
        session, account, fresh.access_token, transport=transport or provider.transport
    )

    logger.info("Running report %s for user %s", report.id, caller.id)
    result = await executor(report.api_code, build_context(fresh.access_token, tenant_id, caller))

    if not result.ok:
        logger.error("Report %s failed (%s): %s", report.id, result.kind, result.error)
        error_cls = SandboxTimeout if result.kind == KIND_TIMEOUT else SandboxExecutionError
        raise error_cls(
            f"Error executing report: {result.error}",
            details={"reportId": report.id, "stack": result.stack},
        )

    return {
        "reportId": report.id,
        "name": report.name,
        "description": report.description,
        "data": result.data,
        "metadata": result.metadata or {},
        "renderCode": report.render_code,
    }


__all__ = ["NO_PERMISSION_MESSAGE", "build_context", "run_report"]
