"""System-level API endpoints."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter

from ...core import BACKEND_URL, FRONTEND_ORIGIN

router = APIRouter(tags=["system"])


@router.get("/health")
def health() -> Dict[str, bool]:
    """Simple readiness probe."""

    return {"ok": True}


@router.get("/config")
def get_config() -> Dict[str, Any]:
    """Expose frontend configuration values."""

    return {"backend_url": BACKEND_URL, "frontend_origin": FRONTEND_ORIGIN}


@router.get("/ai/test")
def ai_test() -> Dict[str, str]:
    return {"message": "AI routes are working"}


__all__ = ["router"]
