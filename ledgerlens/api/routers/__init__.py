"""Aggregate API routers."""

from fastapi import APIRouter

from .auth import router as auth_router
from .reports import router as reports_router
from .system import router as system_router
from .viewer import router as viewer_router
from .xero import router as xero_router

ALL_ROUTERS: tuple[APIRouter, ...] = (
    system_router,
    auth_router,
    reports_router,
    viewer_router,
    xero_router,
)

__all__ = ["ALL_ROUTERS"]
