"""Wire the HTTP surface onto an application instance."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from ..core import STATIC_DIR
from .routers import ALL_ROUTERS


def register_routes(app: FastAPI) -> None:
    """Attach every router and serve the report renderer bundle under /static."""

    for router in ALL_ROUTERS:
        app.include_router(router)
    app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")


__all__ = ["register_routes"]
