"""Browser page that runs a report and renders it with its stored render code."""

from __future__ import annotations

from functools import lru_cache

from fastapi import APIRouter
from fastapi.responses import HTMLResponse

from ...core import STATIC_DIR
from ..deps import parse_report_id

router = APIRouter(prefix="/reports", tags=["viewer"])

REPORT_ID_PLACEHOLDER = "__REPORT_ID__"


@lru_cache(maxsize=1)
def _template() -> str:
    return (STATIC_DIR / "viewer.html").read_text(encoding="utf-8")


@router.get("/{report_id}/view", response_class=HTMLResponse)
def view_report(report_id: str) -> HTMLResponse:
    rid = parse_report_id(report_id)
    return HTMLResponse(_template().replace(REPORT_ID_PLACEHOLDER, str(rid)))


__all__ = ["router"]
