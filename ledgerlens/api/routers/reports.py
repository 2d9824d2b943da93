"""Report CRUD, generation, execution and Q&A endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from sqlmodel import Session

from ...core import get_session
from ...core.errors import Forbidden
from ...models import User
from ...services import reports as report_service
from ...services.llm import get_llm
from ...services.oauth import OAuthProvider
from ...services.runner import run_report
from ..deps import (
    get_current_user,
    get_executor,
    get_xero_provider,
    parse_report_id,
    require_body_user,
)

router = APIRouter(prefix="/reports", tags=["reports"])


@router.post("", status_code=201)
async def create_report(
    body: Dict[str, Any] = Body(...),
    session: Session = Depends(get_session),
    caller: User = Depends(get_current_user),
    llm=Depends(get_llm),
) -> Dict[str, Any]:
    """Generate a report from a natural-language query."""

    user_id = require_body_user(body, caller)
    report = await report_service.generate_report(
        session, llm, query=body.get("query"), user_id=user_id
    )
    return report_service.report_to_dict(report)


# Declared before "/{report_id}" so "user" is not read as a report id.
@router.get("/user/{user_id}")
def list_user_reports(
    user_id: int,
    session: Session = Depends(get_session),
    caller: User = Depends(get_current_user),
) -> List[Dict[str, Any]]:
    if user_id != caller.id:
        raise Forbidden("You can only list your own reports")
    return [report_service.report_to_dict(r) for r in report_service.list_reports(session, user_id)]


@router.get("/{report_id}")
def get_report(
    report_id: str,
    session: Session = Depends(get_session),
    caller: User = Depends(get_current_user),
) -> Dict[str, Any]:
    report = report_service.load_owned_report(
        session,
        parse_report_id(report_id),
        caller.id,
        "You do not have permission to access this report",
    )
    return report_service.report_to_dict(report)


@router.put("/{report_id}/modify")
async def modify_report(
    report_id: str,
    body: Dict[str, Any] = Body(...),
    session: Session = Depends(get_session),
    caller: User = Depends(get_current_user),
    llm=Depends(get_llm),
) -> Dict[str, Any]:
    rid = parse_report_id(report_id)
    user_id = require_body_user(body, caller)
    report = await report_service.modify_report(
        session, llm, report_id=rid, request_text=body.get("requestText"), user_id=user_id
    )
    return report_service.report_to_dict(report)


@router.get("/{report_id}/run")
async def run(
    report_id: str,
    session: Session = Depends(get_session),
    caller: User = Depends(get_current_user),
    provider: OAuthProvider = Depends(get_xero_provider),
    executor=Depends(get_executor),
) -> Dict[str, Any]:
    """Execute the stored API code and return its data with the render code."""

    rid = parse_report_id(report_id)
    return await run_report(session, rid, caller, provider, executor=executor)


@router.post("/{report_id}/ask")
async def ask(
    report_id: str,
    body: Dict[str, Any] = Body(...),
    session: Session = Depends(get_session),
    caller: User = Depends(get_current_user),
    llm=Depends(get_llm),
) -> Dict[str, str]:
    rid = parse_report_id(report_id)
    user_id = require_body_user(body, caller)
    answer = await report_service.answer_question(
        session, llm, report_id=rid, question_text=body.get("questionText"), user_id=user_id
    )
    return {"answer": answer}


@router.delete("/{report_id}")
def delete_report(
    report_id: str,
    body: Optional[Dict[str, Any]] = Body(None),
    session: Session = Depends(get_session),
    caller: User = Depends(get_current_user),
) -> JSONResponse:
    rid = parse_report_id(report_id)
    body = body or {}
    user_id = require_body_user(body, caller) if body.get("userId") is not None else caller.id
    report_service.delete_report(session, rid, user_id)
    return JSONResponse({"message": "Report deleted successfully"})


__all__ = ["router"]
