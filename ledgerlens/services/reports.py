"""Report generation, modification and Q&A backed by the LLM."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Protocol

from sqlmodel import Session, select

from ..core.errors import (
    AIRequestBlocked,
    AIServiceError,
    ApiError,
    Forbidden,
    IncompleteAIResponse,
    MalformedAIResponse,
    NeedsMoreInfo,
    NotFound,
    ValidationError,
)
from ..core.time import isoformat, utcnow
from ..models import Report, User
from .jsx import transform_jsx
from .prompts import (
    build_generation_prompt,
    build_modification_prompt,
    build_question_prompt,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "description", "apiCode", "renderCode")

NOT_OWNER_MESSAGE = "Forbidden: You do not own this report"


class LLM(Protocol):
    async def generate(self, prompt: str, *, json_output: bool = False) -> str: ...


def report_to_dict(report: Report) -> Dict[str, Any]:
    """Serialise a report model to an API-friendly dict."""

    return {
        "id": report.id,
        "name": report.name,
        "description": report.description,
        "query": report.query,
        "apiCode": report.api_code,
        "renderCode": report.render_code,
        "userId": report.user_id,
        "createdAt": isoformat(report.created_at),
        "updatedAt": isoformat(report.updated_at),
    }


def load_owned_report(
    session: Session, report_id: int, user_id: int, forbidden_message: str = NOT_OWNER_MESSAGE
) -> Report:
    report = session.get(Report, report_id)
    if not report:
        raise NotFound("Report not found")
    if report.user_id != user_id:
        raise Forbidden(forbidden_message)
    return report


def list_reports(session: Session, user_id: int) -> List[Report]:
    return list(
        session.exec(
            select(Report)
            .where(Report.user_id == user_id)
            .order_by(Report.created_at.desc(), Report.id.desc())
        ).all()
    )


def delete_report(session: Session, report_id: int, user_id: int) -> None:
    report = load_owned_report(session, report_id, user_id)
    session.delete(report)
    session.commit()
    logger.info("Deleted report %s for user %s", report_id, user_id)


def parse_report_envelope(text: str) -> Dict[str, Any]:
    """Validate the LLM's JSON envelope.

    Raises ``MalformedAIResponse`` for non-JSON, ``NeedsMoreInfo`` when the
    model asked for clarification and ``IncompleteAIResponse`` when a
    required field is missing or empty.
    """

    try:
        envelope = json.loads(text)
    except (TypeError, ValueError) as exc:
        logger.error("Failed to parse AI response: %r", text)
        raise MalformedAIResponse("Failed to parse AI response") from exc
    if not isinstance(envelope, dict):
        logger.error("AI response is not a JSON object: %r", text)
        raise MalformedAIResponse("Failed to parse AI response")

    if envelope.get("needsMoreInfo"):
        raise NeedsMoreInfo(envelope)

    missing = [
        key
        for key in REQUIRED_FIELDS
        if not isinstance(envelope.get(key), str) or not envelope[key].strip()
    ]
    if missing:
        logger.error("AI response missing required fields %s", missing)
        raise IncompleteAIResponse(
            "AI response was incomplete or malformed", details={"missing": missing}
        )
    return envelope


async def _ask(llm: LLM, prompt: str, *, json_output: bool, failure_message: str) -> str:
    try:
        return await llm.generate(prompt, json_output=json_output)
    except ApiError:
        raise
    except Exception as exc:
        if "SAFETY" in str(exc):
            logger.warning("LLM request blocked by safety settings: %s", exc)
            raise AIRequestBlocked("AI request blocked due to safety settings.") from exc
        logger.exception("LLM request failed")
        raise AIServiceError(failure_message) from exc


def _require_text(value: Any, message: str) -> str:
    text = value.strip() if isinstance(value, str) else ""
    if not text:
        raise ValidationError(message)
    return text


async def generate_report(session: Session, llm: LLM, *, query: Any, user_id: int) -> Report:
    query = _require_text(query, "Query is required")
    if not session.get(User, user_id):
        raise NotFound("User not found")

    text = await _ask(
        llm,
        build_generation_prompt(query),
        json_output=True,
        failure_message="Failed to generate report using AI",
    )
    envelope = parse_report_envelope(text)

    report = Report(
        name=envelope["name"],
        description=envelope["description"],
        query=query,
        api_code=envelope["apiCode"],
        render_code=transform_jsx(envelope["renderCode"]),
        user_id=user_id,
    )
    session.add(report)
    session.commit()
    session.refresh(report)
    logger.info("Generated report %s (%s) for user %s", report.id, report.name, user_id)
    return report


async def modify_report(
    session: Session, llm: LLM, *, report_id: int, request_text: Any, user_id: int
) -> Report:
    request_text = _require_text(request_text, "Modification request text is required")
    report = load_owned_report(session, report_id, user_id)

    text = await _ask(
        llm,
        build_modification_prompt(report, request_text),
        json_output=True,
        failure_message="Failed to modify report using AI",
    )
    envelope = parse_report_envelope(text)

    report.name = envelope["name"]
    report.description = envelope["description"]
    report.api_code = envelope["apiCode"]
    report.render_code = transform_jsx(envelope["renderCode"])
    report.updated_at = utcnow()
    session.add(report)
    session.commit()
    session.refresh(report)
    logger.info("Modified report %s for user %s", report.id, user_id)
    return report


async def answer_question(
    session: Session, llm: LLM, *, report_id: int, question_text: Any, user_id: int
) -> str:
    question_text = _require_text(question_text, "Question text is required")
    report = load_owned_report(session, report_id, user_id)
    return await _ask(
        llm,
        build_question_prompt(report, question_text),
        json_output=False,
        failure_message="Failed to get answer using AI",
    )


__all__ = [
    "REQUIRED_FIELDS",
    "answer_question",
    "delete_report",
    "generate_report",
    "list_reports",
    "load_owned_report",
    "modify_report",
    "parse_report_envelope",
    "report_to_dict",
]
