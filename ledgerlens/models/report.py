"""Database model for generated reports."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, Text
from sqlmodel import Field as ORMField, SQLModel

from ..core.time import utcnow


class Report(SQLModel, table=True):
    """LLM-generated report: a data-fetch snippet plus a render snippet."""

    id: Optional[int] = ORMField(default=None, primary_key=True)
    name: str
    description: str
    query: str = ORMField(sa_column=Column(Text, nullable=False))
    api_code: str = ORMField(sa_column=Column(Text, nullable=False))
    render_code: str = ORMField(sa_column=Column(Text, nullable=False))
    user_id: int = ORMField(foreign_key="user.id", index=True)
    created_at: datetime = ORMField(default_factory=utcnow)
    updated_at: datetime = ORMField(default_factory=utcnow)


__all__ = ["Report"]
