from __future__ import annotations
from typing import Optional
from sqlmodel import SQLModel, Field, Column, JSON
from datetime import datetime, timezone
import uuid


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


class Project(SQLModel, table=True):
    __tablename__ = "projects"

    id: str = Field(default_factory=_uuid, primary_key=True)
    name: str
    user_id: Optional[str] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=_now, index=True)
    updated_at: datetime = Field(default_factory=_now)


class Report(SQLModel, table=True):
    """A saved comparison run. summary is recounted whenever a comparison changes."""
    __tablename__ = "cde_reports"

    id: str = Field(default_factory=_uuid, primary_key=True)
    project_id: Optional[str] = Field(default=None, index=True)
    name: str
    spec_document_id: Optional[str] = None
    submittal_document_id: Optional[str] = None
    summary: dict = Field(sa_column=Column(JSON), default_factory=dict)
    created_at: datetime = Field(default_factory=_now, index=True)
    updated_at: datetime = Field(default_factory=_now)


class Comparison(SQLModel, table=True):
    """One spec row's outcome inside a report, open to manual review."""
    __tablename__ = "comparisons"

    id: str = Field(default_factory=_uuid, primary_key=True)
    report_id: str = Field(foreign_key="cde_reports.id", index=True)
    position: int = 0
    row_id: Optional[str] = None

    spec_field: str
    spec_value: str
    spec_unit: Optional[str] = None
    spec_section: Optional[str] = None

    submittal_value: Optional[str] = None
    submittal_unit: Optional[str] = None
    submittal_location: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    findings: list = Field(sa_column=Column(JSON), default_factory=list)

    status: str = "pending"
    match_confidence: str = "not_found"
    ai_explanation: str = ""
    user_comment: Optional[str] = None
    is_reviewed: bool = False
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
