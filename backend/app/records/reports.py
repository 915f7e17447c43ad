"""
reports.py — Field reports from people on the ground.

Reports describe observed damage, injuries, broken infrastructure or
unmet needs, optionally linked to an alert. Responders triage them
(Pending → Verified → Resolved) alongside admins; the author may edit
or withdraw their own report.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import Field, field_validator
from sqlalchemy import JSON, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.database import Base
from backend.app.core.security import Role
from backend.app.records.schemas import Location, RecordPayload
from backend.app.records.service import AccessPolicy, EntityService
from backend.app.records.store import EntityStore, LocatedRecordMixin


class ReportType(str, Enum):
    DAMAGE         = "Damage"
    INJURY         = "Injury"
    INFRASTRUCTURE = "Infrastructure"
    NEED           = "Need"
    OTHER          = "Other"


class ReportStatus(str, Enum):
    PENDING  = "Pending"
    VERIFIED = "Verified"
    RESOLVED = "Resolved"


class ReportCreate(RecordPayload):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    type: ReportType
    location: Location
    media: List[str] = Field(default_factory=list, description="Photo / video URLs")
    related_alert: Optional[str] = Field(default=None, alias="relatedAlert")
    status: ReportStatus = ReportStatus.PENDING

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value):
        return ReportStatus.PENDING if value in (None, "") else value

    @field_validator("media", mode="before")
    @classmethod
    def _media_list(cls, value):
        return [] if value is None else value


class ReportRecord(LocatedRecordMixin, Base):
    __tablename__ = "reports"
    __table_args__ = (
        Index("ix_reports_lat_lon", "latitude", "longitude"),
    )

    title: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    media: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    related_alert: Mapped[Optional[str]] = mapped_column(String(32), index=True, nullable=True)
    status: Mapped[str] = mapped_column(String(16), index=True, nullable=False, default="Pending")

    FIELD_COLUMNS = {
        "title": "title",
        "description": "description",
        "type": "type",
        "media": "media",
        "relatedAlert": "related_alert",
        "status": "status",
    }


class ReportStore(EntityStore[ReportRecord]):
    model = ReportRecord
    id_prefix = "REP"
    filter_columns = {"type": "type", "status": "status", "alert": "related_alert"}


class ReportService(EntityService):
    """Owner, responder or admin edits; owner or admin removal."""

    resource = "Report"
    create_schema = ReportCreate
    policy = AccessPolicy(
        edit_roles=frozenset({Role.ADMIN, Role.RESPONDER}),
        owner_may_edit=True,
        delete_roles=frozenset({Role.ADMIN}),
        owner_may_delete=True,
    )
    list_filters = {"type": ReportType, "status": ReportStatus, "alert": None}
