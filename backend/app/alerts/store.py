"""
store.py — Alert table and its Entity Store.
"""

from __future__ import annotations

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.database import Base
from backend.app.records.store import EntityStore, LocatedRecordMixin


class AlertRecord(LocatedRecordMixin, Base):
    """One authoritative alert row."""

    __tablename__ = "alerts"
    __table_args__ = (
        Index("ix_alerts_lat_lon", "latitude", "longitude"),
        Index("ix_alerts_created_at", "created_at"),
    )

    title: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), index=True, nullable=False, default="Active")

    FIELD_COLUMNS = {
        "title": "title",
        "description": "description",
        "type": "type",
        "severity": "severity",
        "status": "status",
    }


class AlertStore(EntityStore[AlertRecord]):
    model = AlertRecord
    id_prefix = "ALR"
    filter_columns = {"status": "status", "type": "type"}
