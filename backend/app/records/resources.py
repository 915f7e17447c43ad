"""
resources.py — Relief supplies on the map.

A Resource is a stock of something useful (water, shelter beds, medical
kits) at a location. Anyone signed in may register one; the owner or an
admin may edit it; only an admin may remove it.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import Field, field_validator
from sqlalchemy import Float, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.database import Base
from backend.app.core.security import Role
from backend.app.records.schemas import Location, RecordPayload
from backend.app.records.service import AccessPolicy, EntityService
from backend.app.records.store import EntityStore, LocatedRecordMixin


class ResourceType(str, Enum):
    FOOD      = "Food"
    WATER     = "Water"
    SHELTER   = "Shelter"
    MEDICAL   = "Medical"
    EQUIPMENT = "Equipment"
    OTHER     = "Other"


class ResourceStatus(str, Enum):
    AVAILABLE = "Available"
    RESERVED  = "Reserved"
    DEPLETED  = "Depleted"


class ResourceCreate(RecordPayload):
    name: str = Field(..., min_length=1, examples=["Bottled water"])
    type: ResourceType
    quantity: float = Field(..., ge=0, examples=[500])
    unit: str = Field(..., min_length=1, examples=["litres"])
    location: Location
    description: Optional[str] = None
    status: ResourceStatus = ResourceStatus.AVAILABLE

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value):
        return ResourceStatus.AVAILABLE if value in (None, "") else value


class ResourceRecord(LocatedRecordMixin, Base):
    __tablename__ = "resources"
    __table_args__ = (
        Index("ix_resources_lat_lon", "latitude", "longitude"),
    )

    name: Mapped[str] = mapped_column(String(256), nullable=False)
    type: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), index=True, nullable=False, default="Available")

    FIELD_COLUMNS = {
        "name": "name",
        "type": "type",
        "quantity": "quantity",
        "unit": "unit",
        "description": "description",
        "status": "status",
    }


class ResourceStore(EntityStore[ResourceRecord]):
    model = ResourceRecord
    id_prefix = "RES"
    filter_columns = {"type": "type", "status": "status"}


class ResourceService(EntityService):
    """Owner-or-admin edits, admin-only removal."""

    resource = "Resource"
    create_schema = ResourceCreate
    policy = AccessPolicy(
        edit_roles=frozenset({Role.ADMIN}),
        owner_may_edit=True,
        delete_roles=frozenset({Role.ADMIN}),
        owner_may_delete=False,
    )
    list_filters = {"type": ResourceType, "status": ResourceStatus}
