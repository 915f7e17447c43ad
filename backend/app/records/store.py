"""
store.py — Entity Store for located, user-owned records.

The store is the single source of truth. Every method runs in its own
transaction and returns plain JSON-ready dicts in the wire shape
(``createdBy``, ``location.coordinates`` ...), never ORM instances.

═══════════════════════════════════════════════════════════════════════════
CONDITIONAL WRITES
═══════════════════════════════════════════════════════════════════════════

Ownership and optimistic-concurrency checks are folded into the WHERE
clause of a single UPDATE / DELETE statement:

    UPDATE alerts SET ..., version = version + 1
     WHERE id = :id
       [AND created_by = :owner]          -- non-privileged actor
       [AND version = :expected_version]  -- caller sent a version

The database applies the statement atomically per row, so there is no
window between "check who owns it" and "write it". When no row matches,
the same transaction re-reads the row to explain why (missing, not owner,
stale version).

═══════════════════════════════════════════════════════════════════════════
SPATIAL INDEX
═══════════════════════════════════════════════════════════════════════════

Each table carries a composite (latitude, longitude) B-tree index;
``find_in_box`` answers the bounding-box pre-filter from it and the
geospatial query engine applies the exact great-circle test.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Generic, List, Mapping, Optional, Type, TypeVar

from sqlalchemy import DateTime, Float, Integer, String, delete, select, update
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.database import Database
from backend.app.spatial.radius_utils import BoundingBox

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ═══════════════════════════════════════════════════════════════════════════
# ORM mixin
# ═══════════════════════════════════════════════════════════════════════════

class LocatedRecordMixin:
    """Columns shared by every located, user-owned record."""

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    address: Mapped[str] = mapped_column(String(512), nullable=False)
    created_by: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # wire key -> column attribute, for the record-specific fields
    FIELD_COLUMNS = {}

    def to_dict(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {"id": self.id}
        for key, column in self.FIELD_COLUMNS.items():
            record[key] = getattr(self, column)
        record.update({
            "location": {
                "type": "Point",
                "coordinates": [self.longitude, self.latitude],
                "address": self.address,
            },
            "createdBy": self.created_by,
            "createdAt": _as_utc(self.created_at).isoformat(),
            "updatedAt": _as_utc(self.updated_at).isoformat(),
            "version": self.version,
        })
        return record


RecordT = TypeVar("RecordT", bound=LocatedRecordMixin)


# ═══════════════════════════════════════════════════════════════════════════
# Write outcomes
# ═══════════════════════════════════════════════════════════════════════════

class WriteOutcome(str, Enum):
    APPLIED          = "applied"
    NOT_FOUND        = "not_found"
    NOT_OWNER        = "not_owner"
    VERSION_MISMATCH = "version_mismatch"


@dataclass
class WriteResult:
    """
    Result of a conditional write.

    ``record`` is the committed record after an applied update, the removed
    record after an applied delete, and the current record on a rejected
    write (``None`` when not found).
    """
    outcome: WriteOutcome
    record: Optional[Dict[str, Any]] = None

    @property
    def applied(self) -> bool:
        return self.outcome == WriteOutcome.APPLIED


# ═══════════════════════════════════════════════════════════════════════════
# Generic store
# ═══════════════════════════════════════════════════════════════════════════

class EntityStore(Generic[RecordT]):
    """CRUD, conditional writes and box queries for one record table."""

    model: Type[RecordT]
    id_prefix: str = "REC"
    # list() filter key -> column attribute
    filter_columns: Dict[str, str] = {}

    def __init__(self, database: Database) -> None:
        self.database = database

    # ── helpers ──

    def new_id(self) -> str:
        return f"{self.id_prefix}-{uuid.uuid4().hex[:12].upper()}"

    def to_columns(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        """Map validated wire fields onto column values."""
        columns: Dict[str, Any] = {}
        for key, value in fields.items():
            if key == "location":
                lon, lat = value["coordinates"]
                columns.update(longitude=lon, latitude=lat, address=value["address"])
            elif key in self.model.FIELD_COLUMNS:
                columns[self.model.FIELD_COLUMNS[key]] = value
        return columns

    async def _get_row(self, session, entity_id: str) -> Optional[RecordT]:
        stmt = (
            select(self.model)
            .where(self.model.id == entity_id)
            .execution_options(populate_existing=True)
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    # ── reads ──

    async def get(self, entity_id: str) -> Optional[Dict[str, Any]]:
        async with self.database.transaction() as session:
            row = await self._get_row(session, entity_id)
            return row.to_dict() if row else None

    async def list(self, filters: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        """All records, newest first, with optional equality filters."""
        stmt = select(self.model)
        for key, value in (filters or {}).items():
            if value is None:
                continue
            stmt = stmt.where(getattr(self.model, self.filter_columns[key]) == value)
        stmt = stmt.order_by(self.model.created_at.desc(), self.model.seq.desc())

        async with self.database.transaction() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [row.to_dict() for row in rows]

    async def find_in_box(self, box: BoundingBox) -> List[Dict[str, Any]]:
        """Records whose point lies inside ``box`` (index-backed pre-filter)."""
        stmt = select(self.model).where(
            self.model.latitude >= box.min_lat,
            self.model.latitude <= box.max_lat,
        )
        if not box.spans_all_longitudes:
            stmt = stmt.where(
                self.model.longitude >= box.min_lon,
                self.model.longitude <= box.max_lon,
            )

        async with self.database.transaction() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [row.to_dict() for row in rows]

    # ── writes ──

    async def insert(self, fields: Mapping[str, Any], created_by: str) -> Dict[str, Any]:
        now = utcnow()
        row = self.model(
            id=self.new_id(),
            created_by=created_by,
            created_at=now,
            updated_at=now,
            version=1,
            **self.to_columns(fields),
        )
        async with self.database.transaction() as session:
            session.add(row)
            await session.flush()
            record = row.to_dict()

        logger.debug("Inserted %s %s", self.model.__tablename__, record["id"])
        return record

    async def update_where(
        self,
        entity_id: str,
        fields: Mapping[str, Any],
        *,
        owner: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> WriteResult:
        """
        Apply ``fields`` in one conditional UPDATE.

        ``owner`` restricts the write to rows created by that user;
        ``expected_version`` restricts it to an unchanged row.
        """
        stmt = (
            update(self.model)
            .where(self.model.id == entity_id)
            .values(
                **self.to_columns(fields),
                updated_at=utcnow(),
                version=self.model.version + 1,
            )
        )
        if owner is not None:
            stmt = stmt.where(self.model.created_by == owner)
        if expected_version is not None:
            stmt = stmt.where(self.model.version == expected_version)

        async with self.database.transaction() as session:
            result = await session.execute(stmt.execution_options(synchronize_session=False))
            row = await self._get_row(session, entity_id)
            if result.rowcount == 1:
                return WriteResult(WriteOutcome.APPLIED, row.to_dict())
            return self._explain_rejection(row, owner, expected_version)

    async def delete_where(
        self,
        entity_id: str,
        *,
        owner: Optional[str] = None,
    ) -> WriteResult:
        """Remove the row in one conditional DELETE."""
        stmt = delete(self.model).where(self.model.id == entity_id)
        if owner is not None:
            stmt = stmt.where(self.model.created_by == owner)

        async with self.database.transaction() as session:
            row = await self._get_row(session, entity_id)
            if row is None:
                return WriteResult(WriteOutcome.NOT_FOUND)
            snapshot = row.to_dict()
            result = await session.execute(stmt.execution_options(synchronize_session=False))
            if result.rowcount == 1:
                return WriteResult(WriteOutcome.APPLIED, snapshot)
            row = await self._get_row(session, entity_id)
            return self._explain_rejection(row, owner, None)

    @staticmethod
    def _explain_rejection(
        row: Optional[LocatedRecordMixin],
        owner: Optional[str],
        expected_version: Optional[int],
    ) -> WriteResult:
        if row is None:
            return WriteResult(WriteOutcome.NOT_FOUND)
        record = row.to_dict()
        if owner is not None and row.created_by != owner:
            return WriteResult(WriteOutcome.NOT_OWNER, record)
        if expected_version is not None and row.version != expected_version:
            return WriteResult(WriteOutcome.VERSION_MISMATCH, record)
        # Row changed between the statement and the re-read; report as stale
        return WriteResult(WriteOutcome.VERSION_MISMATCH, record)
