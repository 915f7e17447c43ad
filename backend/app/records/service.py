"""
service.py — Authorised lifecycle for located, user-owned records.

``EntityService`` is the only writer of its store. Each concrete service
declares:

    resource        human name used in errors and logs ("Alert")
    create_schema   pydantic payload model (validation rules)
    policy          who may edit / delete
    list_filters    allowed ``list()`` filter keys and their value enums

Write path (update):

    1. authenticate      actor must be present               → 401
    2. snapshot read     record must exist                   → 404
    3. authorise         owner, or a privileged role         → 403
    4. re-validate       current ⊕ patch under create rules  → 400
    5. conditional write (id, owner-unless-privileged[, version]) in ONE
                         statement; a lost race is reported  → 403 / 404 / 409
    6. hook              subclasses announce committed state

Nothing is written and no hook fires when any step fails.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Type

from backend.app.core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from backend.app.core.security import Actor, Role
from backend.app.records.schemas import (
    RecordPayload,
    split_patch,
    validate_patch,
    validate_payload,
)
from backend.app.records.store import EntityStore, WriteOutcome, WriteResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessPolicy:
    """Role/ownership rules for mutations."""
    edit_roles: FrozenSet[Role] = field(default_factory=lambda: frozenset({Role.ADMIN}))
    owner_may_edit: bool = True
    delete_roles: FrozenSet[Role] = field(default_factory=lambda: frozenset({Role.ADMIN}))
    owner_may_delete: bool = False

    def edit_owner_scope(self, actor: Actor) -> Optional[str]:
        """Owner restriction for an edit: ``None`` = any record, else ``actor.id``."""
        if actor.role in self.edit_roles:
            return None
        return actor.id

    def can_edit(self, actor: Actor, record: Mapping[str, Any]) -> bool:
        if actor.role in self.edit_roles:
            return True
        return self.owner_may_edit and record.get("createdBy") == actor.id

    def delete_owner_scope(self, actor: Actor) -> Optional[str]:
        if actor.role in self.delete_roles:
            return None
        return actor.id

    def may_ever_delete(self, actor: Actor) -> bool:
        return actor.role in self.delete_roles or self.owner_may_delete


class EntityService:
    """Create/read/update/delete with validation and authorisation."""

    resource: str = "Record"
    create_schema: Type[RecordPayload] = RecordPayload
    policy: AccessPolicy = AccessPolicy()
    list_filters: Dict[str, Optional[Type[Enum]]] = {}

    def __init__(self, store: EntityStore) -> None:
        self.store = store

    # ── hooks (committed state only) ──

    async def _after_create(self, record: Dict[str, Any]) -> None:
        pass

    async def _after_update(self, record: Dict[str, Any]) -> None:
        pass

    async def _after_delete(self, record: Dict[str, Any]) -> None:
        pass

    # ── reads ──

    def _clean_filters(self, filters: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        clean: Dict[str, Any] = {}
        for key, value in (filters or {}).items():
            if value is None or value == "":
                continue
            if key not in self.list_filters:
                raise ValidationError(f"Unknown filter '{key}'", field=key)
            enum_cls = self.list_filters[key]
            if enum_cls is not None:
                allowed = [e.value for e in enum_cls]
                if value not in allowed:
                    raise ValidationError(
                        f"Invalid {key} '{value}'. Must be one of: {allowed}",
                        field=key,
                    )
            clean[key] = value
        return clean

    async def list(self, filters: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        """All records, newest first, optionally filtered."""
        return await self.store.list(self._clean_filters(filters))

    async def get(self, entity_id: str) -> Dict[str, Any]:
        record = await self.store.get(entity_id)
        if record is None:
            raise NotFoundError(self.resource, id=entity_id)
        return record

    # ── writes ──

    @staticmethod
    def _require_actor(actor: Optional[Actor]) -> Actor:
        if actor is None:
            raise UnauthenticatedError()
        return actor

    async def create(self, payload: Any, actor: Optional[Actor]) -> Dict[str, Any]:
        actor = self._require_actor(actor)
        fields = validate_payload(self.create_schema, payload, self.resource)
        record = await self.store.insert(fields, created_by=actor.id)

        logger.info(
            "%s %s created by %s", self.resource, record["id"], actor.id,
            extra={"entity": self.resource, "alert_id": record["id"], "actor_id": actor.id},
        )
        await self._after_create(record)
        return record

    async def update(
        self,
        entity_id: str,
        patch: Any,
        actor: Optional[Actor],
    ) -> Dict[str, Any]:
        actor = self._require_actor(actor)
        fields, expected_version = split_patch(patch, self.resource)

        current = await self.get(entity_id)
        if not self.policy.can_edit(actor, current):
            raise ForbiddenError(self.resource, "update", id=entity_id)

        clean = validate_patch(self.create_schema, current, fields, self.resource)
        if not clean:
            # nothing to write; a stale version is still reported
            if expected_version is not None and expected_version != current["version"]:
                raise ConflictError(
                    self.resource,
                    expected_version=expected_version,
                    current_version=current["version"],
                    id=entity_id,
                )
            return current

        result = await self.store.update_where(
            entity_id,
            clean,
            owner=self.policy.edit_owner_scope(actor),
            expected_version=expected_version,
        )
        record = self._unwrap(result, entity_id, "update", expected_version)

        logger.info(
            "%s %s updated by %s (v%d)", self.resource, entity_id, actor.id, record["version"],
            extra={"entity": self.resource, "alert_id": entity_id, "actor_id": actor.id},
        )
        await self._after_update(record)
        return record

    async def delete(self, entity_id: str, actor: Optional[Actor]) -> Dict[str, Any]:
        """Remove a record; returns the removed record."""
        actor = self._require_actor(actor)
        if not self.policy.may_ever_delete(actor):
            raise ForbiddenError(self.resource, "delete", id=entity_id)

        result = await self.store.delete_where(
            entity_id, owner=self.policy.delete_owner_scope(actor),
        )
        record = self._unwrap(result, entity_id, "delete", None)

        logger.info(
            "%s %s deleted by %s", self.resource, entity_id, actor.id,
            extra={"entity": self.resource, "alert_id": entity_id, "actor_id": actor.id},
        )
        await self._after_delete(record)
        return record

    def _unwrap(
        self,
        result: WriteResult,
        entity_id: str,
        action: str,
        expected_version: Optional[int],
    ) -> Dict[str, Any]:
        if result.outcome == WriteOutcome.APPLIED:
            return result.record
        if result.outcome == WriteOutcome.NOT_FOUND:
            raise NotFoundError(self.resource, id=entity_id)
        if result.outcome == WriteOutcome.NOT_OWNER:
            raise ForbiddenError(self.resource, action, id=entity_id)
        raise ConflictError(
            self.resource,
            expected_version=expected_version,
            current_version=(result.record or {}).get("version"),
            id=entity_id,
        )
