"""
events.py — Alert change events and their wire encoding.

Every message pushed to a connected client has the shape::

    {"event": "alertUpdate",  "kind": "created", "data": {...alert...}}
    {"event": "alertUpdate",  "kind": "updated", "data": {...alert...}}
    {"event": "alertDeleted", "kind": "deleted", "data": {...removed alert...}}

``data`` is always the committed record, never a pending one.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict


class EventKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"

    @property
    def wire_event(self) -> str:
        return WIRE_DELETED if self is EventKind.DELETED else WIRE_UPDATE


WIRE_UPDATE = "alertUpdate"
WIRE_DELETED = "alertDeleted"


@dataclass(frozen=True)
class AlertEvent:
    kind: EventKind
    alert: Dict[str, Any]

    @property
    def alert_id(self) -> str:
        return self.alert.get("id", "")

    def to_message(self) -> Dict[str, Any]:
        return {
            "event": self.kind.wire_event,
            "kind": self.kind.value,
            "data": self.alert,
        }

    @classmethod
    def created(cls, alert: Dict[str, Any]) -> "AlertEvent":
        return cls(EventKind.CREATED, alert)

    @classmethod
    def updated(cls, alert: Dict[str, Any]) -> "AlertEvent":
        return cls(EventKind.UPDATED, alert)

    @classmethod
    def deleted(cls, alert: Dict[str, Any]) -> "AlertEvent":
        return cls(EventKind.DELETED, alert)
