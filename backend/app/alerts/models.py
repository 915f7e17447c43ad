"""
models.py — Alert enums and payload schema.

Defines:
    • AlertType    — hazard category
    • Severity     — ordered urgency levels (comparable)
    • AlertStatus  — flat lifecycle state
    • AlertCreate  — validation rules shared by create and patch

═══════════════════════════════════════════════════════════════════════════
STATUS MACHINE
═══════════════════════════════════════════════════════════════════════════

    ┌────────┐      ┌────────────┐      ┌──────────┐
    │ Active │ ◀──▶ │ Monitoring │ ◀──▶ │ Resolved │
    └────────┘      └────────────┘      └──────────┘
         ▲                                   │
         └───────────────────────────────────┘

Every transition is legal, including Resolved → Active (re-opened hazard).
There is no terminal state; only the update-authorisation rule
(owner or admin) gates a status change.
"""

from __future__ import annotations

from enum import Enum

from pydantic import Field, field_validator

from backend.app.records.schemas import Location, RecordPayload


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class AlertType(str, Enum):
    EARTHQUAKE = "Earthquake"
    FLOOD      = "Flood"
    FIRE       = "Fire"
    HURRICANE  = "Hurricane"
    TORNADO    = "Tornado"
    OTHER      = "Other"


class Severity(str, Enum):
    """
    Urgency levels, ordered ascending.

    Comparison uses urgency rank, not the string value:
    ``Severity.LOW < Severity.CRITICAL``.
    """
    LOW      = "Low"
    MEDIUM   = "Medium"
    HIGH     = "High"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class AlertStatus(str, Enum):
    ACTIVE     = "Active"
    RESOLVED   = "Resolved"
    MONITORING = "Monitoring"


# ═══════════════════════════════════════════════════════════════════════════
# Payload schema
# ═══════════════════════════════════════════════════════════════════════════

class AlertCreate(RecordPayload):
    """Fields a client may set on an alert."""
    title: str = Field(..., min_length=1, examples=["Flood Warning"])
    description: str = Field(
        ..., min_length=1,
        examples=["River levels rising above the danger mark."],
    )
    type: AlertType = Field(..., examples=["Flood"])
    severity: Severity = Field(..., examples=["High"])
    location: Location
    status: AlertStatus = Field(
        default=AlertStatus.ACTIVE,
        description="Defaults to Active when omitted",
    )

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value):
        return AlertStatus.ACTIVE if value in (None, "") else value
