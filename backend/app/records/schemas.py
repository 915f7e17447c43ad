"""
Shared pydantic building blocks for located, user-owned records.

Alerts, Resources and Reports all carry a GeoJSON-style location and are
validated the same way on create and on patch:

    create:  payload ──validate──▶ clean field dict
    patch:   current ⊕ patch ──validate──▶ clean dict, keep only patched keys

Validation failures surface as ``ValidationError`` (400) with one entry per
offending field.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Literal, Mapping, Tuple, Type, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from backend.app.core.errors import ValidationError

# Fields the system owns; clients may send them back but they are never written
SYSTEM_FIELDS = frozenset({"id", "_id", "createdBy", "createdAt", "updatedAt", "version"})


class Location(BaseModel):
    """GeoJSON point plus a human-readable address."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    type: Literal["Point"] = "Point"
    coordinates: List[float] = Field(
        ...,
        description="[longitude, latitude] in decimal degrees",
        examples=[[-80.19, 25.76]],
    )
    address: str = Field(..., min_length=1, examples=["Miami, FL"])

    @field_validator("coordinates")
    @classmethod
    def _lon_lat_in_range(cls, value: List[float]) -> List[float]:
        if len(value) != 2:
            raise ValueError("coordinates must be a [longitude, latitude] pair")
        lon, lat = value
        if not (math.isfinite(lon) and math.isfinite(lat)):
            raise ValueError("coordinates must be finite numbers")
        if not -180.0 <= lon <= 180.0:
            raise ValueError(f"longitude must be in [-180, 180], got {lon}")
        if not -90.0 <= lat <= 90.0:
            raise ValueError(f"latitude must be in [-90, 90], got {lat}")
        return [float(lon), float(lat)]


class RecordPayload(BaseModel):
    """Base for create payloads: strip strings, ignore unknown keys."""

    model_config = ConfigDict(
        extra="ignore",
        str_strip_whitespace=True,
        populate_by_name=True,
        use_enum_values=True,
    )


def _problems(exc: PydanticValidationError) -> List[Dict[str, str]]:
    return [
        {
            "field": ".".join(str(p) for p in err.get("loc", ())),
            "message": err.get("msg", "invalid value"),
        }
        for err in exc.errors()
    ]


def validate_payload(
    schema: Type[RecordPayload],
    payload: Any,
    resource: str,
) -> Dict[str, Any]:
    """
    Validate a create payload and return clean, JSON-ready fields.

    Keys are returned by alias (``relatedAlert``, not ``related_alert``) so the
    result matches the wire shape.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError(f"{resource} payload must be a JSON object")

    try:
        model = schema.model_validate(dict(payload))
    except PydanticValidationError as exc:
        problems = _problems(exc)
        fields = ", ".join(p["field"] for p in problems)
        raise ValidationError(
            f"Invalid {resource.lower()}: {fields}",
            errors=problems,
        )
    return model.model_dump(mode="json", by_alias=True)


def split_patch(patch: Any, resource: str) -> Tuple[Dict[str, Any], Any]:
    """
    Separate writable fields from the optional expected ``version``.

    Returns (fields, expected_version_or_None).
    """
    if not isinstance(patch, Mapping):
        raise ValidationError(f"{resource} patch must be a JSON object")

    expected_version = patch.get("version")
    if expected_version is not None:
        if isinstance(expected_version, bool) or not isinstance(expected_version, int):
            raise ValidationError("version must be an integer", field="version")

    fields = {k: v for k, v in patch.items() if k not in SYSTEM_FIELDS}
    return fields, expected_version


def _nullable(schema: Type[RecordPayload], key: str) -> bool:
    """True when ``key`` (name or alias) is an Optional field; unknown keys pass."""
    for name, info in schema.model_fields.items():
        if key in (name, info.alias):
            return type(None) in get_args(info.annotation)
    return True


def validate_patch(
    schema: Type[RecordPayload],
    current: Mapping[str, Any],
    patch: Mapping[str, Any],
    resource: str,
) -> Dict[str, Any]:
    """
    Re-validate ``current`` with ``patch`` applied; return only the patched keys.

    A partial ``location`` (e.g. only a new address) is merged into the
    current one rather than replacing it.
    """
    for key, value in patch.items():
        if value is None and not _nullable(schema, key):
            raise ValidationError(f"{key} cannot be null", field=key)

    merged = {k: v for k, v in current.items() if k not in SYSTEM_FIELDS}
    for key, value in patch.items():
        if key == "location" and isinstance(value, Mapping) and isinstance(merged.get("location"), Mapping):
            merged["location"] = {**merged["location"], **value}
        else:
            merged[key] = value

    clean = validate_payload(schema, merged, resource)
    return {key: clean[key] for key in patch if key in clean}
