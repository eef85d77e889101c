# Overview: Payload validation for records created through the API.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Integer, String, Text

from .errors import ValidationError


URGENCY_LEVELS = ("LOW", "MEDIUM", "HIGH", "CRITICAL")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which columns a client may send, and which of them must be present.

    Anything outside writable_fields (ids, numbers, submitter, status
    timestamps) is owned by the server and rejected.
    """
    writable_fields: frozenset[str]
    required: frozenset[str] = field(default_factory=frozenset)


def _coerce(col, value: Any):
    """Normalize one value to the column's type using SQLAlchemy metadata."""
    if isinstance(col.type, Integer):
        # bool is an int subclass; "1e3" / 1.5 are not ids
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        raise ValidationError(f"{col.key} must be an integer")

    if isinstance(col.type, (String, Text)):
        if not isinstance(value, (str, int, float)):
            raise ValidationError(f"{col.key} must be a string")
        text = str(value).strip()
        if isinstance(col.type, String) and col.type.length and len(text) > col.type.length:
            raise ValidationError(f"{col.key} exceeds max length {col.type.length}")
        return text

    return value


def validate_payload(*, model, payload, policy: ModelValidationPolicy) -> dict:
    """
    Validate a create payload against column metadata and the policy.

    Returns a cleaned dict holding only writable columns. Required columns
    may be neither null nor blank; optional columns accept null.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    missing = sorted(name for name in policy.required if name not in payload)
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    cleaned: dict = {}

    for key, raw in payload.items():
        if key not in policy.writable_fields or key not in columns:
            raise ValidationError(f"Field not allowed: {key}")
        col = columns[key]
        is_required = key in policy.required or not col.nullable

        if raw is None:
            if is_required:
                raise ValidationError(f"{key} cannot be null")
            cleaned[key] = None
            continue

        value = _coerce(col, raw)
        if is_required and value == "":
            raise ValidationError(f"{key} cannot be blank")
        cleaned[key] = value

    return cleaned


def enforce_rules_ecr(cleaned: dict) -> None:
    """Urgency vocabulary and the statuses a new request may start in."""
    urgency = cleaned.get("urgency")
    if urgency is not None:
        urgency = urgency.upper()
        if urgency not in URGENCY_LEVELS:
            raise ValidationError(f"urgency must be one of: {', '.join(URGENCY_LEVELS)}")
        cleaned["urgency"] = urgency

    status = cleaned.get("status")
    if status is not None:
        status = status.upper()
        if status not in ("DRAFT", "SUBMITTED"):
            raise ValidationError("status must be DRAFT or SUBMITTED on create")
        cleaned["status"] = status
