# Overview: Service-layer operations for revisions; encapsulates business logic and database work.

"""
Revision Recorder.

diff_fields() is a pure function over two plain-dict snapshots so it can be
tested without a database. record_revision() only adds the row to the
current session: it is committed (or rolled back) together with the write
it describes, so no reader ever sees a state change without its revision.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import ENTITY_MODELS, Revision
from changeflow.time_utils import to_utc_z, utcnow


_MISSING = object()


def _json_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_utc_z(value)
    return value


def snapshot(entity) -> dict:
    """Column values of an ORM entity as a JSON-safe dict (column order)."""
    return {
        col.key: _json_value(getattr(entity, col.key))
        for col in entity.__mapper__.columns
    }


def diff_fields(previous: Mapping[str, Any] | None, new: Mapping[str, Any] | None) -> list[str]:
    """
    Names of fields whose values differ between two snapshots.

    Strict inequality: None and "" differ, and a key present on only one
    side differs. Order follows the new snapshot, then keys only in the old.
    """
    previous = previous or {}
    new = new or {}
    changed = [key for key in new if previous.get(key, _MISSING) != new[key]]
    changed.extend(key for key in previous if key not in new)
    return changed


def record_revision(
    *,
    org_id: int,
    entity_type: str,
    entity_id: int,
    changed_by_user_id: int,
    previous: Mapping[str, Any] | None,
    new: Mapping[str, Any],
    note: str | None = None,
) -> Revision:
    """Add an immutable revision row to the current transaction (no commit)."""
    if entity_id is None:
        raise ValidationError("entity must be flushed before its revision is recorded")

    revision = Revision(
        org_id=org_id,
        entity_type=entity_type,
        entity_id=entity_id,
        changed_at=utcnow(),
        changed_by_user_id=changed_by_user_id,
        previous_data=dict(previous or {}),
        new_data=dict(new),
        changed_fields=diff_fields(previous, new),
        note=note,
    )
    db.session.add(revision)
    return revision


def get_revisions(entity_type: str, entity_id: int, *, org_id: int) -> list[Revision]:
    """Revision history for one record, most recent first."""
    entity_type = (entity_type or "").upper()
    model = ENTITY_MODELS.get(entity_type)
    if model is None:
        raise ValidationError(f"Unknown entity type: {entity_type!r}")

    exists = db.session.query(model.id).filter_by(id=entity_id, org_id=org_id).first()
    if exists is None:
        raise NotFoundError(f"{entity_type} {entity_id} not found")

    return (
        db.session.query(Revision)
        .filter_by(org_id=org_id, entity_type=entity_type, entity_id=entity_id)
        .order_by(Revision.changed_at.desc(), Revision.id.desc())
        .all()
    )
