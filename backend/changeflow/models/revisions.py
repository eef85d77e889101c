from __future__ import annotations

from ..extensions import db
from changeflow.time_utils import to_utc_z, utcnow


class Revision(db.Model):
    """
    Immutable field-level history for ECR/ECO/ECN records.

    One row per mutating write, created in the same transaction as the
    write. Rows are never updated or deleted.
    """
    __tablename__ = "revisions"
    __table_args__ = (
        db.Index("ix_revisions_entity", "entity_type", "entity_id"),
        db.Index("ix_revisions_org_changed_at", "org_id", "changed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    entity_type = db.Column(db.String(8), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    changed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    changed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    previous_data = db.Column(db.JSON, nullable=False, default=dict)
    new_data = db.Column(db.JSON, nullable=False, default=dict)
    changed_fields = db.Column(db.JSON, nullable=False, default=list)
    note = db.Column(db.Text, nullable=True)

    changed_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "changed_at": to_utc_z(self.changed_at),
            "changed_by": self.changed_by.to_summary() if self.changed_by else None,
            "previous_data": self.previous_data,
            "new_data": self.new_data,
            "changed_fields": self.changed_fields,
            "note": self.note,
        }
