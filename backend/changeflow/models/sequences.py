from __future__ import annotations

from ..extensions import db


class NumberSequence(db.Model):
    """
    Atomic per-organization, per-type, per-year number counters.

    WHY: "select max, then insert" races under concurrent writers. The
    counter row is incremented with a single UPDATE inside the same
    transaction as the record insert, so the row lock serializes
    allocation and a rollback returns the number.
    """
    __tablename__ = "number_sequences"
    __table_args__ = (
        db.UniqueConstraint("org_id", "entity_type", "year", name="uq_number_sequences_scope"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    entity_type = db.Column(db.String(8), nullable=False)  # ECR, ECO, ECN
    year = db.Column(db.Integer, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
