from __future__ import annotations

from ..extensions import db
from changeflow.time_utils import to_utc_z, utcnow


class ECR(db.Model):
    """
    Engineering Change Request: the initial proposal for a change.

    LIFECYCLE: DRAFT/SUBMITTED -> APPROVED | REJECTED; APPROVED -> CONVERTED
    (bundling only). Once eco_id is set the request belongs to that order
    and can never be bundled again.
    """
    __tablename__ = "ecrs"
    __table_args__ = (
        db.UniqueConstraint("org_id", "ecr_number", name="uq_ecrs_org_number"),
        db.Index("ix_ecrs_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    ecr_number = db.Column(db.String(32), nullable=False)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    reason = db.Column(db.Text, nullable=False)
    urgency = db.Column(db.String(16), nullable=False, default="MEDIUM")  # LOW, MEDIUM, HIGH, CRITICAL
    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)

    submitter_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    assignee_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    eco_id = db.Column(db.Integer, db.ForeignKey("ecos.id"), nullable=True, index=True)

    affected_products = db.Column(db.Text, nullable=True)
    affected_documents = db.Column(db.Text, nullable=True)
    cost_impact = db.Column(db.Text, nullable=True)
    schedule_impact = db.Column(db.Text, nullable=True)
    customer_impact = db.Column(db.Text, nullable=True)
    implementation_plan = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    submitter = db.relationship("User", foreign_keys=[submitter_id])
    assignee = db.relationship("User", foreign_keys=[assignee_id])
    approver = db.relationship("User", foreign_keys=[approver_id])
    eco = db.relationship("ECO", backref=db.backref("ecrs", lazy=True, order_by="ECR.id"))

    @property
    def number(self) -> str:
        return self.ecr_number

    def __repr__(self) -> str:
        return f"<ECR {self.ecr_number} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "ecr_number": self.ecr_number,
            "title": self.title,
            "description": self.description,
            "reason": self.reason,
            "urgency": self.urgency,
            "status": self.status,
            "submitter": self.submitter.to_summary() if self.submitter else None,
            "assignee": self.assignee.to_summary() if self.assignee else None,
            "approver": self.approver.to_summary() if self.approver else None,
            "eco_id": self.eco_id,
            "affected_products": self.affected_products,
            "affected_documents": self.affected_documents,
            "cost_impact": self.cost_impact,
            "schedule_impact": self.schedule_impact,
            "customer_impact": self.customer_impact,
            "implementation_plan": self.implementation_plan,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "submitted_at": to_utc_z(self.submitted_at),
            "approved_at": to_utc_z(self.approved_at),
        }


class ECO(db.Model):
    """
    Engineering Change Order: a resourced plan implementing one or more ECRs.

    Created only by the bundling engine (never directly). Priority and
    target_date are derived from the bundled requests at creation time.
    """
    __tablename__ = "ecos"
    __table_args__ = (
        db.UniqueConstraint("org_id", "eco_number", name="uq_ecos_org_number"),
        db.Index("ix_ecos_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    eco_number = db.Column(db.String(32), nullable=False)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="BACKLOG", index=True)
    priority = db.Column(db.String(16), nullable=False, default="MEDIUM")

    submitter_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    assignee_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    implementation_plan = db.Column(db.Text, nullable=True)
    testing_plan = db.Column(db.Text, nullable=True)
    rollback_plan = db.Column(db.Text, nullable=True)

    target_date = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    submitter = db.relationship("User", foreign_keys=[submitter_id])
    assignee = db.relationship("User", foreign_keys=[assignee_id])
    approver = db.relationship("User", foreign_keys=[approver_id])

    @property
    def number(self) -> str:
        return self.eco_number

    def __repr__(self) -> str:
        return f"<ECO {self.eco_number} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "eco_number": self.eco_number,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "submitter": self.submitter.to_summary() if self.submitter else None,
            "assignee": self.assignee.to_summary() if self.assignee else None,
            "approver": self.approver.to_summary() if self.approver else None,
            "implementation_plan": self.implementation_plan,
            "testing_plan": self.testing_plan,
            "rollback_plan": self.rollback_plan,
            "target_date": to_utc_z(self.target_date),
            "ecr_ids": [ecr.id for ecr in self.ecrs],
            "ecn_id": self.ecn.id if self.ecn else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "started_at": to_utc_z(self.started_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
        }


class ECN(db.Model):
    """
    Engineering Change Notice: formal record that a change is effective.

    Exactly one parent ECO (eco_id unique), and the number suffix always
    equals the parent ECO's (ECO-24-001 -> ECN-24-001).
    """
    __tablename__ = "ecns"
    __table_args__ = (
        db.UniqueConstraint("org_id", "ecn_number", name="uq_ecns_org_number"),
        db.UniqueConstraint("eco_id", name="uq_ecns_eco"),
        db.Index("ix_ecns_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    ecn_number = db.Column(db.String(32), nullable=False)
    eco_id = db.Column(db.Integer, db.ForeignKey("ecos.id"), nullable=False)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="PENDING_APPROVAL", index=True)

    submitter_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    assignee_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    changes_implemented = db.Column(db.Text, nullable=True)
    affected_items = db.Column(db.Text, nullable=True)
    disposition_instructions = db.Column(db.Text, nullable=True)
    verification_method = db.Column(db.Text, nullable=True)

    effective_date = db.Column(db.DateTime(timezone=True), nullable=True)
    distributed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    submitter = db.relationship("User", foreign_keys=[submitter_id])
    assignee = db.relationship("User", foreign_keys=[assignee_id])
    eco = db.relationship("ECO", backref=db.backref("ecn", uselist=False))

    @property
    def number(self) -> str:
        return self.ecn_number

    def __repr__(self) -> str:
        return f"<ECN {self.ecn_number} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "ecn_number": self.ecn_number,
            "eco_id": self.eco_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "submitter": self.submitter.to_summary() if self.submitter else None,
            "assignee": self.assignee.to_summary() if self.assignee else None,
            "changes_implemented": self.changes_implemented,
            "affected_items": self.affected_items,
            "disposition_instructions": self.disposition_instructions,
            "verification_method": self.verification_method,
            "effective_date": to_utc_z(self.effective_date),
            "distributed_at": to_utc_z(self.distributed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "acknowledgments": [ack.to_dict() for ack in self.acknowledgments],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ECNAcknowledgment(db.Model):
    """Per-stakeholder ACKNOWLEDGED sub-status of a distributed ECN."""
    __tablename__ = "ecn_acknowledgments"
    __table_args__ = (
        db.UniqueConstraint("ecn_id", "user_id", name="uq_ecn_ack_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ecn_id = db.Column(db.Integer, db.ForeignKey("ecns.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    acknowledged_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    comment = db.Column(db.Text, nullable=True)

    ecn = db.relationship("ECN", backref=db.backref("acknowledgments", lazy=True, order_by="ECNAcknowledgment.id"))
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ecn_id": self.ecn_id,
            "user": self.user.to_summary() if self.user else None,
            "acknowledged_at": to_utc_z(self.acknowledged_at),
            "comment": self.comment,
        }
