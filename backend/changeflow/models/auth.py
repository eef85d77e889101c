from __future__ import annotations

from ..extensions import db


USER_ROLES = (
    "ADMIN",
    "MANAGER",
    "ENGINEER",
    "QUALITY",
    "MANUFACTURING",
    "REQUESTOR",
    "DOCUMENT_CONTROL",
    "VIEWER",
)


class User(db.Model):
    """
    User accounts for attribution of every change-control action.

    MULTI-TENANT: Users belong to exactly one organization (org_id). The
    acting user's organization is the tenant scope of every workflow call.
    Credentials live with the authentication collaborator, not here.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_org_id", "org_id"),
        db.CheckConstraint(
            "role IN ('ADMIN', 'MANAGER', 'ENGINEER', 'QUALITY', 'MANUFACTURING', "
            "'REQUESTOR', 'DOCUMENT_CONTROL', 'VIEWER')",
            name="ck_users_role",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)
    role = db.Column(db.String(32), nullable=False, default="REQUESTOR")
    department = db.Column(db.String(120), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("users", lazy=True))

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role}>"

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email}
