from __future__ import annotations

from ..extensions import db


class Organization(db.Model):
    """
    Multi-tenant root: Every tenant is an Organization.

    All users and change records (ECR/ECO/ECN/Revision) belong to exactly one
    organization. No data may cross organization boundaries, and numbering
    sequences are scoped per organization.
    """
    __tablename__ = "organizations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    domain = db.Column(db.String(255), nullable=True, unique=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r}>"
