"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

WHY: Every workflow call is scoped to the acting user's organization, and
cross-tenant access must be denied without revealing whether the foreign
record exists. Missing and foreign ids therefore raise the same
NotFoundError.

USAGE:
    from changeflow.services.tenant_service import require_user_in_org, require_entity_in_org

    actor = require_user_in_org(acting_user_id, org_id)
    eco = require_entity_in_org(ECO, eco_id, org_id, for_update=True)
"""

from __future__ import annotations

from ..errors import NotFoundError
from ..extensions import db
from ..models import User
from .concurrency import lock_for_update


def require_user(user_id: int) -> User:
    """Resolve an active acting user; their org_id is the tenant scope."""
    user = db.session.get(User, user_id) if user_id is not None else None
    if user is None or not user.is_active:
        raise NotFoundError(f"User {user_id} not found")
    return user


def require_user_in_org(user_id: int, org_id: int) -> User:
    """
    Validate that the acting user belongs to the organization in scope.

    SECURITY: Core tenant isolation check for every workflow operation.
    """
    user = require_user(user_id)
    if user.org_id != org_id:
        raise NotFoundError(f"User {user_id} not found")
    return user


def require_entity_in_org(model, entity_id: int, org_id: int, *, for_update: bool = False):
    """Load one ECR/ECO/ECN scoped to org_id, optionally row-locked."""
    query = db.session.query(model).filter_by(id=entity_id, org_id=org_id)
    if for_update:
        query = lock_for_update(query)
    entity = query.first()
    if entity is None:
        raise NotFoundError(f"{model.__name__} {entity_id} not found")
    return entity
