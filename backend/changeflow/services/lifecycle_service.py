# Overview: Service-layer operations for lifecycle; encapsulates business logic and database work.

"""
ChangeFlow Status State Machine

================================================================================
PURPOSE: Single entry point for every ECR / ECO / ECN status write
================================================================================

STATE MACHINES:

    ECR:  DRAFT -> SUBMITTED
          DRAFT | SUBMITTED -> APPROVED | REJECTED
          APPROVED -> CONVERTED            (system: bundling only)

    ECO:  BACKLOG | DRAFT -> IN_PROGRESS | CANCELLED
          IN_PROGRESS -> COMPLETED | CANCELLED

    ECN:  PENDING_APPROVAL -> DISTRIBUTED | CANCELLED
          DISTRIBUTED -> EFFECTIVE | CANCELLED
          (+ per-stakeholder ACKNOWLEDGED, tracked in ecn_acknowledgments)

RULES (NON-NEGOTIABLE):
1. Anything not in the table raises InvalidTransitionError; the record is
   left unchanged.
2. System transitions (APPROVED -> CONVERTED) are refused to direct callers.
3. Every accepted transition stamps its timestamp and records exactly one
   Revision in the same transaction.
4. ECOs and ECNs are only born in their initial states, and only by the
   bundling / promotion engine.
5. User-driven transitions are gated by the acting user's role
   (TRANSITION_ROLES); a role outside the rule raises NotEligibleError.

================================================================================
"""

from __future__ import annotations
from typing import Literal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, InvalidTransitionError, NotEligibleError, ValidationError
from ..extensions import db
from ..models import ENTITY_MODELS, ECNAcknowledgment, ECN
from changeflow.time_utils import utcnow
from . import revision_service, tenant_service
from .concurrency import run_with_retry


EntityType = Literal["ECR", "ECO", "ECN"]

TRANSITIONS: dict[str, dict[str, frozenset[str]]] = {
    "ECR": {
        "DRAFT": frozenset({"SUBMITTED", "APPROVED", "REJECTED"}),
        "SUBMITTED": frozenset({"APPROVED", "REJECTED"}),
        "APPROVED": frozenset({"CONVERTED"}),
    },
    "ECO": {
        "BACKLOG": frozenset({"IN_PROGRESS", "CANCELLED"}),
        "DRAFT": frozenset({"IN_PROGRESS", "CANCELLED"}),
        "IN_PROGRESS": frozenset({"COMPLETED", "CANCELLED"}),
    },
    "ECN": {
        "PENDING_APPROVAL": frozenset({"DISTRIBUTED", "CANCELLED"}),
        "DISTRIBUTED": frozenset({"EFFECTIVE", "CANCELLED"}),
    },
}

# Roles allowed to drive each user-facing transition
TRANSITION_ROLES: dict[str, dict[tuple[str, str], frozenset[str]]] = {
    "ECR": {
        ("DRAFT", "SUBMITTED"): frozenset({"REQUESTOR", "ENGINEER", "MANAGER", "ADMIN"}),
        ("DRAFT", "APPROVED"): frozenset({"MANAGER", "ADMIN"}),
        ("DRAFT", "REJECTED"): frozenset({"MANAGER", "ADMIN"}),
        ("SUBMITTED", "APPROVED"): frozenset({"MANAGER", "ADMIN"}),
        ("SUBMITTED", "REJECTED"): frozenset({"MANAGER", "ADMIN"}),
    },
    "ECO": {
        ("BACKLOG", "IN_PROGRESS"): frozenset({"ENGINEER", "MANUFACTURING", "MANAGER", "ADMIN"}),
        ("DRAFT", "IN_PROGRESS"): frozenset({"ENGINEER", "MANUFACTURING", "MANAGER", "ADMIN"}),
        ("BACKLOG", "CANCELLED"): frozenset({"ENGINEER", "MANAGER", "ADMIN"}),
        ("DRAFT", "CANCELLED"): frozenset({"ENGINEER", "MANAGER", "ADMIN"}),
        ("IN_PROGRESS", "COMPLETED"): frozenset({"QUALITY", "MANAGER", "ADMIN"}),
        ("IN_PROGRESS", "CANCELLED"): frozenset({"MANAGER", "ADMIN"}),
    },
    "ECN": {
        ("PENDING_APPROVAL", "DISTRIBUTED"): frozenset({"DOCUMENT_CONTROL", "MANAGER", "ADMIN"}),
        ("PENDING_APPROVAL", "CANCELLED"): frozenset({"MANAGER", "ADMIN"}),
        ("DISTRIBUTED", "EFFECTIVE"): frozenset({"DOCUMENT_CONTROL", "MANAGER", "ADMIN"}),
        ("DISTRIBUTED", "CANCELLED"): frozenset({"MANAGER", "ADMIN"}),
    },
}

# Reachable only from inside the workflow engine
SYSTEM_TRANSITIONS = frozenset({("ECR", "APPROVED", "CONVERTED")})

INITIAL_STATUSES: dict[str, frozenset[str]] = {
    "ECR": frozenset({"DRAFT", "SUBMITTED"}),
    "ECO": frozenset({"BACKLOG", "DRAFT"}),
    "ECN": frozenset({"PENDING_APPROVAL"}),
}

VALID_STATUSES: dict[str, frozenset[str]] = {
    "ECR": frozenset({"DRAFT", "SUBMITTED", "APPROVED", "REJECTED", "CONVERTED"}),
    "ECO": frozenset({"BACKLOG", "DRAFT", "IN_PROGRESS", "COMPLETED", "CANCELLED"}),
    "ECN": frozenset({"PENDING_APPROVAL", "DISTRIBUTED", "EFFECTIVE", "CANCELLED"}),
}

ACKNOWLEDGEABLE_ECN_STATUSES = frozenset({"DISTRIBUTED", "EFFECTIVE"})

# target status -> timestamp column stamped on entry
_TIMESTAMPS: dict[str, dict[str, str]] = {
    "ECR": {"SUBMITTED": "submitted_at", "APPROVED": "approved_at"},
    "ECO": {"IN_PROGRESS": "started_at", "COMPLETED": "completed_at", "CANCELLED": "cancelled_at"},
    "ECN": {"DISTRIBUTED": "distributed_at", "EFFECTIVE": "effective_date", "CANCELLED": "cancelled_at"},
}

# Stamped only when empty (an ECN may carry a planned effective date)
_KEEP_EXISTING = frozenset({("ECN", "effective_date")})


def validate_entity_type(entity_type: str) -> str:
    if not isinstance(entity_type, str):
        raise ValidationError("entity type must be a string")
    normalized = entity_type.strip().upper()
    if normalized not in TRANSITIONS:
        raise ValidationError(
            f"Invalid entity type '{entity_type}'. Must be one of: {', '.join(sorted(TRANSITIONS))}"
        )
    return normalized


def validate_status(entity_type: str, status: str) -> str:
    if not isinstance(status, str):
        raise ValidationError(f"{entity_type} status must be a string")
    normalized = status.strip().upper()
    if normalized not in VALID_STATUSES[entity_type]:
        raise ValidationError(
            f"Invalid {entity_type} status '{status}'. "
            f"Must be one of: {', '.join(sorted(VALID_STATUSES[entity_type]))}"
        )
    return normalized


def can_transition(entity_type: str, from_status: str, to_status: str, *, system: bool = False) -> bool:
    """True if the table allows from -> to (system transitions need system=True)."""
    allowed = TRANSITIONS.get(entity_type, {}).get(from_status, frozenset())
    if to_status not in allowed:
        return False
    if (entity_type, from_status, to_status) in SYSTEM_TRANSITIONS and not system:
        return False
    return True


def allowed_roles(entity_type: str, from_status: str, to_status: str) -> frozenset[str]:
    return TRANSITION_ROLES.get(entity_type, {}).get((from_status, to_status), frozenset())


def require_transition_role(entity_type: str, from_status: str, to_status: str, role: str) -> None:
    """Raise NotEligibleError unless role may drive from_status -> to_status."""
    roles = allowed_roles(entity_type, from_status, to_status)
    if role not in roles:
        raise NotEligibleError(
            f"Role {role} is not authorized to move {entity_type} {from_status} -> {to_status}",
            details={
                "from": from_status,
                "to": to_status,
                "role": role,
                "allowed_roles": sorted(roles),
            },
        )


def get_next_statuses(entity_type: str, current_status: str, role: str | None = None) -> list[str]:
    """
    User-reachable targets from current_status (system transitions excluded).

    With a role, only the targets that role may drive are listed.
    """
    entity_type = validate_entity_type(entity_type)
    return sorted(
        target
        for target in TRANSITIONS[entity_type].get(current_status, frozenset())
        if can_transition(entity_type, current_status, target)
        and (role is None or role in allowed_roles(entity_type, current_status, target))
    )


def require_initial_status(entity_type: str, status: str) -> str:
    status = validate_status(entity_type, status)
    if status not in INITIAL_STATUSES[entity_type]:
        raise InvalidTransitionError(
            f"{entity_type} records cannot be created in status '{status}'"
        )
    return status


def apply_transition(
    entity,
    to_status: str,
    *,
    actor_id: int,
    actor_role: str | None = None,
    changes: dict | None = None,
    note: str | None = None,
    system: bool = False,
):
    """
    Move an already-loaded entity to to_status inside the current transaction.

    Stamps the status timestamp, applies any extra column changes that
    belong to the same write (e.g. eco_id on bundling) and records one
    Revision covering all of it. Does NOT commit.

    actor_role is checked against TRANSITION_ROLES for user-driven moves;
    system moves made by the workflow engine pass none.
    """
    entity_type = entity.__class__.__name__
    from_status = entity.status
    to_status = validate_status(entity_type, to_status)

    if not can_transition(entity_type, from_status, to_status, system=system):
        if (entity_type, from_status, to_status) in SYSTEM_TRANSITIONS:
            reason = "is performed by the bundling engine only"
        else:
            reason = "is not allowed"
        raise InvalidTransitionError(
            f"{entity_type} {entity.number}: transition {from_status} -> {to_status} {reason}",
            details={"from": from_status, "to": to_status},
        )
    if not system and actor_role is not None:
        require_transition_role(entity_type, from_status, to_status, actor_role)

    previous = revision_service.snapshot(entity)
    now = utcnow()

    entity.status = to_status
    entity.updated_at = now

    stamp = _TIMESTAMPS[entity_type].get(to_status)
    if stamp and not ((entity_type, stamp) in _KEEP_EXISTING and getattr(entity, stamp)):
        setattr(entity, stamp, now)
    if entity_type == "ECR" and to_status == "APPROVED":
        entity.approver_id = actor_id

    for key, value in (changes or {}).items():
        setattr(entity, key, value)

    revision_service.record_revision(
        org_id=entity.org_id,
        entity_type=entity_type,
        entity_id=entity.id,
        changed_by_user_id=actor_id,
        previous=previous,
        new=revision_service.snapshot(entity),
        note=note,
    )
    return entity


def transition_status(
    entity_type: str,
    entity_id: int,
    acting_user_id: int,
    target_status: str,
    *,
    note: str | None = None,
):
    """
    Direct user-driven status change (approve, start, complete, distribute...).

    The acting user's organization is the tenant scope: an id from another
    organization is reported exactly like a missing one.

    Raises:
        ValidationError: unknown entity type or status
        NotFoundError: entity or acting user not found
        InvalidTransitionError: transition absent from the table
        NotEligibleError: the acting user's role may not drive the transition
    """
    entity_type = validate_entity_type(entity_type)
    target_status = validate_status(entity_type, target_status)
    model = ENTITY_MODELS[entity_type]

    def _op():
        actor = tenant_service.require_user(acting_user_id)
        entity = tenant_service.require_entity_in_org(model, entity_id, actor.org_id, for_update=True)
        from_status = entity.status
        apply_transition(entity, target_status, actor_id=actor.id, actor_role=actor.role, note=note)
        db.session.commit()
        current_app.logger.info(
            "%s %s moved %s -> %s by user %s",
            entity_type, entity.number, from_status, target_status, actor.id,
        )
        return entity

    return run_with_retry(_op)


def _find_acknowledgment(ecn_id: int, user_id: int):
    return (
        db.session.query(ECNAcknowledgment)
        .filter_by(ecn_id=ecn_id, user_id=user_id)
        .first()
    )


def acknowledge_ecn(
    org_id: int,
    acting_user_id: int,
    ecn_id: int,
    *,
    comment: str | None = None,
) -> ECNAcknowledgment:
    """
    Record a stakeholder's ACKNOWLEDGED sub-status on a distributed ECN.

    The ECN's own status does not change; each user acknowledges once.
    """
    def _op():
        actor = tenant_service.require_user_in_org(acting_user_id, org_id)
        ecn = tenant_service.require_entity_in_org(ECN, ecn_id, org_id)
        if ecn.status not in ACKNOWLEDGEABLE_ECN_STATUSES:
            raise NotEligibleError(
                f"ECN {ecn.ecn_number} is {ecn.status}; only distributed notices can be acknowledged",
                details={"ecn_id": ecn.id, "status": ecn.status},
            )
        existing = _find_acknowledgment(ecn.id, actor.id)
        if existing is not None:
            raise ConflictError(
                f"User {actor.id} already acknowledged ECN {ecn.ecn_number}",
                details={"acknowledgment_id": existing.id},
            )
        ack = ECNAcknowledgment(ecn_id=ecn.id, user_id=actor.id, comment=comment)
        db.session.add(ack)
        try:
            db.session.flush()
        except IntegrityError as exc:
            # A concurrent request acknowledged between our check and insert
            raise ConflictError(
                f"User {actor.id} already acknowledged ECN {ecn.ecn_number}",
            ) from exc
        db.session.commit()
        return ack

    return run_with_retry(_op)
