# Overview: Thin create/list/get operations for change records; no workflow rules.

from __future__ import annotations

from ..errors import ValidationError
from ..extensions import db
from ..models import ECN, ECO, ECR, User
from ..validation import ModelValidationPolicy, enforce_rules_ecr, validate_payload
from changeflow.time_utils import utcnow
from . import lifecycle_service, revision_service, sequence_service, tenant_service
from .concurrency import run_with_retry


ECR_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "title",
        "description",
        "reason",
        "urgency",
        "status",
        "assignee_id",
        "affected_products",
        "affected_documents",
        "cost_impact",
        "schedule_impact",
        "customer_impact",
        "implementation_plan",
    }),
    required=frozenset({"title", "description", "reason"}),
)


def create_ecr(org_id: int, acting_user_id: int, fields: dict) -> ECR:
    """
    Create an ECR in DRAFT (or SUBMITTED) with the next ECR-<yy>-<seq> number.

    The acting user is the submitter. An assignee, when given, must belong
    to the same organization.
    """
    patch = validate_payload(model=ECR, payload=fields, policy=ECR_POLICY)
    enforce_rules_ecr(patch)
    status = lifecycle_service.require_initial_status("ECR", patch.pop("status", "DRAFT"))

    def _op():
        actor = tenant_service.require_user_in_org(acting_user_id, org_id)
        assignee_id = patch.get("assignee_id")
        if assignee_id is not None:
            assignee = db.session.get(User, assignee_id)
            if assignee is None or assignee.org_id != org_id:
                raise ValidationError("assignee_id must reference a user in this organization")

        now = utcnow()
        ecr = ECR(
            org_id=org_id,
            ecr_number=sequence_service.next_number(org_id, "ECR", now.year),
            status=status,
            submitter_id=actor.id,
            created_at=now,
            updated_at=now,
            submitted_at=now if status == "SUBMITTED" else None,
            **patch,
        )
        db.session.add(ecr)
        db.session.flush()

        revision_service.record_revision(
            org_id=org_id,
            entity_type="ECR",
            entity_id=ecr.id,
            changed_by_user_id=actor.id,
            previous=None,
            new=revision_service.snapshot(ecr),
            note="Created",
        )
        db.session.commit()
        return ecr

    return run_with_retry(_op)


def _list(model, org_id: int, status: str | None, entity_type: str):
    q = db.session.query(model).filter_by(org_id=org_id)
    if status:
        q = q.filter_by(status=lifecycle_service.validate_status(entity_type, status))
    return q.order_by(model.created_at.desc(), model.id.desc()).all()


def list_ecrs(org_id: int, *, status: str | None = None) -> list[ECR]:
    return _list(ECR, org_id, status, "ECR")


def list_ecos(org_id: int, *, status: str | None = None) -> list[ECO]:
    return _list(ECO, org_id, status, "ECO")


def list_ecns(org_id: int, *, status: str | None = None) -> list[ECN]:
    return _list(ECN, org_id, status, "ECN")


def get_ecr(org_id: int, ecr_id: int) -> ECR:
    return tenant_service.require_entity_in_org(ECR, ecr_id, org_id)


def get_eco(org_id: int, eco_id: int) -> ECO:
    return tenant_service.require_entity_in_org(ECO, eco_id, org_id)


def get_ecn(org_id: int, ecn_id: int) -> ECN:
    return tenant_service.require_entity_in_org(ECN, ecn_id, org_id)
