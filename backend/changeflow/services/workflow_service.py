# Overview: Service-layer operations for bundling and promotion; encapsulates business logic and database work.

"""
Bundling / Promotion Engine

    bundle_ecrs         N >= 2 APPROVED ECRs  ->  1 ECO (BACKLOG)
    convert_ecr_to_eco  1 APPROVED ECR        ->  1 ECO (DRAFT)
    promote_eco_to_ecn  1 COMPLETED ECO       ->  1 ECN (PENDING_APPROVAL)

Each call is one unit of work: preconditions are checked against row-locked
records, the number is drawn from the sequence counter, every insert/update
and its Revision is written, and the transaction commits once. Any failure
rolls back all of it, including the reserved number.

This module is the only writer allowed to move an ECR to CONVERTED or to
create ECO / ECN records.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotEligibleError, ValidationError
from ..extensions import db
from ..models import ECN, ECO, ECR
from changeflow.time_utils import utcnow
from . import lifecycle_service, revision_service, sequence_service, tenant_service
from .concurrency import lock_for_update, run_with_retry


PRIORITY_ORDER = ("LOW", "MEDIUM", "HIGH", "CRITICAL")

# Days from ECO creation to target date, keyed by derived priority
SLA_DAYS = {
    "CRITICAL": 14,
    "HIGH": 30,
    "MEDIUM": 60,
    "LOW": 90,
}

MIN_BUNDLE_SIZE = 2


def derive_priority(urgencies) -> str:
    """Highest urgency among the bundled requests (LOW < MEDIUM < HIGH < CRITICAL)."""
    ranks = [PRIORITY_ORDER.index(u) for u in urgencies if u in PRIORITY_ORDER]
    if not ranks:
        return "LOW"
    return PRIORITY_ORDER[max(ranks)]


def derive_target_date(priority: str, start: datetime) -> datetime:
    return start + timedelta(days=SLA_DAYS[priority])


def derive_ecn_number(eco_number: str) -> str:
    """ECO-24-001 -> ECN-24-001 (same year and sequence, by construction)."""
    parsed = sequence_service.parse_number(eco_number)
    if parsed is None or parsed[0] != "ECO":
        raise ConflictError(
            f"ECO number {eco_number!r} is not in <ECO>-<yy>-<seq> form; cannot derive ECN number",
            details={"eco_number": eco_number},
        )
    return f"ECN-{sequence_service.number_suffix(eco_number)}"


def _validate_ecr_ids(ecr_ids) -> list[int]:
    if not isinstance(ecr_ids, (list, tuple)):
        raise ValidationError("ecr_ids must be a list of ECR ids")
    cleaned: list[int] = []
    for raw in ecr_ids:
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ValidationError(f"Invalid ECR id: {raw!r}")
        cleaned.append(raw)
    if len(set(cleaned)) != len(cleaned):
        raise ValidationError("ecr_ids contains duplicates")
    if len(cleaned) < MIN_BUNDLE_SIZE:
        raise ValidationError(f"At least {MIN_BUNDLE_SIZE} ECR ids are required for bundling")
    return cleaned


def _require_text(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


def _lock_eligible_ecrs(org_id: int, ecr_ids: list[int]) -> list[ECR]:
    """
    Row-lock the requested ECRs (in id order) and check every precondition.

    Returns ECRs in the caller's order. Raises NotEligibleError listing each
    offending id; ids of other organizations are reported as not found.
    """
    rows = (
        lock_for_update(
            db.session.query(ECR)
            .filter(ECR.org_id == org_id, ECR.id.in_(ecr_ids))
            .order_by(ECR.id)
        )
        .all()
    )
    by_id = {ecr.id: ecr for ecr in rows}

    offending = []
    for ecr_id in ecr_ids:
        ecr = by_id.get(ecr_id)
        if ecr is None:
            offending.append({"id": ecr_id, "number": None, "reason": "not found"})
        elif ecr.eco_id is not None:
            offending.append({"id": ecr_id, "number": ecr.ecr_number, "reason": "already linked to an ECO"})
        elif ecr.status != "APPROVED":
            offending.append({"id": ecr_id, "number": ecr.ecr_number, "reason": f"status is {ecr.status}, not APPROVED"})

    if offending:
        labels = ", ".join(item["number"] or f"#{item['id']}" for item in offending)
        raise NotEligibleError(
            f"ECRs not eligible for conversion: {labels}",
            details={"offending_ecrs": offending},
        )
    return [by_id[ecr_id] for ecr_id in ecr_ids]


def _create_eco_from_ecrs(
    *,
    org_id: int,
    actor_id: int,
    ecrs: list[ECR],
    title: str,
    description: str,
    status: str,
    implementation_plan: str | None,
) -> ECO:
    """Insert the ECO and convert its ECRs; caller owns the transaction."""
    status = lifecycle_service.require_initial_status("ECO", status)
    now = utcnow()
    priority = derive_priority(ecr.urgency for ecr in ecrs)
    first = ecrs[0]

    eco = ECO(
        org_id=org_id,
        eco_number=sequence_service.next_number(org_id, "ECO", now.year),
        title=title,
        description=description,
        status=status,
        priority=priority,
        target_date=derive_target_date(priority, now),
        submitter_id=actor_id,
        assignee_id=first.assignee_id or first.submitter_id,
        implementation_plan=implementation_plan,
        created_at=now,
        updated_at=now,
    )
    db.session.add(eco)
    db.session.flush()

    source_numbers = ", ".join(ecr.ecr_number for ecr in ecrs)
    revision_service.record_revision(
        org_id=org_id,
        entity_type="ECO",
        entity_id=eco.id,
        changed_by_user_id=actor_id,
        previous=None,
        new=revision_service.snapshot(eco),
        note=f"Created from {source_numbers}",
    )

    for ecr in ecrs:
        lifecycle_service.apply_transition(
            ecr,
            "CONVERTED",
            actor_id=actor_id,
            changes={"eco_id": eco.id},
            note=f"Converted into {eco.eco_number}",
            system=True,
        )
    return eco


def bundle_ecrs(org_id: int, acting_user_id: int, ecr_ids, title, description) -> dict:
    """
    Bundle two or more APPROVED, unlinked ECRs into one new ECO.

    Returns {"eco": ECO, "updated_ecrs": [ECR, ...]} (ECRs in request order).

    Raises:
        ValidationError: fewer than 2 ids, duplicates, blank title/description
        NotFoundError: acting user not in org_id
        NotEligibleError: any ECR missing, not APPROVED, or already linked
        StoreError: transaction failed after retry; nothing was written
    """
    ids = _validate_ecr_ids(ecr_ids)
    title = _require_text(title, "title")
    description = _require_text(description, "description")

    def _op():
        actor = tenant_service.require_user_in_org(acting_user_id, org_id)
        ecrs = _lock_eligible_ecrs(org_id, ids)
        eco = _create_eco_from_ecrs(
            org_id=org_id,
            actor_id=actor.id,
            ecrs=ecrs,
            title=title,
            description=description,
            status="BACKLOG",
            implementation_plan="Bundle implementation for ECRs: "
            + ", ".join(ecr.ecr_number for ecr in ecrs),
        )
        db.session.commit()
        current_app.logger.info(
            "Bundled %d ECRs into %s (priority %s) for org %s",
            len(ecrs), eco.eco_number, eco.priority, org_id,
        )
        return {"eco": eco, "updated_ecrs": ecrs}

    return run_with_retry(_op)


def convert_ecr_to_eco(org_id: int, acting_user_id: int, ecr_id: int) -> ECO:
    """Single-request path: one APPROVED ECR becomes a DRAFT ECO."""
    if isinstance(ecr_id, bool) or not isinstance(ecr_id, int):
        raise ValidationError(f"Invalid ECR id: {ecr_id!r}")

    def _op():
        actor = tenant_service.require_user_in_org(acting_user_id, org_id)
        (ecr,) = _lock_eligible_ecrs(org_id, [ecr_id])
        eco = _create_eco_from_ecrs(
            org_id=org_id,
            actor_id=actor.id,
            ecrs=[ecr],
            title=f"Implement: {ecr.title}",
            description=f"Implementation of approved ECR: {ecr.description}",
            status="DRAFT",
            implementation_plan=ecr.implementation_plan,
        )
        db.session.commit()
        current_app.logger.info("Converted %s into %s", ecr.ecr_number, eco.eco_number)
        return eco

    return run_with_retry(_op)


def _affected_items(ecrs: list[ECR]) -> str | None:
    lines = []
    for ecr in ecrs:
        parts = []
        if ecr.affected_products:
            parts.append(f"products: {ecr.affected_products}")
        if ecr.affected_documents:
            parts.append(f"documents: {ecr.affected_documents}")
        if parts:
            lines.append(f"{ecr.ecr_number}: {'; '.join(parts)}")
    return "\n".join(lines) or None


def promote_eco_to_ecn(org_id: int, acting_user_id: int, eco_id: int) -> ECN:
    """
    Generate the single ECN for a COMPLETED ECO.

    The ECN number reuses the ECO's year and sequence (ECO-24-001 ->
    ECN-24-001); it is derived, never drawn from the counter.

    Raises:
        NotFoundError: ECO (or acting user) not in org_id
        NotEligibleError: ECO is not COMPLETED
        ConflictError: an ECN already exists for the ECO, or the derived
            number is already taken by another record
        StoreError: transaction failed after retry; nothing was written
    """
    def _op():
        actor = tenant_service.require_user_in_org(acting_user_id, org_id)
        eco = tenant_service.require_entity_in_org(ECO, eco_id, org_id, for_update=True)

        if eco.status != "COMPLETED":
            raise NotEligibleError(
                f"ECO {eco.eco_number} is {eco.status}; only COMPLETED orders can be promoted",
                details={"eco_id": eco.id, "status": eco.status},
            )

        existing = db.session.query(ECN).filter_by(eco_id=eco.id).first()
        if existing is not None:
            raise ConflictError(
                f"ECN {existing.ecn_number} already exists for ECO {eco.eco_number}",
                details={"ecn_id": existing.id, "ecn_number": existing.ecn_number},
            )

        ecn_number = derive_ecn_number(eco.eco_number)
        clash = db.session.query(ECN).filter_by(org_id=org_id, ecn_number=ecn_number).first()
        if clash is not None:
            current_app.logger.error(
                "Derived number %s for ECO %s is held by ECN id %s (eco_id %s)",
                ecn_number, eco.eco_number, clash.id, clash.eco_id,
            )
            raise ConflictError(
                f"ECN number {ecn_number} is already used by another record",
                details={"ecn_number": ecn_number, "ecn_id": clash.id},
            )

        now = utcnow()
        ecn = ECN(
            org_id=org_id,
            ecn_number=ecn_number,
            eco_id=eco.id,
            title=eco.title,
            description=f"Change notice for {eco.eco_number}: {eco.description}",
            status=lifecycle_service.require_initial_status("ECN", "PENDING_APPROVAL"),
            submitter_id=actor.id,
            assignee_id=eco.assignee_id or eco.submitter_id,
            changes_implemented=eco.implementation_plan,
            affected_items=_affected_items(list(eco.ecrs)),
            verification_method=eco.testing_plan,
            created_at=now,
            updated_at=now,
        )
        db.session.add(ecn)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConflictError(
                f"An ECN for ECO {eco.eco_number} was created concurrently",
                details={"ecn_number": ecn_number},
            ) from exc

        revision_service.record_revision(
            org_id=org_id,
            entity_type="ECN",
            entity_id=ecn.id,
            changed_by_user_id=actor.id,
            previous=None,
            new=revision_service.snapshot(ecn),
            note=f"Promoted from {eco.eco_number}",
        )
        db.session.commit()
        current_app.logger.info("Promoted %s to %s", eco.eco_number, ecn.ecn_number)
        return ecn

    return run_with_retry(_op)
