# Overview: Pytest coverage for the ECR/ECO/ECN state machines.

import pytest

from changeflow.errors import (
    ConflictError, InvalidTransitionError, NotEligibleError, NotFoundError, ValidationError,
)
from changeflow.models import ECNAcknowledgment, ECR, Revision
from changeflow.services import lifecycle_service, workflow_service
from changeflow.services.lifecycle_service import (
    SYSTEM_TRANSITIONS, TRANSITIONS, allowed_roles, can_transition, get_next_statuses,
)

from conftest import complete_eco, make_approved_ecr, make_ecr


class TestTransitionTable:
    """Pure checks against the transition table."""

    @pytest.mark.parametrize("entity_type,from_status,to_status", [
        ("ECR", "DRAFT", "SUBMITTED"),
        ("ECR", "DRAFT", "APPROVED"),
        ("ECR", "SUBMITTED", "REJECTED"),
        ("ECO", "BACKLOG", "IN_PROGRESS"),
        ("ECO", "DRAFT", "IN_PROGRESS"),
        ("ECO", "IN_PROGRESS", "COMPLETED"),
        ("ECN", "PENDING_APPROVAL", "DISTRIBUTED"),
        ("ECN", "DISTRIBUTED", "EFFECTIVE"),
    ])
    def test_allowed(self, entity_type, from_status, to_status):
        assert can_transition(entity_type, from_status, to_status)

    @pytest.mark.parametrize("entity_type,from_status,to_status", [
        ("ECR", "REJECTED", "APPROVED"),
        ("ECR", "CONVERTED", "APPROVED"),
        ("ECR", "DRAFT", "DRAFT"),
        ("ECO", "BACKLOG", "COMPLETED"),
        ("ECO", "COMPLETED", "IN_PROGRESS"),
        ("ECN", "PENDING_APPROVAL", "EFFECTIVE"),
        ("ECN", "EFFECTIVE", "DISTRIBUTED"),
    ])
    def test_denied(self, entity_type, from_status, to_status):
        assert not can_transition(entity_type, from_status, to_status)

    def test_converted_is_system_only(self):
        assert not can_transition("ECR", "APPROVED", "CONVERTED")
        assert can_transition("ECR", "APPROVED", "CONVERTED", system=True)

    def test_next_statuses_hide_system_transitions(self):
        assert get_next_statuses("ECR", "APPROVED") == []
        assert get_next_statuses("ECR", "DRAFT") == ["APPROVED", "REJECTED", "SUBMITTED"]
        assert get_next_statuses("ECN", "EFFECTIVE") == []

    def test_every_user_transition_has_roles(self):
        for entity_type, table in TRANSITIONS.items():
            for from_status, targets in table.items():
                for to_status in targets:
                    if (entity_type, from_status, to_status) in SYSTEM_TRANSITIONS:
                        continue
                    assert "ADMIN" in allowed_roles(entity_type, from_status, to_status)

    @pytest.mark.parametrize("entity_type,status,role,expected", [
        ("ECR", "DRAFT", "REQUESTOR", ["SUBMITTED"]),
        ("ECR", "DRAFT", "MANAGER", ["APPROVED", "REJECTED", "SUBMITTED"]),
        ("ECR", "DRAFT", "VIEWER", []),
        ("ECO", "IN_PROGRESS", "ENGINEER", []),
        ("ECO", "IN_PROGRESS", "QUALITY", ["COMPLETED"]),
        ("ECN", "PENDING_APPROVAL", "DOCUMENT_CONTROL", ["DISTRIBUTED"]),
        ("ECN", "DISTRIBUTED", "MANAGER", ["CANCELLED", "EFFECTIVE"]),
    ])
    def test_next_statuses_filtered_by_role(self, entity_type, status, role, expected):
        assert get_next_statuses(entity_type, status, role) == expected


class TestTransitionStatus:
    """Direct user-driven status changes."""

    def test_approve_stamps_approver_and_time(self, db_session, org_a, user_a, approver_a):
        ecr = make_ecr(org_a.id, user_a.id)

        updated = lifecycle_service.transition_status("ECR", ecr.id, approver_a.id, "APPROVED")

        assert updated.status == "APPROVED"
        assert updated.approver_id == approver_a.id
        assert updated.approved_at is not None

    def test_lowercase_status_accepted(self, db_session, org_a, user_a):
        ecr = make_ecr(org_a.id, user_a.id)
        updated = lifecycle_service.transition_status("ecr", ecr.id, user_a.id, "submitted")
        assert updated.status == "SUBMITTED"
        assert updated.submitted_at is not None

    def test_invalid_transition_leaves_record_unchanged(self, db_session, org_a, user_a, approver_a):
        ecr = make_ecr(org_a.id, user_a.id)
        lifecycle_service.transition_status("ECR", ecr.id, approver_a.id, "REJECTED")
        revisions_before = db_session.query(Revision).filter_by(entity_type="ECR", entity_id=ecr.id).count()

        with pytest.raises(InvalidTransitionError):
            lifecycle_service.transition_status("ECR", ecr.id, approver_a.id, "APPROVED")

        assert db_session.get(ECR, ecr.id).status == "REJECTED"
        revisions_after = db_session.query(Revision).filter_by(entity_type="ECR", entity_id=ecr.id).count()
        assert revisions_after == revisions_before

    def test_direct_conversion_refused(self, db_session, org_a, user_a, approver_a):
        ecr = make_approved_ecr(org_a.id, user_a.id, approver_a.id)

        with pytest.raises(InvalidTransitionError) as exc_info:
            lifecycle_service.transition_status("ECR", ecr.id, user_a.id, "CONVERTED")

        assert "bundling engine" in exc_info.value.message
        assert db_session.get(ECR, ecr.id).status == "APPROVED"

    def test_unknown_status_is_validation_error(self, db_session, org_a, user_a):
        ecr = make_ecr(org_a.id, user_a.id)
        with pytest.raises(ValidationError):
            lifecycle_service.transition_status("ECR", ecr.id, user_a.id, "SHIPPED")

    @pytest.mark.parametrize("status", [5, None, ["APPROVED"]])
    def test_non_string_status_is_validation_error(self, db_session, org_a, approver_a, status):
        ecr = make_ecr(org_a.id, approver_a.id)
        with pytest.raises(ValidationError):
            lifecycle_service.transition_status("ECR", ecr.id, approver_a.id, status)
        assert db_session.get(ECR, ecr.id).status == "DRAFT"

    def test_unknown_entity_type(self, db_session, org_a, user_a):
        with pytest.raises(ValidationError):
            lifecycle_service.transition_status("PO", 1, user_a.id, "APPROVED")

    def test_missing_entity(self, db_session, org_a, user_a):
        with pytest.raises(NotFoundError):
            lifecycle_service.transition_status("ECO", 999999, user_a.id, "IN_PROGRESS")

    def test_every_transition_records_one_revision(self, db_session, org_a, user_a, approver_a):
        ecr = make_ecr(org_a.id, user_a.id)
        lifecycle_service.transition_status("ECR", ecr.id, user_a.id, "SUBMITTED", note="Ready for review")
        lifecycle_service.transition_status("ECR", ecr.id, approver_a.id, "APPROVED")

        revisions = (
            db_session.query(Revision)
            .filter_by(entity_type="ECR", entity_id=ecr.id)
            .order_by(Revision.id)
            .all()
        )
        # Created + SUBMITTED + APPROVED
        assert len(revisions) == 3
        submitted = revisions[1]
        assert submitted.note == "Ready for review"
        assert submitted.previous_data["status"] == "DRAFT"
        assert submitted.new_data["status"] == "SUBMITTED"
        assert "status" in submitted.changed_fields
        assert "submitted_at" in submitted.changed_fields
        assert revisions[2].changed_by_user_id == approver_a.id
        assert "approver_id" in revisions[2].changed_fields


class TestTransitionRoles:
    """Who may drive which transition."""

    def test_requestor_cannot_approve(self, db_session, org_a, requestor_a):
        ecr = make_ecr(org_a.id, requestor_a.id)

        with pytest.raises(NotEligibleError) as exc_info:
            lifecycle_service.transition_status("ECR", ecr.id, requestor_a.id, "APPROVED")

        assert exc_info.value.details["role"] == "REQUESTOR"
        assert exc_info.value.details["allowed_roles"] == ["ADMIN", "MANAGER"]
        assert db_session.get(ECR, ecr.id).status == "DRAFT"
        assert db_session.get(ECR, ecr.id).approver_id is None
        assert db_session.query(Revision).filter_by(entity_type="ECR", entity_id=ecr.id).count() == 1

    def test_requestor_can_submit(self, db_session, org_a, requestor_a):
        ecr = make_ecr(org_a.id, requestor_a.id)
        updated = lifecycle_service.transition_status("ECR", ecr.id, requestor_a.id, "SUBMITTED")
        assert updated.status == "SUBMITTED"

    def test_engineer_cannot_complete_eco(self, db_session, org_a, user_a, approver_a):
        ecr = make_approved_ecr(org_a.id, user_a.id, approver_a.id)
        eco = workflow_service.convert_ecr_to_eco(org_a.id, user_a.id, ecr.id)
        lifecycle_service.transition_status("ECO", eco.id, user_a.id, "IN_PROGRESS")

        with pytest.raises(NotEligibleError):
            lifecycle_service.transition_status("ECO", eco.id, user_a.id, "COMPLETED")

        assert lifecycle_service.transition_status("ECO", eco.id, approver_a.id, "COMPLETED").status == "COMPLETED"

    def test_table_is_checked_before_role(self, db_session, org_a, user_a, approver_a, requestor_a):
        ecr = make_approved_ecr(org_a.id, user_a.id, approver_a.id)
        with pytest.raises(InvalidTransitionError):
            lifecycle_service.transition_status("ECR", ecr.id, requestor_a.id, "CONVERTED")

    def test_bundling_ignores_actor_role(self, db_session, org_a, user_a, approver_a, requestor_a):
        first = make_approved_ecr(org_a.id, user_a.id, approver_a.id)
        second = make_approved_ecr(org_a.id, user_a.id, approver_a.id)

        result = workflow_service.bundle_ecrs(org_a.id, requestor_a.id, [first.id, second.id], "Bundle", "Both")

        assert {ecr.status for ecr in result["updated_ecrs"]} == {"CONVERTED"}


class TestEcoAndEcnTimestamps:

    def test_eco_lifecycle_stamps(self, db_session, org_a, user_a, approver_a):
        ecr = make_approved_ecr(org_a.id, user_a.id, approver_a.id)
        eco = workflow_service.convert_ecr_to_eco(org_a.id, user_a.id, ecr.id)
        assert eco.status == "DRAFT"

        started = lifecycle_service.transition_status("ECO", eco.id, user_a.id, "IN_PROGRESS")
        assert started.started_at is not None
        completed = lifecycle_service.transition_status("ECO", eco.id, approver_a.id, "COMPLETED")
        assert completed.completed_at is not None

        with pytest.raises(InvalidTransitionError):
            lifecycle_service.transition_status("ECO", eco.id, user_a.id, "CANCELLED")

    def test_ecn_distribution_and_effective(self, db_session, org_a, user_a, approver_a):
        ecr = make_approved_ecr(org_a.id, user_a.id, approver_a.id)
        eco = workflow_service.convert_ecr_to_eco(org_a.id, user_a.id, ecr.id)
        complete_eco(eco.id, approver_a.id)
        ecn = workflow_service.promote_eco_to_ecn(org_a.id, user_a.id, eco.id)

        distributed = lifecycle_service.transition_status("ECN", ecn.id, approver_a.id, "DISTRIBUTED")
        assert distributed.distributed_at is not None
        assert distributed.effective_date is None

        effective = lifecycle_service.transition_status("ECN", ecn.id, approver_a.id, "EFFECTIVE")
        assert effective.effective_date is not None


class TestAcknowledgeEcn:

    def _distributed_ecn(self, org_id, user_id, approver_id):
        ecr = make_approved_ecr(org_id, user_id, approver_id)
        eco = workflow_service.convert_ecr_to_eco(org_id, user_id, ecr.id)
        complete_eco(eco.id, approver_id)
        ecn = workflow_service.promote_eco_to_ecn(org_id, user_id, eco.id)
        return ecn

    def test_acknowledge_once_per_user(self, db_session, org_a, user_a, approver_a):
        ecn = self._distributed_ecn(org_a.id, user_a.id, approver_a.id)

        with pytest.raises(NotEligibleError):
            lifecycle_service.acknowledge_ecn(org_a.id, approver_a.id, ecn.id)

        lifecycle_service.transition_status("ECN", ecn.id, approver_a.id, "DISTRIBUTED")
        ack = lifecycle_service.acknowledge_ecn(org_a.id, approver_a.id, ecn.id, comment="Read and understood")

        assert ack.user_id == approver_a.id
        assert ack.comment == "Read and understood"
        assert ack.ecn.status == "DISTRIBUTED"

        with pytest.raises(ConflictError):
            lifecycle_service.acknowledge_ecn(org_a.id, approver_a.id, ecn.id)

        second = lifecycle_service.acknowledge_ecn(org_a.id, user_a.id, ecn.id)
        assert [a.user_id for a in second.ecn.acknowledgments] == [approver_a.id, user_a.id]

    def test_racing_duplicate_is_conflict(self, db_session, org_a, user_a, approver_a, monkeypatch):
        ecn = self._distributed_ecn(org_a.id, user_a.id, approver_a.id)
        lifecycle_service.transition_status("ECN", ecn.id, approver_a.id, "DISTRIBUTED")
        lifecycle_service.acknowledge_ecn(org_a.id, user_a.id, ecn.id)

        # The other request's row lands after this request looked for it
        monkeypatch.setattr(lifecycle_service, "_find_acknowledgment", lambda ecn_id, user_id: None)

        with pytest.raises(ConflictError):
            lifecycle_service.acknowledge_ecn(org_a.id, user_a.id, ecn.id)

        assert db_session.query(ECNAcknowledgment).filter_by(ecn_id=ecn.id).count() == 1
