# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that cross-tenant access is denied for change records.

These tests create two organizations with their own users, then verify that:
1. A user in Organization B cannot read or move records of Organization A
2. Foreign ids are reported exactly like missing ids (no existence leak)
3. Bundling cannot pull in another organization's ECRs
4. Numbering sequences are independent per organization
"""

import pytest

from changeflow.errors import NotFoundError, NotEligibleError, ValidationError
from changeflow.models import ECR
from changeflow.services import change_service, lifecycle_service, workflow_service
from changeflow.services.tenant_service import require_entity_in_org, require_user_in_org

from conftest import complete_eco, make_approved_ecr, make_ecr


class TestTenantServiceHelpers:
    """Test tenant_service helper functions."""

    def test_require_entity_in_org_valid(self, db_session, org_a, user_a):
        ecr = make_ecr(org_a.id, user_a.id)
        assert require_entity_in_org(ECR, ecr.id, org_a.id).id == ecr.id

    def test_require_entity_in_org_cross_tenant(self, db_session, org_a, org_b, user_a):
        ecr = make_ecr(org_a.id, user_a.id)
        with pytest.raises(NotFoundError) as foreign:
            require_entity_in_org(ECR, ecr.id, org_b.id)
        with pytest.raises(NotFoundError) as missing:
            require_entity_in_org(ECR, 999999, org_b.id)

        assert type(foreign.value) is type(missing.value)
        assert foreign.value.status_code == missing.value.status_code == 404

    def test_require_user_in_org(self, db_session, org_a, user_a, user_b):
        assert require_user_in_org(user_a.id, org_a.id).id == user_a.id
        with pytest.raises(NotFoundError):
            require_user_in_org(user_b.id, org_a.id)

    def test_inactive_user_rejected(self, db_session, org_a, user_a):
        user_a.is_active = False
        db_session.commit()
        with pytest.raises(NotFoundError):
            require_user_in_org(user_a.id, org_a.id)


class TestCrossTenantWorkflow:

    def test_transition_foreign_record(self, db_session, org_a, user_a, user_b):
        ecr = make_ecr(org_a.id, user_a.id)

        with pytest.raises(NotFoundError):
            lifecycle_service.transition_status("ECR", ecr.id, user_b.id, "APPROVED")

        assert db_session.get(ECR, ecr.id).status == "DRAFT"

    def test_bundle_foreign_ecrs(self, db_session, org_a, org_b, user_a, user_b, approver_a):
        first = make_approved_ecr(org_a.id, user_a.id, approver_a.id)
        second = make_approved_ecr(org_a.id, user_a.id, approver_a.id)

        with pytest.raises(NotEligibleError) as exc_info:
            workflow_service.bundle_ecrs(org_b.id, user_b.id, [first.id, second.id], "Steal", "Nope")

        reasons = {item["reason"] for item in exc_info.value.details["offending_ecrs"]}
        assert reasons == {"not found"}
        assert db_session.get(ECR, first.id).eco_id is None

    def test_promote_foreign_eco(self, db_session, org_a, org_b, user_a, user_b, approver_a):
        ecr = make_approved_ecr(org_a.id, user_a.id, approver_a.id)
        eco = workflow_service.convert_ecr_to_eco(org_a.id, user_a.id, ecr.id)
        complete_eco(eco.id, approver_a.id)

        with pytest.raises(NotFoundError):
            workflow_service.promote_eco_to_ecn(org_b.id, user_b.id, eco.id)

    def test_get_foreign_record(self, db_session, org_a, org_b, user_a):
        ecr = make_ecr(org_a.id, user_a.id)
        with pytest.raises(NotFoundError):
            change_service.get_ecr(org_b.id, ecr.id)

    def test_lists_are_scoped(self, db_session, org_a, org_b, user_a, user_b):
        make_ecr(org_a.id, user_a.id)
        make_ecr(org_a.id, user_a.id)
        make_ecr(org_b.id, user_b.id)

        assert len(change_service.list_ecrs(org_a.id)) == 2
        assert len(change_service.list_ecrs(org_b.id)) == 1

    def test_numbering_independent_per_org(self, db_session, org_a, org_b, user_a, user_b):
        ecr_a = make_ecr(org_a.id, user_a.id)
        ecr_b = make_ecr(org_b.id, user_b.id)

        assert ecr_a.ecr_number == ecr_b.ecr_number

    def test_foreign_assignee_rejected(self, db_session, org_a, user_a, user_b):
        with pytest.raises(ValidationError):
            make_ecr(org_a.id, user_a.id, assignee_id=user_b.id)
