# Overview: Pytest coverage for revision diffs and history lookup.

import pytest

from changeflow.errors import NotFoundError, ValidationError
from changeflow.services import lifecycle_service, revision_service
from changeflow.services.revision_service import diff_fields

from conftest import make_ecr


class TestDiffFields:
    """diff_fields is pure: no database needed."""

    def test_changed_values(self):
        previous = {"status": "DRAFT", "title": "A", "urgency": "LOW"}
        new = {"status": "APPROVED", "title": "A", "urgency": "HIGH"}
        assert diff_fields(previous, new) == ["status", "urgency"]

    def test_identical_snapshots(self):
        snapshot = {"status": "DRAFT", "eco_id": None}
        assert diff_fields(snapshot, dict(snapshot)) == []

    def test_none_and_empty_string_differ(self):
        assert diff_fields({"assignee": None}, {"assignee": ""}) == ["assignee"]

    def test_added_and_removed_keys(self):
        assert diff_fields({"a": 1, "gone": 2}, {"a": 1, "new": None}) == ["new", "gone"]

    def test_creation_has_every_field(self):
        assert diff_fields(None, {"id": 1, "status": "DRAFT"}) == ["id", "status"]


class TestRevisionHistory:

    def test_history_newest_first(self, db_session, org_a, user_a, approver_a):
        ecr = make_ecr(org_a.id, user_a.id)
        lifecycle_service.transition_status("ECR", ecr.id, user_a.id, "SUBMITTED")
        lifecycle_service.transition_status("ECR", ecr.id, approver_a.id, "REJECTED")

        history = revision_service.get_revisions("ECR", ecr.id, org_id=org_a.id)

        assert [rev.new_data["status"] for rev in history] == ["REJECTED", "SUBMITTED", "DRAFT"]
        assert history[-1].note == "Created"
        assert history[-1].previous_data == {}
        assert history[0].to_dict()["changed_by"]["id"] == approver_a.id
        assert history[1].changed_by_user_id == user_a.id

    def test_history_is_tenant_scoped(self, db_session, org_a, org_b, user_a):
        ecr = make_ecr(org_a.id, user_a.id)
        with pytest.raises(NotFoundError):
            revision_service.get_revisions("ECR", ecr.id, org_id=org_b.id)

    def test_unknown_entity_type(self, db_session, org_a):
        with pytest.raises(ValidationError):
            revision_service.get_revisions("PO", 1, org_id=org_a.id)

    def test_snapshot_is_json_safe(self, db_session, org_a, user_a):
        ecr = make_ecr(org_a.id, user_a.id)
        snap = revision_service.snapshot(ecr)

        assert snap["ecr_number"] == ecr.ecr_number
        assert isinstance(snap["created_at"], str)
        assert snap["created_at"].endswith("Z")
