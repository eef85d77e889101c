# Overview: Pytest coverage for change-number allocation.

"""
Sequence Generator Tests

Numbers are <TYPE>-<yy>-<seq>, scoped per (organization, type, year), and
the issued set per scope is always exactly 001..N: no gaps from rolled-back
transactions and no duplicates under concurrent writers.
"""

import threading

import pytest
from sqlalchemy import insert

from changeflow import create_app
from changeflow.errors import ValidationError
from changeflow.extensions import db
from changeflow.models import ECR, NumberSequence, Organization, User
from changeflow.services import sequence_service
from changeflow.services.change_service import create_ecr
from changeflow.services.concurrency import SequenceContention
from changeflow.time_utils import utcnow

from conftest import make_ecr


def _yy() -> str:
    return f"{utcnow().year % 100:02d}"


class TestNumberFormat:
    """Pure formatting / parsing helpers."""

    def test_format_pads_to_three_digits(self, app):
        assert sequence_service.format_number("ECO", 2024, 1) == "ECO-24-001"
        assert sequence_service.format_number("ECR", 2031, 42) == "ECR-31-042"

    def test_format_grows_past_padding(self, app):
        assert sequence_service.format_number("ECN", 2024, 1234) == "ECN-24-1234"

    def test_parse_number(self):
        assert sequence_service.parse_number("ECO-24-007") == ("ECO", "24", 7)
        assert sequence_service.parse_number("ECO-2024-007") is None
        assert sequence_service.parse_number("PO-24-001") is None
        assert sequence_service.parse_number("") is None

    def test_number_suffix(self):
        assert sequence_service.number_suffix("ECO-24-001") == "24-001"
        assert sequence_service.number_suffix("garbage") is None


class TestNextNumber:
    """Counter-backed allocation inside the caller's transaction."""

    def test_first_number_of_year_is_001(self, db_session, org_a):
        number = sequence_service.next_number(org_a.id, "ECR", 2024)
        db_session.commit()
        assert number == "ECR-24-001"

    def test_numbers_increase_per_scope(self, db_session, org_a):
        first = sequence_service.next_number(org_a.id, "ECO", 2024)
        second = sequence_service.next_number(org_a.id, "ECO", 2024)
        db_session.commit()

        assert first == "ECO-24-001"
        assert second == "ECO-24-002"

    def test_scopes_are_independent(self, db_session, org_a, org_b):
        assert sequence_service.next_number(org_a.id, "ECR", 2024) == "ECR-24-001"
        assert sequence_service.next_number(org_a.id, "ECO", 2024) == "ECO-24-001"
        assert sequence_service.next_number(org_b.id, "ECR", 2024) == "ECR-24-001"
        assert sequence_service.next_number(org_a.id, "ECR", 2025) == "ECR-25-001"
        db_session.commit()

    def test_rollback_returns_the_number(self, db_session, org_a):
        sequence_service.next_number(org_a.id, "ECR", 2024)
        db_session.commit()

        sequence_service.next_number(org_a.id, "ECR", 2024)
        db_session.rollback()

        assert sequence_service.next_number(org_a.id, "ECR", 2024) == "ECR-24-002"
        db_session.commit()

    def test_counter_seeds_from_existing_records(self, db_session, org_a, user_a):
        """Records that predate the counter row are never re-issued."""
        for number in ("ECR-24-001", "ECR-24-007", "ECR-23-050"):
            db_session.add(ECR(
                org_id=org_a.id,
                ecr_number=number,
                title="Legacy",
                description="Imported",
                reason="Migration",
                submitter_id=user_a.id,
            ))
        db_session.commit()

        assert sequence_service.next_number(org_a.id, "ECR", 2024) == "ECR-24-008"
        db_session.commit()

    def test_counter_row_created_concurrently(self, db_session, org_a, monkeypatch):
        real_highest = sequence_service._highest_issued

        def racing_highest(org_id, entity_type, year):
            # Another writer inserts the counter row after our UPDATE missed it
            db_session.execute(insert(NumberSequence).values(
                org_id=org_id, entity_type=entity_type, year=year, next_number=2,
            ))
            return real_highest(org_id, entity_type, year)

        monkeypatch.setattr(sequence_service, "_highest_issued", racing_highest)

        with pytest.raises(SequenceContention):
            sequence_service.next_number(org_a.id, "ECR", 2024)
        db_session.rollback()

    def test_contention_reruns_the_whole_create(self, db_session, org_a, user_a, monkeypatch):
        real_highest = sequence_service._highest_issued
        calls = []

        def racing_highest(org_id, entity_type, year):
            calls.append(year)
            if len(calls) == 1:
                db_session.execute(insert(NumberSequence).values(
                    org_id=org_id, entity_type=entity_type, year=year, next_number=1,
                ))
            return real_highest(org_id, entity_type, year)

        monkeypatch.setattr(sequence_service, "_highest_issued", racing_highest)

        ecr = make_ecr(org_a.id, user_a.id)

        assert len(calls) == 2
        assert ecr.ecr_number == f"ECR-{_yy()}-001"
        assert db_session.query(ECR).count() == 1
        counter = db_session.query(NumberSequence).filter_by(org_id=org_a.id, entity_type="ECR").one()
        assert counter.next_number == 2

    def test_unknown_entity_type_rejected(self, db_session, org_a):
        with pytest.raises(ValidationError):
            sequence_service.next_number(org_a.id, "PO", 2024)

    def test_create_ecr_uses_current_year(self, db_session, org_a, user_a):
        ecr = make_ecr(org_a.id, user_a.id)
        assert ecr.ecr_number == f"ECR-{_yy()}-001"

        counter = db_session.query(NumberSequence).filter_by(org_id=org_a.id, entity_type="ECR").one()
        assert counter.year == utcnow().year
        assert counter.next_number == 2


class TestConcurrentAllocation:
    """Concurrent writers against a file-backed database."""

    @pytest.mark.parametrize("seeded", [True, False], ids=["counter-exists", "first-of-year"])
    def test_parallel_creates_get_unique_contiguous_numbers(self, tmp_path, seeded):
        """Unseeded, every writer races to create the counter row itself."""
        db_path = tmp_path / "sequence_race.sqlite3"
        race_app = create_app({
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': f"sqlite:///{db_path}",
            'CHANGEFLOW_RETRY_ATTEMPTS': 10,
            'CHANGEFLOW_RETRY_BACKOFF': 0.01,
        })

        with race_app.app_context():
            db.create_all()
            org = Organization(name="Race Org")
            db.session.add(org)
            db.session.flush()
            user = User(org_id=org.id, name="Racer", email="racer@race.example", role="ENGINEER")
            db.session.add(user)
            db.session.commit()
            org_id, user_id = org.id, user.id

            if seeded:
                make_ecr(org_id, user_id)
        first = 2 if seeded else 1

        worker_count = 8
        numbers = []
        errors = []
        lock = threading.Lock()

        def worker(index):
            with race_app.app_context():
                try:
                    ecr = create_ecr(org_id, user_id, {
                        'title': f"Parallel request {index}",
                        'description': 'Created concurrently',
                        'reason': 'Race test',
                    })
                    with lock:
                        numbers.append(ecr.ecr_number)
                except Exception as exc:  # collected and asserted below
                    with lock:
                        errors.append(exc)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(worker_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        expected = {f"ECR-{_yy()}-{seq:03d}" for seq in range(first, first + worker_count)}
        assert set(numbers) == expected
        assert len(numbers) == worker_count

        with race_app.app_context():
            stored = [row.ecr_number for row in db.session.query(ECR).filter_by(org_id=org_id)]
            assert len(stored) == len(set(stored)) == worker_count + first - 1
            db.session.remove()
            db.drop_all()
