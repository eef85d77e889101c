"""
Pytest fixtures for ChangeFlow backend tests.

Provides test database setup, two tenants with their users, and helpers
that walk records through the workflow.
"""

import pytest
from changeflow import create_app
from changeflow.extensions import db
from changeflow.models import Organization, User
from changeflow.services import change_service, lifecycle_service


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'CHANGEFLOW_RETRY_BACKOFF': 0,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Acme Engineering", domain="acme.example")
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Beta Manufacturing", domain="beta.example")
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def user_a(db_session, org_a):
    """Engineer in Organization A."""
    user = User(org_id=org_a.id, name="Alice Engineer", email="alice@acme.example", role="ENGINEER")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def approver_a(db_session, org_a):
    """Manager in Organization A who approves requests."""
    user = User(org_id=org_a.id, name="Mark Manager", email="mark@acme.example", role="MANAGER")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def user_b(db_session, org_b):
    """Engineer in Organization B."""
    user = User(org_id=org_b.id, name="Bob Builder", email="bob@beta.example", role="ENGINEER")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def requestor_a(db_session, org_a):
    """Requestor in Organization A: may raise and submit ECRs, nothing more."""
    user = User(org_id=org_a.id, name="Rita Requestor", email="rita@acme.example", role="REQUESTOR")
    db_session.add(user)
    db_session.commit()
    return user



def make_ecr(org_id: int, user_id: int, **fields):
    """Create an ECR with sensible defaults."""
    payload = {
        'title': 'Replace bracket fastener',
        'description': 'Switch M4 screws to M5 on the mounting bracket',
        'reason': 'Field failures under vibration',
    }
    payload.update(fields)
    return change_service.create_ecr(org_id, user_id, payload)


def make_approved_ecr(org_id: int, user_id: int, approver_id: int, **fields):
    """Create an ECR and approve it."""
    ecr = make_ecr(org_id, user_id, **fields)
    return lifecycle_service.transition_status('ECR', ecr.id, approver_id, 'APPROVED')


def complete_eco(eco_id: int, user_id: int):
    """Walk an ECO from its initial status to COMPLETED (user must be MANAGER or ADMIN)."""
    lifecycle_service.transition_status('ECO', eco_id, user_id, 'IN_PROGRESS')
    return lifecycle_service.transition_status('ECO', eco_id, user_id, 'COMPLETED')


def actor_headers(user) -> dict:
    """Helper to create the acting-user header."""
    return {'X-User-Id': str(user.id)}
