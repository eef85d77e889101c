# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/changeflow/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: python -m flask --app changeflow <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask --app changeflow system init-db
#   Create any missing tables (idempotent). Use `flask db upgrade` for migrated deployments.
# - python -m flask --app changeflow system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization management (MULTI-TENANT):
# - python -m flask --app changeflow orgs list
#   List all organizations with user and record counts.
# - python -m flask --app changeflow orgs create --name "Acme Engineering" --domain "acme.example"
#   Create a new organization (tenant).
#
# User inspection/bootstrap:
# - python -m flask --app changeflow users list [--org-id 1]
#   List users with role and active status.
# - python -m flask --app changeflow users create --org-id 1 --name "Dana Reyes" --email dana@acme.example --role ENGINEER
#   Create a user (prompts if options are omitted).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Organization, User, USER_ROLES, ECR, ECO, ECN


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including numbering counters.
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'flask orgs create' to add a tenant.")


@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Domain':<20} {'Users':<7} {'ECRs':<6} {'ECOs':<6} {'ECNs'}")
    click.echo("="*80)

    for org in orgs:
        user_count = db.session.query(User).filter_by(org_id=org.id).count()
        ecr_count = db.session.query(ECR).filter_by(org_id=org.id).count()
        eco_count = db.session.query(ECO).filter_by(org_id=org.id).count()
        ecn_count = db.session.query(ECN).filter_by(org_id=org.id).count()

        click.echo(
            f"{org.id:<5} {org.name:<30} {org.domain or '-':<20} "
            f"{user_count:<7} {ecr_count:<6} {eco_count:<6} {ecn_count}"
        )

    click.echo("="*80 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--domain', default=None, help='Email domain (unique, optional)')
@with_appcontext
def create_org_cli(name, domain):
    """Create a new organization (tenant)."""
    if domain:
        existing = db.session.query(Organization).filter_by(domain=domain).first()
        if existing:
            click.echo(f"FAIL Organization with domain '{domain}' already exists")
            return

    org = Organization(name=name, domain=domain)
    db.session.add(org)
    db.session.commit()

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id})")


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--role', type=click.Choice(USER_ROLES, case_sensitive=False), default='REQUESTOR', show_default=True)
@click.option('--department', default=None, help='Department (optional)')
@with_appcontext
def create_user_cli(org_id, name, email, role, department):
    """
    Create a user inside an organization.

    The user id printed here is what clients send as X-User-Id.
    """
    org = db.session.get(Organization, org_id)
    if not org:
        click.echo(f"FAIL Organization ID {org_id} not found")
        return

    email = email.strip().lower()
    if db.session.query(User).filter_by(email=email).first():
        click.echo(f"FAIL User with email '{email}' already exists")
        return

    user = User(org_id=org.id, name=name.strip(), email=email, role=role.upper(), department=department)
    db.session.add(user)
    db.session.commit()

    click.echo(f"PASS Created user: {user.name} <{user.email}> (ID: {user.id}, Role: {user.role}, Org: {org.name})")


@users_group.command('list')
@click.option('--org-id', type=int, default=None, help='Filter by organization')
@with_appcontext
def list_users(org_id):
    """List all users with role and active status."""
    query = db.session.query(User)
    if org_id is not None:
        query = query.filter_by(org_id=org_id)
    users = query.order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Org':<5} {'Name':<25} {'Email':<30} {'Role':<16} {'Active'}")
    click.echo("="*80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.org_id:<5} {user.name:<25} {user.email:<30} {user.role:<16} {active_str}")

    click.echo("="*80 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)  # Multi-tenant organization management
    app.cli.add_command(users_group)
