"""initial change control schema

Revision ID: cf001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete change-control schema:
- organizations / users: tenant root and acting users
- ecrs, ecos, ecns: the three change documents
- ecn_acknowledgments: per-stakeholder acknowledgment of a distributed ECN
- number_sequences: atomic per-org/type/year counters for record numbers
- revisions: immutable field-level history
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'cf001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # organizations: tenant root
    # ============================================================================
    op.create_table(
        'organizations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('domain', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_organizations_domain', 'organizations', ['domain'], unique=True)

    # ============================================================================
    # users
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('department', sa.String(length=120), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sa.CheckConstraint(
            "role IN ('ADMIN', 'MANAGER', 'ENGINEER', 'QUALITY', 'MANUFACTURING', "
            "'REQUESTOR', 'DOCUMENT_CONTROL', 'VIEWER')",
            name='ck_users_role'
        ),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_org_id', 'users', ['org_id'])

    # ============================================================================
    # ecos: created before ecrs because ecrs.eco_id references it
    # ============================================================================
    op.create_table(
        'ecos',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('eco_number', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('priority', sa.String(length=16), nullable=False),
        sa.Column('submitter_id', sa.Integer(), nullable=False),
        sa.Column('assignee_id', sa.Integer(), nullable=True),
        sa.Column('approver_id', sa.Integer(), nullable=True),
        sa.Column('implementation_plan', sa.Text(), nullable=True),
        sa.Column('testing_plan', sa.Text(), nullable=True),
        sa.Column('rollback_plan', sa.Text(), nullable=True),
        sa.Column('target_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['submitter_id'], ['users.id']),
        sa.ForeignKeyConstraint(['assignee_id'], ['users.id']),
        sa.ForeignKeyConstraint(['approver_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'eco_number', name='uq_ecos_org_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_ecos_org_id', 'ecos', ['org_id'])
    op.create_index('ix_ecos_status', 'ecos', ['status'])
    op.create_index('ix_ecos_org_status', 'ecos', ['org_id', 'status'])

    # ============================================================================
    # ecrs
    # ============================================================================
    op.create_table(
        'ecrs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('ecr_number', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('urgency', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('submitter_id', sa.Integer(), nullable=False),
        sa.Column('assignee_id', sa.Integer(), nullable=True),
        sa.Column('approver_id', sa.Integer(), nullable=True),
        sa.Column('eco_id', sa.Integer(), nullable=True),
        sa.Column('affected_products', sa.Text(), nullable=True),
        sa.Column('affected_documents', sa.Text(), nullable=True),
        sa.Column('cost_impact', sa.Text(), nullable=True),
        sa.Column('schedule_impact', sa.Text(), nullable=True),
        sa.Column('customer_impact', sa.Text(), nullable=True),
        sa.Column('implementation_plan', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['submitter_id'], ['users.id']),
        sa.ForeignKeyConstraint(['assignee_id'], ['users.id']),
        sa.ForeignKeyConstraint(['approver_id'], ['users.id']),
        sa.ForeignKeyConstraint(['eco_id'], ['ecos.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'ecr_number', name='uq_ecrs_org_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_ecrs_org_id', 'ecrs', ['org_id'])
    op.create_index('ix_ecrs_status', 'ecrs', ['status'])
    op.create_index('ix_ecrs_eco_id', 'ecrs', ['eco_id'])
    op.create_index('ix_ecrs_org_status', 'ecrs', ['org_id', 'status'])

    # ============================================================================
    # ecns: at most one per ECO
    # ============================================================================
    op.create_table(
        'ecns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('ecn_number', sa.String(length=32), nullable=False),
        sa.Column('eco_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('submitter_id', sa.Integer(), nullable=False),
        sa.Column('assignee_id', sa.Integer(), nullable=True),
        sa.Column('changes_implemented', sa.Text(), nullable=True),
        sa.Column('affected_items', sa.Text(), nullable=True),
        sa.Column('disposition_instructions', sa.Text(), nullable=True),
        sa.Column('verification_method', sa.Text(), nullable=True),
        sa.Column('effective_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('distributed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['eco_id'], ['ecos.id']),
        sa.ForeignKeyConstraint(['submitter_id'], ['users.id']),
        sa.ForeignKeyConstraint(['assignee_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'ecn_number', name='uq_ecns_org_number'),
        sa.UniqueConstraint('eco_id', name='uq_ecns_eco'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_ecns_org_id', 'ecns', ['org_id'])
    op.create_index('ix_ecns_status', 'ecns', ['status'])
    op.create_index('ix_ecns_org_status', 'ecns', ['org_id', 'status'])

    op.create_table(
        'ecn_acknowledgments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('ecn_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('acknowledged_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['ecn_id'], ['ecns.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('ecn_id', 'user_id', name='uq_ecn_ack_user'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_ecn_acknowledgments_ecn_id', 'ecn_acknowledgments', ['ecn_id'])

    # ============================================================================
    # number_sequences: one counter row per (org, type, year)
    # ============================================================================
    op.create_table(
        'number_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('entity_type', sa.String(length=8), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'entity_type', 'year', name='uq_number_sequences_scope'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_number_sequences_org_id', 'number_sequences', ['org_id'])

    # ============================================================================
    # revisions: append-only history
    # ============================================================================
    op.create_table(
        'revisions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('entity_type', sa.String(length=8), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('changed_by_user_id', sa.Integer(), nullable=False),
        sa.Column('previous_data', sa.JSON(), nullable=False),
        sa.Column('new_data', sa.JSON(), nullable=False),
        sa.Column('changed_fields', sa.JSON(), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['changed_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_revisions_entity', 'revisions', ['entity_type', 'entity_id'])
    op.create_index('ix_revisions_org_changed_at', 'revisions', ['org_id', 'changed_at'])


def downgrade():
    op.drop_index('ix_revisions_org_changed_at', table_name='revisions')
    op.drop_index('ix_revisions_entity', table_name='revisions')
    op.drop_table('revisions')

    op.drop_index('ix_number_sequences_org_id', table_name='number_sequences')
    op.drop_table('number_sequences')

    op.drop_index('ix_ecn_acknowledgments_ecn_id', table_name='ecn_acknowledgments')
    op.drop_table('ecn_acknowledgments')

    op.drop_index('ix_ecns_org_status', table_name='ecns')
    op.drop_index('ix_ecns_status', table_name='ecns')
    op.drop_index('ix_ecns_org_id', table_name='ecns')
    op.drop_table('ecns')

    op.drop_index('ix_ecrs_org_status', table_name='ecrs')
    op.drop_index('ix_ecrs_eco_id', table_name='ecrs')
    op.drop_index('ix_ecrs_status', table_name='ecrs')
    op.drop_index('ix_ecrs_org_id', table_name='ecrs')
    op.drop_table('ecrs')

    op.drop_index('ix_ecos_org_status', table_name='ecos')
    op.drop_index('ix_ecos_status', table_name='ecos')
    op.drop_index('ix_ecos_org_id', table_name='ecos')
    op.drop_table('ecos')

    op.drop_index('ix_users_org_id', table_name='users')
    op.drop_table('users')

    op.drop_index('ix_organizations_domain', table_name='organizations')
    op.drop_table('organizations')
