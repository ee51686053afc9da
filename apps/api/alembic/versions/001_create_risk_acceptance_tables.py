"""Create risk acceptance workflow and directory mirror tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Directory mirrors (owned by other registers, read-only here)
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'risks',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('reference', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=500), nullable=False),
        sa.Column('owner_id', sa.String(length=64), nullable=True),
        sa.Column('residual_likelihood', sa.Integer(), nullable=True),
        sa.Column('residual_impact', sa.Integer(), nullable=True),
        sa.Column('risk_appetite', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_risks_reference', 'risks', ['reference'], unique=True)
    op.create_index('ix_risks_owner_id', 'risks', ['owner_id'])

    op.create_table(
        'controls',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('risk_id', sa.String(length=64), nullable=True),
        sa.Column('reference', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=500), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['risk_id'], ['risks.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_controls_risk_id', 'controls', ['risk_id'])
    op.create_index('ix_controls_reference', 'controls', ['reference'])

    op.create_table(
        'risk_mitigations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('risk_id', sa.String(length=64), nullable=False),
        sa.Column('action', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['risk_id'], ['risks.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_risk_mitigations_id', 'risk_mitigations', ['id'])
    op.create_index('ix_risk_mitigations_risk_id', 'risk_mitigations', ['risk_id'])

    op.create_table(
        'consumer_duty_outcomes',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    # Permission overrides
    op.create_table(
        'role_permissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('permission', sa.String(length=64), nullable=False),
        sa.Column('granted', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('role', 'permission', name='uq_role_permission')
    )
    op.create_index('ix_role_permissions_id', 'role_permissions', ['id'])
    op.create_index('ix_role_permissions_role', 'role_permissions', ['role'])

    op.create_table(
        'user_permissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('permission', sa.String(length=64), nullable=False),
        sa.Column('granted', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'permission', name='uq_user_permission')
    )
    op.create_index('ix_user_permissions_id', 'user_permissions', ['id'])
    op.create_index('ix_user_permissions_user_id', 'user_permissions', ['user_id'])

    # Reference counters
    op.create_table(
        'reference_sequences',
        sa.Column('prefix', sa.String(length=16), nullable=False),
        sa.Column('last_value', sa.BigInteger(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('prefix')
    )

    # Risk acceptances (links to risks/controls/outcomes/users are weak: no FKs)
    op.create_table(
        'risk_acceptances',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('reference', sa.String(length=32), nullable=False),
        sa.Column('source', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('proposed_rationale', sa.Text(), nullable=False),
        sa.Column('proposed_conditions', sa.Text(), nullable=True),
        sa.Column('risk_id', sa.String(length=64), nullable=True),
        sa.Column('linked_control_id', sa.String(length=64), nullable=True),
        sa.Column('consumer_duty_outcome_id', sa.String(length=64), nullable=True),
        sa.Column('linked_action_ids', sa.JSON(), nullable=False),
        sa.Column('proposer_id', sa.String(length=64), nullable=False),
        sa.Column('approver_id', sa.String(length=64), nullable=True),
        sa.Column('reviewer_id', sa.String(length=64), nullable=True),
        sa.Column('review_date', sa.DateTime(), nullable=True),
        sa.Column('review_note', sa.Text(), nullable=True),
        sa.Column('returned_content_hash', sa.String(length=64), nullable=True),
        sa.Column('returned_at', sa.DateTime(), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(), nullable=True),
        sa.Column('expired_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_risk_acceptances_reference', 'risk_acceptances', ['reference'], unique=True)
    op.create_index('ix_risk_acceptances_source', 'risk_acceptances', ['source'])
    op.create_index('ix_risk_acceptances_status', 'risk_acceptances', ['status'])
    op.create_index('ix_risk_acceptances_risk_id', 'risk_acceptances', ['risk_id'])
    op.create_index('ix_risk_acceptances_proposer_id', 'risk_acceptances', ['proposer_id'])
    op.create_index('ix_risk_acceptances_approver_id', 'risk_acceptances', ['approver_id'])
    op.create_index('ix_risk_acceptances_review_date', 'risk_acceptances', ['review_date'])
    op.create_index('ix_risk_acceptances_created_at', 'risk_acceptances', ['created_at'])

    op.create_table(
        'risk_acceptance_comments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('acceptance_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['acceptance_id'], ['risk_acceptances.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_risk_acceptance_comments_id', 'risk_acceptance_comments', ['id'])
    op.create_index('ix_risk_acceptance_comments_acceptance_id', 'risk_acceptance_comments', ['acceptance_id'])
    op.create_index('ix_risk_acceptance_comments_created_at', 'risk_acceptance_comments', ['created_at'])

    op.create_table(
        'risk_acceptance_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('acceptance_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('from_status', sa.String(length=32), nullable=True),
        sa.Column('to_status', sa.String(length=32), nullable=False),
        sa.Column('details', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['acceptance_id'], ['risk_acceptances.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_risk_acceptance_history_id', 'risk_acceptance_history', ['id'])
    op.create_index('ix_risk_acceptance_history_acceptance_id', 'risk_acceptance_history', ['acceptance_id'])
    op.create_index('ix_risk_acceptance_history_action', 'risk_acceptance_history', ['action'])
    op.create_index('ix_risk_acceptance_history_created_at', 'risk_acceptance_history', ['created_at'])


def downgrade() -> None:
    op.drop_table('risk_acceptance_history')
    op.drop_table('risk_acceptance_comments')
    op.drop_table('risk_acceptances')
    op.drop_table('reference_sequences')
    op.drop_table('user_permissions')
    op.drop_table('role_permissions')
    op.drop_table('consumer_duty_outcomes')
    op.drop_table('risk_mitigations')
    op.drop_table('controls')
    op.drop_table('risks')
    op.drop_table('users')
