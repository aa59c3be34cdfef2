"""initial schema: rbac, mdas, budgets, expenditures, retirements, approvals, notifications, audit

Revision ID: 0001_initial_schema
Revises: 
Create Date: 2026-10-18
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(20, 2)


def _ts(name='updated_at'):
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'))


def _approval_fields():
    return [
        sa.Column('current_approver_id', sa.Integer(), index=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True)),
        sa.Column('submitted_by', sa.Integer()),
        sa.Column('approved_at', sa.DateTime(timezone=True)),
        sa.Column('approved_by', sa.Integer()),
        sa.Column('rejected_at', sa.DateTime(timezone=True)),
        sa.Column('rejected_by', sa.Integer()),
        sa.Column('rejection_reason', sa.Text()),
    ]


def _attachment_columns():
    return [
        sa.Column('file_name', sa.String(length=255), nullable=False),
        sa.Column('file_path', sa.String(length=512), nullable=False),
        sa.Column('file_type', sa.String(length=64), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=64)),
        sa.Column('description', sa.Text()),
        sa.Column('uploaded_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
    ]


def upgrade():
    op.create_table('permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=64), nullable=False, unique=True),
        sa.Column('service', sa.String(length=32), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('description', sa.String(length=255)),
        _ts(),
    )
    op.create_index('ix_permissions_code', 'permissions', ['code'])
    op.create_index('ix_permissions_service', 'permissions', ['service'])

    op.create_table('roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=64), nullable=False, unique=True),
        sa.Column('is_system', sa.Boolean(), server_default=sa.text('0')),
        sa.Column('description', sa.String(length=255)),
        _ts(),
    )

    op.create_table('mdas',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False, unique=True),
        sa.Column('description', sa.Text()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        _ts(),
    )
    op.create_index('ix_mdas_code', 'mdas', ['code'])

    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('first_name', sa.String(length=64), nullable=False),
        sa.Column('last_name', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('email', sa.String(length=128), nullable=False, unique=True),
        sa.Column('phone', sa.String(length=32)),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('1')),
        sa.Column('mda_id', sa.Integer(), sa.ForeignKey('mdas.id', ondelete='SET NULL')),
        _ts(),
    )
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_mda_id', 'users', ['mda_id'])

    op.create_table('role_permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('permission_id', sa.Integer(), sa.ForeignKey('permissions.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('role_id', 'permission_id', name='uq_role_permission'),
    )
    op.create_table('user_roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('user_id', 'role_id', name='uq_user_role'),
    )

    op.create_table('budgets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('mda_id', sa.Integer(), sa.ForeignKey('mdas.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('code', sa.String(length=32), nullable=False, unique=True, index=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('fiscal_year', sa.Integer(), nullable=False, index=True),
        sa.Column('description', sa.Text()),
        sa.Column('total_amount', MONEY, nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, index=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        *_approval_fields(),
        _ts(),
    )

    op.create_table('budget_line_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('budget_id', sa.Integer(), sa.ForeignKey('budgets.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('mda_id', sa.Integer(), sa.ForeignKey('mdas.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('code', sa.String(length=32), nullable=False, unique=True, index=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False, index=True),
        sa.Column('description', sa.Text()),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('balance', MONEY, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('updated_by', sa.Integer()),
        _ts(),
    )

    op.create_table('expenditures',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('reference_number', sa.String(length=32), nullable=False, unique=True, index=True),
        sa.Column('budget_line_item_id', sa.Integer(), sa.ForeignKey('budget_line_items.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('budget_id', sa.Integer(), sa.ForeignKey('budgets.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('mda_id', sa.Integer(), sa.ForeignKey('mdas.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, index=True),
        sa.Column('beneficiary_name', sa.String(length=255)),
        sa.Column('beneficiary_account_number', sa.String(length=32)),
        sa.Column('beneficiary_bank', sa.String(length=128)),
        sa.Column('payment_voucher_number', sa.String(length=64)),
        sa.Column('payment_voucher_date', sa.Date()),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('updated_by', sa.Integer()),
        *_approval_fields(),
        _ts('created_at'),
        _ts(),
    )

    op.create_table('attachments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('expenditure_id', sa.Integer(), sa.ForeignKey('expenditures.id', ondelete='CASCADE'), nullable=False, index=True),
        *_attachment_columns(),
        _ts('created_at'),
    )

    op.create_table('expenditure_retirements',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('retirement_number', sa.String(length=32), nullable=False, unique=True, index=True),
        sa.Column('expenditure_id', sa.Integer(), sa.ForeignKey('expenditures.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('retirement_date', sa.Date(), nullable=False),
        sa.Column('amount_retired', MONEY, nullable=False),
        sa.Column('balance_unretired', MONEY, nullable=False),
        sa.Column('purpose', sa.Text(), nullable=False),
        sa.Column('remarks', sa.Text()),
        sa.Column('rejection_reason', sa.Text()),
        sa.Column('status', sa.String(length=32), nullable=False, index=True),
        sa.Column('reviewed_by', sa.Integer()),
        sa.Column('reviewed_at', sa.DateTime(timezone=True)),
        sa.Column('approved_by', sa.Integer()),
        sa.Column('approved_at', sa.DateTime(timezone=True)),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('updated_by', sa.Integer()),
        _ts('created_at'),
        _ts(),
    )

    op.create_table('retirement_attachments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('retirement_id', sa.Integer(), sa.ForeignKey('expenditure_retirements.id', ondelete='CASCADE'), nullable=False, index=True),
        *_attachment_columns(),
        sa.Column('verified', sa.Boolean(), nullable=False, server_default=sa.text('0'), index=True),
        sa.Column('verified_by', sa.Integer()),
        sa.Column('verified_at', sa.DateTime(timezone=True)),
        sa.Column('verification_notes', sa.Text()),
        _ts('created_at'),
    )

    op.create_table('approval_histories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('entity_type', sa.String(length=32), nullable=False, index=True),
        sa.Column('entity_id', sa.Integer(), nullable=False, index=True),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('comments', sa.Text()),
        sa.Column('meta', sa.JSON()),
        _ts('created_at'),
    )

    op.create_table('approval_workflows',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('state', sa.String(length=16), nullable=False, index=True),
        sa.Column('current_step', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('submitted_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        _ts('created_at'),
        sa.Column('closed_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_approval_workflows_entity', 'approval_workflows', ['entity_type', 'entity_id'])

    op.create_table('approval_steps',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('workflow_id', sa.Integer(), sa.ForeignKey('approval_workflows.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('approver_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('approver_name', sa.String(length=128), nullable=False),
        sa.Column('role', sa.String(length=64), nullable=False),
        sa.Column('acted_at', sa.DateTime(timezone=True)),
        sa.UniqueConstraint('workflow_id', 'position', name='uq_workflow_step_position'),
    )

    op.create_table('notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('reference_type', sa.String(length=32)),
        sa.Column('reference_id', sa.Integer()),
        sa.Column('meta', sa.JSON()),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.text('0'), index=True),
        sa.Column('read_at', sa.DateTime(timezone=True)),
        _ts('created_at'),
    )

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=False, index=True),
        sa.Column('action', sa.String(length=64), nullable=False, index=True),
        sa.Column('entity', sa.String(length=64), index=True),
        sa.Column('entity_id', sa.String(length=64)),
        sa.Column('perms_snapshot', sa.JSON()),
        sa.Column('meta', sa.JSON()),
        sa.Column('ip_address', sa.String(length=64)),
        _ts('created_at'),
    )


def downgrade():
    for table in (
        'audit_logs', 'notifications', 'approval_steps', 'approval_workflows', 'approval_histories',
        'retirement_attachments', 'expenditure_retirements', 'attachments', 'expenditures',
        'budget_line_items', 'budgets', 'user_roles', 'role_permissions', 'users', 'mdas', 'roles', 'permissions',
    ):
        op.drop_table(table)
