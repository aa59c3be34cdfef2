"""budget snapshots

Revision ID: 0002_budget_snapshots
Revises: 0001_initial_schema
Create Date: 2026-10-18
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0002_budget_snapshots'
down_revision = '0001_initial_schema'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('budget_snapshots',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('budget_id', sa.Integer(), sa.ForeignKey('budgets.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('snapshot_type', sa.String(length=32), nullable=False, index=True),
        sa.Column('fiscal_year', sa.Integer(), nullable=False),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('meta', sa.JSON()),
        sa.Column('notes', sa.Text()),
        sa.Column('is_baseline', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), index=True),
    )


def downgrade():
    op.drop_table('budget_snapshots')
