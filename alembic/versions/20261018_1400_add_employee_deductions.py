"""Add employee deduction assignments

Revision ID: 20261018_1400
Revises: 20261018_0900
Create Date: 2026-10-18 14:00:00.000000

Voluntary deductions are taken only from employees assigned to them:
- employee_deductions: one row per (employee, deduction) with its history
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_1400'
down_revision = '20261018_0900'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table('employee_deductions',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('employee_id', sa.Uuid, sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('deduction_id', sa.Uuid, sa.ForeignKey('deductions.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('is_active', sa.Boolean, nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('removed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('removal_reason', sa.Text, nullable=True),
        sa.Column('history', sa.JSON, nullable=False, comment='[{action, user_id, timestamp, reason}]'),
        sa.Column('created_by_id', sa.Uuid, nullable=True),
        sa.Column('updated_by_id', sa.Uuid, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('employee_id', 'deduction_id', name='uq_employee_deduction'),
    )


def downgrade() -> None:
    op.drop_table('employee_deductions')
