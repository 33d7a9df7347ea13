"""Create payroll engine tables

Revision ID: 20261018_0900
Revises:
Create Date: 2026-10-18 09:00:00.000000

This migration creates the payroll engine schema:
- departments, employees: payroll subjects
- salary_grades, salary_components: grade basic salary and allowance components
- allowances, personal_allowances: allowance definitions and per-employee grants
- bonuses, personal_bonuses: bonus definitions and per-employee grants
- deductions: statutory (PAYE, Pension, NHF) and voluntary deductions
- payroll_records, payroll_items: one payslip per employee and period
- payroll_summaries: batch run outcomes
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from app.models.allowance import AllowanceType
from app.models.bonus import BonusType
from app.models.deduction import DeductionCategory, DeductionType
from app.models.employee import EmploymentStatus
from app.models.payroll import PayItemCategory, PayItemType
from app.models.payroll_enums import (
    AllowanceFrequency,
    ApprovalStatus,
    CalculationMethod,
    PayrollFrequency,
    PayrollStatus,
    ScopeType,
)
from app.models.salary import ComponentType


# revision identifiers, used by Alembic.
revision = '20261018_0900'
down_revision = None
branch_labels = None
depends_on = None


ENUM_TYPES = [
    EmploymentStatus, ComponentType, CalculationMethod, AllowanceType,
    AllowanceFrequency, ScopeType, ApprovalStatus, BonusType, DeductionType,
    DeductionCategory, PayrollFrequency, PayrollStatus, PayItemType, PayItemCategory,
]


def enum_type(enum_cls) -> postgresql.ENUM:
    """Enum column type; the database type itself is created once in upgrade()."""
    return postgresql.ENUM(enum_cls, name=enum_cls.__name__.lower(), create_type=False)


def money(precision: int = 15) -> sa.Numeric:
    return sa.Numeric(precision, 2)


def timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def audit_columns():
    return [
        sa.Column('created_by_id', sa.Uuid, nullable=True),
        sa.Column('updated_by_id', sa.Uuid, nullable=True),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for enum_cls in ENUM_TYPES:
        postgresql.ENUM(enum_cls, name=enum_cls.__name__.lower()).create(bind, checkfirst=True)

    # ===========================================
    # DEPARTMENTS & EMPLOYEES
    # ===========================================
    op.create_table('departments',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('name', sa.String(150), nullable=False),
        sa.Column('code', sa.String(30), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False),
        *audit_columns(),
        *timestamps(),
        sa.UniqueConstraint('code', name='uq_departments_code'),
    )

    op.create_table('employees',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('employee_code', sa.String(50), nullable=False, comment='Internal employee ID/staff number'),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('department_id', sa.Uuid, sa.ForeignKey('departments.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('grade_level', sa.String(50), nullable=True),
        sa.Column('employment_status', enum_type(EmploymentStatus), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False),
        sa.Column('onboarding_completed', sa.Boolean, nullable=False),
        *audit_columns(),
        *timestamps(),
        sa.UniqueConstraint('employee_code', name='uq_employees_employee_code'),
    )

    # ===========================================
    # SALARY STRUCTURE
    # ===========================================
    op.create_table('salary_grades',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('level', sa.String(50), nullable=False, index=True),
        sa.Column('name', sa.String(150), nullable=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('basic_salary', money(), nullable=False, comment='Monthly basic salary'),
        sa.Column('department_id', sa.Uuid, sa.ForeignKey('departments.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('is_active', sa.Boolean, nullable=False),
        *audit_columns(),
        *timestamps(),
        sa.UniqueConstraint('level', name='uq_salary_grades_level'),
        sa.CheckConstraint('basic_salary > 0', name='ck_salary_grades_basic_salary_positive'),
    )

    op.create_table('salary_components',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('salary_grade_id', sa.Uuid, sa.ForeignKey('salary_grades.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('name', sa.String(150), nullable=False),
        sa.Column('component_type', enum_type(ComponentType), nullable=False),
        sa.Column('calculation_method', enum_type(CalculationMethod), nullable=False),
        sa.Column('value', money(), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False),
        *timestamps(),
    )

    # ===========================================
    # ALLOWANCES
    # ===========================================
    op.create_table('allowances',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('name', sa.String(150), nullable=False, index=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('allowance_type', enum_type(AllowanceType), nullable=False),
        sa.Column('value', money(), nullable=False),
        sa.Column('base_amount', money(), nullable=True),
        sa.Column('frequency', enum_type(AllowanceFrequency), nullable=False),
        sa.Column('scope', enum_type(ScopeType), nullable=False),
        sa.Column('department_id', sa.Uuid, sa.ForeignKey('departments.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('employee_id', sa.Uuid, sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=True, index=True),
        sa.Column('grade_level', sa.String(50), nullable=True),
        sa.Column('effective_date', sa.Date, nullable=False),
        sa.Column('expiry_date', sa.Date, nullable=True),
        sa.Column('is_taxable', sa.Boolean, nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False),
        *audit_columns(),
        *timestamps(),
    )

    op.create_table('personal_allowances',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('employee_id', sa.Uuid, sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('allowance_id', sa.Uuid, sa.ForeignKey('allowances.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('approval_status', enum_type(ApprovalStatus), nullable=False, index=True),
        sa.Column('approved_by_id', sa.Uuid, nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text, nullable=True),
        sa.Column('effective_date', sa.Date, nullable=False),
        sa.Column('expiry_date', sa.Date, nullable=True),
        sa.Column('performance_score', sa.Numeric(7, 2), nullable=True),
        sa.Column('target_score', sa.Numeric(7, 2), nullable=True),
        sa.Column('used_in_payroll_month', sa.Integer, nullable=True),
        sa.Column('used_in_payroll_year', sa.Integer, nullable=True),
        sa.Column('used_in_payroll_id', sa.Uuid, nullable=True, index=True),
        *audit_columns(),
        *timestamps(),
    )

    # ===========================================
    # BONUSES
    # ===========================================
    op.create_table('bonuses',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('name', sa.String(150), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('bonus_type', enum_type(BonusType), nullable=False, index=True),
        sa.Column('amount', money(), nullable=False),
        sa.Column('base_amount', money(), nullable=True),
        sa.Column('target_score', sa.Numeric(7, 2), nullable=True),
        sa.Column('department_id', sa.Uuid, sa.ForeignKey('departments.id', ondelete='SET NULL'), nullable=True),
        sa.Column('is_taxable', sa.Boolean, nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False),
        *audit_columns(),
        *timestamps(),
    )

    op.create_table('personal_bonuses',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('employee_id', sa.Uuid, sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('bonus_id', sa.Uuid, sa.ForeignKey('bonuses.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('approval_status', enum_type(ApprovalStatus), nullable=False, index=True),
        sa.Column('approved_by_id', sa.Uuid, nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text, nullable=True),
        sa.Column('payment_date', sa.Date, nullable=False),
        sa.Column('amount', money(), nullable=True, comment='Overrides the definition amount when set'),
        sa.Column('performance_score', sa.Numeric(7, 2), nullable=True),
        sa.Column('used_in_payroll_month', sa.Integer, nullable=True),
        sa.Column('used_in_payroll_year', sa.Integer, nullable=True),
        sa.Column('used_in_payroll_id', sa.Uuid, nullable=True, index=True),
        *audit_columns(),
        *timestamps(),
    )

    # ===========================================
    # DEDUCTIONS
    # ===========================================
    op.create_table('deductions',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('name', sa.String(150), nullable=False, index=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('deduction_type', enum_type(DeductionType), nullable=False, index=True),
        sa.Column('category', enum_type(DeductionCategory), nullable=False),
        sa.Column('calculation_method', enum_type(CalculationMethod), nullable=False),
        sa.Column('value', money(), nullable=False, comment='Fixed amount or percentage; unused for progressive'),
        sa.Column('tax_brackets', sa.JSON, nullable=True, comment='[{min, max, rate}] ascending, for progressive deductions'),
        sa.Column('scope', enum_type(ScopeType), nullable=False),
        sa.Column('department_id', sa.Uuid, sa.ForeignKey('departments.id', ondelete='CASCADE'), nullable=True, index=True),
        sa.Column('employee_id', sa.Uuid, sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=True, index=True),
        sa.Column('grade_level', sa.String(50), nullable=True),
        sa.Column('is_mandatory', sa.Boolean, nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False),
        *audit_columns(),
        *timestamps(),
    )

    # ===========================================
    # PAYROLL RECORDS
    # ===========================================
    op.create_table('payroll_records',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('employee_id', sa.Uuid, sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('department_id', sa.Uuid, sa.ForeignKey('departments.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('salary_grade_id', sa.Uuid, sa.ForeignKey('salary_grades.id', ondelete='SET NULL'), nullable=True),
        sa.Column('batch_id', sa.String(64), nullable=True, index=True),

        # Period
        sa.Column('month', sa.Integer, nullable=False),
        sa.Column('year', sa.Integer, nullable=False),
        sa.Column('frequency', enum_type(PayrollFrequency), nullable=False),
        sa.Column('period_start', sa.Date, nullable=False),
        sa.Column('period_end', sa.Date, nullable=False),

        # Earnings
        sa.Column('basic_salary', money(), nullable=False),
        sa.Column('grade_allowances', money(), nullable=False),
        sa.Column('personal_allowances', money(), nullable=False),
        sa.Column('total_allowances', money(), nullable=False),
        sa.Column('total_bonuses', money(), nullable=False),
        sa.Column('gross_earnings', money(), nullable=False),

        # Deductions
        sa.Column('paye_tax', money(), nullable=False),
        sa.Column('pension', money(), nullable=False),
        sa.Column('nhf', money(), nullable=False),
        sa.Column('total_statutory', money(), nullable=False),
        sa.Column('total_voluntary', money(), nullable=False),
        sa.Column('total_deductions', money(), nullable=False),
        sa.Column('net_pay', money(), nullable=False),

        # Workflow
        sa.Column('status', enum_type(PayrollStatus), nullable=False, index=True),
        sa.Column('approval_history', sa.JSON, nullable=False, comment='[{status, action, user_id, timestamp, remarks}]'),
        sa.Column('processed_by_id', sa.Uuid, nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_by_id', sa.Uuid, nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('remarks', sa.Text, nullable=True),
        *audit_columns(),
        *timestamps(),
        sa.UniqueConstraint('employee_id', 'month', 'year', name='uq_payroll_records_employee_period'),
    )

    op.create_table('payroll_items',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('payroll_id', sa.Uuid, sa.ForeignKey('payroll_records.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('item_type', enum_type(PayItemType), nullable=False),
        sa.Column('category', enum_type(PayItemCategory), nullable=False, index=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('source_id', sa.Uuid, nullable=True, index=True),
        sa.Column('amount', money(), nullable=False),
        sa.Column('sort_order', sa.Integer, nullable=False),
        *timestamps(),
    )

    op.create_table('payroll_summaries',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('batch_id', sa.String(64), nullable=False),
        sa.Column('processed_by_id', sa.Uuid, nullable=True),
        sa.Column('month', sa.Integer, nullable=False),
        sa.Column('year', sa.Integer, nullable=False),
        sa.Column('frequency', enum_type(PayrollFrequency), nullable=False),
        sa.Column('total_attempted', sa.Integer, nullable=False),
        sa.Column('processed', sa.Integer, nullable=False),
        sa.Column('skipped', sa.Integer, nullable=False),
        sa.Column('failed', sa.Integer, nullable=False),
        sa.Column('total_net_pay', money(18), nullable=False),
        sa.Column('total_gross_pay', money(18), nullable=False),
        sa.Column('total_deductions', money(18), nullable=False),
        sa.Column('processing_time', sa.Float, nullable=False, comment='Seconds'),
        sa.Column('cancelled', sa.Boolean, nullable=False),
        sa.Column('department_breakdown', sa.JSON, nullable=False),
        sa.Column('employee_details', sa.JSON, nullable=False),
        sa.Column('errors', sa.JSON, nullable=False),
        sa.Column('warnings', sa.JSON, nullable=False),
        *timestamps(),
        sa.UniqueConstraint('batch_id', name='uq_payroll_summaries_batch_id'),
    )


def downgrade() -> None:
    op.drop_table('payroll_summaries')
    op.drop_table('payroll_items')
    op.drop_table('payroll_records')
    op.drop_table('deductions')
    op.drop_table('personal_bonuses')
    op.drop_table('bonuses')
    op.drop_table('personal_allowances')
    op.drop_table('allowances')
    op.drop_table('salary_components')
    op.drop_table('salary_grades')
    op.drop_table('employees')
    op.drop_table('departments')

    bind = op.get_bind()
    for enum_cls in reversed(ENUM_TYPES):
        postgresql.ENUM(enum_cls, name=enum_cls.__name__.lower()).drop(bind, checkfirst=True)
