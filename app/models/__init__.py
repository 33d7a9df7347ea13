"""
Paymaster HR - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from app.models.base import BaseModel, TimestampMixin, AuditMixin
from app.models.payroll_enums import (
    PayrollFrequency,
    AllowanceFrequency,
    PayrollStatus,
    ApprovalStatus,
    CalculationMethod,
    ScopeType,
)
from app.models.employee import Department, Employee, EmploymentStatus
from app.models.salary import SalaryGrade, SalaryComponent, ComponentType
# Earnings
from app.models.allowance import Allowance, AllowanceType, PersonalAllowance
from app.models.bonus import Bonus, BonusType, PersonalBonus
# Deductions
from app.models.deduction import (
    Deduction,
    DeductionType,
    DeductionCategory,
    EmployeeDeduction,
    PAYE_NAME,
    PENSION_NAME,
    NHF_NAME,
)
# Payroll
from app.models.payroll import (
    PayrollRecord,
    PayrollItem,
    PayrollSummary,
    PayItemType,
    PayItemCategory,
)

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "AuditMixin",
    "PayrollFrequency",
    "AllowanceFrequency",
    "PayrollStatus",
    "ApprovalStatus",
    "CalculationMethod",
    "ScopeType",
    "Department",
    "Employee",
    "EmploymentStatus",
    "SalaryGrade",
    "SalaryComponent",
    "ComponentType",
    "Allowance",
    "AllowanceType",
    "PersonalAllowance",
    "Bonus",
    "BonusType",
    "PersonalBonus",
    "Deduction",
    "DeductionType",
    "DeductionCategory",
    "EmployeeDeduction",
    "PAYE_NAME",
    "PENSION_NAME",
    "NHF_NAME",
    "PayrollRecord",
    "PayrollItem",
    "PayrollSummary",
    "PayItemType",
    "PayItemCategory",
]
