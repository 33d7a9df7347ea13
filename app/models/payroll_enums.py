"""
Paymaster HR - Payroll Enumerations

Enums shared by the salary, allowance, bonus, deduction and payroll models.
"""

from enum import Enum


class PayrollFrequency(str, Enum):
    """Pay period frequency."""
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"


class AllowanceFrequency(str, Enum):
    """How often an allowance definition is paid."""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"
    ONE_TIME = "one_time"


class PayrollStatus(str, Enum):
    """Payroll record lifecycle status."""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    APPROVED = "APPROVED"
    PAID = "PAID"
    REJECTED = "REJECTED"
    FAILED = "FAILED"


class ApprovalStatus(str, Enum):
    """Approval state of a personal allowance or bonus."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class CalculationMethod(str, Enum):
    """How an amount is derived from a configured value."""
    FIXED = "fixed"
    PERCENTAGE = "percentage"
    PROGRESSIVE = "progressive"


class ScopeType(str, Enum):
    """Applicability breadth of an allowance or deduction definition."""
    COMPANY_WIDE = "company_wide"
    DEPARTMENT = "department"
    GRADE = "grade"
    INDIVIDUAL = "individual"
