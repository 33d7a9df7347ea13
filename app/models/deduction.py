"""
Paymaster HR - Deduction Models

Statutory deductions (PAYE, Pension, NHF) are seeded by the system; voluntary
deductions are created by administrators and scoped to the company, a
department, a grade level or a single employee. A voluntary deduction is only
taken from employees who have been assigned to it (EmployeeDeduction).
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean, DateTime, ForeignKey, JSON, Numeric, String, Text, UniqueConstraint, Uuid,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, AuditMixin
from app.models.payroll_enums import CalculationMethod, ScopeType


class DeductionType(str, Enum):
    """Deduction type."""
    STATUTORY = "statutory"
    VOLUNTARY = "voluntary"


class DeductionCategory(str, Enum):
    """Deduction category."""
    TAX = "tax"
    PENSION = "pension"
    HOUSING = "housing"
    LOAN = "loan"
    TRANSPORT = "transport"
    COOPERATIVE = "cooperative"
    GENERAL = "general"
    OTHER = "other"


# Seeded statutory deduction names
PAYE_NAME = "PAYE Tax"
PENSION_NAME = "Pension"
NHF_NAME = "NHF"


class Deduction(BaseModel, AuditMixin):
    """Deduction definition."""

    __tablename__ = "deductions"

    name: Mapped[str] = mapped_column(String(150), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    deduction_type: Mapped[DeductionType] = mapped_column(
        SQLEnum(DeductionType),
        nullable=False,
        index=True,
    )
    category: Mapped[DeductionCategory] = mapped_column(
        SQLEnum(DeductionCategory),
        default=DeductionCategory.GENERAL,
        nullable=False,
    )
    calculation_method: Mapped[CalculationMethod] = mapped_column(
        SQLEnum(CalculationMethod),
        nullable=False,
    )
    value: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0"),
        nullable=False,
        comment="Fixed amount or percentage; unused for progressive",
    )
    tax_brackets: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(
        JSON,
        nullable=True,
        comment="[{min, max, rate}] ascending, for progressive deductions",
    )

    scope: Mapped[ScopeType] = mapped_column(
        SQLEnum(ScopeType),
        default=ScopeType.COMPANY_WIDE,
        nullable=False,
    )
    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("departments.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    employee_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    grade_level: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    is_mandatory: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @property
    def is_statutory(self) -> bool:
        return self.deduction_type == DeductionType.STATUTORY

    @property
    def is_paye(self) -> bool:
        return self.is_statutory and self.category == DeductionCategory.TAX


class EmployeeDeduction(BaseModel, AuditMixin):
    """
    An employee's assignment to a voluntary deduction.

    One row per (employee, deduction); removal deactivates the row and a
    later assignment reactivates it. history records every change.
    """

    __tablename__ = "employee_deductions"
    __table_args__ = (
        UniqueConstraint("employee_id", "deduction_id", name="uq_employee_deduction"),
    )

    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    deduction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("deductions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    removed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    removal_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    history: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
        comment="[{action, user_id, timestamp, reason}]",
    )

    deduction: Mapped["Deduction"] = relationship("Deduction", lazy="selectin")

    def __repr__(self) -> str:
        return f"<EmployeeDeduction(employee={self.employee_id}, deduction={self.deduction_id}, active={self.is_active})>"
