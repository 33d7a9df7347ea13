"""
Paymaster HR - Allowance Models

Allowance definitions and the per-employee personal allowances that
reference them. A personal allowance is consumed by exactly one payroll
record; the used_in_payroll_* columns hold that claim.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, AuditMixin
from app.models.payroll_enums import AllowanceFrequency, ApprovalStatus, ScopeType


class AllowanceType(str, Enum):
    """How an allowance amount is calculated."""
    FIXED = "fixed"
    PERCENTAGE = "percentage"  # of basic salary
    PERFORMANCE_BASED = "performance_based"


class Allowance(BaseModel, AuditMixin):
    """Allowance definition created by an administrator."""

    __tablename__ = "allowances"

    name: Mapped[str] = mapped_column(String(150), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    allowance_type: Mapped[AllowanceType] = mapped_column(
        SQLEnum(AllowanceType),
        nullable=False,
    )
    value: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        nullable=False,
        comment="Fixed amount, or percentage of basic salary",
    )
    base_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=15, scale=2),
        nullable=True,
        comment="Base amount for performance-based allowances",
    )
    frequency: Mapped[AllowanceFrequency] = mapped_column(
        SQLEnum(AllowanceFrequency),
        default=AllowanceFrequency.MONTHLY,
        nullable=False,
    )

    scope: Mapped[ScopeType] = mapped_column(
        SQLEnum(ScopeType),
        default=ScopeType.INDIVIDUAL,
        nullable=False,
    )
    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("departments.id", ondelete="SET NULL"),
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

    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    is_taxable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    personal_allowances: Mapped[List["PersonalAllowance"]] = relationship(
        "PersonalAllowance",
        back_populates="allowance",
    )


class PersonalAllowance(BaseModel, AuditMixin):
    """
    An allowance assigned to (or requested by) one employee.

    Eligible for a period when approved, the date range overlaps the period
    and used_in_payroll_id is still null.
    """

    __tablename__ = "personal_allowances"

    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    allowance_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("allowances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    approval_status: Mapped[ApprovalStatus] = mapped_column(
        SQLEnum(ApprovalStatus),
        default=ApprovalStatus.PENDING,
        nullable=False,
        index=True,
    )
    approved_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Performance-based inputs
    performance_score: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=7, scale=2), nullable=True,
    )
    target_score: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=7, scale=2), nullable=True,
    )

    # Consumption marker (no FK: the claim is written in the same
    # transaction that inserts the payroll record)
    used_in_payroll_month: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    used_in_payroll_year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    used_in_payroll_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, nullable=True, index=True,
    )

    allowance: Mapped["Allowance"] = relationship(
        "Allowance",
        back_populates="personal_allowances",
        lazy="selectin",
    )

    @property
    def is_consumed(self) -> bool:
        return self.used_in_payroll_id is not None
